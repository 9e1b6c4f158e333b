"""Order-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class OrderStatus(str, Enum):
    """Lifecycle status of an order."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    CLOSED = "closed"


TERMINAL_STATUSES = frozenset(
    {OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.CLOSED}
)


@dataclass
class OrderReply:
    """One entry of an order's reply log (customer or admin)."""

    text: str
    timestamp: datetime
    is_customer: bool


@dataclass
class Order:
    """An order placed by a conversation, with a snapshot of the catalog node."""

    id: str
    conversation_id: str
    service_id: str
    service_name: str
    price: float
    status: OrderStatus
    created_at: datetime
    updated_at: datetime
    message: str = ""
    replies: list[OrderReply] = field(default_factory=list)
