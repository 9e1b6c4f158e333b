"""Core data models for the sales bot."""

from .bus import BusMessage, Topic
from .catalog import DEFAULT_CURRENCY, CatalogNode, Currency
from .conversation import Conversation, Step
from .orders import TERMINAL_STATUSES, Order, OrderReply, OrderStatus
from .session import (
    ConnectionUpdate,
    DisconnectReason,
    Identity,
    InboundMessage,
    Receipt,
    SessionState,
)
from .tracing import TraceEvent

__all__ = [
    # Bus
    "BusMessage",
    "Topic",
    # Catalog
    "CatalogNode",
    "Currency",
    "DEFAULT_CURRENCY",
    # Conversation
    "Conversation",
    "Step",
    # Orders
    "Order",
    "OrderReply",
    "OrderStatus",
    "TERMINAL_STATUSES",
    # Session
    "ConnectionUpdate",
    "DisconnectReason",
    "Identity",
    "InboundMessage",
    "Receipt",
    "SessionState",
    # Tracing
    "TraceEvent",
]
