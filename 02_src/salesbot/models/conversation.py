"""Conversation state data models."""

from dataclasses import dataclass, field
from enum import Enum

from .catalog import CatalogNode


class Step(str, Enum):
    """Where a conversation currently is in the order flow."""

    SERVICE_SELECTION = "service_selection"
    PRODUCT_SELECTION = "product_selection"
    ORDER_CONFIRMATION = "order_confirmation"
    IN_CONVERSATION = "in_conversation"


@dataclass
class Conversation:
    """In-memory state of one customer conversation."""

    conversation_id: str
    step: Step
    options: list[CatalogNode] = field(default_factory=list)  # last rendered list
    selected: CatalogNode | None = None
    order_id: str | None = None
