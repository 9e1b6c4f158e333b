"""Sales bot: catalog ordering over a chat transport."""

from .app import Application, IApplication
from .config import Settings
from .connection import ConnectionManager, IDispatcher, MessageDispatcher
from .conversation import ConversationRegistry
from .event_bus import EventBus, IEventBus
from .models import (
    BusMessage,
    CatalogNode,
    Conversation,
    Currency,
    Order,
    OrderStatus,
    SessionState,
    Step,
    Topic,
    TraceEvent,
)
from .notify import INotifier, SmsNotifier
from .orderflow import OrderFlow
from .storage import IStorage, Storage
from .tracker import ITracker, Tracker
from .transport import ITransport, LoopbackTransport

__all__ = [
    # Application
    "Application",
    "IApplication",
    "Settings",
    # Models
    "BusMessage",
    "CatalogNode",
    "Conversation",
    "Currency",
    "Order",
    "OrderStatus",
    "SessionState",
    "Step",
    "Topic",
    "TraceEvent",
    # Components
    "IStorage",
    "Storage",
    "IEventBus",
    "EventBus",
    "ITracker",
    "Tracker",
    "ITransport",
    "LoopbackTransport",
    "ConnectionManager",
    "IDispatcher",
    "MessageDispatcher",
    "ConversationRegistry",
    "OrderFlow",
    "INotifier",
    "SmsNotifier",
]
