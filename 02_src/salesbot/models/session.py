"""Transport session data models."""

from dataclasses import dataclass, field
from enum import Enum


class SessionState(str, Enum):
    """Connection state of the transport session."""

    INITIALIZING = "initializing"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class DisconnectReason(str, Enum):
    """Why the transport closed the connection."""

    LOGGED_OUT = "logged_out"
    CONNECTION_LOST = "connection_lost"
    CONNECTION_CLOSED = "connection_closed"
    TIMED_OUT = "timed_out"
    RESTART_REQUIRED = "restart_required"
    UNKNOWN = "unknown"


@dataclass
class Identity:
    """The account the transport is authenticated as."""

    id: str
    name: str | None = None


@dataclass
class ConnectionUpdate:
    """A connection state change announced by the transport."""

    connection: SessionState | None = None
    disconnect_reason: DisconnectReason | None = None
    qr: str | None = None
    is_new_login: bool = False


@dataclass
class InboundMessage:
    """A text message received by the transport."""

    conversation_id: str
    text: str
    from_self: bool = False
    is_group_or_broadcast: bool = False


@dataclass
class Receipt:
    """Transport acknowledgement of an outbound message."""

    message_id: str
    conversation_id: str
    content: dict = field(default_factory=dict)
