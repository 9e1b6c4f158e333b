"""Transport module."""

from .base import (
    CONNECTION_UPDATE,
    CREDS_UPDATE,
    MESSAGES_UPSERT,
    ITransport,
    TransportFactory,
    is_group_or_broadcast,
)
from .loopback import LoopbackTransport, LoopbackTransportFactory

__all__ = [
    "CONNECTION_UPDATE",
    "CREDS_UPDATE",
    "MESSAGES_UPSERT",
    "ITransport",
    "LoopbackTransport",
    "LoopbackTransportFactory",
    "TransportFactory",
    "is_group_or_broadcast",
]
