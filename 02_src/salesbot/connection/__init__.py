"""Connection lifecycle and outbound dispatch."""

from .backoff import reconnect_delay
from .credentials import FileCredentialStore, ICredentialStore
from .dispatcher import IDispatcher, MessageDispatcher
from .manager import ConnectionManager, IConnectionManager, exit_process

__all__ = [
    "ConnectionManager",
    "FileCredentialStore",
    "ICredentialStore",
    "IConnectionManager",
    "IDispatcher",
    "MessageDispatcher",
    "exit_process",
    "reconnect_delay",
]
