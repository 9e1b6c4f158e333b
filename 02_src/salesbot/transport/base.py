"""Transport abstraction consumed by the connection manager.

The transport owns the wire protocol and the cryptographic handshake. This
package only sees it through the small surface below: start it, listen to its
events, send through it, log out of it, end it.
"""

from typing import Any, Awaitable, Callable, Protocol

from ..models import Identity, Receipt

# Event names
CONNECTION_UPDATE = "connection.update"  # payload: ConnectionUpdate
CREDS_UPDATE = "creds.update"  # payload: dict (opaque credential blob)
MESSAGES_UPSERT = "messages.upsert"  # payload: list[InboundMessage]

GROUP_SUFFIX = "@g.us"
BROADCAST_SUFFIX = "@broadcast"

TransportEventHandler = Callable[[Any], Awaitable[None] | None]


def is_group_or_broadcast(conversation_id: str) -> bool:
    """True for group chats and broadcast lists, which the bot never answers."""
    return conversation_id.endswith(GROUP_SUFFIX) or conversation_id.endswith(
        BROADCAST_SUFFIX
    )


class ITransport(Protocol):
    """One authenticated chat transport session."""

    @property
    def user(self) -> Identity | None:
        """Identity the session is authenticated as, once confirmed."""
        ...

    def on(self, event: str, handler: TransportEventHandler) -> None:
        """Register a handler for a transport event."""
        ...

    async def start(self) -> None:
        """Begin connecting; progress is reported through connection.update."""
        ...

    async def send_message(self, conversation_id: str, content: dict) -> Receipt:
        """Send content (e.g. {"text": ...}) to a conversation."""
        ...

    async def logout(self) -> None:
        """Invalidate the session on the remote side."""
        ...

    def end(self) -> None:
        """Close the socket without logging out."""
        ...


TransportFactory = Callable[[dict | None], ITransport]
