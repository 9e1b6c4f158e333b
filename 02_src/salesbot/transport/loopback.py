"""In-process transport for simulation and tests."""

import asyncio
import inspect
import uuid
from collections import defaultdict
from typing import Any

from ..logging_config import get_logger
from ..models import (
    ConnectionUpdate,
    DisconnectReason,
    Identity,
    InboundMessage,
    Receipt,
    SessionState,
)
from .base import (
    CONNECTION_UPDATE,
    CREDS_UPDATE,
    MESSAGES_UPSERT,
    TransportEventHandler,
    is_group_or_broadcast,
)

logger = get_logger(__name__)


class LoopbackTransport:
    """Transport whose remote side is driven from Python.

    Outbound messages are recorded in ``sent``; inbound ones are injected with
    ``receive()``. Connection changes are triggered with ``open()``/``close()``.
    """

    def __init__(
        self,
        credentials: dict | None = None,
        identity: Identity | None = None,
        auto_open: bool = True,
        identity_delay: float = 0.0,
    ):
        self.credentials = credentials
        self._identity = identity
        self._auto_open = auto_open
        self._identity_delay = identity_delay
        self._user: Identity | None = None
        self._handlers: dict[str, list[TransportEventHandler]] = defaultdict(list)
        self.sent: list[Receipt] = []
        self.fail_sends = 0  # number of upcoming sends that raise
        self.started = False
        self.ended = False
        self.logged_out = False

    @property
    def user(self) -> Identity | None:
        return self._user

    def on(self, event: str, handler: TransportEventHandler) -> None:
        self._handlers[event].append(handler)

    async def emit(self, event: str, payload: Any) -> None:
        """Deliver an event to every handler, in registration order."""
        for handler in list(self._handlers[event]):
            result = handler(payload)
            if inspect.isawaitable(result):
                await result

    async def start(self) -> None:
        self.started = True
        await self.emit(CONNECTION_UPDATE, ConnectionUpdate(connection=SessionState.CONNECTING))
        if self._auto_open:
            await self.open()

    async def open(self) -> None:
        """Report the connection as open; identity follows after identity_delay."""
        if self._identity is not None:
            if self._identity_delay <= 0:
                self._user = self._identity
            else:
                asyncio.get_running_loop().call_later(
                    self._identity_delay, self._confirm_identity
                )
        await self.emit(CONNECTION_UPDATE, ConnectionUpdate(connection=SessionState.OPEN))

    def _confirm_identity(self) -> None:
        if not self.ended:
            self._user = self._identity

    async def close(
        self, reason: DisconnectReason = DisconnectReason.CONNECTION_LOST
    ) -> None:
        """Report the connection as closed with the given cause."""
        await self.emit(
            CONNECTION_UPDATE,
            ConnectionUpdate(connection=SessionState.CLOSED, disconnect_reason=reason),
        )

    async def show_pairing_code(self, code: str) -> None:
        await self.emit(CONNECTION_UPDATE, ConnectionUpdate(qr=code))

    async def update_credentials(self, credentials: dict) -> None:
        self.credentials = credentials
        await self.emit(CREDS_UPDATE, credentials)

    async def receive(
        self, conversation_id: str, text: str, from_self: bool = False
    ) -> None:
        """Inject an inbound text message."""
        message = InboundMessage(
            conversation_id=conversation_id,
            text=text,
            from_self=from_self,
            is_group_or_broadcast=is_group_or_broadcast(conversation_id),
        )
        await self.emit(MESSAGES_UPSERT, [message])

    async def send_message(self, conversation_id: str, content: dict) -> Receipt:
        if self.ended:
            raise ConnectionError("Transport has been ended")
        if self.fail_sends > 0:
            self.fail_sends -= 1
            raise ConnectionError("Simulated send failure")
        receipt = Receipt(
            message_id=uuid.uuid4().hex,
            conversation_id=conversation_id,
            content=dict(content),
        )
        self.sent.append(receipt)
        return receipt

    def sent_texts(self, conversation_id: str) -> list[str]:
        """Texts sent to one conversation, oldest first."""
        return [
            r.content.get("text", "")
            for r in self.sent
            if r.conversation_id == conversation_id
        ]

    async def logout(self) -> None:
        self.logged_out = True
        self._user = None
        await self.close(DisconnectReason.LOGGED_OUT)

    def end(self) -> None:
        self.ended = True


class LoopbackTransportFactory:
    """Builds LoopbackTransports and remembers every one it built."""

    def __init__(
        self,
        identity: Identity | None = None,
        auto_open: bool = True,
        identity_delay: float = 0.0,
    ):
        self._identity = identity
        self._auto_open = auto_open
        self._identity_delay = identity_delay
        self.created: list[LoopbackTransport] = []

    def __call__(self, credentials: dict | None) -> LoopbackTransport:
        transport = LoopbackTransport(
            credentials=credentials,
            identity=self._identity,
            auto_open=self._auto_open,
            identity_delay=self._identity_delay,
        )
        self.created.append(transport)
        logger.debug("Created loopback transport #%s", len(self.created))
        return transport

    @property
    def latest(self) -> LoopbackTransport | None:
        return self.created[-1] if self.created else None
