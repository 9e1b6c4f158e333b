"""Outbound message dispatch with readiness checks and bounded retries."""

import asyncio
from typing import Protocol

from ..errors import TransientTransportError
from ..logging_config import get_logger
from ..models import Receipt, SessionState
from ..transport import ITransport
from .manager import IConnectionManager

logger = get_logger(__name__)


class IDispatcher(Protocol):
    """Best-effort sending of replies to conversations."""

    async def send(
        self, conversation_id: str, content: dict, max_retries: int | None = None
    ) -> Receipt | None:
        """Send content; None if it could not be delivered."""
        ...

    async def send_text(self, conversation_id: str, text: str) -> Receipt | None:
        """Send a plain text message."""
        ...


class MessageDispatcher:
    """Sends through whatever session the connection manager currently holds.

    Never raises: after ``max_retries`` attempts with linear backoff
    (attempt * base_delay) the send is given up and None is returned.
    """

    def __init__(
        self,
        connection: IConnectionManager,
        base_delay: float = 1.0,
        max_retries: int = 3,
    ):
        self._connection = connection
        self._base_delay = base_delay
        self._max_retries = max_retries

    def _ready_session(self) -> ITransport:
        session = self._connection.session
        if session is None:
            raise TransientTransportError("no session")
        if session.user is None:
            raise TransientTransportError("identity not confirmed")
        state = self._connection.state
        if state is not SessionState.OPEN:
            raise TransientTransportError(f"connection not open (state={state.value})")
        return session

    async def send(
        self, conversation_id: str, content: dict, max_retries: int | None = None
    ) -> Receipt | None:
        retries = max_retries if max_retries is not None else self._max_retries

        for attempt in range(1, retries + 1):
            try:
                session = self._ready_session()
                receipt = await session.send_message(conversation_id, content)
                if attempt > 1:
                    logger.info("Message sent on attempt %s", attempt)
                return receipt
            except TransientTransportError as e:
                logger.warning(
                    "Session not ready (attempt %s/%s): %s",
                    attempt,
                    retries,
                    e,
                    extra={"conversation_id": conversation_id},
                )
            except Exception as e:
                logger.error(
                    "Error sending message (attempt %s/%s): %s",
                    attempt,
                    retries,
                    e,
                    extra={"conversation_id": conversation_id},
                )

            if attempt < retries:
                await asyncio.sleep(attempt * self._base_delay)

        logger.error(
            "Failed to send message after %s attempts",
            retries,
            extra={"conversation_id": conversation_id},
        )
        return None

    async def send_text(self, conversation_id: str, text: str) -> Receipt | None:
        return await self.send(conversation_id, {"text": text})
