"""ConnectionManager: owns the single live transport session."""

import asyncio
import inspect
from functools import partial
from typing import Awaitable, Callable, Protocol

from ..errors import SessionFatalError
from ..event_bus import IEventBus
from ..logging_config import get_logger
from ..models import (
    ConnectionUpdate,
    DisconnectReason,
    Identity,
    InboundMessage,
    SessionState,
    Topic,
)
from ..tracker import ITracker
from ..transport import (
    CONNECTION_UPDATE,
    CREDS_UPDATE,
    MESSAGES_UPSERT,
    ITransport,
    TransportFactory,
)
from .backoff import reconnect_delay
from .credentials import ICredentialStore

logger = get_logger(__name__)

ACTOR = "connection_manager"

ReadyCallback = Callable[[ITransport], Awaitable[None] | None]
FatalHook = Callable[[str], None]


def exit_process(reason: str) -> None:
    """Default fatal hook: stop the process and leave the restart to a supervisor."""
    logger.critical("Session unrecoverable (%s); exiting", reason)
    raise SystemExit(1) from SessionFatalError(reason)


class IConnectionManager(Protocol):
    """Lifecycle of the transport session."""

    @property
    def state(self) -> SessionState:
        """Current connection state."""
        ...

    @property
    def session(self) -> ITransport | None:
        """The last transport that became fully ready, if any."""
        ...

    async def connect(self, on_ready: ReadyCallback | None = None) -> ITransport | None:
        """Create (or join the in-flight creation of) a transport session."""
        ...

    async def logout(self) -> None:
        """End the session and erase persisted credentials."""
        ...


class ConnectionManager:
    """Keeps one authenticated transport session alive.

    States run initializing -> connecting -> open -> closed. A close that was
    not caused by a logout schedules a reconnect while attempts remain; a
    logout-caused close or running out of attempts calls the fatal hook.
    """

    def __init__(
        self,
        transport_factory: TransportFactory,
        credential_store: ICredentialStore,
        event_bus: IEventBus,
        tracker: ITracker | None = None,
        max_reconnect_attempts: int = 3,
        identity_timeout: float = 2.0,
        identity_poll_interval: float = 0.1,
        reconnect_base_delay: float = 1.0,
        reconnect_max_delay: float = 30.0,
        health_check_interval: float = 30.0,
        on_fatal: FatalHook | None = None,
    ):
        self._factory = transport_factory
        self._credentials = credential_store
        self._event_bus = event_bus
        self._tracker = tracker
        self._max_attempts = max_reconnect_attempts
        self._identity_timeout = identity_timeout
        self._identity_poll_interval = identity_poll_interval
        self._reconnect_base_delay = reconnect_base_delay
        self._reconnect_max_delay = reconnect_max_delay
        self._health_check_interval = health_check_interval
        self._on_fatal = on_fatal or exit_process

        self._state = SessionState.INITIALIZING
        self._transport: ITransport | None = None  # candidate being connected
        self._session: ITransport | None = None  # last fully-ready transport
        self._reconnect_attempts = 0
        self._pairing_code: str | None = None
        self._ready_callbacks: list[ReadyCallback] = []
        self._ready = asyncio.Event()
        self._shutting_down = False
        self._failed = False

        self._inflight: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._identity_task: asyncio.Task | None = None
        self._health_task: asyncio.Task | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> ITransport | None:
        return self._session

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def max_reconnect_attempts(self) -> int:
        return self._max_attempts

    @property
    def pairing_code(self) -> str | None:
        return self._pairing_code

    @property
    def is_ready(self) -> bool:
        session = self._session
        return (
            session is not None
            and session is self._transport
            and session.user is not None
            and self._state is SessionState.OPEN
        )

    async def wait_ready(self, timeout: float | None = None) -> bool:
        """Wait until a session is declared ready. False on timeout."""
        try:
            await asyncio.wait_for(self._ready.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def connect(self, on_ready: ReadyCallback | None = None) -> ITransport | None:
        """Create a transport session, or join the one already being created.

        on_ready is kept and called with the transport after every open whose
        identity was confirmed.
        """
        if on_ready is not None and on_ready not in self._ready_callbacks:
            self._ready_callbacks.append(on_ready)

        if self._inflight is not None and not self._inflight.done():
            logger.info("Connection already in progress")
            return await asyncio.shield(self._inflight)

        self._shutting_down = False
        self._failed = False
        self._inflight = asyncio.create_task(self._connect_once())
        return await asyncio.shield(self._inflight)

    async def _connect_once(self) -> ITransport | None:
        previous, self._transport = self._transport, None
        self._session = None
        self._ready.clear()
        self._end_quietly(previous)
        self._state = SessionState.CONNECTING

        try:
            credentials = self._credentials.load()
            transport = self._factory(credentials)
            self._transport = transport
            transport.on(CONNECTION_UPDATE, partial(self._on_connection_update, transport))
            transport.on(CREDS_UPDATE, partial(self._on_creds_update, transport))
            transport.on(MESSAGES_UPSERT, partial(self._on_messages, transport))
            await transport.start()
        except Exception as e:
            logger.error("Failed to create transport session: %s", e, exc_info=True)
            self._transport = None
            self._state = SessionState.CLOSED
            self._schedule_reconnect(f"connect failed: {e}")
            return None

        self._start_health_check()
        return transport

    async def logout(self) -> None:
        """End the session, erase persisted credentials, reset all counters."""
        self._shutting_down = True
        self._cancel_background_tasks()

        transport = self._transport or self._session
        try:
            if transport is not None:
                await transport.logout()
        except Exception as e:
            logger.error("Error during transport logout: %s", e)
        finally:
            self._end_quietly(transport)
            self._transport = None
            self._session = None
            self._ready.clear()
            self._state = SessionState.CLOSED
            self._reconnect_attempts = 0
            self._pairing_code = None
            self._credentials.clear()

        logger.info("Logged out; session credentials cleared")
        await self._track("session_logged_out", {})

    async def stop(self) -> None:
        """Close the socket without logging out (application shutdown)."""
        self._shutting_down = True
        self._cancel_background_tasks()
        self._end_quietly(self._transport)
        self._transport = None
        self._session = None
        self._ready.clear()
        self._state = SessionState.CLOSED

    # Transport events

    async def _on_connection_update(
        self, transport: ITransport, update: ConnectionUpdate
    ) -> None:
        if transport is not self._transport:
            logger.debug("Ignoring connection update from a stale transport")
            return

        if update.qr:
            self._pairing_code = update.qr
            logger.info("Pairing code received; scan it with the phone to log in")

        if update.is_new_login:
            logger.info("New login detected")
            self._reconnect_attempts = 0

        if update.connection is SessionState.CONNECTING:
            self._state = SessionState.CONNECTING
            logger.info("Transport connecting")
        elif update.connection is SessionState.OPEN:
            await self._handle_open(transport)
        elif update.connection is SessionState.CLOSED:
            await self._handle_close(update.disconnect_reason)

    async def _handle_open(self, transport: ITransport) -> None:
        self._state = SessionState.OPEN
        self._reconnect_attempts = 0
        self._pairing_code = None
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
            self._reconnect_task = None
        logger.info("Transport connection opened")

        # Identity may trail the open signal; wait for it off the event path.
        if self._identity_task is not None and not self._identity_task.done():
            self._identity_task.cancel()
        self._identity_task = asyncio.create_task(self._declare_ready(transport))

    async def _declare_ready(self, transport: ITransport) -> None:
        identity = await self._wait_for_identity(transport)
        if identity is None:
            logger.warning(
                "Transport identity not confirmed within %.1fs; session not ready",
                self._identity_timeout,
            )
            return
        if transport is not self._transport or self._state is not SessionState.OPEN:
            return

        self._session = transport
        self._ready.set()
        logger.info("Session ready as %s", identity.id)

        await self._track("session_opened", {"identity": identity.id})
        await self._event_bus.emit(
            Topic.SESSION,
            {"event": "session_ready", "identity": identity.id},
            source=ACTOR,
        )

        for callback in list(self._ready_callbacks):
            try:
                result = callback(transport)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error("Ready callback failed: %s", e, exc_info=True)

    async def _wait_for_identity(self, transport: ITransport) -> Identity | None:
        max_polls = max(int(self._identity_timeout / self._identity_poll_interval), 1)
        polls = 0
        while (transport.user is None or not transport.user.id) and polls < max_polls:
            await asyncio.sleep(self._identity_poll_interval)
            polls += 1
        user = transport.user
        return user if user is not None and user.id else None

    async def _handle_close(self, reason: DisconnectReason | None) -> None:
        self._state = SessionState.CLOSED
        self._session = None
        self._ready.clear()
        cause = (reason or DisconnectReason.UNKNOWN).value
        logger.info("Transport connection closed (%s)", cause)

        if self._shutting_down:
            return

        await self._track(
            "session_closed",
            {"reason": cause, "reconnect_attempts": self._reconnect_attempts},
        )
        await self._event_bus.emit(
            Topic.SESSION,
            {"event": "session_closed", "reason": cause},
            source=ACTOR,
        )

        if reason is DisconnectReason.LOGGED_OUT:
            self._fail("logged out by the remote side")
        else:
            self._schedule_reconnect(cause)

    async def _on_creds_update(self, transport: ITransport, credentials: dict) -> None:
        if transport is not self._transport:
            return
        self._credentials.save(credentials)
        logger.debug("Session credentials saved")

    async def _on_messages(
        self, transport: ITransport, messages: list[InboundMessage]
    ) -> None:
        if transport is not self._transport:
            logger.debug("Dropping %s messages from a stale transport", len(messages))
            return

        for message in messages:
            if message.from_self or message.is_group_or_broadcast:
                continue
            await self._event_bus.emit(
                Topic.INBOUND,
                {"conversation_id": message.conversation_id, "text": message.text},
                source=ACTOR,
            )

    # Reconnect

    def _schedule_reconnect(self, cause: str) -> None:
        if self._shutting_down:
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            logger.info("Reconnect already scheduled; ignoring trigger (%s)", cause)
            return
        if self._reconnect_attempts >= self._max_attempts:
            self._fail(f"max reconnect attempts reached ({cause})")
            return

        self._reconnect_attempts += 1
        delay = reconnect_delay(
            self._reconnect_attempts,
            base=self._reconnect_base_delay,
            cap=self._reconnect_max_delay,
        )
        logger.info(
            "Reconnecting in %.1fs (attempt %s/%s)",
            delay,
            self._reconnect_attempts,
            self._max_attempts,
            extra={"attempt": self._reconnect_attempts},
        )
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._reconnect_task = None
        await self._track(
            "reconnect_started", {"attempt": self._reconnect_attempts}
        )
        await self.connect()

    def _fail(self, reason: str) -> None:
        if self._failed:
            return
        self._failed = True
        self._state = SessionState.CLOSED
        self._reconnect_attempts = 0
        logger.critical("Connection lost for good: %s", reason)
        self._on_fatal(reason)

    # Helpers

    def _start_health_check(self) -> None:
        if self._health_check_interval <= 0:
            return
        if self._health_task is None or self._health_task.done():
            self._health_task = asyncio.create_task(self._health_check())

    async def _health_check(self) -> None:
        while not self._shutting_down:
            await asyncio.sleep(self._health_check_interval)
            if self._state is not SessionState.OPEN:
                logger.info(
                    "Connection health check: state=%s",
                    self._state.value,
                    extra={"session_state": self._state.value},
                )

    def _cancel_background_tasks(self) -> None:
        for task in (self._reconnect_task, self._identity_task, self._health_task):
            if task is not None and not task.done():
                task.cancel()
        self._reconnect_task = None
        self._identity_task = None
        self._health_task = None

    @staticmethod
    def _end_quietly(transport: ITransport | None) -> None:
        if transport is None:
            return
        try:
            transport.end()
        except Exception as e:
            logger.debug("Ignoring error while ending transport: %s", e)

    async def _track(self, event_type: str, data: dict) -> None:
        if self._tracker is not None:
            await self._tracker.track(event_type, ACTOR, data)
