"""Application bootstrap and lifecycle management."""

from typing import Protocol

from .config import Settings
from .connection import (
    ConnectionManager,
    FileCredentialStore,
    MessageDispatcher,
)
from .connection.manager import FatalHook
from .conversation import ConversationRegistry
from .event_bus import EventBus
from .logging_config import get_logger
from .models import Identity
from .notify import INotifier, SmsNotifier
from .orderflow import OrderFlow
from .storage import IStorage, Storage
from .tracker import ITracker, Tracker
from .transport import LoopbackTransportFactory, TransportFactory

logger = get_logger(__name__)

LOOPBACK_IDENTITY = Identity(id="salesbot@loopback", name="Sales Bot")


class IApplication(Protocol):
    """Bootstrap and lifecycle."""

    async def start(self) -> None:
        """Initialize components in dependency order."""
        ...

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        ...

    async def reset(self) -> None:
        """Drop conversations and stored data between test runs."""
        ...


class Application:
    """Main application bootstrap."""

    def __init__(
        self,
        settings: Settings | None = None,
        db_path: str | None = None,
        transport_factory: TransportFactory | None = None,
        notifier: INotifier | None = None,
        on_fatal: FatalHook | None = None,
    ):
        self._settings = settings or Settings.from_env()
        self._db_path = db_path if db_path is not None else self._settings.db_path
        self._transport_factory = transport_factory or LoopbackTransportFactory(
            identity=LOOPBACK_IDENTITY
        )
        self._notifier_override = notifier
        self._on_fatal = on_fatal

        # Components (will be initialized in start())
        self._storage: IStorage | None = None
        self._event_bus: EventBus | None = None
        self._tracker: Tracker | None = None
        self._connection: ConnectionManager | None = None
        self._dispatcher: MessageDispatcher | None = None
        self._registry: ConversationRegistry | None = None
        self._notifier: INotifier | None = None
        self._order_flow: OrderFlow | None = None

    async def start(self) -> None:
        """Initialize components in dependency order."""
        settings = self._settings
        logger.info("Starting application")

        # 1. Storage (no dependencies)
        self._storage = Storage(self._db_path)
        await self._storage.init()
        logger.info("Storage initialized")

        # 2. EventBus (depends on Storage for persistence)
        self._event_bus = EventBus(self._storage)

        # 3. Tracker (depends on EventBus + Storage)
        self._tracker = Tracker(self._event_bus, self._storage)
        await self._tracker.start()

        # 4. ConnectionManager (depends on EventBus, Tracker, credentials)
        credential_store = FileCredentialStore(
            settings.auth_dir, settings.session_profile
        )
        self._connection = ConnectionManager(
            transport_factory=self._transport_factory,
            credential_store=credential_store,
            event_bus=self._event_bus,
            tracker=self._tracker,
            max_reconnect_attempts=settings.max_reconnect_attempts,
            identity_timeout=settings.identity_timeout,
            identity_poll_interval=settings.identity_poll_interval,
            reconnect_base_delay=settings.reconnect_base_delay,
            reconnect_max_delay=settings.reconnect_max_delay,
            health_check_interval=settings.health_check_interval,
            on_fatal=self._on_fatal,
        )

        # 5. Dispatcher (depends on ConnectionManager)
        self._dispatcher = MessageDispatcher(
            self._connection,
            base_delay=settings.send_base_delay,
            max_retries=settings.send_retries,
        )

        # 6. OrderFlow (depends on everything above)
        self._registry = ConversationRegistry()
        self._notifier = self._notifier_override or SmsNotifier(
            settings_path=settings.sms_settings_path
        )
        self._order_flow = OrderFlow(
            registry=self._registry,
            catalog=self._storage,
            orders=self._storage,
            currency=self._storage,
            dispatcher=self._dispatcher,
            event_bus=self._event_bus,
            tracker=self._tracker,
            notifier=self._notifier,
            business_name=settings.business_name,
        )
        await self._order_flow.start()
        logger.info("OrderFlow started")

        # 7. Open the session last so inbound traffic finds a subscriber
        await self._connection.connect()
        logger.info("All components initialized successfully")

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        if self._connection:
            await self._connection.stop()
        if self._order_flow:
            await self._order_flow.stop()
        if self._tracker:
            await self._tracker.stop()
        if self._storage:
            await self._storage.close()
            logger.info("Storage closed")

    async def reset(self) -> None:
        """Drop conversations and stored data between test runs."""
        if self._order_flow:
            await self._order_flow.wait_for_notifications()
        if self._registry:
            self._registry.clear()
        if self._storage:
            await self._storage.clear()
            logger.info("Storage cleared")
        logger.info("Reset complete")

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def transport_factory(self) -> TransportFactory:
        return self._transport_factory

    @property
    def storage(self) -> IStorage:
        """Get storage instance."""
        if not self._storage:
            raise RuntimeError("Application not started")
        return self._storage

    @property
    def tracker(self) -> ITracker:
        if not self._tracker:
            raise RuntimeError("Application not started")
        return self._tracker

    @property
    def connection(self) -> ConnectionManager:
        """Get connection manager instance."""
        if not self._connection:
            raise RuntimeError("Application not started")
        return self._connection

    @property
    def dispatcher(self) -> MessageDispatcher:
        if not self._dispatcher:
            raise RuntimeError("Application not started")
        return self._dispatcher

    @property
    def registry(self) -> ConversationRegistry:
        if self._registry is None:
            raise RuntimeError("Application not started")
        return self._registry

    @property
    def order_flow(self) -> OrderFlow:
        """Get order flow instance."""
        if not self._order_flow:
            raise RuntimeError("Application not started")
        return self._order_flow
