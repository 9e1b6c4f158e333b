"""Pytest configuration and fixtures."""

import sys
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

BOT_IDENTITY_ID = "233500000000@s.whatsapp.net"
CUSTOMER = "233244000111@s.whatsapp.net"


@pytest_asyncio.fixture
async def storage():
    """Create in-memory storage for testing."""
    from salesbot.storage import Storage

    st = Storage(":memory:")
    await st.init()
    yield st
    await st.close()


@pytest.fixture
def event_bus(storage):
    """Create EventBus with storage."""
    from salesbot.event_bus import EventBus

    return EventBus(storage)


@pytest.fixture
def tracker(storage, event_bus):
    """Create Tracker with storage and event bus."""
    from salesbot.tracker import Tracker

    return Tracker(event_bus=event_bus, storage=storage)


@pytest_asyncio.fixture
async def catalog(storage):
    """Seed a small service catalog.

    Web Services
        Website Design      150.00
        SEO Audit            80.00
        Hosting
            Basic Hosting    10.00
    Training
        Coming Soon         (no price, no children)
    Consultation             50.00
    Brochure                (no price, no children)
    """
    from salesbot.models import CatalogNode

    nodes = [
        CatalogNode("web", "Web Services"),
        CatalogNode("web-design", "Website Design", "web", 150.0),
        CatalogNode("web-seo", "SEO Audit", "web", 80.0),
        CatalogNode("web-hosting", "Hosting", "web"),
        CatalogNode("hosting-basic", "Basic Hosting", "web-hosting", 10.0),
        CatalogNode("training", "Training"),
        CatalogNode("training-soon", "Coming Soon", "training"),
        CatalogNode("consult", "Consultation", None, 50.0),
        CatalogNode("brochure", "Brochure"),
    ]
    for node in nodes:
        await storage.save_catalog_node(node)
    return storage


@pytest.fixture
def identity():
    from salesbot.models import Identity

    return Identity(id=BOT_IDENTITY_ID, name="Fx Cobra X")


@pytest.fixture
def transport_factory(identity):
    """Loopback transports that open immediately with a confirmed identity."""
    from salesbot.transport import LoopbackTransportFactory

    return LoopbackTransportFactory(identity=identity)


@pytest.fixture
def credential_store(tmp_path):
    from salesbot.connection import FileCredentialStore

    return FileCredentialStore(tmp_path / "session", "test")


@pytest.fixture
def on_fatal():
    return Mock()


@pytest_asyncio.fixture
async def manager(transport_factory, credential_store, event_bus, tracker, on_fatal):
    """ConnectionManager with short timings and a recording fatal hook."""
    from salesbot.connection import ConnectionManager

    cm = ConnectionManager(
        transport_factory=transport_factory,
        credential_store=credential_store,
        event_bus=event_bus,
        tracker=tracker,
        max_reconnect_attempts=3,
        identity_timeout=0.5,
        identity_poll_interval=0.01,
        reconnect_base_delay=0.2,
        reconnect_max_delay=0.2,
        health_check_interval=0,
        on_fatal=on_fatal,
    )
    yield cm
    await cm.stop()


@pytest_asyncio.fixture
async def ready_manager(manager):
    """Manager whose first session is open and identity-confirmed."""
    await manager.connect()
    assert await manager.wait_ready(timeout=1.0)
    return manager


@pytest.fixture
def transport(ready_manager):
    """The live loopback session."""
    return ready_manager.session


@pytest.fixture
def dispatcher(manager):
    from salesbot.connection import MessageDispatcher

    return MessageDispatcher(manager, base_delay=0.01, max_retries=3)


@pytest.fixture
def registry():
    from salesbot.conversation import ConversationRegistry

    return ConversationRegistry()


@pytest.fixture
def notifier():
    """Notifier stub that records alerts."""
    n = Mock()
    n.notify = AsyncMock(return_value={"code": "1000", "message": "Message submitted successfully"})
    return n


@pytest_asyncio.fixture
async def order_flow(registry, storage, dispatcher, event_bus, tracker, notifier, ready_manager):
    """OrderFlow subscribed to the bus, wired to a ready loopback session."""
    from salesbot.orderflow import OrderFlow

    flow = OrderFlow(
        registry=registry,
        catalog=storage,
        orders=storage,
        currency=storage,
        dispatcher=dispatcher,
        event_bus=event_bus,
        tracker=tracker,
        notifier=notifier,
        business_name="Fx Cobra X",
    )
    await flow.start()
    yield flow
    await flow.stop()
