"""Tests for ConnectionManager."""

import asyncio
from unittest.mock import Mock

import pytest
import pytest_asyncio

from salesbot.connection import ConnectionManager, MessageDispatcher
from salesbot.models import (
    BusMessage,
    ConnectionUpdate,
    DisconnectReason,
    Identity,
    SessionState,
    Topic,
)
from salesbot.transport import CONNECTION_UPDATE, LoopbackTransport, LoopbackTransportFactory

CUSTOMER = "233244000111@s.whatsapp.net"


async def wait_until(predicate, timeout: float = 2.0) -> bool:
    """Poll predicate until it holds or timeout expires."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            return False
        await asyncio.sleep(0.01)
    return True


@pytest_asyncio.fixture
async def make_manager(credential_store, event_bus, tracker, on_fatal):
    """Build managers around custom transport factories."""
    created: list[ConnectionManager] = []

    def _make(factory, **overrides) -> ConnectionManager:
        options = dict(
            max_reconnect_attempts=3,
            identity_timeout=0.3,
            identity_poll_interval=0.01,
            reconnect_base_delay=0.1,
            reconnect_max_delay=0.1,
            health_check_interval=0,
            on_fatal=on_fatal,
        )
        options.update(overrides)
        cm = ConnectionManager(
            transport_factory=factory,
            credential_store=credential_store,
            event_bus=event_bus,
            tracker=tracker,
            **options,
        )
        created.append(cm)
        return cm

    yield _make
    for cm in created:
        await cm.stop()


class TestConnect:
    """Tests for ConnectionManager.connect()."""

    @pytest.mark.asyncio
    async def test_connect_declares_ready(self, manager, transport_factory, identity, storage):
        transport = await manager.connect()

        assert await manager.wait_ready(timeout=1.0)
        assert transport is transport_factory.latest
        assert manager.session is transport
        assert manager.state is SessionState.OPEN
        assert manager.is_ready
        assert manager.reconnect_attempts == 0
        assert manager.session.user == identity

        events = await storage.get_trace_events(event_types=["session_opened"])
        assert len(events) == 1
        assert events[0].data["identity"] == identity.id

    @pytest.mark.asyncio
    async def test_session_ready_published(self, manager, event_bus):
        published: list[BusMessage] = []

        async def on_session(message: BusMessage):
            published.append(message)

        event_bus.subscribe(Topic.SESSION, on_session)
        await manager.connect()
        await manager.wait_ready(timeout=1.0)

        assert [m.payload["event"] for m in published] == ["session_ready"]

    @pytest.mark.asyncio
    async def test_concurrent_connects_share_one_transport(self, manager, transport_factory):
        """Test that a connect during an in-flight connect joins it."""
        first, second = await asyncio.gather(manager.connect(), manager.connect())

        assert first is second
        assert len(transport_factory.created) == 1

    @pytest.mark.asyncio
    async def test_ready_callbacks(self, manager):
        """Test that ready callbacks get the transport and a failing one is contained."""
        seen = []

        def broken(transport):
            raise RuntimeError("callback bug")

        async def recording(transport):
            seen.append(transport)

        await asyncio.gather(
            manager.connect(on_ready=broken),
            manager.connect(on_ready=recording),
        )
        await wait_until(lambda: seen)

        assert seen == [manager.session]

    @pytest.mark.asyncio
    async def test_saved_credentials_reach_factory(self, manager, transport_factory, credential_store):
        credential_store.save({"noise_key": "abc"})

        await manager.connect()

        assert transport_factory.latest.credentials == {"noise_key": "abc"}

    @pytest.mark.asyncio
    async def test_factory_failure_schedules_reconnect(self, make_manager, on_fatal):
        factory = Mock(side_effect=ConnectionError("refused"))
        manager = make_manager(factory)

        result = await manager.connect()

        assert result is None
        assert manager.reconnect_attempts == 1
        assert manager.state is SessionState.CLOSED
        on_fatal.assert_not_called()


class TestIdentity:
    """Tests for waiting on the transport identity."""

    @pytest.mark.asyncio
    async def test_identity_never_confirmed(self, make_manager):
        """Test that an open without identity is not declared ready."""
        manager = make_manager(LoopbackTransportFactory(identity=None))

        await manager.connect()

        assert not await manager.wait_ready(timeout=0.6)
        assert manager.session is None
        assert manager.state is SessionState.OPEN
        assert not manager.is_ready

    @pytest.mark.asyncio
    async def test_identity_arrives_after_open(self, make_manager):
        factory = LoopbackTransportFactory(
            identity=Identity("bot@s.whatsapp.net"), identity_delay=0.05
        )
        manager = make_manager(factory)

        await manager.connect()

        assert await manager.wait_ready(timeout=1.0)
        assert manager.session is factory.latest

    @pytest.mark.asyncio
    async def test_pairing_code_then_open(self, make_manager):
        factory = LoopbackTransportFactory(identity=Identity("bot@s.whatsapp.net"), auto_open=False)
        manager = make_manager(factory)
        await manager.connect()

        await factory.latest.show_pairing_code("2@AbCdEf")

        assert manager.pairing_code == "2@AbCdEf"
        assert manager.state is SessionState.CONNECTING

        await factory.latest.open()

        assert await manager.wait_ready(timeout=1.0)
        assert manager.pairing_code is None


class TestReconnect:
    """Tests for close handling and reconnects."""

    @pytest.mark.asyncio
    async def test_connection_lost_reconnects_once(self, ready_manager, transport, transport_factory):
        """Test that a non-logout close schedules one reconnect and resets attempts on reopen."""
        await transport.close(DisconnectReason.CONNECTION_LOST)

        assert ready_manager.state is SessionState.CLOSED
        assert ready_manager.reconnect_attempts == 1
        assert not ready_manager.is_ready

        assert await ready_manager.wait_ready(timeout=2.0)
        assert ready_manager.reconnect_attempts == 0
        assert len(transport_factory.created) == 2
        assert ready_manager.session is transport_factory.latest
        assert transport.ended

    @pytest.mark.asyncio
    async def test_repeated_close_collapses(self, ready_manager, transport, transport_factory):
        await transport.close(DisconnectReason.CONNECTION_LOST)
        await transport.close(DisconnectReason.TIMED_OUT)

        assert ready_manager.reconnect_attempts == 1

        assert await ready_manager.wait_ready(timeout=2.0)
        assert len(transport_factory.created) == 2

    @pytest.mark.asyncio
    async def test_stale_transport_ignored(self, ready_manager, transport, transport_factory):
        await transport.close(DisconnectReason.CONNECTION_LOST)
        assert await ready_manager.wait_ready(timeout=2.0)

        await transport.close(DisconnectReason.CONNECTION_LOST)

        assert ready_manager.state is SessionState.OPEN
        assert ready_manager.reconnect_attempts == 0
        assert len(transport_factory.created) == 2

    @pytest.mark.asyncio
    async def test_new_login_resets_attempts(self, ready_manager, transport):
        ready_manager._reconnect_attempts = 2

        await transport.emit(CONNECTION_UPDATE, ConnectionUpdate(is_new_login=True))

        assert ready_manager.reconnect_attempts == 0

    @pytest.mark.asyncio
    async def test_remote_logout_is_fatal(self, ready_manager, transport, transport_factory, on_fatal):
        await transport.close(DisconnectReason.LOGGED_OUT)

        on_fatal.assert_called_once()
        assert ready_manager.state is SessionState.CLOSED
        await asyncio.sleep(0.3)
        assert len(transport_factory.created) == 1

    @pytest.mark.asyncio
    async def test_attempts_exhausted_is_fatal(self, make_manager, on_fatal):
        factory = Mock(side_effect=ConnectionError("refused"))
        manager = make_manager(factory, max_reconnect_attempts=3)

        await manager.connect()

        assert await wait_until(lambda: on_fatal.called, timeout=3.0)
        on_fatal.assert_called_once()
        assert factory.call_count == 4
        assert manager.reconnect_attempts == 0
        assert manager.state is SessionState.CLOSED

    @pytest.mark.asyncio
    async def test_reconnect_without_identity_not_ready(self, make_manager, identity):
        """Test that the ended session is dropped while the new one lacks identity."""
        first = LoopbackTransport(identity=identity)
        second = LoopbackTransport(identity=None)
        factory = Mock(side_effect=[first, second])
        manager = make_manager(factory, identity_timeout=0.2)
        await manager.connect()
        assert await manager.wait_ready(timeout=1.0)

        await first.close(DisconnectReason.CONNECTION_LOST)
        assert await wait_until(lambda: factory.call_count == 2)
        await asyncio.sleep(0.4)

        assert manager.state is SessionState.OPEN
        assert manager.session is None
        assert not manager.is_ready

        dispatcher = MessageDispatcher(manager, base_delay=0.01, max_retries=2)
        assert await dispatcher.send_text(CUSTOMER, "hi") is None
        assert first.sent == []
        assert second.sent == []

    @pytest.mark.asyncio
    async def test_remote_logout_recorded_before_fatal(self, ready_manager, transport, event_bus, storage, on_fatal):
        order: list[str] = []

        async def on_session(message: BusMessage):
            order.append(message.payload["event"])

        event_bus.subscribe(Topic.SESSION, on_session)
        on_fatal.side_effect = lambda reason: order.append("fatal")

        await transport.close(DisconnectReason.LOGGED_OUT)

        assert order == ["session_closed", "fatal"]
        events = await storage.get_trace_events(event_types=["session_closed"])
        assert events[0].data["reason"] == "logged_out"

    @pytest.mark.asyncio
    async def test_close_traced(self, ready_manager, transport, storage):
        await transport.close(DisconnectReason.CONNECTION_CLOSED)

        events = await storage.get_trace_events(event_types=["session_closed"])
        assert len(events) == 1
        assert events[0].data["reason"] == "connection_closed"


class TestLogout:
    """Tests for ConnectionManager.logout()."""

    @pytest.mark.asyncio
    async def test_logout_deletes_credentials(self, ready_manager, transport, credential_store, on_fatal):
        await transport.update_credentials({"noise_key": "abc"})
        assert credential_store.path.exists()

        await ready_manager.logout()

        assert not credential_store.path.exists()
        assert transport.logged_out
        assert transport.ended
        assert ready_manager.session is None
        assert ready_manager.state is SessionState.CLOSED
        assert ready_manager.reconnect_attempts == 0
        on_fatal.assert_not_called()

    @pytest.mark.asyncio
    async def test_logout_does_not_reconnect(self, ready_manager, transport_factory, storage):
        await ready_manager.logout()
        await asyncio.sleep(0.3)

        assert len(transport_factory.created) == 1
        events = await storage.get_trace_events(event_types=["session_logged_out"])
        assert len(events) == 1

    @pytest.mark.asyncio
    async def test_connect_after_logout(self, ready_manager, transport_factory):
        await ready_manager.logout()

        await ready_manager.connect()

        assert await ready_manager.wait_ready(timeout=1.0)
        assert len(transport_factory.created) == 2


class TestTransportEvents:
    """Tests for credential and message events."""

    @pytest.mark.asyncio
    async def test_credentials_saved_on_update(self, transport, credential_store):
        await transport.update_credentials({"noise_key": "abc", "registration_id": 7})

        assert credential_store.load() == {"noise_key": "abc", "registration_id": 7}

    @pytest.mark.asyncio
    async def test_inbound_published(self, transport, event_bus):
        received: list[BusMessage] = []

        async def on_inbound(message: BusMessage):
            received.append(message)

        event_bus.subscribe(Topic.INBOUND, on_inbound)
        await transport.receive(CUSTOMER, "menu")

        assert len(received) == 1
        assert received[0].payload == {"conversation_id": CUSTOMER, "text": "menu"}

    @pytest.mark.asyncio
    async def test_group_self_and_broadcast_dropped(self, transport, event_bus):
        received: list[BusMessage] = []

        async def on_inbound(message: BusMessage):
            received.append(message)

        event_bus.subscribe(Topic.INBOUND, on_inbound)
        await transport.receive("120363000000000000@g.us", "menu")
        await transport.receive("status@broadcast", "menu")
        await transport.receive(CUSTOMER, "menu", from_self=True)

        assert received == []
