"""Tests for EventBus."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from salesbot.models import BusMessage, Topic

CUSTOMER = "233244000111@s.whatsapp.net"


def inbound(text: str = "menu") -> BusMessage:
    return BusMessage(
        id="bus1",
        topic=Topic.INBOUND,
        payload={"conversation_id": CUSTOMER, "text": text},
        source="test",
        timestamp=datetime.now(timezone.utc),
    )


class TestEventBusSubscribe:
    """Tests for EventBus subscription."""

    @pytest.mark.asyncio
    async def test_every_topic_starts_empty(self, event_bus):
        for topic in Topic:
            assert event_bus._subscribers[topic] == []

    @pytest.mark.asyncio
    async def test_subscribe_multiple_handlers(self, event_bus):
        async def handler1(msg: BusMessage):
            pass

        async def handler2(msg: BusMessage):
            pass

        event_bus.subscribe(Topic.INBOUND, handler1)
        event_bus.subscribe(Topic.INBOUND, handler2)

        assert len(event_bus._subscribers[Topic.INBOUND]) == 2

    @pytest.mark.asyncio
    async def test_unsubscribe(self, event_bus):
        calls = []

        async def handler(msg: BusMessage):
            calls.append(msg)

        event_bus.subscribe(Topic.INBOUND, handler)
        event_bus.unsubscribe(Topic.INBOUND, handler)
        event_bus.unsubscribe(Topic.INBOUND, handler)

        await event_bus.publish(inbound())

        assert calls == []


class TestEventBusPublish:
    """Tests for EventBus publishing."""

    @pytest.mark.asyncio
    async def test_publish_multiple_subscribers(self, event_bus):
        calls = []

        async def handler1(msg: BusMessage):
            calls.append(("h1", msg.id))

        async def handler2(msg: BusMessage):
            calls.append(("h2", msg.id))

        event_bus.subscribe(Topic.INBOUND, handler1)
        event_bus.subscribe(Topic.INBOUND, handler2)

        await event_bus.publish(inbound())

        assert calls == [("h1", "bus1"), ("h2", "bus1")]

    @pytest.mark.asyncio
    async def test_publish_different_topics(self, event_bus):
        """Test that subscribers only receive messages from their topic."""
        order_handler = AsyncMock()
        event_bus.subscribe(Topic.ORDER, order_handler)

        await event_bus.publish(inbound())

        order_handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_publish_persists_message(self, event_bus, storage):
        await event_bus.publish(inbound("hello"))

        messages = await storage.get_bus_messages()
        assert len(messages) == 1
        assert messages[0].payload["text"] == "hello"

    @pytest.mark.asyncio
    async def test_publish_assigns_missing_id(self, event_bus):
        msg = inbound()
        msg.id = ""

        await event_bus.publish(msg)

        assert msg.id

    @pytest.mark.asyncio
    async def test_emit_builds_message(self, event_bus):
        handler = AsyncMock()
        event_bus.subscribe(Topic.SESSION, handler)

        msg = await event_bus.emit(Topic.SESSION, {"event": "session_ready"}, source="connection_manager")

        handler.assert_awaited_once_with(msg)
        assert msg.topic is Topic.SESSION
        assert msg.source == "connection_manager"
        assert msg.id

    @pytest.mark.asyncio
    async def test_publish_error_in_handler(self, event_bus, storage):
        """Test that errors in one handler don't affect others."""
        calls = []

        async def failing_handler(msg: BusMessage):
            calls.append("failing")
            raise RuntimeError("Test error")

        async def normal_handler(msg: BusMessage):
            calls.append("normal")

        event_bus.subscribe(Topic.INBOUND, failing_handler)
        event_bus.subscribe(Topic.INBOUND, normal_handler)

        await event_bus.publish(inbound())

        assert calls == ["failing", "normal"]
        assert len(await storage.get_bus_messages()) == 1

    @pytest.mark.asyncio
    async def test_persist_failure_is_logged(self, event_bus, storage, monkeypatch):
        monkeypatch.setattr(storage, "save_bus_message", AsyncMock(side_effect=RuntimeError("disk full")))
        handler = AsyncMock()
        event_bus.subscribe(Topic.INBOUND, handler)

        await event_bus.publish(inbound())

        handler.assert_awaited_once()
