"""Tests for ConversationRegistry."""

import asyncio

import pytest

from salesbot.models import Conversation, Step


class TestRegistryRecords:
    """Tests for record bookkeeping."""

    def test_set_get_delete(self, registry):
        record = Conversation("c1", Step.SERVICE_SELECTION)

        registry.set(record)
        assert registry.get("c1") is record
        assert "c1" in registry
        assert len(registry) == 1

        registry.delete("c1")
        assert registry.get("c1") is None
        assert "c1" not in registry

    def test_delete_missing_is_noop(self, registry):
        registry.delete("nobody")

    def test_set_replaces(self, registry):
        registry.set(Conversation("c1", Step.SERVICE_SELECTION))
        registry.set(Conversation("c1", Step.IN_CONVERSATION, order_id="o1"))

        assert registry.get("c1").step is Step.IN_CONVERSATION
        assert len(registry) == 1

    def test_clear(self, registry):
        registry.set(Conversation("c1", Step.SERVICE_SELECTION))
        registry.set(Conversation("c2", Step.SERVICE_SELECTION))

        registry.clear()

        assert len(registry) == 0


class TestRegistryLock:
    """Tests for per-conversation locking."""

    @pytest.mark.asyncio
    async def test_same_conversation_serialized(self, registry):
        order = []

        async def work(tag: str):
            async with registry.lock("c1"):
                order.append(f"{tag}-in")
                await asyncio.sleep(0.01)
                order.append(f"{tag}-out")

        await asyncio.gather(work("a"), work("b"))

        assert order == ["a-in", "a-out", "b-in", "b-out"]

    @pytest.mark.asyncio
    async def test_different_conversations_interleave(self, registry):
        order = []

        async def work(cid: str):
            async with registry.lock(cid):
                order.append(f"{cid}-in")
                await asyncio.sleep(0.01)
                order.append(f"{cid}-out")

        await asyncio.gather(work("c1"), work("c2"))

        assert order[:2] == ["c1-in", "c2-in"]

    @pytest.mark.asyncio
    async def test_locks_released(self, registry):
        async with registry.lock("c1"):
            pass

        assert registry._locks == {}
        assert registry._lock_holders == {}

    @pytest.mark.asyncio
    async def test_lock_released_on_error(self, registry):
        with pytest.raises(ValueError):
            async with registry.lock("c1"):
                raise ValueError("boom")

        assert "c1" not in registry._locks
