"""Tests for the loopback transport, credential store and backoff policy."""

import random

import pytest

from salesbot.connection import FileCredentialStore, reconnect_delay
from salesbot.models import ConnectionUpdate, DisconnectReason, Identity, SessionState
from salesbot.transport import (
    CONNECTION_UPDATE,
    MESSAGES_UPSERT,
    LoopbackTransport,
    is_group_or_broadcast,
)


class TestGroupDetection:
    """Tests for is_group_or_broadcast()."""

    def test_suffixes(self):
        assert is_group_or_broadcast("120363000000000000@g.us")
        assert is_group_or_broadcast("status@broadcast")
        assert not is_group_or_broadcast("233244000111@s.whatsapp.net")


class TestLoopbackTransport:
    """Tests for LoopbackTransport."""

    @pytest.mark.asyncio
    async def test_start_reports_connecting_then_open(self):
        updates = []
        transport = LoopbackTransport(identity=Identity("bot"))
        transport.on(CONNECTION_UPDATE, updates.append)

        await transport.start()

        assert [u.connection for u in updates] == [SessionState.CONNECTING, SessionState.OPEN]
        assert transport.user == Identity("bot")

    @pytest.mark.asyncio
    async def test_receive_marks_groups(self):
        messages = []
        transport = LoopbackTransport()
        transport.on(MESSAGES_UPSERT, messages.extend)

        await transport.receive("120363000000000000@g.us", "hi")

        assert messages[0].is_group_or_broadcast

    @pytest.mark.asyncio
    async def test_send_after_end_raises(self):
        transport = LoopbackTransport()
        transport.end()

        with pytest.raises(ConnectionError):
            await transport.send_message("c1", {"text": "hi"})

    @pytest.mark.asyncio
    async def test_logout_reports_logged_out(self):
        updates: list[ConnectionUpdate] = []
        transport = LoopbackTransport(identity=Identity("bot"))
        transport.on(CONNECTION_UPDATE, updates.append)
        await transport.start()

        await transport.logout()

        assert transport.user is None
        assert updates[-1].disconnect_reason is DisconnectReason.LOGGED_OUT


class TestFileCredentialStore:
    """Tests for FileCredentialStore."""

    def test_round_trip(self, tmp_path):
        store = FileCredentialStore(tmp_path / "auth", "shop")

        assert store.load() is None
        store.save({"noise_key": "abc"})

        assert store.path == tmp_path / "auth" / "shop.json"
        assert store.load() == {"noise_key": "abc"}

    def test_clear(self, tmp_path):
        store = FileCredentialStore(tmp_path, "shop")
        store.save({"noise_key": "abc"})

        store.clear()
        store.clear()

        assert store.load() is None

    def test_profiles_are_separate(self, tmp_path):
        FileCredentialStore(tmp_path, "a").save({"k": 1})
        assert FileCredentialStore(tmp_path, "b").load() is None


class TestReconnectDelay:
    """Tests for reconnect_delay()."""

    def test_grows_exponentially_within_jitter(self):
        rng = random.Random(7)
        for attempt, ceiling in [(1, 1.0), (2, 2.0), (3, 4.0), (4, 8.0)]:
            delay = reconnect_delay(attempt, base=1.0, cap=30.0, rng=rng)
            assert ceiling / 2 <= delay <= ceiling

    def test_capped(self):
        delay = reconnect_delay(20, base=1.0, cap=30.0, rng=random.Random(1))
        assert 15.0 <= delay <= 30.0
