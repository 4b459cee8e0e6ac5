"""Tests for the transport client's listener table and state handling."""

import pytest

from tekken_overlays.realtime.client import ConnectionState, ListenerTable, TransportClient, error_message
from tests.mocks import settle


class TestListenerTable:
    """Tests for scoped listener registration."""

    def test_first_and_last_hooks_skip_status_events(self):
        table = ListenerTable("test")
        firsts, lasts = [], []
        table.on_first = firsts.append
        table.on_last = lasts.append

        a = table.add("lnw-display-mode", lambda d: None)
        b = table.add("lnw-display-mode", lambda d: None)
        status = table.add("connect", lambda d: None)
        assert firsts == ["lnw-display-mode"]
        assert table.events() == ["lnw-display-mode"]

        a.close()
        assert lasts == []
        b.close()
        b.close()
        status.close()
        assert lasts == ["lnw-display-mode"]
        assert table.events() == []

    @pytest.mark.asyncio
    async def test_dispatch_in_order_and_isolates_failures(self):
        table = ListenerTable("test")
        seen = []

        def broken(data):
            raise RuntimeError("bad handler")

        async def async_handler(data):
            seen.append(("async", data))

        table.add("iff-player-update", broken)
        table.add("iff-player-update", lambda d: seen.append(("sync", d)))
        table.add("iff-player-update", async_handler)

        await table.dispatch("iff-player-update", 1)
        await table.dispatch("iff-player-update", 2)

        assert seen == [("sync", 1), ("async", 1), ("sync", 2), ("async", 2)]

    @pytest.mark.asyncio
    async def test_released_handler_not_called(self):
        table = ListenerTable("test")
        seen = []
        with table.add("iff-player-update", seen.append):
            await table.dispatch("iff-player-update", 1)
        await table.dispatch("iff-player-update", 2)
        assert seen == [1]


class TestTransportClient:
    """Tests that need no server."""

    def test_auth_lists_channels_for_listened_events(self):
        client = TransportClient("http://localhost:1", "key", name="test")
        client.listen("love-and-war-display-update", lambda d: None)
        client.listen("lnw-display-mode", lambda d: None)
        client.listen("connect_error", lambda d: None)

        assert client._auth() == {"token": "key", "channels": ["lnw-display-mode", "love-and-war-display"]}

    @pytest.mark.asyncio
    async def test_emit_when_disconnected_is_dropped(self):
        client = TransportClient("http://localhost:1", "key", name="test")
        assert not await client.emit("lnw-display-mode", {"mode": "idle"})

    @pytest.mark.asyncio
    async def test_connect_error_sets_state_and_notifies(self):
        client = TransportClient("http://localhost:1", "bad", name="test")
        errors = []
        client.listen("connect_error", errors.append)
        client._ensure_pump()

        await client._on_connect_error({"message": "Invalid connection key"})
        await settle()

        assert client.state == ConnectionState.ERROR
        assert client.error == "Invalid connection key"
        assert errors == ["Invalid connection key"]
        await client.close()
        assert client.state == ConnectionState.DISCONNECTED

    def test_error_message_shapes(self):
        assert error_message({"message": "nope"}) == "nope"
        assert error_message("plain") == "plain"
        assert error_message(None) == "Connection failed"
