"""Tests for the Display State Store and the channel catalogue."""

import json

import pytest

from tekken_overlays.channels import (
    IFL_MATCH,
    LNW_DISPLAY_MODE,
    LOVE_AND_WAR_DISPLAY,
    RIB_OVERLAY_STATE,
    TAG_TEAM,
    channel_for_command,
    channel_for_event,
    get_channel,
)
from tekken_overlays.exceptions import UnknownChannelError
from tekken_overlays.realtime.store import DisplayStateStore


class Recorder:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict, int]] = []

    async def __call__(self, channel: str, payload: dict, seq: int) -> None:
        self.calls.append((channel, payload, seq))


class TestChannels:
    """Tests for channel lookup."""

    def test_command_and_event_map_to_same_channel(self):
        assert channel_for_command("love-and-war-display-select") is LOVE_AND_WAR_DISPLAY
        assert channel_for_event("love-and-war-display-update") is LOVE_AND_WAR_DISPLAY
        assert channel_for_command("update-data") is IFL_MATCH

    @pytest.mark.parametrize("event", ["data-update", "tag-team-data", "lnw-match-data", "love-and-war-display-update"])
    def test_update_event_is_not_a_command(self, event):
        with pytest.raises(UnknownChannelError, match="broadcast event"):
            channel_for_command(event)
        assert channel_for_event(event).event == event

    def test_relay_style_channels_accept_their_own_name(self):
        assert channel_for_command("lnw-display-mode") is LNW_DISPLAY_MODE
        assert channel_for_command("rib-overlay-state-update") is RIB_OVERLAY_STATE

    def test_unknown_name_becomes_relay_channel(self):
        spec = get_channel("custom-overlay")
        assert spec.event == "custom-overlay"
        assert spec.command == "custom-overlay"
        assert not spec.retained

    @pytest.mark.parametrize("name", ["", "connect", "subscribe"])
    def test_reserved_names_rejected(self, name):
        with pytest.raises(UnknownChannelError):
            get_channel(name)


class TestPublish:
    """Tests for publish and fan-out."""

    @pytest.mark.asyncio
    async def test_subscribers_receive_in_publish_order(self):
        store = DisplayStateStore()
        rec = Recorder()
        store.subscribe("love-and-war-display", rec)

        for team_id in (1, 2, 3):
            await store.publish("love-and-war-display", {"teamId": team_id, "visible": True})

        assert [c[1]["teamId"] for c in rec.calls] == [1, 2, 3]
        assert [c[2] for c in rec.calls] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_late_subscriber_hears_nothing_until_next_publish(self):
        store = DisplayStateStore()
        await store.publish("love-and-war-display", {"teamId": 1, "visible": True})

        late = Recorder()
        store.subscribe("love-and-war-display", late)
        assert late.calls == []
        assert store.last("love-and-war-display") == {"teamId": 1, "visible": True}

        await store.publish("love-and-war-display", {"teamId": 2, "visible": True})
        assert len(late.calls) == 1
        assert late.calls[0][1]["teamId"] == 2

    @pytest.mark.asyncio
    async def test_publish_with_no_subscribers_is_remembered(self):
        store = DisplayStateStore()
        seq = await store.publish("iff-player", {"id": 3})
        assert seq == 1
        assert store.last("iff-player") == {"id": 3}
        assert store.stats()["published"] == 1

    @pytest.mark.asyncio
    async def test_closed_subscription_stops_delivery(self):
        store = DisplayStateStore()
        rec = Recorder()
        sub = store.subscribe("iff-player", rec)
        await store.publish("iff-player", {"id": 1})

        sub.close()
        sub.close()
        await store.publish("iff-player", {"id": 2})

        assert len(rec.calls) == 1
        assert store.channel("iff-player").subscribers == []

    @pytest.mark.asyncio
    async def test_subscription_context_manager_releases(self):
        store = DisplayStateStore()
        rec = Recorder()
        with store.subscribe("iff-player", rec) as sub:
            assert sub.active
        assert not sub.active
        await store.publish("iff-player", {"id": 1})
        assert rec.calls == []

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_block_others(self):
        store = DisplayStateStore()

        async def broken(channel, payload, seq):
            raise RuntimeError("view gone")

        rec = Recorder()
        store.subscribe("iff-player", broken)
        store.subscribe("iff-player", rec)
        await store.publish("iff-player", {"id": 1})

        assert len(rec.calls) == 1

    @pytest.mark.asyncio
    async def test_wildcard_receives_every_channel(self):
        store = DisplayStateStore()
        rec = Recorder()
        store.subscribe_all(rec)

        await store.publish("iff-player", {"id": 1})
        await store.publish("lnw-display-mode", {"mode": "idle"})

        assert [c[0] for c in rec.calls] == ["iff-player", "lnw-display-mode"]

    @pytest.mark.asyncio
    async def test_stored_payload_is_a_copy(self):
        store = DisplayStateStore()
        payload = {"team1": {"score": 0}}
        await store.publish("lnw-match-data", payload)
        payload["team1"]["score"] = 5

        assert store.last("lnw-match-data") == {"team1": {"score": 0}}

    @pytest.mark.asyncio
    async def test_sequences_are_per_channel(self):
        store = DisplayStateStore()
        assert await store.publish("iff-player", {"id": 1}) == 1
        assert await store.publish("iff-player", {"id": 2}) == 2
        assert await store.publish("lnw-match-data", {}) == 1
        assert store.stats()["sequences"] == {"iff-player": 2, "lnw-match-data": 1}


class TestRetainedChannels:
    """Tests for scoreboard snapshots."""

    def test_default_snapshot_written_when_missing(self, tmp_path):
        store = DisplayStateStore(snapshot_dir=tmp_path)
        payload = store.retained_payload(IFL_MATCH.name)

        assert payload["p1Name"] == "Player 1"
        assert json.loads((tmp_path / "data.json").read_text()) == payload

    def test_empty_snapshot_file_falls_back_to_default(self, tmp_path):
        (tmp_path / "tag-team-data.json").write_text("")
        store = DisplayStateStore(snapshot_dir=tmp_path)

        assert store.retained_payload(TAG_TEAM.name)["round"] == "Winners Round 1"

    @pytest.mark.asyncio
    async def test_publish_persists_and_reloads(self, tmp_path):
        store = DisplayStateStore(snapshot_dir=tmp_path)
        await store.publish(IFL_MATCH.name, {"p1Name": "Omnis", "p1Score": 2})

        reloaded = DisplayStateStore(snapshot_dir=tmp_path)
        assert reloaded.retained_payload(IFL_MATCH.name) == {"p1Name": "Omnis", "p1Score": 2}

    @pytest.mark.asyncio
    async def test_non_retained_channel_has_no_retained_payload(self):
        store = DisplayStateStore()
        await store.publish("love-and-war-display", {"teamId": 1, "visible": True})
        assert store.retained_payload("love-and-war-display") is None
