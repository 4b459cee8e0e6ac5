"""Tests for the control emitter."""

import pytest

from tekken_overlays.control.emitter import ControlEmitter, Selection, StorePublisher, TransportPublisher
from tekken_overlays.messages import MatchData, PlayerDetail, TeamDetail
from tekken_overlays.modes import DisplayMode
from tekken_overlays.realtime.store import DisplayStateStore
from tests.mocks import MemoryTransport


@pytest.fixture
def store():
    return DisplayStateStore()


@pytest.fixture
def emitter(store, page_session):
    return ControlEmitter(StorePublisher(store), page_session, name="test")


class TestSelection:
    """Tests for select / show / hide."""

    @pytest.mark.asyncio
    async def test_select_publishes_reference(self, emitter, store):
        assert await emitter.select_entity("love-and-war-display", 7, True)
        assert store.last("love-and-war-display") == {"teamId": 7, "visible": True}

    @pytest.mark.asyncio
    async def test_visibility_toggle_keeps_entity(self, emitter, store):
        await emitter.select_entity("love-and-war-display", 7, True)
        await emitter.set_visibility("love-and-war-display", False)

        assert store.last("love-and-war-display") == {"teamId": 7, "visible": False}
        assert emitter.selection("love-and-war-display").entity_id == 7

    @pytest.mark.asyncio
    async def test_generic_channel_uses_entity_id_key(self, emitter, store):
        await emitter.select_entity("custom-overlay", 3, True)
        assert store.last("custom-overlay") == {"entityId": 3, "visible": True}

    @pytest.mark.asyncio
    async def test_unknown_id_is_not_validated(self, emitter, store):
        assert await emitter.select_entity("love-and-war-display", 999, True)
        assert store.last("love-and-war-display")["teamId"] == 999

    @pytest.mark.asyncio
    async def test_selection_restored_from_session(self, emitter, store, page_session):
        await emitter.select_entity("love-and-war-display", 7, True)

        fresh = ControlEmitter(StorePublisher(store), page_session)
        restored = fresh.restore("love-and-war-display")

        assert restored == Selection(entity_id=7, visible=True)
        assert fresh.selection("love-and-war-display").entity_id == 7

    def test_restore_without_store(self, store):
        assert ControlEmitter(StorePublisher(store)).restore("love-and-war-display") is None


class TestModes:
    """Tests for the multiplexed display-mode channel."""

    @pytest.mark.asyncio
    async def test_team_stats_uses_selected_team(self, emitter, store):
        await emitter.select_entity("lnw-display-mode", 7, False)
        await emitter.set_mode("lnw-display-mode", DisplayMode.TEAM_STATS)

        assert store.last("lnw-display-mode") == {"mode": "team-stats", "teamId": 7, "visible": True}

    @pytest.mark.asyncio
    async def test_select_on_mode_channel_carries_mode(self, emitter, store):
        await emitter.select_entity("lnw-display-mode", 7, True)
        assert store.last("lnw-display-mode") == {"teamId": 7, "visible": True, "mode": "team-stats"}

    @pytest.mark.asyncio
    async def test_idle_defaults_to_hidden(self, emitter, store):
        await emitter.set_mode("lnw-display-mode", DisplayMode.IDLE)
        assert store.last("lnw-display-mode")["visible"] is False

    @pytest.mark.asyncio
    async def test_match_mode_carries_snapshot(self, emitter, store, sample_match):
        match = MatchData.model_validate(sample_match)
        await emitter.set_mode("lnw-display-mode", DisplayMode.MATCH, match=match)

        payload = store.last("lnw-display-mode")
        assert payload["mode"] == "match"
        assert payload["visible"] is True
        assert payload["match"]["team1"]["name"] == "Iron Fist"

    @pytest.mark.asyncio
    async def test_push_match(self, emitter, store, sample_match):
        await emitter.push_match(MatchData.model_validate(sample_match))
        assert store.last("lnw-match-data")["round"] == "Winners Final"

    @pytest.mark.asyncio
    async def test_push_player_and_team_are_self_contained(self, emitter, store, sample_player, sample_team):
        await emitter.push_player(PlayerDetail.model_validate(sample_player))
        await emitter.push_team(TeamDetail.model_validate(sample_team))

        assert store.last("iff-player")["offense_rating"] == 80
        assert store.last("love-and-war-team")["team_name"] == "Iron Fist"

    @pytest.mark.asyncio
    async def test_push_scoreboard(self, emitter, store):
        await emitter.push_scoreboard("ifl-match", {"player1Score": 2, "player2Score": 1})
        assert store.last("ifl-match") == {"player1Score": 2, "player2Score": 1}


class TestTransportPublisher:
    """Tests for publishing over a transport."""

    @pytest.mark.asyncio
    async def test_emits_command_event(self, page_session):
        transport = MemoryTransport()
        await transport.connect()
        emitter = ControlEmitter(TransportPublisher(transport), page_session)

        assert await emitter.select_entity("love-and-war-display", 7, True)
        assert transport.emitted == [("love-and-war-display-select", {"teamId": 7, "visible": True})]
        assert emitter.get_stats()["sent"] == 1

    @pytest.mark.asyncio
    async def test_disconnected_send_reports_false(self, page_session):
        transport = MemoryTransport()
        emitter = ControlEmitter(TransportPublisher(transport), page_session)

        assert not await emitter.set_visibility("love-and-war-display", True)
        assert transport.emitted == []
        assert emitter.get_stats()["sent"] == 0
