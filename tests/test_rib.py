"""Tests for the Run-It-Back overlay, its wire models and its control operations."""

import pytest

from tekken_overlays.control.emitter import RIB_STATE_KEY, ControlEmitter, StorePublisher
from tekken_overlays.messages import RibMatchCards, RibOverlayState, RibPlayerStats, RibStreamData
from tekken_overlays.overlay.controller import RibOverlayController
from tekken_overlays.overlay.render import (
    VIEW_IDLE,
    VIEW_RIB_PART_ONE,
    VIEW_RIB_PLAYER_STATS,
    VIEW_RIB_SINGLE_MATCH,
    VIEW_RIB_STREAM,
    rib_player_rows,
)
from tekken_overlays.realtime.store import DisplayStateStore
from tests.mocks import FakeDetailApi, MemoryTransport, RecordingView


@pytest.fixture
def rib_cards():
    return {
        "eventTitle": "Run It Back",
        "eventSubtitle": "Season 2",
        "partNumber": "1",
        "winScore": 3,
        "mainEvent": {"p1Name": "Arslan", "p2Name": "Knee", "p1Score": None},
        "matches": [{"id": 1, "p1Name": "Ulsan", "p2Name": "Chanel", "p1Score": 3, "p2Score": 1, "winner": "p1"}],
        "singleMatch": {"matchTitle": "Grudge Match", "format": "FT3", "p1Name": "Ulsan", "p2Name": "Chanel"},
    }


@pytest.fixture
def rib_players():
    return {
        "players": [
            {"name": "Ulsan", "character": "Kazumi", "prowess": 250000, "rankedMatches": {"wins": 40, "loses": 10}},
            {"name": "Chanel", "character": "Alisa", "division": "Gold"},
        ]
    }


class TestRibOverlayState:
    """Tests for view toggles on the overlay state."""

    def test_toggle_is_exclusive(self):
        state = RibOverlayState(show_stream_overlay=True).toggled("part-one")
        assert state.active_views() == ["part-one"]

    def test_toggle_twice_turns_view_off(self):
        assert RibOverlayState().toggled("stream").toggled("stream").active_views() == []

    def test_unknown_view_rejected(self):
        with pytest.raises(ValueError, match="Unknown RIB view"):
            RibOverlayState().toggled("bracket")

    def test_active_views_in_priority_order(self):
        state = RibOverlayState(show_stream_overlay=True, show_player_stats=True, show_match_card=True)
        assert state.active_views() == ["single-match", "player-stats", "stream"]

    def test_camel_case_on_the_wire(self):
        state = RibOverlayState.model_validate({"showPartOne": True, "animationTrigger": None, "extra": 1})
        assert state.show_part_one
        assert state.animation_trigger == 0

        wire = state.triggered().to_wire()
        assert wire["showPartOne"] is True
        assert wire["animationTrigger"] == 1

    def test_nested_card_fields(self, rib_cards):
        cards = RibMatchCards.model_validate(rib_cards)
        assert cards.main_event.p1_score is None
        assert cards.matches[0].winner == "p1"
        assert cards.single_match.format == "FT3"


async def _started_rib(page_session, transport, overlay_config):
    controller = RibOverlayController(page_session, FakeDetailApi(), transport, overlay_config)
    view = RecordingView()
    controller.on_render(view)
    await controller.start()
    return controller, view


class TestRibOverlayController:
    """Tests for view selection and entrance generations."""

    @pytest.mark.asyncio
    async def test_idle_until_state_arrives(self, page_session, overlay_config):
        transport = MemoryTransport()
        controller, view = await _started_rib(page_session, transport, overlay_config)

        assert view.last.view == VIEW_IDLE
        assert sorted(transport.listening()) == [
            "rib-match-cards-update",
            "rib-overlay-state-update",
            "rib-player-stats-update",
            "rib-stream-data-update",
        ]
        await controller.stop()

    @pytest.mark.asyncio
    async def test_view_waits_for_its_data(self, page_session, overlay_config, rib_cards):
        transport = MemoryTransport()
        controller, view = await _started_rib(page_session, transport, overlay_config)

        await transport.deliver("rib-overlay-state-update", {"showPartOne": True})
        assert view.last.view == VIEW_IDLE
        assert controller.tracker.generation == 0

        await transport.deliver("rib-match-cards-update", rib_cards)
        assert view.last.view == VIEW_RIB_PART_ONE
        assert view.last.visible
        assert view.last.rib_cards.event_title == "Run It Back"
        assert view.last.animation_generation == 1
        await controller.stop()

    @pytest.mark.asyncio
    async def test_data_edit_keeps_generation(self, page_session, overlay_config, rib_cards):
        transport = MemoryTransport()
        controller, view = await _started_rib(page_session, transport, overlay_config)
        await transport.deliver("rib-match-cards-update", rib_cards)
        await transport.deliver("rib-overlay-state-update", {"showMatchCard": True})
        assert view.last.view == VIEW_RIB_SINGLE_MATCH

        rib_cards["eventTitle"] = "Run It Back 2"
        await transport.deliver("rib-match-cards-update", rib_cards)

        assert view.last.rib_cards.event_title == "Run It Back 2"
        assert view.last.animation_generation == 1
        await controller.stop()

    @pytest.mark.asyncio
    async def test_trigger_replays_and_hide_show_does_not(self, page_session, overlay_config):
        transport = MemoryTransport()
        controller, view = await _started_rib(page_session, transport, overlay_config)

        await transport.deliver("rib-overlay-state-update", {"showStreamOverlay": True})
        assert view.last.view == VIEW_RIB_STREAM
        assert view.last.rib_stream == RibStreamData()
        await transport.deliver("rib-overlay-state-update", {"showStreamOverlay": False})
        assert view.last.view == VIEW_IDLE
        assert not view.last.visible
        await transport.deliver("rib-overlay-state-update", {"showStreamOverlay": True})
        assert view.last.animation_generation == 1

        await transport.deliver("rib-overlay-state-update", {"showStreamOverlay": True, "animationTrigger": 1})
        assert view.last.animation_generation == 2
        await controller.stop()

    @pytest.mark.asyncio
    async def test_player_index_selects_sheet(self, page_session, overlay_config, rib_players):
        transport = MemoryTransport()
        controller, view = await _started_rib(page_session, transport, overlay_config)
        await transport.deliver("rib-player-stats-update", rib_players)

        await transport.deliver("rib-overlay-state-update", {"showPlayerStats": True, "selectedPlayerIndex": 1})
        assert view.last.view == VIEW_RIB_PLAYER_STATS
        assert view.last.rib_player.name == "Chanel"

        await transport.deliver("rib-overlay-state-update", {"showPlayerStats": True, "selectedPlayerIndex": 5})
        assert view.last.view == VIEW_IDLE
        assert view.last.rib_player is None
        await controller.stop()

    @pytest.mark.asyncio
    async def test_malformed_payload_is_ignored(self, page_session, overlay_config):
        transport = MemoryTransport()
        controller, view = await _started_rib(page_session, transport, overlay_config)
        await transport.deliver("rib-overlay-state-update", {"showStreamOverlay": True})

        await transport.deliver("rib-overlay-state-update", "stream")
        await transport.deliver("rib-stream-data-update", {"p1Score": "lots"})

        assert view.last.view == VIEW_RIB_STREAM
        assert controller.get_status().stats["ignored"] == 2
        await controller.stop()

    def test_player_rows_skip_empty_values(self, rib_players):
        stats = RibPlayerStats.model_validate(rib_players)
        labels = [label for label, _ in rib_player_rows(stats.players[0])]
        assert labels == ["TEKKEN PROWESS", "RANKED"]
        assert ("TEKKEN PROWESS", "250,000") in rib_player_rows(stats.players[0])


class TestRibEmitter:
    """Tests for publishing RIB state and data."""

    @pytest.mark.asyncio
    async def test_overlay_state_published_and_remembered(self, page_session):
        store = DisplayStateStore()
        emitter = ControlEmitter(StorePublisher(store), page_session)

        await emitter.set_rib_overlay(RibOverlayState().toggled("part-one"))

        assert store.last("rib-overlay-state")["showPartOne"] is True
        assert page_session.store.get(RIB_STATE_KEY)["showPartOne"] is True

        fresh = ControlEmitter(StorePublisher(store), page_session)
        assert fresh.restore_rib_overlay().active_views() == ["part-one"]

    def test_bad_stored_state_is_ignored(self, page_session):
        page_session.store.set(RIB_STATE_KEY, {"selectedPlayerIndex": "first"})
        emitter = ControlEmitter(StorePublisher(DisplayStateStore()), page_session)
        assert emitter.restore_rib_overlay() == RibOverlayState()

    @pytest.mark.asyncio
    async def test_data_pushes_use_camel_case(self, page_session, rib_cards):
        store = DisplayStateStore()
        emitter = ControlEmitter(StorePublisher(store), page_session)

        await emitter.push_rib_cards(RibMatchCards.model_validate(rib_cards))
        await emitter.push_rib_stream(RibStreamData(p1_name="Ulsan", p1_score=2))

        assert store.last("rib-match-cards")["singleMatch"]["matchTitle"] == "Grudge Match"
        assert store.last("rib-stream-data")["p1Score"] == 2
