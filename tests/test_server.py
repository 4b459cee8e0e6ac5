"""Tests for the realtime server, REST routes and catalogue client."""

import httpx
import pytest
import socketio
from fastapi.testclient import TestClient

from tekken_overlays.api_client import CatalogClient
from tekken_overlays.exceptions import DetailFetchError
from tekken_overlays.messages import MatchData
from tekken_overlays.realtime.server import ALL_CHANNELS_ROOM, INVALID_KEY_MESSAGE, AccessKeys, RealtimeServer
from tekken_overlays.realtime.store import DisplayStateStore
from tekken_overlays.server.app import create_app
from tests.mocks import FakeSio


@pytest.fixture
def store(tmp_path):
    return DisplayStateStore(snapshot_dir=tmp_path)


@pytest.fixture
def realtime(store):
    server = RealtimeServer(store, AccessKeys("test-key", {"guest-key": "guest"}))
    server.sio = FakeSio()
    server.start()
    yield server
    server.stop()


class TestAccessKeys:
    """Tests for token identification."""

    def test_known_tokens(self):
        keys = AccessKeys("k1", {"k2": "guest"})
        assert keys.identify("k1") == "operator"
        assert keys.identify("k2") == "guest"
        assert keys.identify("nope") is None
        assert keys.identify(None) is None

    def test_open_when_no_keys(self):
        keys = AccessKeys()
        assert keys.open
        assert keys.identify(None) == "anonymous"


class TestRealtimeServer:
    """Tests for connect, subscribe and command handling."""

    @pytest.mark.asyncio
    async def test_invalid_key_refused(self, realtime):
        with pytest.raises(socketio.exceptions.ConnectionRefusedError) as exc_info:
            await realtime._on_connect("s1", {}, {"token": "wrong"})
        assert exc_info.value.error_args == {"message": INVALID_KEY_MESSAGE}
        with pytest.raises(socketio.exceptions.ConnectionRefusedError):
            await realtime._on_connect("s2", {}, None)
        assert len(realtime.connections) == 0

    @pytest.mark.asyncio
    async def test_connection_without_channels_hears_everything(self, realtime):
        await realtime._on_connect("s1", {}, {"token": "test-key"})

        assert ALL_CHANNELS_ROOM in realtime.sio.rooms["s1"]
        # Both retained scoreboards are sent on connect
        assert sorted(realtime.sio.events_to("s1")) == ["data-update", "tag-team-data"]

    @pytest.mark.asyncio
    async def test_explicit_channels_join_their_rooms(self, realtime):
        await realtime._on_connect("s1", {}, {"token": "guest-key", "channels": ["lnw-display-mode", ""]})

        assert realtime.sio.rooms["s1"] == {"channel:lnw-display-mode"}
        assert realtime.sio.events_to("s1") == []
        assert realtime.connections.get("s1").identity == "guest"

    @pytest.mark.asyncio
    async def test_subscribe_and_unsubscribe(self, realtime):
        await realtime._on_connect("s1", {}, {"token": "test-key", "channels": []})
        await realtime._on_subscribe("s1", ["iff-player", "tag-team"])
        assert realtime.connections.get("s1").channels == {"iff-player", "tag-team"}

        await realtime._on_unsubscribe("s1", "iff-player")
        assert realtime.sio.rooms["s1"] == {"channel:tag-team"}

    @pytest.mark.asyncio
    async def test_command_is_published_and_broadcast(self, realtime, store):
        await realtime._on_connect("s1", {}, {"token": "test-key"})
        payload = {"teamId": 7, "visible": True}

        await realtime._on_command("love-and-war-display-select", "s1", payload)

        assert store.last("love-and-war-display") == payload
        assert ("love-and-war-display-update", payload, ["channel:love-and-war-display", ALL_CHANNELS_ROOM]) in (
            realtime.sio.emitted
        )

    @pytest.mark.asyncio
    async def test_bad_commands_dropped(self, realtime, store):
        await realtime._on_connect("s1", {}, {"token": "test-key"})
        before = store.stats()["published"]

        await realtime._on_command("lnw-display-mode", "s1", "idle")
        await realtime._on_command("lnw-display-mode", "unknown-sid", {"mode": "idle"})
        await realtime._on_command("subscribe", "s1", {"x": 1})

        assert store.stats()["published"] == before

    @pytest.mark.asyncio
    async def test_update_event_name_is_not_relayed(self, realtime, store):
        await realtime._on_connect("s1", {}, {"token": "test-key"})
        retained = store.last("ifl-match")
        realtime.sio.emitted.clear()

        await realtime._on_command("data-update", "s1", {"p1Score": 9})

        assert store.last("ifl-match") == retained
        assert store.last("data-update") is None
        assert realtime.sio.emitted == []

    @pytest.mark.asyncio
    async def test_disconnect_runs_cleanup(self, realtime):
        gone = []
        realtime.connections.on_disconnect(lambda conn: gone.append(conn.sid))
        await realtime._on_connect("s1", {}, {"token": "test-key"})

        await realtime._on_disconnect("s1", "client disconnect")
        await realtime._on_disconnect("s1")

        assert gone == ["s1"]
        assert realtime.status()["connections"] == 0

    @pytest.mark.asyncio
    async def test_stopped_server_does_not_forward(self, realtime, store):
        realtime.stop()
        await store.publish("iff-player", {"id": 1})
        assert realtime.sio.emitted == []


@pytest.fixture
def server_app(default_settings, sample_team, sample_player):
    app = create_app(default_settings)
    app.catalog.seed([sample_player], [sample_team])
    return app


class TestRestRoutes:
    """Tests for the boundary REST routes."""

    def test_team_lookup(self, server_app):
        with TestClient(server_app.api) as client:
            assert client.get("/api/iff/love-and-war/team/7").json()["team"]["team_name"] == "Iron Fist"
            assert client.get("/api/iff/love-and-war/team/404").json() == {"team": None}
            assert len(client.get("/api/iff/love-and-war/teams").json()["teams"]) == 1

    def test_player_lookup(self, server_app):
        with TestClient(server_app.api) as client:
            assert client.get("/api/iff/player/3").json()["player"]["name"] == "Omnis"
            assert client.get("/api/iff/players").json()["players"][0]["id"] == 3

    def test_match_data_round_trip(self, server_app, sample_match):
        with TestClient(server_app.api) as client:
            assert client.get("/api/iff/love-and-war/match-data").json() is None
            assert client.post("/api/iff/love-and-war/match-data", json=sample_match).json() == {"success": True}
            assert client.get("/api/iff/love-and-war/match-data").json()["team2"]["score"] == 2

    def test_invalid_match_data_rejected(self, server_app):
        with TestClient(server_app.api) as client:
            response = client.post("/api/iff/love-and-war/match-data", json={"team1": {"score": "lots"}})
            assert response.status_code == 422

    def test_status_has_no_payloads(self, server_app):
        with TestClient(server_app.api) as client:
            data = client.get("/api/realtime/status").json()
        assert data["connections"] == 0
        assert "sequences" in data


class TestCatalogClient:
    """Tests for the REST client used by pages."""

    @pytest.mark.asyncio
    async def test_fetches_through_routes(self, server_app, sample_match):
        transport = httpx.ASGITransport(app=server_app.api)
        async with CatalogClient("http://testserver", transport=transport) as client:
            team = await client.get_team(7)
            assert team.player_1_character == "Devil Jin"
            assert await client.get_team(404) is None
            assert (await client.get_player(3)).name == "Omnis"
            assert await client.get_match_data() is None

            await client.save_match_data(MatchData.model_validate(sample_match))
            stored = await client.get_match_data()
            assert stored.identity() == ("Iron Fist", "Rage Art")

    @pytest.mark.asyncio
    async def test_lists_catalogue(self, server_app):
        transport = httpx.ASGITransport(app=server_app.api)
        async with CatalogClient("http://testserver", transport=transport) as client:
            players = await client.list_players()
            teams = await client.list_teams()

        assert [p.name for p in players] == ["Omnis"]
        assert [t.team_name for t in teams] == ["Iron Fist"]

    @pytest.mark.asyncio
    async def test_http_failure_raises_fetch_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500))
        async with CatalogClient("http://testserver", transport=transport) as client:
            with pytest.raises(DetailFetchError) as exc_info:
                await client.get_team(7)
        assert exc_info.value.kind == "team"
        assert exc_info.value.entity_id == 7
