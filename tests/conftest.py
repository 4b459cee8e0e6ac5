"""Pytest configuration and fixtures for tekken-overlays tests."""

import pytest


@pytest.fixture
def overlay_config():
    """Overlay configuration with a short chart delay for testing."""
    from tekken_overlays.config import OverlayConfig

    return OverlayConfig(
        chart_delay_ms=20,
        textures=["texture_01.png", "texture_02.png", "texture_03.png"],
    )


@pytest.fixture
def session_store(tmp_path):
    """Session store backed by a temp file."""
    from tekken_overlays.session import SessionStore

    return SessionStore(tmp_path / "session.json")


@pytest.fixture
def page_session():
    """A page session with a connection key and in-memory browser and tab storage."""
    from tekken_overlays.session import MappingStore, PageSession

    return PageSession(token="test-key", tab_id="tab1", store=MappingStore({}), tab_store=MappingStore({}))


@pytest.fixture
def default_settings(tmp_path):
    """Default settings for testing: headless, no Logfire, temp data dir."""
    from tekken_overlays.config import (
        AppConfig,
        ClientConfig,
        LogfireConfig,
        OverlayConfig,
        ServerConfig,
        Settings,
    )

    return Settings(
        app=AppConfig(headless=True, log_level="DEBUG"),
        server=ServerConfig(connection_key="test-key", data_dir=tmp_path / "data"),
        client=ClientConfig(session_path=tmp_path / "session.json", reconnection=False),
        overlay=OverlayConfig(chart_delay_ms=20),
        logfire=LogfireConfig(enabled=False),
    )


@pytest.fixture
def sample_team():
    """A Love & War team as the catalogue returns it."""
    return {
        "id": 7,
        "team_name": "Iron Fist",
        "player_1_name": "Omnis",
        "player_1_character": "Devil Jin",
        "player_1_division": "Diamond",
        "player_1_tekken_prowess": 182340,
        "player_1_ranked_wins": 412,
        "player_1_ranked_losses": None,
        "player_2_name": "Kuro",
        "player_2_character": "Lars",
        "player_2_iff_record": "",
    }


@pytest.fixture
def sample_player():
    """An IFF player with partial radar ratings."""
    return {
        "id": 3,
        "name": "Omnis",
        "character_name": "Devil Jin",
        "offense_rating": 80,
        "defense_rating": 0,
        "consistency_rating": 65,
        "adaptability_rating": None,
        "clutch_rating": 90,
    }


@pytest.fixture
def sample_match():
    """A live match snapshot in wire shape."""
    return {
        "team1": {"name": "Iron Fist", "players": [{"name": "Omnis", "active": True}, {"name": "Kuro"}], "score": 1},
        "team2": {"name": "Rage Art", "players": [{"name": "Ash"}, {"name": "Bee", "active": True}], "score": 2},
        "round": "Winners Final",
    }
