"""JSON file entity catalogue backing the boundary REST routes.

This is the stand-in for the CRUD store: ``players.json`` and ``teams.json``
hold lists of entity objects, ``match-data.json`` holds the last saved match
snapshot. Files are re-read on every request so edits made by hand show up
without a restart.
"""

import json
import logging
from pathlib import Path
from typing import Any

from tekken_overlays.messages import MatchData

logger = logging.getLogger(__name__)

PLAYERS_FILE = "players.json"
TEAMS_FILE = "teams.json"
MATCH_DATA_FILE = "match-data.json"


class Catalog:
    """Read-mostly entity lookup over a data directory."""

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = data_dir.expanduser()

    def _read(self, name: str) -> Any:
        path = self.data_dir / name
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.error(f"Could not read {path}: {e}")
            return None
        if not raw.strip():
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"{path} is not valid JSON: {e}")
            return None

    def _write(self, name: str, data: Any) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        (self.data_dir / name).write_text(json.dumps(data, indent=2), encoding="utf-8")

    def _entities(self, name: str) -> list[dict]:
        data = self._read(name)
        if not isinstance(data, list):
            return []
        return [e for e in data if isinstance(e, dict)]

    @staticmethod
    def _find(entities: list[dict], entity_id: int) -> dict | None:
        return next((e for e in entities if e.get("id") == entity_id), None)

    def players(self) -> list[dict]:
        return self._entities(PLAYERS_FILE)

    def teams(self) -> list[dict]:
        return self._entities(TEAMS_FILE)

    def player(self, player_id: int) -> dict | None:
        return self._find(self.players(), player_id)

    def team(self, team_id: int) -> dict | None:
        return self._find(self.teams(), team_id)

    def match_data(self) -> dict | None:
        data = self._read(MATCH_DATA_FILE)
        return data if isinstance(data, dict) else None

    def save_match_data(self, match: MatchData) -> dict:
        data = match.to_wire()
        self._write(MATCH_DATA_FILE, data)
        logger.info(f"Saved match data: {match.team1.name} vs {match.team2.name}")
        return data

    def seed(self, players: list[dict], teams: list[dict]) -> None:
        """Write the entity files (used by tests and first-run setup)."""
        self._write(PLAYERS_FILE, players)
        self._write(TEAMS_FILE, teams)
