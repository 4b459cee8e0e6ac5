"""Tests for CLI commands that only talk to the catalogue."""

import pytest
from typer.testing import CliRunner

from tekken_overlays import cli
from tekken_overlays.exceptions import DetailFetchError
from tekken_overlays.messages import PlayerDetail, TeamDetail

runner = CliRunner()


class FakeCatalog:
    """Stands in for ``CatalogClient`` inside ``cli``."""

    players = [PlayerDetail(id=3, name="Omnis", character_name="Devil Jin", rank_name="Tekken God")]
    teams = [TeamDetail(id=7, team_name="Iron Fist", player_1_name="Omnis", player_2_name="Kuro")]
    fail = False

    def __init__(self, *args, **kwargs) -> None:
        pass

    async def __aenter__(self) -> "FakeCatalog":
        return self

    async def __aexit__(self, *exc: object) -> None:
        return None

    async def list_players(self) -> list[PlayerDetail]:
        if self.fail:
            raise DetailFetchError("players", 0, RuntimeError("down"))
        return self.players

    async def list_teams(self) -> list[TeamDetail]:
        return self.teams


@pytest.fixture
def catalog(monkeypatch):
    monkeypatch.setattr(cli, "CatalogClient", FakeCatalog)
    monkeypatch.setattr(FakeCatalog, "fail", False)
    return FakeCatalog


class TestCatalogCommand:
    """Tests for ``tekken-overlays catalog``."""

    def test_lists_players(self, catalog):
        result = runner.invoke(cli.app, ["catalog", "players"])
        assert result.exit_code == 0
        assert "Omnis" in result.output
        assert "Devil Jin" in result.output
        assert "1 players" in result.output

    def test_lists_teams_by_default(self, catalog):
        result = runner.invoke(cli.app, ["catalog"])
        assert result.exit_code == 0
        assert "Iron Fist" in result.output

    def test_fetch_failure_exits_nonzero(self, catalog, monkeypatch):
        monkeypatch.setattr(FakeCatalog, "fail", True)
        result = runner.invoke(cli.app, ["catalog", "players"])
        assert result.exit_code == 1
        assert "Could not load players" in result.output

    def test_unknown_kind_rejected(self, catalog):
        result = runner.invoke(cli.app, ["catalog", "brackets"])
        assert result.exit_code == 1


class TestRibCommand:
    """Argument checks that fail before any connection is opened."""

    def test_unknown_view_rejected(self):
        result = runner.invoke(cli.app, ["rib", "bracket"])
        assert result.exit_code == 1
        assert "Unknown view" in result.output

    def test_unknown_data_kind_rejected(self, tmp_path):
        path = tmp_path / "x.json"
        path.write_text("{}", encoding="utf-8")
        result = runner.invoke(cli.app, ["rib-data", "brackets", str(path)])
        assert result.exit_code == 1
