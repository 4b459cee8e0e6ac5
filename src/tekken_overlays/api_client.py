"""HTTP client for the entity catalogue (detail fetch and match-data bootstrap).

A ``null`` entity in the response is "nothing to render" and comes back as
``None``. Only transport or HTTP failures raise ``DetailFetchError``.
"""

import logging
import time

import httpx
import logfire
from pydantic import ValidationError

from tekken_overlays.exceptions import DetailFetchError
from tekken_overlays.messages import MatchData, PlayerDetail, TeamDetail
from tekken_overlays.observability import record_metric

logger = logging.getLogger(__name__)


class CatalogClient:
    """Async client for ``/api/iff/...`` routes.

    Owns an ``httpx.AsyncClient``; call ``aclose()`` (or use ``async with``)
    when the page goes away so in-flight requests are cancelled with it.
    """

    def __init__(
        self,
        base_url: str,
        timeout_s: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(base_url=self.base_url, timeout=timeout_s, transport=transport)

    async def __aenter__(self) -> "CatalogClient":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _get_json(self, kind: str, entity_id: int, path: str) -> object:
        start = time.perf_counter()
        with logfire.span("detail.fetch", kind=kind, entity_id=entity_id):
            try:
                response = await self._http.get(path)
                response.raise_for_status()
                return response.json()
            except (httpx.HTTPError, ValueError) as e:
                raise DetailFetchError(kind, entity_id, e) from e
            finally:
                record_metric("detail_fetch_latency", (time.perf_counter() - start) * 1000)

    async def get_team(self, team_id: int) -> TeamDetail | None:
        """Fetch a Love & War team, or None if the catalogue has no such team."""
        data = await self._get_json("team", team_id, f"/api/iff/love-and-war/team/{team_id}")
        raw = data.get("team") if isinstance(data, dict) else None
        if raw is None:
            logger.info(f"Team {team_id} not found")
            return None
        try:
            return TeamDetail.model_validate(raw)
        except ValidationError as e:
            raise DetailFetchError("team", team_id, e) from e

    async def get_player(self, player_id: int) -> PlayerDetail | None:
        """Fetch an IFF player, or None if the catalogue has no such player."""
        data = await self._get_json("player", player_id, f"/api/iff/player/{player_id}")
        raw = data.get("player") if isinstance(data, dict) else None
        if raw is None:
            logger.info(f"Player {player_id} not found")
            return None
        try:
            return PlayerDetail.model_validate(raw)
        except ValidationError as e:
            raise DetailFetchError("player", player_id, e) from e

    async def list_teams(self) -> list[TeamDetail]:
        data = await self._get_json("teams", 0, "/api/iff/love-and-war/teams")
        items = data.get("teams") if isinstance(data, dict) else None
        return [TeamDetail.model_validate(t) for t in items or []]

    async def list_players(self) -> list[PlayerDetail]:
        data = await self._get_json("players", 0, "/api/iff/players")
        items = data.get("players") if isinstance(data, dict) else None
        return [PlayerDetail.model_validate(p) for p in items or []]

    async def get_match_data(self) -> MatchData | None:
        """Stored match snapshot, or None before the first save."""
        data = await self._get_json("match-data", 0, "/api/iff/love-and-war/match-data")
        if not isinstance(data, dict):
            return None
        try:
            return MatchData.model_validate(data)
        except ValidationError as e:
            raise DetailFetchError("match-data", 0, e) from e

    async def save_match_data(self, match: MatchData) -> None:
        with logfire.span("match_data.save"):
            try:
                response = await self._http.post("/api/iff/love-and-war/match-data", json=match.to_wire())
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise DetailFetchError("match-data", 0, e) from e
