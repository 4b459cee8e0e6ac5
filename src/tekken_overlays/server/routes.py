"""Boundary REST routes.

Detail lookups return ``{"player": ...}`` / ``{"team": ...}`` and use
``null`` (with HTTP 200) for ids the catalogue does not know; overlays treat
that as "nothing to render". ``/api/realtime/status`` reports counters only,
never channel payloads.
"""

import logging
from collections.abc import Callable

from fastapi import APIRouter, HTTPException
from pydantic import ValidationError

from tekken_overlays.messages import MatchData
from tekken_overlays.server.catalog import Catalog

logger = logging.getLogger(__name__)


def build_catalog_router(catalog: Catalog) -> APIRouter:
    router = APIRouter(prefix="/api/iff", tags=["catalog"])

    @router.get("/players")
    def list_players() -> dict:
        return {"players": catalog.players()}

    @router.get("/player/{player_id}")
    def get_player(player_id: int) -> dict:
        return {"player": catalog.player(player_id)}

    @router.get("/love-and-war/teams")
    def list_teams() -> dict:
        return {"teams": catalog.teams()}

    @router.get("/love-and-war/team/{team_id}")
    def get_team(team_id: int) -> dict:
        return {"team": catalog.team(team_id)}

    @router.get("/love-and-war/match-data")
    def get_match_data() -> dict | None:
        return catalog.match_data()

    @router.post("/love-and-war/match-data")
    def save_match_data(payload: dict) -> dict:
        try:
            match = MatchData.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Rejected match data: {e.error_count()} error(s)")
            detail = [{"loc": err["loc"], "msg": err["msg"]} for err in e.errors()]
            raise HTTPException(status_code=422, detail=detail) from e
        catalog.save_match_data(match)
        return {"success": True}

    return router


def build_status_router(status: Callable[[], dict]) -> APIRouter:
    router = APIRouter(prefix="/api/realtime", tags=["realtime"])

    @router.get("/status")
    def realtime_status() -> dict:
        return status()

    return router
