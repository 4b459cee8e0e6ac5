"""Decoding of display events into one canonical command.

The unified overlay accepts two shapes on its display channels:

- explicit: ``{"mode": "team-stats", "teamId": 7, "visible": true}``
- legacy: ``{"teamId": 7, "visible": true}`` (no ``mode``)

Both are normalized here, at the transport boundary, into a ``DisplayCommand``
so the controller never looks at raw payloads. The legacy shape is frozen:
it maps to ``team-stats`` or ``idle`` and nothing else.
"""

from dataclasses import dataclass
from typing import Any, Literal, TypeVar

from pydantic import ValidationError

from tekken_overlays.exceptions import PayloadError
from tekken_overlays.messages import DisplaySelection, MatchData, ModeEvent, RibModel
from tekken_overlays.modes import DisplayMode

M = TypeVar("M", bound=RibModel)


@dataclass(frozen=True)
class DisplayCommand:
    """Canonical display instruction for an overlay."""

    mode: DisplayMode
    team_id: int | None = None
    visible: bool = False
    match: MatchData | None = None
    source: Literal["explicit", "legacy"] = "explicit"

    @property
    def wants_team(self) -> bool:
        """True when this command asks for a team to be resolved and shown."""
        return self.mode == DisplayMode.TEAM_STATS and self.visible and bool(self.team_id)


def _first_error(e: ValidationError) -> str:
    err = e.errors()[0]
    loc = ".".join(str(p) for p in err.get("loc", ()))
    return f"{loc}: {err.get('msg')}" if loc else str(err.get("msg"))


def decode_explicit(event: str, payload: dict[str, Any]) -> DisplayCommand:
    try:
        parsed = ModeEvent.model_validate(payload)
    except ValidationError as e:
        raise PayloadError(event, _first_error(e)) from e
    return DisplayCommand(
        mode=parsed.mode,
        team_id=parsed.team_id or None,
        visible=parsed.visible,
        match=parsed.match,
        source="explicit",
    )


def decode_legacy(event: str, payload: dict[str, Any]) -> DisplayCommand | None:
    try:
        parsed = DisplaySelection.model_validate(payload)
    except ValidationError as e:
        raise PayloadError(event, _first_error(e)) from e
    if not parsed.visible:
        return DisplayCommand(mode=DisplayMode.IDLE, team_id=parsed.team_id or None, source="legacy")
    if not parsed.team_id:
        # Visible with nothing to show
        return None
    return DisplayCommand(
        mode=DisplayMode.TEAM_STATS,
        team_id=parsed.team_id,
        visible=True,
        source="legacy",
    )


def decode_display_event(event: str, payload: Any) -> DisplayCommand | None:
    """Normalize a display event payload.

    The explicit shape is tried first. A payload without a usable ``mode``
    (missing or null) falls back to the legacy shape; one that names a mode
    but is otherwise broken is rejected rather than reinterpreted.

    Returns None when the payload is well-formed but asks for nothing.

    Raises:
        PayloadError: payload is not an object or does not fit either shape
    """
    if not isinstance(payload, dict):
        raise PayloadError(event, f"expected an object, got {type(payload).__name__}")
    try:
        return decode_explicit(event, payload)
    except PayloadError:
        if payload.get("mode") is not None:
            raise
    return decode_legacy(event, payload)


def decode_match(event: str, payload: Any) -> MatchData:
    """Decode an ``lnw-match-data`` payload, tolerating missing optional fields."""
    if not isinstance(payload, dict):
        raise PayloadError(event, f"expected an object, got {type(payload).__name__}")
    try:
        return MatchData.model_validate(payload)
    except ValidationError as e:
        raise PayloadError(event, _first_error(e)) from e


def decode_rib(event: str, payload: Any, model: type[M]) -> M:
    """Decode a Run-It-Back payload into ``model``; unknown keys are ignored."""
    if not isinstance(payload, dict):
        raise PayloadError(event, f"expected an object, got {type(payload).__name__}")
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise PayloadError(event, _first_error(e)) from e
