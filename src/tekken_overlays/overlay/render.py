"""Render state for overlay pages and the animation generation counter.

``RenderState`` is what a view draws from. It is rebuilt by the controller
on every accepted event and handed to the view in full; the view keys its
entrance animation on ``animation_generation`` and nothing else.

View-model helpers below never raise on partial entities: a missing field is
simply not shown.
"""

import re
from collections.abc import Hashable
from dataclasses import dataclass, field, replace
from typing import Any

from tekken_overlays.messages import (
    MatchData,
    PlayerDetail,
    RibMatchCards,
    RibOverlayState,
    RibPlayer,
    RibStreamData,
    TeamDetail,
    TeamSnapshot,
)
from tekken_overlays.modes import DisplayMode

RADAR_LABELS = ("OFF", "DEF", "CON", "ADP", "CLU", "EXP")
RADAR_FIELDS = (
    "offense_rating",
    "defense_rating",
    "consistency_rating",
    "adaptability_rating",
    "clutch_rating",
    "experience_rating",
)
RADAR_DEFAULT = 50

# Views an overlay can be showing; "error" is distinct from idle
VIEW_IDLE = "idle"
VIEW_TEAM_STATS = "team-stats"
VIEW_MATCH = "match"
VIEW_MATCH_CARD = "match-card"
VIEW_PLAYER = "player"
VIEW_SCOREBOARD = "scoreboard"
VIEW_ERROR = "error"
VIEW_RIB_SINGLE_MATCH = "rib-single-match"
VIEW_RIB_PART_ONE = "rib-part-one"
VIEW_RIB_PLAYER_STATS = "rib-player-stats"
VIEW_RIB_STREAM = "rib-stream"


@dataclass(frozen=True)
class RenderState:
    """Everything an overlay view needs to draw one frame."""

    mode: DisplayMode = DisplayMode.IDLE
    visible: bool = False
    view: str = VIEW_IDLE
    team: TeamDetail | None = None
    match: MatchData | None = None
    player: PlayerDetail | None = None
    chart_values: tuple[int, ...] = ()
    scoreboard: dict[str, Any] | None = None
    error: str | None = None
    animation_generation: int = 0
    primary_id: Hashable | None = None
    texture: str | None = None
    rib_cards: RibMatchCards | None = None
    rib_player: RibPlayer | None = None
    rib_stream: RibStreamData | None = None
    rib_state: RibOverlayState | None = None

    def evolve(self, **changes: Any) -> "RenderState":
        return replace(self, **changes)


class AnimationTracker:
    """Monotonic counter that moves only when the primary entity changes.

    Hiding or going idle leaves both the counter and the remembered id alone,
    so a stat correction or a show/hide toggle never replays the entrance.
    """

    def __init__(self) -> None:
        self.generation = 0
        self.current: Hashable | None = None

    def observe(self, primary_id: Hashable | None) -> bool:
        """Record the entity now being rendered. Returns True if it changed."""
        if primary_id is None or primary_id == self.current:
            return False
        self.current = primary_id
        self.generation += 1
        return True


def team_primary_id(team_id: int | None) -> Hashable | None:
    return ("team", team_id) if team_id else None


def match_primary_id(mode: DisplayMode, match: MatchData | None) -> Hashable | None:
    if match is None:
        return None
    return (mode.value, *match.identity())


def player_primary_id(player_id: int | None) -> Hashable | None:
    return ("player", player_id) if player_id else None


def rib_primary_id(view: str, state: RibOverlayState) -> Hashable | None:
    """Operator trigger bumps and view switches replay the entrance; data edits do not."""
    if view == VIEW_IDLE:
        return None
    return ("rib", view, state.animation_trigger)


def rib_player_rows(player: RibPlayer | None) -> list[tuple[str, str]]:
    if player is None:
        return []
    rows = [
        ("DIVISION", player.division),
        ("IFF8 RANKING", player.iff8_ranking),
        ("IFF8 RECORD", player.iff8_record),
        ("IFF HISTORY", player.iff_history),
        ("TEKKEN RANK", player.rank),
        ("TEKKEN PROWESS", _format(player.prowess) if player.prowess is not None else ""),
        ("RANKED", f"{player.ranked_matches.wins}-{player.ranked_matches.loses}"),
        ("W/L RATE", player.ranked_matches.wl_rate),
    ]
    return [(label, value) for label, value in rows if value]


def radar_values(player: PlayerDetail | None) -> tuple[int, ...]:
    """Six radar axes, 50 where a rating is missing or zero."""
    if player is None:
        return ()
    return tuple(getattr(player, name, None) or RADAR_DEFAULT for name in RADAR_FIELDS)


def slugify(value: str | None) -> str:
    if not value:
        return ""
    return re.sub(r"\s+", "_", value.strip().lower())


@dataclass
class PlayerCard:
    """One side of a team-stats view."""

    name: str
    character: str | None = None
    rows: list[tuple[str, str]] = field(default_factory=list)

    @property
    def character_slug(self) -> str:
        return slugify(self.character)


_TEAM_ROWS = (
    ("DIVISION", "division"),
    ("IFF8 RANKING", "iff_ranking"),
    ("IFF8 RECORD", "iff_record"),
    ("IFF HISTORY", "iff_history"),
    ("TEKKEN RANK", "tekken_rank"),
    ("TEKKEN PROWESS", "tekken_prowess"),
    ("WINS", "ranked_wins"),
    ("LOSES", "ranked_losses"),
    ("W/L RATE", "ranked_wl_rate"),
)


def _format(value: Any) -> str:
    if isinstance(value, int):
        return f"{value:,}"
    return str(value)


def team_cards(team: TeamDetail | None) -> list[PlayerCard]:
    """Both players' stat blocks. Rows with no value are left out."""
    if team is None:
        return []
    data = team.model_dump()
    cards = []
    for slot in (1, 2):
        prefix = f"player_{slot}_"
        rows = [
            (label, _format(data[prefix + key]))
            for label, key in _TEAM_ROWS
            if data.get(prefix + key) not in (None, "")
        ]
        cards.append(
            PlayerCard(
                name=data.get(prefix + "name") or "",
                character=data.get(prefix + "character"),
                rows=rows,
            )
        )
    return cards


def active_name(side: TeamSnapshot) -> str:
    player = side.active_player
    return player.name if player else ""


def match_lines(match: MatchData | None) -> dict[str, Any]:
    """Flat values for a scoreboard or match card."""
    if match is None:
        return {}
    return {
        "round": match.round,
        "team1": match.team1.name,
        "team2": match.team2.name,
        "score1": match.team1.score,
        "score2": match.team2.score,
        "active1": active_name(match.team1),
        "active2": active_name(match.team2),
        "roster1": [p.name for p in match.team1.players],
        "roster2": [p.name for p in match.team2.players],
    }
