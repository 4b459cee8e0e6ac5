"""Wire payload models.

Field names on the wire are part of the interop contract with existing browser
pages (camelCase on display events, snake_case on catalogue entities), so the
models alias them explicitly and always dump ``by_alias``.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from tekken_overlays.modes import DisplayMode


class WireModel(BaseModel):
    """Base for payloads exchanged over the transport."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        # Browser pages send null for "not set"; treat it as missing
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class DisplaySelection(WireModel):
    """Legacy team display event.

    Flows: control page → ``love-and-war-display-update`` → overlays
    """

    team_id: int | None = Field(default=None, alias="teamId")
    visible: bool = False


class PlayerSlot(WireModel):
    name: str = ""
    active: bool = False


class TeamSnapshot(WireModel):
    """One side of a match as shown on the scoreboard."""

    name: str = ""
    players: list[PlayerSlot] = Field(default_factory=list)
    score: int = 0

    @property
    def active_player(self) -> PlayerSlot | None:
        return next((p for p in self.players if p.active), None)


class MatchData(WireModel):
    """Live match snapshot.

    Flows: match control page → ``lnw-match-data`` → overlays
    """

    team1: TeamSnapshot = Field(default_factory=TeamSnapshot)
    team2: TeamSnapshot = Field(default_factory=TeamSnapshot)
    round: str = ""

    def identity(self) -> tuple[str, str]:
        """The pairing this snapshot is about; score changes keep the identity."""
        return (self.team1.name, self.team2.name)


class ModeEvent(WireModel):
    """Explicit display-mode event.

    Flows: control page → ``lnw-display-mode`` → unified overlays
    """

    mode: DisplayMode
    team_id: int | None = Field(default=None, alias="teamId")
    visible: bool = False
    match: MatchData | None = None

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True) | {
            "teamId": self.team_id
        }


class TeamDetail(BaseModel):
    """Love & War team with both players' stats, as returned by the catalogue."""

    model_config = ConfigDict(extra="allow")

    id: int
    team_name: str = ""
    player_1_name: str = ""
    player_1_character: str | None = None
    player_1_division: str | None = None
    player_1_iff_ranking: str | None = None
    player_1_iff_record: str | None = None
    player_1_iff_history: str | None = None
    player_1_tekken_rank: str | None = None
    player_1_tekken_prowess: int | None = None
    player_1_ranked_wins: int | None = None
    player_1_ranked_losses: int | None = None
    player_1_ranked_wl_rate: str | None = None
    player_2_name: str = ""
    player_2_character: str | None = None
    player_2_division: str | None = None
    player_2_iff_ranking: str | None = None
    player_2_iff_record: str | None = None
    player_2_iff_history: str | None = None
    player_2_tekken_rank: str | None = None
    player_2_tekken_prowess: int | None = None
    player_2_ranked_wins: int | None = None
    player_2_ranked_losses: int | None = None
    player_2_ranked_wl_rate: str | None = None


class PlayerDetail(BaseModel):
    """IFF player with radar ratings. Self-contained on ``iff-player-update``."""

    model_config = ConfigDict(extra="allow")

    id: int
    name: str = ""
    character_name: str | None = None
    division: str | None = None
    rank_name: str | None = None
    offense_rating: int | None = None
    defense_rating: int | None = None
    consistency_rating: int | None = None
    adaptability_rating: int | None = None
    clutch_rating: int | None = None
    experience_rating: int | None = None


class RibModel(WireModel):
    """Base for Run-It-Back payloads; every wire field is camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# Overlay toggle field per RIB view, in the order the overlay checks them
RIB_VIEW_FLAGS = {
    "single-match": "show_match_card",
    "part-one": "show_part_one",
    "player-stats": "show_player_stats",
    "stream": "show_stream_overlay",
}


class RibOverlayState(RibModel):
    """Which Run-It-Back visual is up, plus the operator's selections.

    Flows: RIB control page → ``rib-overlay-state-update`` → RIB overlays.
    ``animation_trigger`` is bumped by the operator to replay the entrance.
    """

    show_match_card: bool = False
    show_player_stats: bool = False
    show_part_one: bool = False
    show_stream_overlay: bool = False
    selected_match_index: int = 0
    selected_player_index: int = 0
    animation_trigger: int = 0

    def active_views(self) -> list[str]:
        """Views switched on, highest priority first."""
        return [view for view, flag in RIB_VIEW_FLAGS.items() if getattr(self, flag)]

    def toggled(self, view: str) -> "RibOverlayState":
        """Switch ``view`` on or off; every other view goes off."""
        if view not in RIB_VIEW_FLAGS:
            raise ValueError(f"Unknown RIB view {view!r}; expected one of {', '.join(RIB_VIEW_FLAGS)}")
        flags = {flag: False for flag in RIB_VIEW_FLAGS.values()}
        flags[RIB_VIEW_FLAGS[view]] = not getattr(self, RIB_VIEW_FLAGS[view])
        return self.model_copy(update=flags)

    def cleared(self) -> "RibOverlayState":
        return self.model_copy(update={flag: False for flag in RIB_VIEW_FLAGS.values()})

    def triggered(self) -> "RibOverlayState":
        return self.model_copy(update={"animation_trigger": self.animation_trigger + 1})


class RibMatch(RibModel):
    """One pairing on the Run-It-Back card."""

    id: int | None = None
    p1_name: str = ""
    p1_title: str = ""
    p1_character: str = ""
    p1_flag: str | None = None
    p1_score: int | None = None
    p2_name: str = ""
    p2_title: str = ""
    p2_character: str = ""
    p2_flag: str | None = None
    p2_score: int | None = None
    winner: str | None = None
    completed: bool = False


class RibSingleMatch(RibModel):
    match_title: str = ""
    format: str = ""
    p1_name: str = ""
    p1_title: str = ""
    p1_character: str = ""
    p2_name: str = ""
    p2_title: str = ""
    p2_character: str = ""


class RibMatchCards(RibModel):
    """Event card: main event, the part-one matches and the featured single match."""

    event_title: str = ""
    event_subtitle: str = ""
    part_number: str = ""
    win_score: int | None = None
    main_event: RibMatch = Field(default_factory=RibMatch)
    matches: list[RibMatch] = Field(default_factory=list)
    single_match: RibSingleMatch = Field(default_factory=RibSingleMatch)
    sponsors: dict[str, str] = Field(default_factory=dict)


class RibRecord(RibModel):
    wins: int = 0
    loses: int = 0
    wl_rate: str = ""


class RibPlayer(RibModel):
    """One Run-It-Back player stat sheet."""

    name: str = ""
    character: str = ""
    division: str = ""
    iff8_ranking: str = ""
    iff8_record: str = ""
    iff8_record_details: str = ""
    iff_history: str = ""
    rank: str = ""
    prowess: int | None = None
    ranked_matches: RibRecord = Field(default_factory=RibRecord)
    player_matches: RibRecord = Field(default_factory=RibRecord)


class RibPlayerStats(RibModel):
    players: list[RibPlayer] = Field(default_factory=list)


class RibStreamData(RibModel):
    """In-stream score bar."""

    match_title: str = ""
    p1_name: str = ""
    p1_flag: str = ""
    p1_score: int = 0
    p2_name: str = ""
    p2_flag: str = ""
    p2_score: int = 0


class ConnectionStatus(BaseModel):
    """Status information for a transport connection or overlay controller."""

    name: str
    state: str  # "disconnected", "connecting", "connected", "error"
    error: str | None = None
    stats: dict = Field(default_factory=dict)


class EventRecord(BaseModel):
    """An event seen or sent by a page, for operator-facing logs."""

    source: str
    event: str
    data: dict = Field(default_factory=dict)
    timestamp_ms: int = 0
