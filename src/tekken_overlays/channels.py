"""Channel catalogue.

Each overlay use-case is its own channel. Control pages emit a command event,
the server publishes it to the channel and broadcasts the channel's update
event to every connection listening on it. Event names are the wire contract
shared with the browser pages and must not change.
"""

from dataclasses import dataclass

from tekken_overlays.exceptions import UnknownChannelError


@dataclass(frozen=True)
class ChannelSpec:
    """A broadcast topic and its wire event names."""

    name: str
    event: str
    command: str
    retained: bool = False
    snapshot_file: str | None = None
    description: str = ""

    @property
    def room(self) -> str:
        return f"channel:{self.name}"


IFF_PLAYER = ChannelSpec(
    name="iff-player",
    event="iff-player-update",
    command="iff-player-update",
    description="Full IFF player detail for the radar overlay",
)
LOVE_AND_WAR_DISPLAY = ChannelSpec(
    name="love-and-war-display",
    event="love-and-war-display-update",
    command="love-and-war-display-select",
    description="Legacy {teamId, visible} team display selection",
)
LNW_DISPLAY_MODE = ChannelSpec(
    name="lnw-display-mode",
    event="lnw-display-mode",
    command="lnw-display-mode",
    description="Explicit {mode, teamId, visible} for the unified overlay",
)
LNW_MATCH_DATA = ChannelSpec(
    name="lnw-match-data",
    event="lnw-match-data",
    command="lnw-match-update",
    description="Love & War live match snapshot",
)
LOVE_AND_WAR_TEAM = ChannelSpec(
    name="love-and-war-team",
    event="love-and-war-team-update",
    command="love-and-war-team-update",
    description="Team stat corrections",
)
RIB_OVERLAY_STATE = ChannelSpec(
    name="rib-overlay-state",
    event="rib-overlay-state-update",
    command="rib-overlay-state-update",
    description="Run-It-Back overlay toggles, selections and animation trigger",
)
RIB_MATCH_CARDS = ChannelSpec(
    name="rib-match-cards",
    event="rib-match-cards-update",
    command="rib-match-cards-update",
    description="Run-It-Back event card, part one matches and single match",
)
RIB_PLAYER_STATS = ChannelSpec(
    name="rib-player-stats",
    event="rib-player-stats-update",
    command="rib-player-stats-update",
    description="Run-It-Back player stat sheets",
)
RIB_STREAM_DATA = ChannelSpec(
    name="rib-stream-data",
    event="rib-stream-data-update",
    command="rib-stream-data-update",
    description="Run-It-Back in-stream score bar",
)
IFL_MATCH = ChannelSpec(
    name="ifl-match",
    event="data-update",
    command="update-data",
    retained=True,
    snapshot_file="data.json",
    description="IFL 1v1 scoreboard",
)
TAG_TEAM = ChannelSpec(
    name="tag-team",
    event="tag-team-data",
    command="tag-team-update",
    retained=True,
    snapshot_file="tag-team-data.json",
    description="TDEU tag-team scoreboard",
)

CHANNELS: dict[str, ChannelSpec] = {
    spec.name: spec
    for spec in (
        IFF_PLAYER,
        LOVE_AND_WAR_DISPLAY,
        LNW_DISPLAY_MODE,
        LNW_MATCH_DATA,
        LOVE_AND_WAR_TEAM,
        RIB_OVERLAY_STATE,
        RIB_MATCH_CARDS,
        RIB_PLAYER_STATS,
        RIB_STREAM_DATA,
        IFL_MATCH,
        TAG_TEAM,
    )
}

# Defaults used when a retained snapshot file is missing or empty
DEFAULT_SNAPSHOTS: dict[str, dict] = {
    IFL_MATCH.name: {
        "p1Flag": "fr",
        "p1Team": "Team 1",
        "p1Name": "Player 1",
        "p2Flag": "rn",
        "p2Team": "Team 2",
        "p2Name": "Player 2",
        "p1Score": 0,
        "p2Score": 0,
        "round": "Winners Round 1",
        "eventNumber": "1",
    },
    TAG_TEAM.name: {
        "team1": {
            "name": "Team 1",
            "tag": "T1",
            "players": [
                {"name": "Omnis", "sponsor": "IFF", "active": True},
                {"name": "Kuro", "sponsor": "IFF", "active": False},
            ],
            "score": 0,
        },
        "team2": {
            "name": "Team 2",
            "tag": "T2",
            "players": [
                {"name": "Challenger 1", "sponsor": "", "active": True},
                {"name": "Challenger 2", "sponsor": "", "active": False},
            ],
            "score": 0,
        },
        "round": "Winners Round 1",
    },
}

_BY_EVENT: dict[str, ChannelSpec] = {spec.event: spec for spec in CHANNELS.values()}
_BY_COMMAND: dict[str, ChannelSpec] = {spec.command: spec for spec in CHANNELS.values()}

# Socket.IO reserved names never become channels
RESERVED_EVENTS = frozenset({"connect", "disconnect", "connect_error", "subscribe", "unsubscribe"})


def relay_channel(name: str) -> ChannelSpec:
    """Channel created lazily for an event name nobody declared."""
    return ChannelSpec(name=name, event=name, command=name)


def get_channel(name: str) -> ChannelSpec:
    """Look up a channel by name, falling back to a lazily created relay."""
    if name in CHANNELS:
        return CHANNELS[name]
    if name in RESERVED_EVENTS or not name:
        raise UnknownChannelError(f"{name!r} is not a valid channel name")
    return relay_channel(name)


def channel_for_event(event: str) -> ChannelSpec:
    """Map an update event name (what listeners hear) to its channel."""
    return _BY_EVENT.get(event) or get_channel(event)


def channel_for_command(command: str) -> ChannelSpec:
    """Map a command event name (what control pages emit) to its channel.

    A declared channel's update event is not a command: accepting it would
    create a relay sharing that wire name and bypassing the declared channel.
    """
    spec = _BY_COMMAND.get(command)
    if spec is not None:
        return spec
    if command in _BY_EVENT:
        raise UnknownChannelError(f"{command!r} is a broadcast event; emit {_BY_EVENT[command].command!r} instead")
    return get_channel(command)
