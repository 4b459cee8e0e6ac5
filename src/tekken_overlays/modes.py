"""Display mode definitions for multiplexed overlays.

A single overlay endpoint can render one of several mutually exclusive
visuals. The mode is carried explicitly on the ``lnw-display-mode`` event or
inferred from the legacy ``love-and-war-display-update`` shape.
"""

from enum import Enum


class DisplayMode(str, Enum):
    """Which rendering branch an overlay is in."""

    IDLE = "idle"
    """Base overlay image only."""

    MATCH = "match"
    """Live match scoreboard (transparent background)."""

    TEAM_STATS = "team-stats"
    """Full-screen stat blocks for one team, resolved by id."""

    MATCH_CARD = "match-card"
    """Centered match card for the upcoming match."""


# Mode capabilities for runtime introspection
MODE_CAPABILITIES: dict[DisplayMode, dict[str, bool]] = {
    DisplayMode.IDLE: {
        "needs_team": False,
        "needs_match": False,
        "transparent": False,
    },
    DisplayMode.MATCH: {
        "needs_team": False,
        "needs_match": True,
        "transparent": True,
    },
    DisplayMode.TEAM_STATS: {
        "needs_team": True,
        "needs_match": False,
        "transparent": False,
    },
    DisplayMode.MATCH_CARD: {
        "needs_team": False,
        "needs_match": True,
        "transparent": True,
    },
}


def get_mode_requirements(mode: DisplayMode) -> dict[str, bool]:
    """Get the capability requirements for a given display mode."""
    return MODE_CAPABILITIES[mode]


def parse_mode(value: str) -> DisplayMode:
    """Parse a wire mode string, raising ValueError for unknown modes."""
    try:
        return DisplayMode(value.strip().lower())
    except ValueError:
        valid = ", ".join(m.value for m in DisplayMode)
        raise ValueError(f"Unknown display mode {value!r} (valid: {valid})") from None
