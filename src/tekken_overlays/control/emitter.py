"""Control emitter: operator actions → channel publishes.

Every call is fire-and-forget. The return value only says whether the
command left this process; there is no acknowledgement, so "nobody was
listening" and "an overlay failed to render" look the same from here.

The emitter keeps the operator's selection per channel (and persists it in
the page session) so a control page can rebuild its UI after a reload
without asking the server.
"""

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import ValidationError

from tekken_overlays.channels import (
    IFF_PLAYER,
    LNW_DISPLAY_MODE,
    LNW_MATCH_DATA,
    LOVE_AND_WAR_TEAM,
    RIB_MATCH_CARDS,
    RIB_OVERLAY_STATE,
    RIB_PLAYER_STATS,
    RIB_STREAM_DATA,
    ChannelSpec,
    get_channel,
)
from tekken_overlays.messages import (
    MatchData,
    PlayerDetail,
    RibMatchCards,
    RibOverlayState,
    RibPlayerStats,
    RibStreamData,
    TeamDetail,
)
from tekken_overlays.modes import DisplayMode, get_mode_requirements
from tekken_overlays.realtime.client import Transport
from tekken_overlays.realtime.store import DisplayStateStore
from tekken_overlays.session import PageSession

# Wire key for the entity id on channels that carry a reference
ENTITY_KEYS = {
    "love-and-war-display": "teamId",
    "lnw-display-mode": "teamId",
}
SELECTION_KEY_PREFIX = "selection:"
RIB_STATE_KEY = "rib:overlay-state"


class Publisher(Protocol):
    async def publish(self, channel: ChannelSpec, payload: dict) -> bool: ...


class StorePublisher:
    """Publishes straight into an in-process Display State Store."""

    def __init__(self, store: DisplayStateStore) -> None:
        self.store = store

    async def publish(self, channel: ChannelSpec, payload: dict) -> bool:
        await self.store.publish(channel.name, payload)
        return True


class TransportPublisher:
    """Publishes by emitting the channel's command event over a transport."""

    def __init__(self, transport: Transport) -> None:
        self.transport = transport

    async def publish(self, channel: ChannelSpec, payload: dict) -> bool:
        return await self.transport.emit(channel.command, payload)


@dataclass
class Selection:
    """What the operator last chose on one channel."""

    entity_id: int | None = None
    visible: bool = False
    mode: DisplayMode | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.entity_id,
            "visible": self.visible,
            "mode": self.mode.value if self.mode else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Selection":
        mode = data.get("mode")
        entity_id = data.get("id")
        return cls(
            entity_id=entity_id if isinstance(entity_id, int) else None,
            visible=bool(data.get("visible")),
            mode=DisplayMode(mode) if mode in {m.value for m in DisplayMode} else None,
        )


class ControlEmitter:
    """Turns control-page actions into publishes."""

    def __init__(self, publisher: Publisher, session: PageSession | None = None, name: str = "control") -> None:
        self.publisher = publisher
        self.session = session
        self.name = name
        self.selections: dict[str, Selection] = {}
        self.rib_state = RibOverlayState()
        self._sent = 0
        self._logger = logging.getLogger(f"tekken_overlays.control.{name}")

    # -- selection state ----------------------------------------------------------

    def selection(self, channel: str) -> Selection:
        """Current selection for ``channel``, created empty on first use."""
        return self.selections.setdefault(channel, Selection())

    def restore(self, channel: str) -> Selection | None:
        """Rebuild the selection for ``channel`` from the page session.

        Nothing is published; the operator decides when to re-send.
        """
        if self.session is None or self.session.store is None:
            return None
        raw = self.session.store.get(SELECTION_KEY_PREFIX + channel)
        if not isinstance(raw, dict):
            return None
        restored = Selection.from_dict(raw)
        self.selections[channel] = restored
        self._logger.info(f"Restored {channel} selection: {restored}")
        return restored

    def _remember(self, channel: str) -> None:
        if self.session is None or self.session.store is None:
            return
        self.session.store.set(SELECTION_KEY_PREFIX + channel, self.selection(channel).to_dict())

    # -- operations -------------------------------------------------------------

    async def select_entity(self, channel: str, entity_id: int | None, visible: bool) -> bool:
        """Select which entity ``channel`` shows and publish ``{id, visible}``.

        The id is not validated here; an unknown id renders as empty downstream.
        """
        sel = self.selection(channel)
        sel.entity_id = entity_id
        sel.visible = visible
        if channel == LNW_DISPLAY_MODE.name:
            sel.mode = DisplayMode.TEAM_STATS
        self._remember(channel)
        return await self._send(channel, self._reference_payload(channel, sel))

    async def set_visibility(self, channel: str, visible: bool) -> bool:
        """Republish the last-known entity with a new visibility flag."""
        sel = self.selection(channel)
        sel.visible = visible
        self._remember(channel)
        return await self._send(channel, self._reference_payload(channel, sel))

    async def set_mode(self, channel: str, mode: DisplayMode, **extra: Any) -> bool:
        """Publish an explicit-mode payload on a multiplexed channel.

        ``extra`` carries the mode-specific fields, e.g. ``team_id`` for
        team-stats or ``match`` for match / match-card. ``visible`` defaults to
        True for every mode except idle.
        """
        sel = self.selection(channel)
        visible = bool(extra.pop("visible", mode != DisplayMode.IDLE))
        team_id = extra.pop("team_id", extra.pop("teamId", None))
        if team_id is None and get_mode_requirements(mode)["needs_team"]:
            team_id = sel.entity_id
        match = extra.pop("match", None)

        payload: dict[str, Any] = {"mode": mode.value, "teamId": team_id, "visible": visible}
        if isinstance(match, MatchData):
            payload["match"] = match.to_wire()
        elif isinstance(match, dict):
            payload["match"] = match
        payload.update(extra)

        sel.mode = mode
        sel.visible = visible
        if team_id is not None:
            sel.entity_id = team_id
        self._remember(channel)
        return await self._send(channel, payload)

    async def push_match(self, match: MatchData) -> bool:
        """Broadcast a live match snapshot to every match overlay."""
        return await self._send(LNW_MATCH_DATA.name, match.to_wire())

    async def push_player(self, player: PlayerDetail) -> bool:
        """Broadcast full player detail (self-contained, no fetch downstream)."""
        return await self._send(IFF_PLAYER.name, player.model_dump(mode="json"))

    async def push_team(self, team: TeamDetail) -> bool:
        """Broadcast a team stat correction."""
        return await self._send(LOVE_AND_WAR_TEAM.name, team.model_dump(mode="json"))

    async def push_scoreboard(self, channel: str, payload: dict) -> bool:
        """Replace a retained scoreboard; late joiners receive this payload on connect."""
        return await self._send(channel, payload)

    # -- Run-It-Back ------------------------------------------------------------

    async def set_rib_overlay(self, state: RibOverlayState) -> bool:
        """Publish which RIB view is up and remember it for this browser."""
        self.rib_state = state
        if self.session is not None and self.session.store is not None:
            self.session.store.set(RIB_STATE_KEY, state.to_wire())
        return await self._send(RIB_OVERLAY_STATE.name, state.to_wire())

    def restore_rib_overlay(self) -> RibOverlayState:
        """Last RIB overlay state this browser sent. Nothing is published."""
        raw = self.session.store.get(RIB_STATE_KEY) if self.session and self.session.store else None
        if isinstance(raw, dict):
            try:
                self.rib_state = RibOverlayState.model_validate(raw)
            except ValidationError as e:
                self._logger.warning(f"Ignoring stored RIB overlay state: {e}")
        return self.rib_state

    async def push_rib_cards(self, cards: RibMatchCards) -> bool:
        return await self._send(RIB_MATCH_CARDS.name, cards.to_wire())

    async def push_rib_players(self, stats: RibPlayerStats) -> bool:
        return await self._send(RIB_PLAYER_STATS.name, stats.to_wire())

    async def push_rib_stream(self, stream: RibStreamData) -> bool:
        return await self._send(RIB_STREAM_DATA.name, stream.to_wire())

    # -- helpers ----------------------------------------------------------------

    def _reference_payload(self, channel: str, sel: Selection) -> dict[str, Any]:
        key = ENTITY_KEYS.get(channel, "entityId")
        payload: dict[str, Any] = {key: sel.entity_id, "visible": sel.visible}
        if channel == LNW_DISPLAY_MODE.name:
            payload["mode"] = (sel.mode or DisplayMode.TEAM_STATS).value
        return payload

    async def _send(self, channel: str, payload: dict) -> bool:
        spec = get_channel(channel)
        sent = await self.publisher.publish(spec, payload)
        if sent:
            self._sent += 1
            self._logger.debug(f"{spec.command} → {spec.name}: {payload}")
        else:
            self._logger.warning(f"Could not send {spec.command}; is the transport connected?")
        return sent

    def get_stats(self) -> dict[str, Any]:
        """Commands sent so far and the selection held per channel."""
        return {
            "sent": self._sent,
            "selections": {k: v.to_dict() for k, v in self.selections.items()},
            "rib": self.rib_state.to_wire(),
        }
