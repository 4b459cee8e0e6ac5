"""Overlay renderer controllers.

One controller per overlay page instance. It owns the page's transport
listeners and every async task the page starts, keeps the render state, and
pushes a fresh ``RenderState`` to the view after each accepted event.

Lifecycle: ``start()`` bootstraps current truth over REST, then registers
listeners and connects. ``stop()`` releases listeners, cancels in-flight
fetches and delayed tasks, and closes the transport; results that arrive
after that are dropped.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Protocol

from pydantic import ValidationError

from tekken_overlays.channels import RIB_MATCH_CARDS, RIB_OVERLAY_STATE, RIB_PLAYER_STATS, RIB_STREAM_DATA
from tekken_overlays.config import OverlayConfig
from tekken_overlays.exceptions import DetailFetchError, PayloadError
from tekken_overlays.messages import (
    ConnectionStatus,
    MatchData,
    PlayerDetail,
    RibMatchCards,
    RibOverlayState,
    RibPlayer,
    RibPlayerStats,
    RibStreamData,
    TeamDetail,
)
from tekken_overlays.modes import DisplayMode, parse_mode
from tekken_overlays.overlay.events import DisplayCommand, decode_display_event, decode_match, decode_rib
from tekken_overlays.overlay.render import (
    VIEW_ERROR,
    VIEW_IDLE,
    VIEW_PLAYER,
    VIEW_RIB_PART_ONE,
    VIEW_RIB_PLAYER_STATS,
    VIEW_RIB_SINGLE_MATCH,
    VIEW_RIB_STREAM,
    VIEW_SCOREBOARD,
    VIEW_TEAM_STATS,
    AnimationTracker,
    RenderState,
    match_primary_id,
    player_primary_id,
    radar_values,
    rib_primary_id,
    team_primary_id,
)
from tekken_overlays.overlay.tasks import DelayedTask, TaskScope
from tekken_overlays.realtime.client import ListenerHandle, Transport
from tekken_overlays.realtime.server import INVALID_KEY_MESSAGE
from tekken_overlays.session import PageSession

NO_KEY_MESSAGE = "No connection key"

RenderCallback = Callable[[RenderState], None]


class DetailSource(Protocol):
    """REST lookups an overlay needs (``CatalogClient`` in production)."""

    async def get_team(self, team_id: int) -> TeamDetail | None: ...

    async def get_player(self, player_id: int) -> PlayerDetail | None: ...

    async def get_match_data(self) -> MatchData | None: ...


class BaseOverlayController(ABC):
    """Common lifecycle, render fan-out and transport status handling."""

    def __init__(
        self,
        name: str,
        session: PageSession,
        api: DetailSource,
        transport: Transport | None,
        config: OverlayConfig | None = None,
    ) -> None:
        self.name = name
        self.session = session
        self.api = api
        self.transport = transport
        self.config = config or OverlayConfig()
        self.scope = TaskScope(name)
        self.tracker = AnimationTracker()
        self.state = RenderState()
        self._handles: list[ListenerHandle] = []
        self._render_callbacks: list[RenderCallback] = []
        self._lifecycle = "stopped"
        self._transport_error: str | None = None
        self._start_time: float | None = None
        self._stats: dict[str, int] = {
            "events": 0,
            "ignored": 0,
            "renders": 0,
            "fetch_failures": 0,
            "stale_dropped": 0,
        }
        self._logger = logging.getLogger(f"tekken_overlays.overlay.{name}")

    # -- view side ----------------------------------------------------------

    def on_render(self, callback: RenderCallback) -> None:
        """Register a view callback; it receives the full state on every render."""
        self._render_callbacks.append(callback)

    @property
    def rendered(self) -> RenderState:
        """State as the view should draw it, including error overrides."""
        if self._transport_error is not None:
            return self.state.evolve(view=VIEW_ERROR, error=self._transport_error)
        if self.transport is None:
            return self.state.evolve(error=NO_KEY_MESSAGE)
        return self.state

    def render(self) -> None:
        if self.scope.closed:
            return
        frame = self.rendered
        self._stats["renders"] += 1
        for callback in list(self._render_callbacks):
            try:
                callback(frame)
            except Exception:
                self._logger.exception("Render callback failed")

    def get_status(self) -> ConnectionStatus:
        stats: dict[str, Any] = dict(self._stats)
        stats["animation_generation"] = self.tracker.generation
        stats["view"] = self.rendered.view
        if self._start_time:
            stats["uptime_s"] = time.time() - self._start_time
        state = self._lifecycle
        if state == "running" and self.transport is not None:
            state = self.transport.state.value
        return ConnectionStatus(
            name=self.name,
            state=state,
            error=self._transport_error or (NO_KEY_MESSAGE if self.transport is None else None),
            stats=stats,
        )

    # -- lifecycle ------------------------------------------------------------

    async def start(self) -> None:
        """Bootstrap current state, then listen for live updates."""
        if self._lifecycle != "stopped":
            return
        self._lifecycle = "starting"
        self._start_time = time.time()
        self._logger.info(f"Starting {self.name} ({self.session.tab_id})")

        # Bootstrap runs inside the scope so stop() cancels it with everything else
        task = self.scope.spawn(self._run_bootstrap(), name=f"{self.name}.bootstrap")
        await asyncio.wait([task])
        if self.scope.closed:
            return

        if self.transport is None:
            self._logger.warning(f"{NO_KEY_MESSAGE}: rendering without live updates")
            self._lifecycle = "running"
            self.render()
            return

        self._handles.append(self.transport.listen("connect", self._on_connect))
        self._handles.append(self.transport.listen("disconnect", self._on_disconnect))
        self._handles.append(self.transport.listen("connect_error", self._on_connect_error))
        for event, handler in self._listeners().items():
            self._handles.append(self.transport.listen(event, self._guard(event, handler)))
        self._lifecycle = "running"
        self.render()
        await self.transport.connect()

    async def stop(self) -> None:
        """Tear down: release listeners, cancel tasks, close the transport."""
        if self._lifecycle == "stopped" and self.scope.closed:
            return
        self._logger.info(f"Stopping {self.name}")
        for handle in self._handles:
            handle.close()
        self._handles.clear()
        await self.scope.aclose()
        if self.transport is not None:
            await self.transport.close()
        self._lifecycle = "stopped"
        self._start_time = None

    async def _run_bootstrap(self) -> None:
        try:
            await self.bootstrap()
        except DetailFetchError as e:
            self._stats["fetch_failures"] += 1
            self._logger.error(f"Bootstrap failed, starting idle: {e}")
        self.render()

    # -- transport status -------------------------------------------------------

    def _on_connect(self, _data: Any = None) -> None:
        if self._transport_error is not None:
            self._logger.info("Reconnected, clearing error state")
            self._transport_error = None
            self.render()

    def _on_disconnect(self, _data: Any = None) -> None:
        # Keep what is on screen through a reconnect blip
        self._logger.info("Transport disconnected, keeping last render")

    def _on_connect_error(self, message: Any = None) -> None:
        self._transport_error = str(message or "Connection failed")
        self._logger.warning(f"Connection error: {self._transport_error}")
        if self._transport_error == INVALID_KEY_MESSAGE:
            self.session.forget_token()
        self.render()

    def _guard(self, event: str, handler: Callable[[Any], None]) -> Callable[[Any], None]:
        def _handle(payload: Any) -> None:
            if self.scope.closed:
                return
            self._stats["events"] += 1
            try:
                handler(payload)
            except (PayloadError, ValidationError) as e:
                self._stats["ignored"] += 1
                self._logger.warning(f"Ignoring malformed {event}: {e}")

        return _handle

    # -- subclass hooks -------------------------------------------------------

    @abstractmethod
    async def bootstrap(self) -> None:
        """Fetch current truth before subscribing. Raise DetailFetchError on failure."""

    @abstractmethod
    def _listeners(self) -> dict[str, Callable[[Any], None]]:
        """Event name → handler for live updates."""


class LoveAndWarOverlayController(BaseOverlayController):
    """Unified Love & War overlay: idle / match / team-stats / match-card.

    Listens to the explicit ``lnw-display-mode`` channel and the legacy
    ``love-and-war-display-update`` channel; both decode to one command.
    """

    def __init__(
        self,
        session: PageSession,
        api: DetailSource,
        transport: Transport | None,
        config: OverlayConfig | None = None,
        name: str = "love-and-war",
    ) -> None:
        super().__init__(name, session, api, transport, config)
        self._team_id: int | None = None
        self._match: MatchData | None = None
        self._fetch: asyncio.Task | None = None
        self._request_seq = 0

    def _listeners(self) -> dict[str, Callable[[Any], None]]:
        return {
            "lnw-display-mode": lambda p: self._on_display("lnw-display-mode", p),
            "love-and-war-display-update": lambda p: self._on_display("love-and-war-display-update", p),
            "lnw-match-data": self._on_match,
            "love-and-war-team-update": self._on_team_update,
        }

    async def bootstrap(self) -> None:
        try:
            self._match = await self.api.get_match_data()
        except DetailFetchError as e:
            self._stats["fetch_failures"] += 1
            self._logger.warning(f"No match data on mount: {e}")

        mode_param = self.session.params.get("mode")
        team_id = self.session.int_param("team")
        if mode_param:
            try:
                mode = parse_mode(mode_param)
            except ValueError as e:
                self._logger.warning(str(e))
                mode = DisplayMode.TEAM_STATS if team_id else DisplayMode.IDLE
        else:
            mode = DisplayMode.TEAM_STATS if team_id else DisplayMode.IDLE

        if mode == DisplayMode.TEAM_STATS and team_id:
            self._team_id = team_id
            team = await self.api.get_team(team_id)
            self._show_team(team_id, team)
        elif mode != DisplayMode.IDLE:
            self.apply(DisplayCommand(mode=mode, visible=True))

    # -- live events ------------------------------------------------------------

    def _on_display(self, event: str, payload: Any) -> None:
        command = decode_display_event(event, payload)
        if command is None:
            self._stats["ignored"] += 1
            self._logger.debug(f"Nothing to show for {event}: {payload}")
            return
        self.apply(command)

    def _on_match(self, payload: Any) -> None:
        self._match = decode_match("lnw-match-data", payload)
        if self.state.mode in (DisplayMode.MATCH, DisplayMode.MATCH_CARD) and self.state.visible:
            self._show_match(self.state.mode)
        else:
            self.state = self.state.evolve(match=self._match)

    def _on_team_update(self, payload: Any) -> None:
        team = TeamDetail.model_validate(payload)
        if team.id != self._team_id:
            return
        if self._fetch is not None and not self._fetch.done():
            # Newer than whatever the in-flight fetch will return
            self._cancel_fetch()
            self._show_team(team.id, team)
        elif self.state.view == VIEW_TEAM_STATS:
            # Stat correction: same identity, re-render in place
            self._show_team(team.id, team)
        else:
            self.state = self.state.evolve(team=team)

    def apply(self, command: DisplayCommand) -> None:
        """Move to the commanded mode. Supersedes any fetch still in flight."""
        self._cancel_fetch()
        self._logger.debug(f"Display command: {command}")

        if command.match is not None:
            self._match = command.match

        if command.mode == DisplayMode.TEAM_STATS:
            team_id = command.team_id
            if team_id is None and command.source == "explicit":
                team_id = self._team_id
            if command.visible and team_id:
                self._team_id = team_id
                self._fetch = self.scope.spawn(
                    self._resolve_team(team_id, self._request_seq), name=f"{self.name}.team.{team_id}"
                )
                return
            self._show_idle(DisplayMode.TEAM_STATS, visible=command.visible)
        elif command.mode in (DisplayMode.MATCH, DisplayMode.MATCH_CARD):
            if command.visible:
                self._show_match(command.mode)
            else:
                self._show_idle(command.mode, visible=False)
        else:
            self._show_idle(DisplayMode.IDLE, visible=False)

    def _cancel_fetch(self) -> None:
        self._request_seq += 1
        if self._fetch is not None and not self._fetch.done():
            self._fetch.cancel()
        self._fetch = None

    async def _resolve_team(self, team_id: int, seq: int) -> None:
        try:
            team = await self.api.get_team(team_id)
        except DetailFetchError as e:
            self._stats["fetch_failures"] += 1
            self._logger.error(f"Team {team_id} fetch failed, showing fallback: {e}")
            team = None
        if self.scope.closed or seq != self._request_seq:
            self._stats["stale_dropped"] += 1
            self._logger.debug(f"Dropping stale result for team {team_id}")
            return
        self._show_team(team_id, team)

    # -- render transitions -----------------------------------------------------

    def _show_idle(self, mode: DisplayMode, visible: bool) -> None:
        self.state = self.state.evolve(mode=mode, visible=visible, view=VIEW_IDLE, match=self._match)
        self.render()

    def _show_team(self, team_id: int, team: TeamDetail | None) -> None:
        if team is None:
            # Missing entity: stay in team-stats, draw the default asset
            self.state = self.state.evolve(
                mode=DisplayMode.TEAM_STATS, visible=True, view=VIEW_IDLE, team=None
            )
            self.render()
            return
        texture = self.state.texture
        if self.tracker.observe(team_primary_id(team_id)) or texture is None:
            texture = self.session.choose_texture(self.config.textures)
        self.state = self.state.evolve(
            mode=DisplayMode.TEAM_STATS,
            visible=True,
            view=VIEW_TEAM_STATS,
            team=team,
            primary_id=self.tracker.current,
            animation_generation=self.tracker.generation,
            texture=texture,
        )
        self.render()

    def _show_match(self, mode: DisplayMode) -> None:
        self.tracker.observe(match_primary_id(mode, self._match))
        self.state = self.state.evolve(
            mode=mode,
            visible=True,
            view=mode.value,
            match=self._match,
            primary_id=self.tracker.current,
            animation_generation=self.tracker.generation,
        )
        self.render()


class PlayerRadarController(BaseOverlayController):
    """IFF player radar overlay for a single player id.

    Fresh chart values are staged: the chart is drawn from zeros first and
    the real values land after ``chart_delay_ms`` so the enter transition has
    something to animate from.
    """

    def __init__(
        self,
        session: PageSession,
        api: DetailSource,
        transport: Transport | None,
        config: OverlayConfig | None = None,
        player_id: int | None = None,
        name: str = "iff-player-radar",
    ) -> None:
        super().__init__(name, session, api, transport, config)
        self.player_id = player_id if player_id is not None else session.int_param("player")
        self._chart_task: DelayedTask | None = None

    def _listeners(self) -> dict[str, Callable[[Any], None]]:
        return {"iff-player-update": self._on_player_update}

    async def bootstrap(self) -> None:
        if not self.player_id:
            self._logger.warning("No player id, waiting for nothing")
            return
        player = await self.api.get_player(self.player_id)
        if player is not None:
            self._show_player(player)

    def _on_player_update(self, payload: Any) -> None:
        if not isinstance(payload, dict):
            raise PayloadError("iff-player-update", "expected an object")
        if payload.get("id") != self.player_id:
            return
        self._show_player(PlayerDetail.model_validate(payload))

    def _show_player(self, player: PlayerDetail) -> None:
        changed = self.tracker.observe(player_primary_id(player.id))
        if self._chart_task is not None:
            self._chart_task.cancel()
        values = radar_values(player)
        start = tuple(0 for _ in values) if changed or not self.state.chart_values else self.state.chart_values
        self.state = self.state.evolve(
            visible=True,
            view=VIEW_PLAYER,
            player=player,
            chart_values=start,
            primary_id=self.tracker.current,
            animation_generation=self.tracker.generation,
        )
        self.render()
        self._chart_task = self.scope.call_later(
            self.config.chart_delay_ms / 1000, lambda: self._apply_chart(values)
        )

    def _apply_chart(self, values: tuple[int, ...]) -> None:
        self.state = self.state.evolve(chart_values=values)
        self.render()


class ScoreboardOverlayController(BaseOverlayController):
    """Retained scoreboard overlay (IFL 1v1 or tag-team).

    These channels send their current payload on connect, so there is no REST
    bootstrap; the first event after connect is current truth.
    """

    def __init__(
        self,
        session: PageSession,
        api: DetailSource,
        transport: Transport | None,
        event: str,
        config: OverlayConfig | None = None,
        name: str | None = None,
    ) -> None:
        super().__init__(name or event, session, api, transport, config)
        self.event = event

    def _listeners(self) -> dict[str, Callable[[Any], None]]:
        return {self.event: self._on_scoreboard}

    async def bootstrap(self) -> None:
        return None

    def _on_scoreboard(self, payload: Any) -> None:
        if not isinstance(payload, dict):
            raise PayloadError(self.event, "expected an object")
        self.state = self.state.evolve(visible=True, view=VIEW_SCOREBOARD, scoreboard=payload)
        self.render()


class RibOverlayController(BaseOverlayController):
    """Run-It-Back overlay: single match card, part-one card, player stats or stream bar.

    All four channels are relays, so there is no bootstrap: the page stays
    idle until the control page pushes state and data. Which view is up comes
    from the overlay state flags, first one set wins; a view whose data has
    not arrived yet draws idle.
    """

    def __init__(
        self,
        session: PageSession,
        api: DetailSource,
        transport: Transport | None,
        config: OverlayConfig | None = None,
        name: str = "rib",
    ) -> None:
        super().__init__(name, session, api, transport, config)
        self._overlay = RibOverlayState()
        self._cards: RibMatchCards | None = None
        self._players: RibPlayerStats | None = None
        self._stream: RibStreamData | None = None

    def _listeners(self) -> dict[str, Callable[[Any], None]]:
        return {
            RIB_OVERLAY_STATE.event: self._on_overlay_state,
            RIB_MATCH_CARDS.event: self._on_cards,
            RIB_PLAYER_STATS.event: self._on_players,
            RIB_STREAM_DATA.event: self._on_stream,
        }

    async def bootstrap(self) -> None:
        return None

    def _on_overlay_state(self, payload: Any) -> None:
        self._overlay = decode_rib(RIB_OVERLAY_STATE.event, payload, RibOverlayState)
        self._refresh()

    def _on_cards(self, payload: Any) -> None:
        self._cards = decode_rib(RIB_MATCH_CARDS.event, payload, RibMatchCards)
        self._refresh()

    def _on_players(self, payload: Any) -> None:
        self._players = decode_rib(RIB_PLAYER_STATS.event, payload, RibPlayerStats)
        self._refresh()

    def _on_stream(self, payload: Any) -> None:
        self._stream = decode_rib(RIB_STREAM_DATA.event, payload, RibStreamData)
        self._refresh()

    def selected_player(self) -> RibPlayer | None:
        if self._players is None:
            return None
        index = self._overlay.selected_player_index
        if 0 <= index < len(self._players.players):
            return self._players.players[index]
        return None

    def _view(self) -> str:
        for view in self._overlay.active_views():
            if view == "single-match" and self._cards is not None:
                return VIEW_RIB_SINGLE_MATCH
            if view == "part-one" and self._cards is not None:
                return VIEW_RIB_PART_ONE
            if view == "player-stats" and self.selected_player() is not None:
                return VIEW_RIB_PLAYER_STATS
            if view == "stream":
                return VIEW_RIB_STREAM
            # Flag set but its data has not arrived
            return VIEW_IDLE
        return VIEW_IDLE

    def _refresh(self) -> None:
        view = self._view()
        self.tracker.observe(rib_primary_id(view, self._overlay))
        self.state = self.state.evolve(
            visible=view != VIEW_IDLE,
            view=view,
            rib_state=self._overlay,
            rib_cards=self._cards,
            rib_player=self.selected_player(),
            rib_stream=self._stream or RibStreamData(),
            primary_id=self.tracker.current,
            animation_generation=self.tracker.generation,
        )
        self.render()
