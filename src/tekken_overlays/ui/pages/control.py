"""Operator control pages.

Control pages publish through a ``ControlEmitter`` over their own transport
connection. A transport failure here is logged and shown on the badge; the
rest of the page keeps working.
"""

import logging
from typing import Any

from nicegui import ui

from tekken_overlays.api_client import CatalogClient
from tekken_overlays.channels import LNW_DISPLAY_MODE, LOVE_AND_WAR_DISPLAY
from tekken_overlays.control.emitter import ControlEmitter, TransportPublisher
from tekken_overlays.exceptions import DetailFetchError
from tekken_overlays.messages import (
    RIB_VIEW_FLAGS,
    MatchData,
    PlayerSlot,
    RibOverlayState,
    RibStreamData,
    TeamDetail,
    TeamSnapshot,
)
from tekken_overlays.modes import DisplayMode
from tekken_overlays.realtime.client import ListenerHandle, TransportClient
from tekken_overlays.realtime.server import INVALID_KEY_MESSAGE
from tekken_overlays.session import PageSession
from tekken_overlays.ui.components import ConnectionBadge, EventLog


class ControlPage:
    """Shared wiring: transport, emitter, badge and event log."""

    name = "control"

    def __init__(self, session: PageSession, transport: TransportClient, catalog: CatalogClient) -> None:
        self.session = session
        self.transport = transport
        self.catalog = catalog
        self.emitter = ControlEmitter(
            TransportPublisher(transport), session, name=f"{self.name}.{session.tab_id}"
        )
        self.badge = ConnectionBadge(self.name)
        self.events = EventLog()
        self._handles: list[ListenerHandle] = []
        self._logger = logging.getLogger(f"tekken_overlays.ui.{self.name}")

    def listen(self, event: str, handler: Any) -> None:
        self._handles.append(self.transport.listen(event, handler))

    async def start(self) -> None:
        self.listen("connect_error", self._on_connect_error)
        self.listen("connect", lambda _d: self.badge.update(self.transport.get_status()))
        self.listen("disconnect", lambda _d: self.badge.update(self.transport.get_status()))
        await self.bootstrap()
        await self.transport.connect()
        self.badge.update(self.transport.get_status())

    async def stop(self) -> None:
        for handle in self._handles:
            handle.close()
        self._handles.clear()
        await self.transport.close()
        await self.catalog.aclose()

    async def bootstrap(self) -> None:
        """Re-derive page state on mount."""

    def _on_connect_error(self, message: str) -> None:
        # Control surfaces keep going; the badge carries the error
        self._logger.warning(f"Transport error on control page: {message}")
        if message == INVALID_KEY_MESSAGE:
            self.session.forget_token()
        self.badge.update(self.transport.get_status())

    def log_send(self, label: str, payload: dict, sent: bool) -> None:
        self.events.record("sent" if sent else "dropped", label, payload)
        if not sent:
            ui.notify("Not connected, command dropped", type="warning")


class LoveAndWarControlPage(ControlPage):
    """Team display and display-mode control for the Love & War overlays."""

    name = "lnw-control"

    def __init__(self, session: PageSession, transport: TransportClient, catalog: CatalogClient) -> None:
        super().__init__(session, transport, catalog)
        self.teams: list[TeamDetail] = []
        self._grid: ui.grid | None = None
        self._selected_label: ui.label | None = None
        self._visible_button: ui.button | None = None

    @property
    def selection(self):
        return self.emitter.selection(LOVE_AND_WAR_DISPLAY.name)

    def build(self) -> None:
        with ui.header().classes("bg-primary items-center"):
            ui.label("Love & War Control").classes("text-h5")
            ui.space()
            self.badge.build()

        with ui.column().classes("w-full p-4 gap-4"):
            with ui.card().classes("w-full"):
                with ui.row().classes("items-center w-full"):
                    self._selected_label = ui.label("No team selected").classes("text-h6")
                    ui.space()
                    self._visible_button = ui.button("Show", on_click=self._toggle_visible)
                with ui.row().classes("gap-2"):
                    for mode in DisplayMode:
                        ui.button(
                            mode.value,
                            on_click=lambda _e, m=mode: self._set_mode(m),
                        ).props("outline")

            self._grid = ui.grid(columns=4).classes("w-full gap-2")
            self.events.build()
        self._refresh_selection()

    async def bootstrap(self) -> None:
        self.emitter.restore(LOVE_AND_WAR_DISPLAY.name)
        self.emitter.restore(LNW_DISPLAY_MODE.name)
        try:
            self.teams = await self.catalog.list_teams()
        except DetailFetchError as e:
            self._logger.error(f"Could not load teams: {e}")
            ui.notify("Could not load teams", type="negative")
        self._render_teams()
        self._refresh_selection()

    def _render_teams(self) -> None:
        if self._grid is None:
            return
        self._grid.clear()
        with self._grid:
            for team in self.teams:
                selected = team.id == self.selection.entity_id
                with ui.card().classes("cursor-pointer" + (" bg-primary text-white" if selected else "")).on(
                    "click", lambda _e, t=team: self._select(t)
                ):
                    ui.label(team.team_name).classes("font-medium")
                    ui.label(f"{team.player_1_name} & {team.player_2_name}").classes("text-caption")

    def _refresh_selection(self) -> None:
        team = next((t for t in self.teams if t.id == self.selection.entity_id), None)
        if self._selected_label:
            self._selected_label.set_text(team.team_name if team else "No team selected")
        if self._visible_button:
            self._visible_button.set_text("Hide" if self.selection.visible else "Show")
            self._visible_button.set_enabled(self.selection.entity_id is not None)

    async def _select(self, team: TeamDetail) -> None:
        visible = self.selection.visible
        sent = await self.emitter.select_entity(LOVE_AND_WAR_DISPLAY.name, team.id, visible)
        self.log_send("select", {"teamId": team.id, "visible": visible}, sent)
        self._render_teams()
        self._refresh_selection()

    async def _toggle_visible(self) -> None:
        visible = not self.selection.visible
        sent = await self.emitter.set_visibility(LOVE_AND_WAR_DISPLAY.name, visible)
        payload = {"teamId": self.selection.entity_id, "visible": visible}
        self.log_send("show" if visible else "hide", payload, sent)
        self._refresh_selection()

    async def _set_mode(self, mode: DisplayMode) -> None:
        extra: dict[str, Any] = {}
        if mode == DisplayMode.TEAM_STATS:
            extra["team_id"] = self.selection.entity_id
        sent = await self.emitter.set_mode(LNW_DISPLAY_MODE.name, mode, **extra)
        self.log_send(f"mode {mode.value}", {"mode": mode.value, **extra}, sent)


class MatchControlPage(ControlPage):
    """Edit the live match snapshot, save it, then broadcast it."""

    name = "lnw-match-control"

    def __init__(self, session: PageSession, transport: TransportClient, catalog: CatalogClient) -> None:
        super().__init__(session, transport, catalog)
        self.match = MatchData(
            team1=TeamSnapshot(name="Team 1", players=[PlayerSlot(active=True), PlayerSlot()]),
            team2=TeamSnapshot(name="Team 2", players=[PlayerSlot(active=True), PlayerSlot()]),
        )
        self._form: ui.column | None = None

    def build(self) -> None:
        with ui.header().classes("bg-primary items-center"):
            ui.label("Love & War Match Control").classes("text-h5")
            ui.space()
            self.badge.build()
        with ui.column().classes("w-full p-4 gap-4"):
            self._form = ui.column().classes("w-full gap-4")
            with ui.row().classes("gap-2"):
                ui.button("Save & send", icon="send", on_click=self.save_and_send)
                ui.button("Reload", icon="refresh", on_click=self.bootstrap).props("outline")
            self.events.build()
        self._render_form()

    async def bootstrap(self) -> None:
        try:
            stored = await self.catalog.get_match_data()
        except DetailFetchError as e:
            self._logger.error(f"Could not load match data: {e}")
            stored = None
        if stored is not None:
            self.match = stored
        self._render_form()

    def _render_form(self) -> None:
        if self._form is None:
            return
        self._form.clear()
        with self._form:
            ui.input("Round").bind_value(self.match, "round")
            with ui.row().classes("w-full gap-8"):
                for side in (self.match.team1, self.match.team2):
                    with ui.card().classes("flex-1"):
                        ui.input("Team").bind_value(side, "name")
                        ui.number("Score", min=0, format="%d").bind_value(
                            side, "score", forward=lambda v: int(v or 0)
                        )
                        for slot in side.players:
                            with ui.row().classes("items-center"):
                                ui.input("Player").bind_value(slot, "name")
                                ui.checkbox("Active").bind_value(slot, "active")

    async def save_and_send(self) -> None:
        try:
            await self.catalog.save_match_data(self.match)
        except DetailFetchError as e:
            self._logger.error(f"Saving match data failed: {e}")
            ui.notify("Save failed", type="negative")
        sent = await self.emitter.push_match(self.match)
        self.log_send("match", self.match.to_wire(), sent)
        if sent:
            ui.notify("Match sent", type="positive")


class RibControlPage(ControlPage):
    """Run-It-Back control: view toggles, animation replay and stream scores."""

    name = "rib-control"

    def __init__(self, session: PageSession, transport: TransportClient, catalog: CatalogClient) -> None:
        super().__init__(session, transport, catalog)
        self.stream = RibStreamData()
        self._buttons: dict[str, ui.button] = {}
        self._player_index: ui.number | None = None

    @property
    def state(self) -> RibOverlayState:
        return self.emitter.rib_state

    def build(self) -> None:
        with ui.header().classes("bg-primary items-center"):
            ui.label("Run It Back Control").classes("text-h5")
            ui.space()
            self.badge.build()

        with ui.column().classes("w-full p-4 gap-4"):
            with ui.card().classes("w-full"):
                with ui.row().classes("gap-2"):
                    for view in RIB_VIEW_FLAGS:
                        self._buttons[view] = ui.button(view, on_click=lambda _e, v=view: self._toggle(v))
                    ui.button("Hide all", on_click=self._clear).props("outline")
                    ui.button("Replay animation", icon="replay", on_click=self._trigger).props("outline")
                self._player_index = ui.number(
                    "Player index",
                    min=0,
                    format="%d",
                    value=self.state.selected_player_index,
                    on_change=self._select_player,
                )

            with ui.card().classes("w-full"):
                ui.input("Match title").bind_value(self.stream, "match_title")
                with ui.row().classes("w-full gap-8"):
                    for side in ("p1", "p2"):
                        with ui.column().classes("flex-1"):
                            ui.input("Name").bind_value(self.stream, f"{side}_name")
                            ui.input("Flag").bind_value(self.stream, f"{side}_flag")
                            ui.number("Score", min=0, format="%d").bind_value(
                                self.stream, f"{side}_score", forward=lambda v: int(v or 0)
                            )
                ui.button("Send stream data", icon="send", on_click=self._send_stream)
            self.events.build()
        self._refresh()

    async def bootstrap(self) -> None:
        self.emitter.restore_rib_overlay()
        self._refresh()

    def _refresh(self) -> None:
        active = self.state.active_views()
        for view, button in self._buttons.items():
            if view in active:
                button.props(remove="outline")
            else:
                button.props("outline")
        if self._player_index is not None:
            self._player_index.set_value(self.state.selected_player_index)

    async def _publish(self, label: str, state: RibOverlayState) -> None:
        sent = await self.emitter.set_rib_overlay(state)
        self.log_send(label, state.to_wire(), sent)
        self._refresh()

    async def _toggle(self, view: str) -> None:
        await self._publish(f"toggle {view}", self.state.toggled(view))

    async def _clear(self) -> None:
        await self._publish("hide all", self.state.cleared())

    async def _trigger(self) -> None:
        await self._publish("replay", self.state.triggered())

    async def _select_player(self) -> None:
        if self._player_index is None:
            return
        index = int(self._player_index.value or 0)
        if index == self.state.selected_player_index:
            return
        await self._publish(f"player {index}", self.state.model_copy(update={"selected_player_index": index}))

    async def _send_stream(self) -> None:
        sent = await self.emitter.push_rib_stream(self.stream)
        self.log_send("stream", self.stream.to_wire(), sent)
