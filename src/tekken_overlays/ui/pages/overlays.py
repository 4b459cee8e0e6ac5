"""Overlay views: draw a ``RenderState`` into a fixed-size stage.

Views are dumb. The controller decides what to show; the view only checks
whether ``animation_generation`` moved to decide if the entrance classes go
on the freshly drawn subtree.
"""

import logging
from typing import Any

from nicegui import ui

from tekken_overlays.config import OverlayConfig
from tekken_overlays.messages import RibStreamData
from tekken_overlays.overlay.render import (
    RADAR_LABELS,
    VIEW_ERROR,
    VIEW_MATCH,
    VIEW_MATCH_CARD,
    VIEW_PLAYER,
    VIEW_RIB_PART_ONE,
    VIEW_RIB_PLAYER_STATS,
    VIEW_RIB_SINGLE_MATCH,
    VIEW_RIB_STREAM,
    VIEW_SCOREBOARD,
    VIEW_TEAM_STATS,
    RenderState,
    match_lines,
    rib_player_rows,
    slugify,
    team_cards,
)

logger = logging.getLogger(__name__)

RIB_VIEWS = (VIEW_RIB_SINGLE_MATCH, VIEW_RIB_PART_ONE, VIEW_RIB_PLAYER_STATS, VIEW_RIB_STREAM)

OVERLAY_CSS = """
body, .nicegui-content { background: transparent !important; padding: 0 !important; }
.ov-stage { position: relative; overflow: hidden; color: white; }
.ov-fill { position: absolute; inset: 0; width: 100%; height: 100%; object-fit: cover; }
.ov-banner { position: absolute; top: 16px; left: 16px; z-index: 50; padding: 6px 12px;
             background: rgba(145, 26, 44, 0.9); border-radius: 6px; font-weight: 600; }
.ov-error { position: absolute; inset: 0; display: flex; align-items: center; justify-content: center;
            background: rgba(10, 10, 12, 0.95); font-size: 42px; }
.ov-enter-left { animation: ovSlideLeft 0.6s ease-out both; }
.ov-enter-right { animation: ovSlideRight 0.6s ease-out both; }
.ov-enter-fade { animation: ovFade 0.5s ease-out both; }
@keyframes ovSlideLeft { from { transform: translateX(-120px); opacity: 0; } to { transform: none; opacity: 1; } }
@keyframes ovSlideRight { from { transform: translateX(120px); opacity: 0; } to { transform: none; opacity: 1; } }
@keyframes ovFade { from { opacity: 0; } to { opacity: 1; } }
"""


class OverlayView:
    """Fixed-resolution overlay stage bound to one controller."""

    def __init__(self, config: OverlayConfig) -> None:
        self.config = config
        self._stage: ui.element | None = None
        self._content: ui.element | None = None
        self._banner: ui.label | None = None
        self._chart: ui.echart | None = None
        self._generation = 0
        self._view: str | None = None

    def build(self) -> ui.element:
        ui.add_css(OVERLAY_CSS)
        self._stage = (
            ui.element("div")
            .classes("ov-stage")
            .style(f"width: {self.config.width}px; height: {self.config.height}px")
        )
        with self._stage:
            self._content = ui.element("div").classes("ov-fill")
            self._banner = ui.label("").classes("ov-banner")
            self._banner.set_visibility(False)
        return self._stage

    def show(self, frame: RenderState) -> None:
        """Draw ``frame``. Entrance classes only when the generation moved."""
        if self._content is None:
            return
        if self._banner is not None:
            banner = frame.error if frame.view != VIEW_ERROR else None
            self._banner.set_text(banner or "")
            self._banner.set_visibility(bool(banner))

        entrance = frame.animation_generation != self._generation
        if frame.view == VIEW_PLAYER and self._view == VIEW_PLAYER and not entrance:
            # Same player: move the chart, keep everything else in place
            self._update_chart(frame.chart_values)
            self._generation = frame.animation_generation
            return

        self._generation = frame.animation_generation
        self._view = frame.view
        self._chart = None
        self._content.clear()
        with self._content:
            try:
                self._draw(frame, entrance)
            except Exception:
                # A broken frame must not take the browser source down
                logger.exception(f"Failed to draw {frame.view} view")
                self._content.clear()

    def _draw(self, frame: RenderState, entrance: bool) -> None:
        if frame.view == VIEW_ERROR:
            ui.label(frame.error or "Connection error").classes("ov-error text-negative")
        elif frame.view == VIEW_TEAM_STATS:
            self._draw_team(frame, entrance)
        elif frame.view in (VIEW_MATCH, VIEW_MATCH_CARD):
            self._draw_match(frame, entrance)
        elif frame.view == VIEW_PLAYER:
            self._draw_player(frame, entrance)
        elif frame.view in RIB_VIEWS:
            self._draw_rib(frame, entrance)
        elif frame.view == VIEW_SCOREBOARD:
            self._draw_scoreboard(frame.scoreboard or {})
        else:
            ui.image(self.config.default_asset).classes("ov-fill")

    def _asset(self, *parts: str) -> str:
        return "/".join([self.config.asset_base.rstrip("/"), *parts])

    def _draw_team(self, frame: RenderState, entrance: bool) -> None:
        cards = team_cards(frame.team)
        if frame.texture:
            ui.image(self._asset("love_and_war", "textures", frame.texture)).classes("ov-fill")
        if frame.team is not None:
            ui.label(frame.team.team_name).classes("absolute top-8 w-full text-center text-5xl")
        for side, card in zip(("left", "right"), cards):
            block = ui.column().classes(f"absolute top-40 {side}-16 w-[700px] gap-2")
            if entrance:
                block.classes(f"ov-enter-{side}")
            with block:
                if card.character_slug:
                    ui.image(self._asset("characters", "P1", f"{card.character_slug}.png")).classes("w-64")
                ui.label(card.name).classes("text-4xl font-bold")
                for label, value in card.rows:
                    with ui.row().classes("w-full justify-between text-2xl"):
                        ui.label(label).classes("opacity-70")
                        ui.label(value)

    def _draw_match(self, frame: RenderState, entrance: bool) -> None:
        lines = match_lines(frame.match)
        if not lines:
            return
        card = frame.view == VIEW_MATCH_CARD
        box = ui.column().classes(
            "absolute inset-x-0 items-center gap-4 " + ("top-1/3" if card else "top-4")
        )
        if entrance:
            box.classes("ov-enter-fade")
        with box:
            if lines["round"]:
                ui.label(lines["round"]).classes("text-2xl opacity-80")
            with ui.row().classes("items-center gap-8 text-4xl"):
                ui.label(lines["team1"]).classes("font-bold")
                ui.label(f"{lines['score1']} - {lines['score2']}").classes("tabular-nums")
                ui.label(lines["team2"]).classes("font-bold")
            if card:
                with ui.row().classes("gap-16 text-xl"):
                    ui.label(" / ".join(lines["roster1"]))
                    ui.label(" / ".join(lines["roster2"]))
            else:
                with ui.row().classes("gap-16 text-xl opacity-80"):
                    ui.label(lines["active1"])
                    ui.label(lines["active2"])

    def _draw_player(self, frame: RenderState, entrance: bool) -> None:
        player = frame.player
        if player is None:
            return
        info = ui.column().classes("absolute left-16 top-16 gap-2")
        if entrance:
            info.classes("ov-enter-left")
        with info:
            ui.label(player.name).classes("text-6xl font-bold")
            for value in (player.character_name, player.division, player.rank_name):
                if value:
                    ui.label(value).classes("text-2xl opacity-80")
        self._chart = ui.echart(self._chart_options(frame.chart_values)).classes(
            "absolute right-16 top-32 w-[800px] h-[800px]"
        )

    def _chart_options(self, values: tuple[int, ...]) -> dict[str, Any]:
        return {
            "animationDuration": 800,
            "radar": {"indicator": [{"name": label, "max": 100} for label in RADAR_LABELS]},
            "series": [{"type": "radar", "data": [{"value": list(values)}]}],
        }

    def _update_chart(self, values: tuple[int, ...]) -> None:
        if self._chart is None:
            return
        self._chart.options["series"][0]["data"][0]["value"] = list(values)
        self._chart.update()

    def _draw_scoreboard(self, payload: dict[str, Any]) -> None:
        with ui.column().classes("absolute inset-x-0 top-4 items-center gap-2"):
            if "team1" in payload and "team2" in payload:
                left, right = payload.get("team1") or {}, payload.get("team2") or {}
                names = (left.get("name", ""), right.get("name", ""))
                scores = (left.get("score", 0), right.get("score", 0))
            else:
                names = (payload.get("p1Name", ""), payload.get("p2Name", ""))
                scores = (payload.get("p1Score", 0), payload.get("p2Score", 0))
            with ui.row().classes("items-center gap-8 text-4xl"):
                ui.label(str(names[0])).classes("font-bold")
                ui.label(f"{scores[0]} - {scores[1]}").classes("tabular-nums")
                ui.label(str(names[1])).classes("font-bold")
            if payload.get("round"):
                ui.label(str(payload["round"])).classes("text-xl opacity-80")

    def _draw_rib(self, frame: RenderState, entrance: bool) -> None:
        if frame.view == VIEW_RIB_STREAM:
            self._draw_rib_stream(frame.rib_stream or RibStreamData())
            return
        box = ui.column().classes("absolute inset-x-0 top-16 items-center gap-4")
        if entrance:
            box.classes("ov-enter-fade")
        with box:
            if frame.view == VIEW_RIB_PLAYER_STATS and frame.rib_player is not None:
                player = frame.rib_player
                if player.character:
                    ui.image(self._asset("characters", "P1", f"{slugify(player.character)}.png")).classes("w-64")
                ui.label(player.name).classes("text-6xl font-bold")
                for label, value in rib_player_rows(player):
                    with ui.row().classes("w-[700px] justify-between text-2xl"):
                        ui.label(label).classes("opacity-70")
                        ui.label(value)
                return
            cards = frame.rib_cards
            if cards is None:
                return
            ui.label(cards.event_title).classes("text-5xl font-bold")
            if cards.event_subtitle:
                ui.label(cards.event_subtitle).classes("text-2xl opacity-80")
            if frame.view == VIEW_RIB_SINGLE_MATCH:
                single = cards.single_match
                ui.label(single.match_title).classes("text-3xl")
                with ui.row().classes("items-center gap-16 text-4xl"):
                    ui.label(single.p1_name).classes("font-bold")
                    ui.label(single.format or "VS").classes("opacity-70")
                    ui.label(single.p2_name).classes("font-bold")
                return
            if cards.part_number:
                ui.label(f"PART {cards.part_number}").classes("text-2xl")
            for match in [cards.main_event, *cards.matches]:
                if not (match.p1_name or match.p2_name):
                    continue
                with ui.row().classes("items-center gap-8 text-3xl"):
                    ui.label(match.p1_name).classes("font-bold" if match.winner == "p1" else "")
                    scored = match.p1_score is not None and match.p2_score is not None
                    ui.label(f"{match.p1_score} - {match.p2_score}" if scored else "VS").classes("tabular-nums opacity-80")
                    ui.label(match.p2_name).classes("font-bold" if match.winner == "p2" else "")

    def _draw_rib_stream(self, stream: RibStreamData) -> None:
        with ui.column().classes("absolute inset-x-0 top-4 items-center gap-2"):
            with ui.row().classes("items-center gap-8 text-4xl"):
                ui.label(stream.p1_name).classes("font-bold")
                ui.label(f"{stream.p1_score} - {stream.p2_score}").classes("tabular-nums")
                ui.label(stream.p2_name).classes("font-bold")
            if stream.match_title:
                ui.label(stream.match_title).classes("text-xl opacity-80")
