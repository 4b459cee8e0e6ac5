"""NiceGUI pages: operator control surfaces and OBS overlay browser sources.

Each page function builds its own ``PageSession`` from the query string, so
one browser tab is one session with at most one transport connection. The
page's controller is stopped when the browser disconnects.
"""

import logging
import secrets
from collections.abc import Awaitable, Callable, Mapping, MutableMapping
from typing import Any

from fastapi import FastAPI
from nicegui import Client, app, ui

from tekken_overlays.api_client import CatalogClient
from tekken_overlays.channels import IFL_MATCH, TAG_TEAM
from tekken_overlays.config import Settings
from tekken_overlays.overlay.controller import (
    BaseOverlayController,
    LoveAndWarOverlayController,
    PlayerRadarController,
    RibOverlayController,
    ScoreboardOverlayController,
)
from tekken_overlays.realtime.client import TransportClient
from tekken_overlays.session import MappingStore, PageSession
from tekken_overlays.ui.pages.control import ControlPage, LoveAndWarControlPage, MatchControlPage, RibControlPage
from tekken_overlays.ui.pages.overlays import OverlayView

logger = logging.getLogger(__name__)


class PageFactory:
    """Builds per-tab sessions, transports and catalogue clients from settings.

    Sessions persist into the visiting browser's own NiceGUI storage, never
    into anything shared between visitors.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def session(self, client: Client) -> PageSession:
        params = dict(client.request.query_params) if client.request else {}
        return self.session_from(params, app.storage.user)

    def session_from(self, params: Mapping[str, str], browser_storage: MutableMapping[str, Any]) -> PageSession:
        """Session for one visit, given that browser's storage."""
        session = PageSession.from_params(params, MappingStore(browser_storage))
        if params.get("key"):
            session.remember_token()
        return session

    def transport(self, session: PageSession, name: str) -> TransportClient | None:
        if not session.has_token:
            return None
        cfg = self.settings.client
        return TransportClient(
            cfg.server_url,
            session.token,
            name=f"{name}.{session.tab_id}",
            reconnection=cfg.reconnection,
            reconnection_delay_s=cfg.reconnection_delay_s,
            connect_timeout_s=cfg.connect_timeout_s,
        )

    def catalog(self) -> CatalogClient:
        return CatalogClient(self.settings.client.server_url, timeout_s=self.settings.client.fetch_timeout_s)


async def run_overlay(client: Client, view: OverlayView, controller: BaseOverlayController) -> None:
    """Mount an overlay controller on the current page."""
    view.build()
    controller.on_render(view.show)

    async def _teardown() -> None:
        await controller.stop()
        catalog = controller.api
        if isinstance(catalog, CatalogClient):
            await catalog.aclose()

    client.on_disconnect(_teardown)
    await client.connected()
    # Tab storage only exists once the websocket is up
    controller.session.tab_store = MappingStore(app.storage.tab)
    await controller.start()


async def run_control(client: Client, page: ControlPage) -> None:
    page.build()
    client.on_disconnect(page.stop)
    await client.connected()
    await page.start()


def mount_ui(api: FastAPI, settings: Settings) -> None:
    """Register the pages and mount NiceGUI onto the FastAPI app."""
    factory = PageFactory(settings)

    def control(page_cls: type[ControlPage]) -> Callable[[Client], Awaitable[None]]:
        async def _page(client: Client) -> None:
            session = factory.session(client)
            transport = factory.transport(session, page_cls.name)
            if transport is None:
                ui.label("No connection key. Open this page with ?key=...").classes("text-negative p-4")
                return
            await run_control(client, page_cls(session, transport, factory.catalog()))

        return _page

    ui.page("/love-and-war/control", title="Love & War Control")(control(LoveAndWarControlPage))
    ui.page("/love-and-war/match-control", title="Love & War Match Control")(control(MatchControlPage))
    ui.page("/rib/control", title="Run It Back Control")(control(RibControlPage))

    @ui.page("/")
    def index() -> None:
        base = settings.ui.mount_path.rstrip("/")
        with ui.header().classes("bg-primary"):
            ui.label(settings.ui.title).classes("text-h5")
        with ui.column().classes("p-4 gap-2"):
            ui.label("Control").classes("text-h6")
            ui.link("Love & War control", f"{base}/love-and-war/control")
            ui.link("Love & War match control", f"{base}/love-and-war/match-control")
            ui.link("Run It Back control", f"{base}/rib/control")
            ui.label("Overlays (add ?key=... in OBS)").classes("text-h6")
            ui.link("Love & War unified overlay", f"{base}/love-and-war/overlay")
            ui.link("IFL scoreboard", f"{base}/ifl/overlay")
            ui.link("Tag-team scoreboard", f"{base}/tag-team/overlay")
            ui.link("Run It Back overlay", f"{base}/rib/overlay")

    @ui.page("/love-and-war/overlay")
    async def love_and_war_overlay(client: Client) -> None:
        session = factory.session(client)
        controller = LoveAndWarOverlayController(
            session, factory.catalog(), factory.transport(session, "lnw-overlay"), settings.overlay
        )
        await run_overlay(client, OverlayView(settings.overlay), controller)

    @ui.page("/love-and-war/team-stats/{team_id}")
    async def team_stats_overlay(client: Client, team_id: int) -> None:
        session = factory.session(client)
        session.params.setdefault("team", str(team_id))
        session.params.setdefault("mode", "team-stats")
        controller = LoveAndWarOverlayController(
            session, factory.catalog(), factory.transport(session, "lnw-team-stats"), settings.overlay
        )
        await run_overlay(client, OverlayView(settings.overlay), controller)

    @ui.page("/love-and-war/match-overlay")
    async def match_overlay(client: Client) -> None:
        session = factory.session(client)
        session.params.setdefault("mode", "match")
        controller = LoveAndWarOverlayController(
            session, factory.catalog(), factory.transport(session, "lnw-match"), settings.overlay
        )
        await run_overlay(client, OverlayView(settings.overlay), controller)

    @ui.page("/iff/player/{player_id}/radar")
    async def radar_overlay(client: Client, player_id: int) -> None:
        session = factory.session(client)
        controller = PlayerRadarController(
            session,
            factory.catalog(),
            factory.transport(session, "iff-radar"),
            settings.overlay,
            player_id=player_id,
        )
        await run_overlay(client, OverlayView(settings.overlay), controller)

    @ui.page("/ifl/overlay")
    async def ifl_overlay(client: Client) -> None:
        session = factory.session(client)
        controller = ScoreboardOverlayController(
            session, factory.catalog(), factory.transport(session, "ifl"), IFL_MATCH.event, settings.overlay
        )
        await run_overlay(client, OverlayView(settings.overlay), controller)

    @ui.page("/tag-team/overlay")
    async def tag_team_overlay(client: Client) -> None:
        session = factory.session(client)
        controller = ScoreboardOverlayController(
            session, factory.catalog(), factory.transport(session, "tag-team"), TAG_TEAM.event, settings.overlay
        )
        await run_overlay(client, OverlayView(settings.overlay), controller)

    @ui.page("/rib/overlay")
    async def rib_overlay(client: Client) -> None:
        session = factory.session(client)
        controller = RibOverlayController(
            session, factory.catalog(), factory.transport(session, "rib"), settings.overlay
        )
        await run_overlay(client, OverlayView(settings.overlay), controller)

    storage_secret = settings.ui.storage_secret
    if not storage_secret:
        logger.warning("No storage secret configured; browser sessions will not survive a restart")
        storage_secret = secrets.token_urlsafe(32)
    ui.run_with(
        api,
        mount_path=settings.ui.mount_path,
        title=settings.ui.title,
        storage_secret=storage_secret,
    )
    logger.info(f"UI mounted at {settings.ui.mount_path}")
