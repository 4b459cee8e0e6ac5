"""Server assembly: store + Socket.IO transport + REST routes (+ NiceGUI pages)."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import logfire
import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tekken_overlays import __version__
from tekken_overlays.config import Settings
from tekken_overlays.realtime.server import AccessKeys, RealtimeServer
from tekken_overlays.realtime.store import DisplayStateStore
from tekken_overlays.server.catalog import Catalog
from tekken_overlays.server.routes import build_catalog_router, build_status_router

logger = logging.getLogger(__name__)


@dataclass
class ServerApp:
    """Everything ``serve`` runs, wired together."""

    settings: Settings
    store: DisplayStateStore
    realtime: RealtimeServer
    catalog: Catalog
    api: FastAPI
    asgi: socketio.ASGIApp


def create_app(settings: Settings, with_ui: bool | None = None) -> ServerApp:
    """Build the ASGI application.

    Args:
        settings: Loaded settings
        with_ui: Mount the NiceGUI pages; defaults to ``not settings.app.headless``
    """
    if with_ui is None:
        with_ui = not settings.app.headless

    data_dir = settings.server.resolved_data_dir
    store = DisplayStateStore(snapshot_dir=data_dir)
    realtime = RealtimeServer(
        store,
        AccessKeys(settings.server.connection_key, settings.server.extra_keys),
        cors_origins=settings.server.cors_origins,
    )
    catalog = Catalog(data_dir)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        realtime.start()
        logger.info(f"Serving data from {data_dir}")
        try:
            yield
        finally:
            realtime.stop()

    api = FastAPI(title="Tekken Overlays", version=__version__, lifespan=lifespan)
    api.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    api.include_router(build_catalog_router(catalog))
    api.include_router(build_status_router(realtime.status))

    if settings.logfire.enabled:
        logfire.instrument_fastapi(api)

    if with_ui:
        from tekken_overlays.ui.app import mount_ui

        mount_ui(api, settings)

    return ServerApp(
        settings=settings,
        store=store,
        realtime=realtime,
        catalog=catalog,
        api=api,
        asgi=realtime.asgi_app(api),
    )
