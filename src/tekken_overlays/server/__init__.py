"""HTTP + realtime server assembly and the boundary REST routes."""

from tekken_overlays.server.app import ServerApp, create_app
from tekken_overlays.server.catalog import Catalog

__all__ = ["Catalog", "ServerApp", "create_app"]
