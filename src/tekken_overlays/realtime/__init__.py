"""Display State Store and the Socket.IO realtime transport."""

from tekken_overlays.realtime.client import ConnectionState, ListenerHandle, Transport, TransportClient
from tekken_overlays.realtime.server import AccessKeys, ConnectionRegistry, RealtimeServer
from tekken_overlays.realtime.store import DisplayStateStore, Subscription

__all__ = [
    "AccessKeys",
    "ConnectionRegistry",
    "ConnectionState",
    "DisplayStateStore",
    "ListenerHandle",
    "RealtimeServer",
    "Subscription",
    "Transport",
    "TransportClient",
]
