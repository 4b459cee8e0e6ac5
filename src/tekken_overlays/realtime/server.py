"""Socket.IO server half of the realtime transport.

Connections authenticate with ``auth={"token": ...}``. An unknown token is
refused from the connect handler, which the client observes as a
``connect_error`` event carrying the message, never as a failed HTTP
handshake. A connection may name the channels it listens to in
``auth["channels"]`` (possibly empty) and extend that with later
``subscribe`` events; a connection that sends no ``channels`` key hears every
channel, which is what the browser pages expect.

Any other event a client emits is a command: it is published to the matching
channel in the Display State Store, and the store's fan-out broadcasts the
channel's update event.
"""

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

import socketio

from tekken_overlays.channels import CHANNELS, RESERVED_EVENTS, channel_for_command, get_channel
from tekken_overlays.exceptions import UnknownChannelError
from tekken_overlays.observability import record_metric
from tekken_overlays.realtime.store import DisplayStateStore, Subscription

logger = logging.getLogger(__name__)

ALL_CHANNELS_ROOM = "channel:*"
INVALID_KEY_MESSAGE = "Invalid connection key"


class AccessKeys:
    """Maps connection tokens to an identity name.

    With no key configured every token is accepted as ``anonymous``.
    """

    def __init__(self, connection_key: str | None = None, extra_keys: dict[str, str] | None = None) -> None:
        self._keys: dict[str, str] = dict(extra_keys or {})
        if connection_key:
            self._keys[connection_key] = "operator"

    @property
    def open(self) -> bool:
        return not self._keys

    def identify(self, token: str | None) -> str | None:
        if self.open:
            return "anonymous"
        if not token:
            return None
        return self._keys.get(token)


@dataclass
class Connection:
    """One live transport session from one browser tab or CLI command."""

    sid: str
    identity: str
    all_channels: bool = True
    channels: set[str] = field(default_factory=set)
    connected_at: float = field(default_factory=time.time)
    connected: bool = True

    def listens(self, channel: str) -> bool:
        return self.all_channels or channel in self.channels


class ConnectionRegistry:
    """Tracks live connections and runs cleanup hooks when one goes away."""

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}
        self._cleanup_hooks: list[Callable[[Connection], None]] = []

    def add(self, conn: Connection) -> None:
        self._connections[conn.sid] = conn
        record_metric("connections", 1)

    def get(self, sid: str) -> Connection | None:
        return self._connections.get(sid)

    def remove(self, sid: str) -> Connection | None:
        conn = self._connections.pop(sid, None)
        if conn is None:
            return None
        conn.connected = False
        record_metric("connections", -1)
        for hook in self._cleanup_hooks:
            try:
                hook(conn)
            except Exception:
                logger.exception(f"Cleanup hook failed for {sid}")
        return conn

    def on_disconnect(self, hook: Callable[[Connection], None]) -> None:
        """Register a hook run after a connection is removed."""
        self._cleanup_hooks.append(hook)

    def listening(self, channel: str) -> list[Connection]:
        return [c for c in self._connections.values() if c.listens(channel)]

    def __len__(self) -> int:
        return len(self._connections)

    def __iter__(self):
        return iter(list(self._connections.values()))


def _channel_names(value: object) -> list[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, Iterable) and not isinstance(value, (bytes, dict)):
        return [v for v in value if isinstance(v, str)]
    return []


class RealtimeServer:
    """Binds the Display State Store to a Socket.IO server."""

    def __init__(
        self,
        store: DisplayStateStore,
        access_keys: AccessKeys,
        cors_origins: list[str] | str = "*",
    ) -> None:
        self.store = store
        self.access_keys = access_keys
        self.connections = ConnectionRegistry()
        self.sio = socketio.AsyncServer(
            async_mode="asgi",
            cors_allowed_origins=cors_origins,
            logger=False,
            engineio_logger=False,
        )
        self._forwarder: Subscription | None = None
        self._logger = logging.getLogger("tekken_overlays.realtime.server")

        self.sio.on("connect", self._on_connect)
        self.sio.on("disconnect", self._on_disconnect)
        self.sio.on("subscribe", self._on_subscribe)
        self.sio.on("unsubscribe", self._on_unsubscribe)
        self.sio.on("*", self._on_command)
        self.connections.on_disconnect(self._record_session)

    def start(self) -> None:
        """Begin forwarding store publishes to connected sockets."""
        if self._forwarder is not None:
            return
        if self.access_keys.open:
            self._logger.warning("No connection key configured; accepting every token")
        self._forwarder = self.store.subscribe_all(self._forward)
        self._logger.info("Realtime server started")

    def stop(self) -> None:
        if self._forwarder is not None:
            self._forwarder.close()
            self._forwarder = None
        self._logger.info("Realtime server stopped")

    def asgi_app(self, other_asgi_app=None) -> socketio.ASGIApp:
        """Wrap another ASGI app (the REST/pages app) with the Socket.IO endpoint."""
        return socketio.ASGIApp(self.sio, other_asgi_app=other_asgi_app)

    def status(self) -> dict:
        identities: dict[str, int] = {}
        for conn in self.connections:
            identities[conn.identity] = identities.get(conn.identity, 0) + 1
        return {
            "connections": len(self.connections),
            "identities": identities,
            **self.store.stats(),
        }

    # -- handlers -------------------------------------------------------------

    async def _on_connect(self, sid: str, environ: dict, auth: object = None) -> None:
        token = auth.get("token") if isinstance(auth, dict) else None
        identity = self.access_keys.identify(token)
        if identity is None:
            self._logger.warning(f"Refused connection {sid}: invalid key")
            raise socketio.exceptions.ConnectionRefusedError(INVALID_KEY_MESSAGE)

        explicit = isinstance(auth, dict) and "channels" in auth
        requested = _channel_names(auth.get("channels")) if explicit else []
        conn = Connection(sid=sid, identity=identity, all_channels=not explicit)
        self.connections.add(conn)
        if conn.all_channels:
            await self.sio.enter_room(sid, ALL_CHANNELS_ROOM)
        else:
            await self._join(conn, requested)
        self._logger.info(
            f"Client connected: {sid} ({identity}, "
            f"{'all channels' if conn.all_channels else ', '.join(sorted(conn.channels))})"
        )

        # Retained scoreboards send their current state to every new connection
        for spec in CHANNELS.values():
            if spec.retained and conn.listens(spec.name):
                payload = self.store.retained_payload(spec.name)
                if payload is not None:
                    await self.sio.emit(spec.event, payload, to=sid)

    async def _on_disconnect(self, sid: str, *args: object) -> None:
        self.connections.remove(sid)

    def _record_session(self, conn: Connection) -> None:
        duration = time.time() - conn.connected_at
        record_metric("connection_duration", duration)
        self._logger.info(f"Client disconnected: {conn.sid} ({conn.identity}, {duration:.0f}s)")

    async def _on_subscribe(self, sid: str, data: object = None) -> None:
        conn = self.connections.get(sid)
        if conn is None or conn.all_channels:
            return
        await self._join(conn, _channel_names(data))

    async def _on_unsubscribe(self, sid: str, data: object = None) -> None:
        conn = self.connections.get(sid)
        if conn is None or conn.all_channels:
            return
        for name in _channel_names(data):
            if name in conn.channels:
                conn.channels.discard(name)
                await self.sio.leave_room(sid, get_channel(name).room)

    async def _join(self, conn: Connection, names: list[str]) -> None:
        for name in names:
            try:
                spec = get_channel(name)
            except UnknownChannelError:
                self._logger.warning(f"{conn.sid} asked for invalid channel {name!r}")
                continue
            conn.channels.add(spec.name)
            await self.sio.enter_room(conn.sid, spec.room)

    async def _on_command(self, event: str, sid: str, data: object = None) -> None:
        if event in RESERVED_EVENTS:
            return
        conn = self.connections.get(sid)
        if conn is None:
            self._logger.warning(f"Dropping {event} from unknown connection {sid}")
            return
        if not isinstance(data, dict):
            self._logger.warning(f"Dropping {event} from {sid}: payload is not an object")
            return
        try:
            spec = channel_for_command(event)
        except UnknownChannelError as e:
            self._logger.warning(f"Dropping {event} from {sid}: {e}")
            return
        self._logger.debug(f"{sid} → {spec.name}")
        await self.store.publish(spec.name, data)

    async def _forward(self, channel: str, payload: dict, seq: int) -> None:
        spec = self.store.channel(channel).spec
        await self.sio.emit(spec.event, payload, to=[spec.room, ALL_CHANNELS_ROOM])
