"""Socket.IO client half of the realtime transport.

One ``TransportClient`` per page. Listening is scoped: ``listen()`` returns a
handle whose release removes the handler, so nothing leaks across reconnects
or teardown. Incoming events go through a single inbox so handlers see them
in arrival order even though the socket library runs each packet in its own
task.

"Connected" and "authorized" are separate facts: a refused token shows up as
a ``connect_error`` event with the server's message, after which the client
is in the ``error`` state.
"""

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Callable
from enum import Enum
from typing import Any, Protocol

import socketio

from tekken_overlays.channels import RESERVED_EVENTS, channel_for_event
from tekken_overlays.exceptions import UnknownChannelError
from tekken_overlays.messages import ConnectionStatus

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]

# Status events delivered through the same listener table as channel events
STATUS_EVENTS = frozenset({"connect", "disconnect", "connect_error"})


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class ListenerHandle:
    """Scoped registration of one handler for one event."""

    def __init__(self, owner: "ListenerTable", event: str, handler: Handler) -> None:
        self._owner = owner
        self.event = event
        self.handler = handler
        self._active = True

    @property
    def active(self) -> bool:
        """False once the handle is closed or its table cleared."""
        return self._active

    def close(self) -> None:
        """Stop delivering to this handler. Idempotent."""
        if not self._active:
            return
        self._active = False
        self._owner.release(self)

    def __enter__(self) -> "ListenerHandle":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class ListenerTable:
    """Event name → handlers, with in-order dispatch."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._handlers: dict[str, list[ListenerHandle]] = {}
        self.on_first: Callable[[str], None] | None = None
        self.on_last: Callable[[str], None] | None = None

    def add(self, event: str, handler: Handler) -> ListenerHandle:
        """Register a handler. ``on_first`` fires when the event gains its first listener."""
        handle = ListenerHandle(self, event, handler)
        first = not self._handlers.get(event)
        self._handlers.setdefault(event, []).append(handle)
        if first and self.on_first and event not in STATUS_EVENTS:
            self.on_first(event)
        return handle

    def release(self, handle: ListenerHandle) -> None:
        """Drop a handle. ``on_last`` fires when the event has no listeners left."""
        handles = self._handlers.get(handle.event, [])
        if handle in handles:
            handles.remove(handle)
        if not handles:
            self._handlers.pop(handle.event, None)
            if self.on_last and handle.event not in STATUS_EVENTS:
                self.on_last(handle.event)

    def events(self) -> list[str]:
        """Channel events with at least one listener; status events excluded."""
        return [e for e in self._handlers if e not in STATUS_EVENTS]

    def clear(self) -> None:
        """Deactivate every handle without firing ``on_last``."""
        for handles in list(self._handlers.values()):
            for handle in list(handles):
                handle._active = False
        self._handlers.clear()

    async def dispatch(self, event: str, data: Any) -> None:
        """Run the handlers for ``event`` in registration order.

        A failing handler is logged and does not stop the others.
        """
        for handle in list(self._handlers.get(event, [])):
            if not handle.active:
                continue
            try:
                result = handle.handler(data)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"[{self.name}] Handler for {event} failed")


class Transport(Protocol):
    """What pages need from a realtime connection."""

    @property
    def state(self) -> ConnectionState: ...

    @property
    def connected(self) -> bool: ...

    def listen(self, event: str, handler: Handler) -> ListenerHandle: ...

    async def connect(self) -> bool: ...

    async def emit(self, event: str, payload: dict) -> bool: ...

    async def close(self) -> None: ...


def error_message(data: Any) -> str:
    """Extract the message from a ``connect_error`` payload."""
    if isinstance(data, dict):
        return str(data.get("message") or data)
    if data is None:
        return "Connection failed"
    return str(data)


class TransportClient:
    """Authenticated Socket.IO connection for one page."""

    def __init__(
        self,
        server_url: str,
        token: str | None,
        name: str = "client",
        reconnection: bool = True,
        reconnection_delay_s: float = 1.0,
        connect_timeout_s: float = 10.0,
    ) -> None:
        self.server_url = server_url
        self.token = token
        self.name = name
        self.connect_timeout_s = connect_timeout_s
        self.sio = socketio.AsyncClient(
            reconnection=reconnection,
            reconnection_delay=reconnection_delay_s,
            logger=False,
            engineio_logger=False,
        )
        self._listeners = ListenerTable(name)
        self._listeners.on_first = self._subscribe_later
        self._listeners.on_last = self._unsubscribe_later
        self._inbox: asyncio.Queue[tuple[str, Any]] = asyncio.Queue()
        self._pump_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()
        self._state = ConnectionState.DISCONNECTED
        self._error: str | None = None
        self._connects = 0
        self._received = 0
        self._logger = logging.getLogger(f"tekken_overlays.transport.{name}")

        self.sio.on("connect", self._on_connect)
        self.sio.on("disconnect", self._on_disconnect)
        self.sio.on("connect_error", self._on_connect_error)
        self.sio.on("*", self._on_event)

    # -- state ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def error(self) -> str | None:
        """Message from the last failed connect, if any."""
        return self._error

    def get_status(self) -> ConnectionStatus:
        """Snapshot for connection badges and the CLI."""
        return ConnectionStatus(
            name=self.name,
            state=self._state.value,
            error=self._error,
            stats={
                "connects": self._connects,
                "received": self._received,
                "listening": self._listeners.events(),
            },
        )

    # -- listeners ----------------------------------------------------------------

    def listen(self, event: str, handler: Handler) -> ListenerHandle:
        """Register ``handler`` for ``event``; release the returned handle to stop."""
        return self._listeners.add(event, handler)

    def _channels(self) -> list[str]:
        names = []
        for event in self._listeners.events():
            try:
                names.append(channel_for_event(event).name)
            except UnknownChannelError:
                continue
        return sorted(set(names))

    def _auth(self) -> dict:
        # Called on every (re)connect so the server sees current listeners
        return {"token": self.token or "", "channels": self._channels()}

    def _subscribe_later(self, event: str) -> None:
        if self.connected and event not in RESERVED_EVENTS:
            self._spawn(self._send("subscribe", [channel_for_event(event).name]))

    def _unsubscribe_later(self, event: str) -> None:
        if self.connected and event not in RESERVED_EVENTS:
            self._spawn(self._send("unsubscribe", [channel_for_event(event).name]))

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # -- lifecycle ----------------------------------------------------------------

    async def connect(self) -> bool:
        """Open the connection. Returns False (and enters ``error``) on failure."""
        if self.connected:
            return True
        self._ensure_pump()
        self._state = ConnectionState.CONNECTING
        self._error = None
        try:
            await self.sio.connect(
                self.server_url,
                auth=self._auth,
                transports=["websocket"],
                wait_timeout=self.connect_timeout_s,
            )
        except socketio.exceptions.ConnectionError as e:
            if self._state != ConnectionState.ERROR:
                # Network failure: no connect_error event was delivered
                await self._on_connect_error({"message": str(e) or "Connection failed"})
            return False
        return True

    async def close(self) -> None:
        """Disconnect and release every listener. Safe to call more than once."""
        self._listeners.on_first = None
        self._listeners.on_last = None
        with contextlib.suppress(Exception):
            await self.sio.disconnect()
        for task in list(self._background):
            task.cancel()
        if self._pump_task:
            self._pump_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._pump_task
            self._pump_task = None
        self._listeners.clear()
        self._state = ConnectionState.DISCONNECTED

    async def emit(self, event: str, payload: dict) -> bool:
        """Fire-and-forget emit. Returns False when not connected."""
        if not self.connected:
            self._logger.warning(f"Not connected, dropping {event}")
            return False
        return await self._send(event, payload)

    async def _send(self, event: str, payload: Any) -> bool:
        try:
            await self.sio.emit(event, payload)
            return True
        except socketio.exceptions.BadNamespaceError as e:
            self._logger.warning(f"Emit {event} failed: {e}")
            return False

    # -- inbox ----------------------------------------------------------------------

    def _ensure_pump(self) -> None:
        if self._pump_task is None or self._pump_task.done():
            self._pump_task = asyncio.get_running_loop().create_task(self._pump())

    async def _pump(self) -> None:
        while True:
            event, data = await self._inbox.get()
            await self._listeners.dispatch(event, data)

    async def _on_event(self, event: str, data: Any = None) -> None:
        self._received += 1
        self._inbox.put_nowait((event, data))

    async def _on_connect(self) -> None:
        self._state = ConnectionState.CONNECTED
        self._error = None
        self._connects += 1
        self._logger.info(f"Connected to {self.server_url}")
        self._inbox.put_nowait(("connect", None))

    async def _on_disconnect(self, *args: Any) -> None:
        if self._state == ConnectionState.CONNECTED:
            self._state = ConnectionState.DISCONNECTED
        self._logger.info("Disconnected")
        self._inbox.put_nowait(("disconnect", None))

    async def _on_connect_error(self, data: Any = None) -> None:
        self._state = ConnectionState.ERROR
        self._error = error_message(data)
        self._logger.warning(f"Connection error: {self._error}")
        self._inbox.put_nowait(("connect_error", self._error))
