"""Display State Store: per-channel last payload and in-process fan-out.

The store is the authoritative record of what each channel should currently
show, but only in memory. ``publish`` replaces the remembered payload and
delivers it to subscribers registered at that moment, in publish order per
channel. A subscriber that registers later hears nothing until the next
publish: the remembered payload is exposed to the owning control surface
through ``last()``, never replayed to new subscribers.

Retained channels (the scoreboards) are the exception: they persist their
last payload to a JSON snapshot and the transport sends it on connect.
"""

import asyncio
import copy
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path

import logfire

from tekken_overlays.channels import DEFAULT_SNAPSHOTS, ChannelSpec, get_channel
from tekken_overlays.observability import record_metric

logger = logging.getLogger(__name__)

Subscriber = Callable[[str, dict, int], Awaitable[None]]

WILDCARD = "*"


@dataclass
class ChannelState:
    """Runtime state of one channel."""

    spec: ChannelSpec
    last_payload: dict | None = None
    sequence: int = 0
    subscribers: list["Subscription"] = field(default_factory=list)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class Subscription:
    """Handle for a store subscription.

    Releasing is idempotent; use it as a context manager so every exit path
    releases it.
    """

    def __init__(self, store: "DisplayStateStore", channel: str, callback: Subscriber) -> None:
        self._store = store
        self.channel = channel
        self.callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        """False once released; a released subscription never fires again."""
        return self._active

    def close(self) -> None:
        """Stop delivery. Later publishes skip this subscriber."""
        if not self._active:
            return
        self._active = False
        self._store._remove(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class DisplayStateStore:
    """Process-wide channel registry with last-payload memory."""

    def __init__(self, snapshot_dir: Path | None = None) -> None:
        self._channels: dict[str, ChannelState] = {}
        self._wildcards: list[Subscription] = []
        self._snapshot_dir = snapshot_dir
        self._published = 0

    # -- channels -----------------------------------------------------------

    def channel(self, name: str) -> ChannelState:
        """Get a channel, creating it on first use."""
        state = self._channels.get(name)
        if state is None:
            spec = get_channel(name)
            state = ChannelState(spec=spec)
            if spec.retained:
                state.last_payload = self._load_snapshot(spec)
            self._channels[name] = state
            logger.debug(f"Channel created: {name}")
        return state

    @property
    def channel_names(self) -> list[str]:
        """Names of every channel created so far, declared or relay."""
        return sorted(self._channels)

    # -- subscriptions ------------------------------------------------------

    def subscribe(self, channel: str, callback: Subscriber) -> Subscription:
        """Deliver future publishes on ``channel`` to ``callback``."""
        sub = Subscription(self, channel, callback)
        if channel == WILDCARD:
            self._wildcards.append(sub)
        else:
            self.channel(channel).subscribers.append(sub)
        return sub

    def subscribe_all(self, callback: Subscriber) -> Subscription:
        """Deliver future publishes on every channel to ``callback``."""
        return self.subscribe(WILDCARD, callback)

    def _remove(self, sub: Subscription) -> None:
        # Called by Subscription.close only
        if sub.channel == WILDCARD:
            targets = self._wildcards
        else:
            state = self._channels.get(sub.channel)
            targets = state.subscribers if state else []
        if sub in targets:
            targets.remove(sub)

    # -- publish ------------------------------------------------------------

    async def publish(self, channel: str, payload: dict) -> int:
        """Replace the channel's payload and fan it out to current subscribers.

        Returns the channel sequence number assigned to this publish.
        No queuing and no acknowledgement: a channel with nobody listening
        simply remembers the payload.
        """
        state = self.channel(channel)
        async with state.lock:
            state.sequence += 1
            state.last_payload = copy.deepcopy(payload)
            seq = state.sequence
            self._published += 1
            if state.spec.retained:
                self._save_snapshot(state.spec, payload)

            targets = [s for s in state.subscribers + self._wildcards if s.active]
            with logfire.span(
                "store.publish", channel=channel, seq=seq, subscribers=len(targets)
            ):
                for sub in targets:
                    try:
                        await sub.callback(channel, copy.deepcopy(payload), seq)
                    except Exception:
                        logger.exception(f"Subscriber failed on {channel} #{seq}")
            record_metric("events_published")
            logger.debug(f"Published {channel} #{seq} to {len(targets)} subscriber(s)")
            return seq

    def last(self, channel: str) -> dict | None:
        """Last payload published on ``channel``, for the owning control surface."""
        state = self._channels.get(channel)
        if state is None or state.last_payload is None:
            return None
        return copy.deepcopy(state.last_payload)

    def retained_payload(self, channel: str) -> dict | None:
        """Payload a retained channel sends on connect; None for every other channel."""
        state = self.channel(channel)
        if not state.spec.retained:
            return None
        return self.last(channel)

    def stats(self) -> dict:
        """Counters for the status endpoint. Never includes payloads."""
        return {
            "channels": len(self._channels),
            "published": self._published,
            "sequences": {name: s.sequence for name, s in self._channels.items()},
        }

    # -- retained snapshots ---------------------------------------------------

    def _snapshot_path(self, spec: ChannelSpec) -> Path | None:
        if self._snapshot_dir is None or spec.snapshot_file is None:
            return None
        return self._snapshot_dir / spec.snapshot_file

    def _load_snapshot(self, spec: ChannelSpec) -> dict | None:
        default = copy.deepcopy(DEFAULT_SNAPSHOTS.get(spec.name))
        path = self._snapshot_path(spec)
        if path is None:
            return default
        try:
            raw = path.read_text(encoding="utf-8")
            if not raw.strip():
                raise ValueError("file is empty")
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("snapshot is not an object")
            return data
        except (OSError, ValueError) as e:
            logger.info(f"Creating new {spec.name} snapshot ({e})")
            if default is not None:
                self._save_snapshot(spec, default)
            return default

    def _save_snapshot(self, spec: ChannelSpec, payload: dict) -> None:
        path = self._snapshot_path(spec)
        if path is None:
            return
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError:
            logger.exception(f"Error saving {spec.name} snapshot")
