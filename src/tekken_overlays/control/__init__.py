"""Control surfaces: operator actions to channel publishes."""

from tekken_overlays.control.emitter import ControlEmitter, Selection, StorePublisher, TransportPublisher

__all__ = ["ControlEmitter", "Selection", "StorePublisher", "TransportPublisher"]
