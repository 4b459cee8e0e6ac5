"""Reusable UI components for control and overlay pages."""

from tekken_overlays.ui.components.connection_badge import ConnectionBadge
from tekken_overlays.ui.components.event_log import EventLog

__all__ = ["ConnectionBadge", "EventLog"]
