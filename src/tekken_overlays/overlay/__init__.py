"""Overlay renderer controllers and their render state."""

from tekken_overlays.overlay.controller import (
    BaseOverlayController,
    LoveAndWarOverlayController,
    PlayerRadarController,
    ScoreboardOverlayController,
)
from tekken_overlays.overlay.events import DisplayCommand, decode_display_event
from tekken_overlays.overlay.render import AnimationTracker, RenderState
from tekken_overlays.overlay.tasks import DelayedTask, TaskScope

__all__ = [
    "AnimationTracker",
    "BaseOverlayController",
    "DelayedTask",
    "DisplayCommand",
    "LoveAndWarOverlayController",
    "PlayerRadarController",
    "RenderState",
    "ScoreboardOverlayController",
    "TaskScope",
    "decode_display_event",
]
