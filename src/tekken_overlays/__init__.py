"""Real-time control panels and OBS overlays for Tekken 8 tournament broadcasts."""

__version__ = "0.1.0"
