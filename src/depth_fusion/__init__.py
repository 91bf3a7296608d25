"""Depth fusion: calibrated per-object depth from a monocular camera."""

__version__ = "0.1.0"
