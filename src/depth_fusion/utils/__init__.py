"""Utility modules for the fusion pipeline.

This package contains utility functions for:
- Profiling provider calls (timers, throughput)
- Visualization (annotated detections with depth captions)
- MLFlow experiment tracking
"""

from depth_fusion.utils.profiling import Profiler, ThroughputTracker, Timer, TimingResult
from depth_fusion.utils.visualization import (
    draw_annotated_detections,
    format_caption,
    mirror_box,
)

__all__ = [
    # Profiling
    "Timer",
    "TimingResult",
    "Profiler",
    "ThroughputTracker",
    # Visualization
    "draw_annotated_detections",
    "format_caption",
    "mirror_box",
]
