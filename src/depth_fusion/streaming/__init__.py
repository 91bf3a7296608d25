"""Live streaming: frame admission, fusion orchestration and result publication."""

from depth_fusion.streaming.gate import FrameAdmissionGate
from depth_fusion.streaming.orchestrator import (
    CycleState,
    DepthProvider,
    FusionOrchestrator,
    ObjectProvider,
    OrchestratorStats,
)
from depth_fusion.streaming.sink import LatestResultSink, ResultSink
from depth_fusion.streaming.source import CameraFrameSource, Frame

__all__ = [
    "CameraFrameSource",
    "CycleState",
    "DepthProvider",
    "Frame",
    "FrameAdmissionGate",
    "FusionOrchestrator",
    "LatestResultSink",
    "ObjectProvider",
    "OrchestratorStats",
    "ResultSink",
]
