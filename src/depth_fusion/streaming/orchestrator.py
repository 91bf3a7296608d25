"""Fusion orchestrator for live frame streams.

Each admitted frame runs one fusion cycle on a worker thread:

    Idle → Admitted → Inferring → Calibrating → Published → Idle
             │            │             │             │
         gate taken   depth + detect  fuse_detections  sink.publish,
                      (both finish                    gate released
                       before fusion)

Frames submitted while a cycle is in flight are dropped by the admission
gate. A failing provider ends the cycle without publication; the gate is
still released so the next frame is admitted.
"""

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

import numpy as np

from depth_fusion.pipelines.depth_estimation.nodes import DepthSurface
from depth_fusion.pipelines.frame_fusion.nodes import FusionConfig, FusionResult, fuse_detections
from depth_fusion.pipelines.object_detection.nodes import RawDetection
from depth_fusion.streaming.gate import FrameAdmissionGate
from depth_fusion.streaming.sink import ResultSink
from depth_fusion.streaming.source import Frame
from depth_fusion.utils.profiling import Profiler, ThroughputTracker, Timer

logger = logging.getLogger(__name__)


class DepthProvider(Protocol):
    def estimate(self, image: np.ndarray) -> DepthSurface:
        ...


class ObjectProvider(Protocol):
    def detect(self, image: np.ndarray) -> List[RawDetection]:
        ...


class CycleState(Enum):
    """Fusion cycle states."""

    IDLE = "idle"
    ADMITTED = "admitted"
    INFERRING = "inferring"
    CALIBRATING = "calibrating"
    PUBLISHED = "published"


@dataclass
class OrchestratorStats:
    """Counters describing a streaming session."""

    submitted: int = 0
    accepted: int = 0
    dropped: int = 0
    invalid_frames: int = 0
    published: int = 0
    failed_cycles: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "submitted": self.submitted,
            "accepted": self.accepted,
            "dropped": self.dropped,
            "invalid_frames": self.invalid_frames,
            "published": self.published,
            "failed_cycles": self.failed_cycles,
        }


class FusionOrchestrator:
    """Runs fusion cycles for live frames, one at a time.

    Args:
        depth_provider: Object with ``estimate(image) -> DepthSurface``
        object_provider: Object with ``detect(image) -> List[RawDetection]``
        sink: Receives the full detection set of every successful cycle
        config: Calibration constants
        executor: Optional executor to run cycles on; one single-thread pool
            is created (and owned) when omitted

    Example:
        >>> with FusionOrchestrator(depth, detector, sink) as orchestrator:
        ...     camera.run(orchestrator.submit)
        ...     orchestrator.wait_idle(timeout=5.0)
    """

    def __init__(
        self,
        depth_provider: DepthProvider,
        object_provider: ObjectProvider,
        sink: ResultSink,
        config: Optional[FusionConfig] = None,
        executor: Optional[Executor] = None,
    ):
        self._depth_provider = depth_provider
        self._object_provider = object_provider
        self._sink = sink
        self.config = config or FusionConfig()

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix="frame-fusion",
        )

        self._gate = FrameAdmissionGate()
        # Guards the gate together with the in-flight flag seen by wait_idle
        self._cycle_condition = threading.Condition()
        self._in_flight = False
        self._stats_lock = threading.Lock()
        self._stats = OrchestratorStats()
        self._state = CycleState.IDLE
        self._last_result: Optional[FusionResult] = None

        self.profiler = Profiler(use_cuda_sync=False)
        self.throughput = ThroughputTracker(window_size=30)

    @property
    def state(self) -> CycleState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._gate.busy

    @property
    def last_result(self) -> Optional[FusionResult]:
        """The most recently published cycle, for observability."""
        return self._last_result

    @property
    def stats(self) -> OrchestratorStats:
        with self._stats_lock:
            return replace(self._stats)

    def _count(self, name: str) -> None:
        with self._stats_lock:
            setattr(self._stats, name, getattr(self._stats, name) + 1)

    def _transition(self, state: CycleState) -> None:
        logger.debug(f"Fusion cycle: {self._state.value} -> {state.value}")
        self._state = state

    def submit(self, frame: Optional[Frame]) -> bool:
        """Offer a frame for fusion.

        Frames without image data are skipped without touching the gate.

        Returns:
            True if the frame was admitted, False if it was dropped.
        """
        self._count("submitted")

        if frame is None or not frame.has_data:
            self._count("invalid_frames")
            logger.warning("Skipping frame without image data")
            return False

        with self._cycle_condition:
            admitted = self._gate.try_acquire()
            if admitted:
                self._in_flight = True
                self._transition(CycleState.ADMITTED)

        if not admitted:
            self._count("dropped")
            return False

        self._count("accepted")

        try:
            future = self._executor.submit(self._run_cycle, frame)
        except RuntimeError:
            self._release()
            raise

        future.add_done_callback(self._finish_cycle)
        return True

    def _run_cycle(self, frame: Frame) -> FusionResult:
        self._transition(CycleState.INFERRING)

        with Timer(use_cuda_sync=False) as depth_timer:
            surface = self._depth_provider.estimate(frame.image)
        self.profiler.record("depth_estimation", depth_timer.elapsed)

        with Timer(use_cuda_sync=False) as detection_timer:
            detections = self._object_provider.detect(frame.image)
        self.profiler.record("object_detection", detection_timer.elapsed)

        logger.debug(
            f"Frame {frame.frame_id}: depth {depth_timer.elapsed * 1000:.1f}ms, "
            f"detection {detection_timer.elapsed * 1000:.1f}ms"
        )

        self._transition(CycleState.CALIBRATING)
        with self.profiler.profile("calibration"):
            result = fuse_detections(
                detections,
                surface,
                frame.size,
                self.config,
                frame_id=frame.frame_id,
            )

        return replace(
            result,
            depth_time=depth_timer.elapsed,
            detection_time=detection_timer.elapsed,
        )

    def _finish_cycle(self, future: Future) -> None:
        try:
            result = future.result()
            self._transition(CycleState.PUBLISHED)
            self._sink.publish(result.detections)
        except Exception as exc:
            self._count("failed_cycles")
            logger.exception(f"Fusion cycle failed, frame dropped: {exc}")
        else:
            self._last_result = result
            self._count("published")
            self.throughput.update()
            logger.debug(f"Published {result.num_detections} detections for frame {result.frame_id}")
        finally:
            self._release()

    def _release(self) -> None:
        with self._cycle_condition:
            self._transition(CycleState.IDLE)
            self._in_flight = False
            self._gate.release()
            self._cycle_condition.notify_all()

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no cycle is in flight.

        Returns:
            False if the timeout expired first.
        """
        with self._cycle_condition:
            return self._cycle_condition.wait_for(lambda: not self._in_flight, timeout=timeout)

    def summary(self) -> Dict[str, Any]:
        """Session statistics and provider timings."""
        summary: Dict[str, Any] = self.stats.to_dict()
        summary["fps"] = self.throughput.average_fps
        for name, timing in self.profiler.summary().items():
            summary[f"{name}_avg_ms"] = timing["avg_time"] * 1000
        return summary

    def shutdown(self, wait: bool = True) -> None:
        """Stop the owned executor; in-flight cycles complete first when ``wait``."""
        if self._owns_executor:
            self._executor.shutdown(wait=wait)

    def __enter__(self) -> "FusionOrchestrator":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown(wait=True)
        return False
