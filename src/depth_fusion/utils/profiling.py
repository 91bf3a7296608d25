"""Performance Profiling Utilities for the fusion pipeline.

Provider calls are timed for observability only; nothing in the pipeline
makes control decisions based on these numbers.

This module provides:
- Timer: high-precision timer usable as a context manager
- Profiler: accumulates named timings across fusion cycles
- ThroughputTracker: rolling frames-per-second estimate
"""

import logging
import threading
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional

import numpy as np
import torch

logger = logging.getLogger(__name__)


@dataclass
class TimingResult:
    """Accumulated durations (seconds) of one named stage, e.g. ``depth_estimation``."""

    name: str
    total_time: float
    call_count: int
    times: List[float] = field(default_factory=list)

    @property
    def avg_time(self) -> float:
        if self.call_count == 0:
            return 0
        return self.total_time / self.call_count

    @property
    def min_time(self) -> float:
        return min(self.times, default=0)

    @property
    def max_time(self) -> float:
        return max(self.times, default=0)

    @property
    def last_time(self) -> float:
        """Duration of the most recent call."""
        return self.times[-1] if self.times else 0

    @property
    def std_time(self) -> float:
        if len(self.times) < 2:
            return 0
        return float(np.std(self.times))

    def to_dict(self) -> Dict[str, float]:
        return {
            "name": self.name,
            "total_time": self.total_time,
            "call_count": self.call_count,
            "avg_time": self.avg_time,
            "min_time": self.min_time,
            "max_time": self.max_time,
            "std_time": self.std_time,
        }



class Timer:
    """Wall-clock timer around a provider call.

    With ``use_cuda_sync`` the timer waits for queued GPU work, so the
    duration covers the actual inference and not just the kernel launch.

    Example:
        >>> with Timer(use_cuda_sync=False) as timer:
        ...     surface = depth_provider.estimate(image)
        >>> print(f"Depth took {timer.elapsed * 1000:.1f}ms")
    """

    def __init__(self, use_cuda_sync: bool = True):
        self.use_cuda_sync = use_cuda_sync and torch.cuda.is_available()
        self._start_time: Optional[float] = None
        self._elapsed: float = 0

    def _sync(self) -> None:
        if self.use_cuda_sync:
            torch.cuda.synchronize()

    def start(self) -> "Timer":
        self._sync()
        self._start_time = time.perf_counter()
        return self

    def stop(self) -> float:
        """Stop the timer; returns 0 if it was never started."""
        self._sync()
        if self._start_time is None:
            return 0
        self._elapsed = time.perf_counter() - self._start_time
        self._start_time = None
        return self._elapsed

    @property
    def elapsed(self) -> float:
        return self._elapsed

    def __enter__(self) -> "Timer":
        return self.start()

    def __exit__(self, *args):
        self.stop()


class Profiler:
    """Accumulates named stage timings across fusion cycles.

    The orchestrator records from its worker thread while the caller may read
    a summary at any time, so all access goes through a lock.

    Example:
        >>> profiler = Profiler(use_cuda_sync=False)
        >>> with profiler.profile("calibration"):
        ...     fuse_detections(detections, surface, view_size)
        >>> profiler.summary()["calibration"]["avg_time"]
    """

    def __init__(self, use_cuda_sync: bool = True):
        self.use_cuda_sync = use_cuda_sync
        self._timings: Dict[str, TimingResult] = {}
        self._lock = threading.Lock()

    @contextmanager
    def profile(self, name: str):
        """Time the enclosed block and record it under ``name``."""
        timer = Timer(use_cuda_sync=self.use_cuda_sync).start()
        try:
            yield timer
        finally:
            self.record(name, timer.stop())

    def record(self, name: str, elapsed: float) -> None:
        """Record a duration that was measured elsewhere."""
        with self._lock:
            timing = self._timings.setdefault(name, TimingResult(name=name, total_time=0, call_count=0))
            timing.total_time += elapsed
            timing.call_count += 1
            timing.times.append(elapsed)

    def get_timing(self, name: str) -> Optional[TimingResult]:
        with self._lock:
            return self._timings.get(name)

    def get_all_timings(self) -> Dict[str, TimingResult]:
        with self._lock:
            return dict(self._timings)

    def reset(self) -> None:
        with self._lock:
            self._timings.clear()

    def summary(self) -> Dict[str, Dict[str, float]]:
        with self._lock:
            return {name: timing.to_dict() for name, timing in self._timings.items()}

    def log_summary(self, level: int = logging.INFO) -> None:
        """Log one line per stage, slowest stage first."""
        timings = self.get_all_timings()
        if not timings:
            logger.log(level, "No timings recorded.")
            return

        grand_total = sum(t.total_time for t in timings.values())

        for timing in sorted(timings.values(), key=lambda t: t.total_time, reverse=True):
            share = timing.total_time / grand_total * 100 if grand_total > 0 else 0
            logger.log(
                level,
                f"{timing.name:<20} calls={timing.call_count:<6} "
                f"avg={timing.avg_time * 1000:.2f}ms last={timing.last_time * 1000:.2f}ms "
                f"max={timing.max_time * 1000:.2f}ms ({share:.1f}%)",
            )


class ThroughputTracker:
    """Rolling rate of published fusion cycles.

    Example:
        >>> tracker = ThroughputTracker(window_size=30)
        >>> tracker.update()
        >>> print(f"Fusion rate: {tracker.fps:.1f} cycles/s")
    """

    def __init__(self, window_size: int = 100):
        """Initialize tracker.

        Args:
            window_size: Number of recent events used for the rolling rate.
        """
        self.window_size = window_size
        self._timestamps: Deque[float] = deque(maxlen=window_size)
        self._counts: Deque[int] = deque(maxlen=window_size)
        self._total_count = 0
        self._start_time: Optional[float] = None

    def update(self, count: int = 1) -> None:
        now = time.perf_counter()
        if self._start_time is None:
            self._start_time = now

        self._timestamps.append(now)
        self._counts.append(count)
        self._total_count += count

    @property
    def fps(self) -> float:
        """Events per second over the current window."""
        if len(self._timestamps) < 2:
            return 0.0

        span = self._timestamps[-1] - self._timestamps[0]
        return sum(self._counts) / span if span > 0 else 0.0

    @property
    def average_fps(self) -> float:
        """Events per second since the first update."""
        if self._start_time is None or self._total_count == 0:
            return 0.0

        elapsed = time.perf_counter() - self._start_time
        return self._total_count / elapsed if elapsed > 0 else 0.0

    @property
    def total_count(self) -> int:
        return self._total_count

    def reset(self) -> None:
        self._timestamps.clear()
        self._counts.clear()
        self._total_count = 0
        self._start_time = None
