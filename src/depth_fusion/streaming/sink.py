"""Result sinks for published detection sets.

Each publication replaces the previous set. The consumer (typically a render
loop) only ever observes a complete set.
"""

import logging
import threading
from typing import Callable, Optional, Sequence, Tuple

from depth_fusion.pipelines.frame_fusion.nodes import AnnotatedDetection

logger = logging.getLogger(__name__)


class ResultSink:
    """Interface for consumers of published detection sets."""

    def publish(self, detections: Sequence[AnnotatedDetection]) -> None:
        raise NotImplementedError


class LatestResultSink(ResultSink):
    """Holds the most recently published detection set.

    The set is stored as an immutable tuple in a single assignment, so readers
    on another thread see either the previous set or the new one.

    Example:
        >>> sink = LatestResultSink()
        >>> sink.publish(detections)
        >>> for det in sink.latest():
        ...     draw(det)
    """

    def __init__(self, on_publish: Optional[Callable[[Tuple[AnnotatedDetection, ...]], None]] = None):
        self._condition = threading.Condition()
        self._detections: Tuple[AnnotatedDetection, ...] = ()
        self._version = 0
        self._on_publish = on_publish

    def publish(self, detections: Sequence[AnnotatedDetection]) -> None:
        snapshot = tuple(detections)
        with self._condition:
            self._detections = snapshot
            self._version += 1
            version = self._version
            self._condition.notify_all()
        if self._on_publish is None:
            return
        # Consumer errors never roll back the stored set
        try:
            self._on_publish(snapshot)
        except Exception as exc:
            logger.exception(f"on_publish callback failed after version {version}: {exc}")

    def latest(self) -> Tuple[AnnotatedDetection, ...]:
        """Return the last published set (empty before the first publication)."""
        with self._condition:
            return self._detections

    @property
    def version(self) -> int:
        """Number of publications so far."""
        with self._condition:
            return self._version

    def wait_for_version(self, version: int, timeout: Optional[float] = None) -> bool:
        """Block until at least ``version`` publications have happened.

        Returns:
            False if the timeout expired first.
        """
        with self._condition:
            return self._condition.wait_for(lambda: self._version >= version, timeout=timeout)
