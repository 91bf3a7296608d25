"""Frame admission gate.

At most one frame may be in flight through the depth and object providers.
Frames arriving while a cycle is running are dropped, never queued: processing
latency bounds the effective frame rate and a stale result is preferred over a
growing backlog.
"""

import logging
import threading

logger = logging.getLogger(__name__)


class FrameAdmissionGate:
    """Single-slot busy flag with an atomic test-and-set.

    Example:
        >>> gate = FrameAdmissionGate()
        >>> gate.try_acquire()
        True
        >>> gate.try_acquire()  # busy, frame dropped
        False
        >>> gate.release()
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._busy = False
        self._accepted = 0
        self._dropped = 0

    def try_acquire(self) -> bool:
        """Mark the gate busy if it was free.

        Returns:
            True if the caller now owns the in-flight slot, False if the
            frame must be dropped.
        """
        with self._lock:
            if self._busy:
                self._dropped += 1
                return False
            self._busy = True
            self._accepted += 1
            return True

    def release(self) -> None:
        """Free the in-flight slot."""
        with self._lock:
            if not self._busy:
                logger.warning("Admission gate released while not busy")
            self._busy = False

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._busy

    @property
    def accepted(self) -> int:
        with self._lock:
            return self._accepted

    @property
    def dropped(self) -> int:
        with self._lock:
            return self._dropped
