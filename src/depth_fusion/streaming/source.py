"""Frame source for live fusion.

Reads a camera (index or RTSP URL) with OpenCV and delivers frames one at a
time, strictly sequentially, to a callback such as
``FusionOrchestrator.submit``. Frames are converted to RGB and rotated before
delivery so downstream code never deals with sensor orientation.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple, Union

import cv2
import numpy as np

logger = logging.getLogger(__name__)

ROTATIONS = {
    0: None,
    90: cv2.ROTATE_90_CLOCKWISE,
    180: cv2.ROTATE_180,
    270: cv2.ROTATE_90_COUNTERCLOCKWISE,
}


@dataclass(frozen=True)
class Frame:
    """An RGB image sample [H, W, 3] captured from the stream.

    ``image`` is None when the capture produced no data.
    """

    frame_id: int
    image: Optional[np.ndarray]
    timestamp: float = field(default_factory=time.time)

    @property
    def has_data(self) -> bool:
        return self.image is not None and self.image.ndim >= 2 and self.image.size > 0

    @property
    def width(self) -> int:
        return int(self.image.shape[1]) if self.has_data else 0

    @property
    def height(self) -> int:
        return int(self.image.shape[0]) if self.has_data else 0

    @property
    def size(self) -> Tuple[int, int]:
        """Frame size as (width, height)."""
        return self.width, self.height


class CameraFrameSource:
    """Synchronous camera reader delivering frames to a callback.

    Example:
        >>> source = CameraFrameSource(source=0, fps=30, max_frames=100)
        >>> source.run(orchestrator.submit)
    """

    def __init__(
        self,
        source: Union[int, str] = 0,
        fps: float = 30,
        rotate: int = 0,
        max_frames: Optional[int] = None,
        duration: Optional[float] = None,
        credentials: Optional[Dict[str, Any]] = None,
        max_read_failures: int = 5,
    ):
        """Initialize CameraFrameSource.

        Args:
            source: Camera index (int) or RTSP URL (str)
            fps: Target delivery rate
            rotate: Clockwise rotation in degrees (0, 90, 180, 270)
            max_frames: Stop after delivering this many frames
            duration: Stop after this many seconds
            credentials: Optional username/password for RTSP streams
            max_read_failures: Consecutive failed reads before giving up
        """
        if rotate not in ROTATIONS:
            raise ValueError(f"rotate must be one of {sorted(ROTATIONS)}, got {rotate}")

        self.source = source
        self.fps = fps
        self.rotate = rotate
        self.max_frames = max_frames
        self.duration = duration
        self.max_read_failures = max_read_failures
        self._credentials = credentials or {}
        self._stop_event = threading.Event()

    def _get_source(self) -> Union[int, str]:
        """Get the camera source, inserting RTSP credentials if present."""
        source = self.source

        if isinstance(source, str) and source.startswith("rtsp://"):
            username = self._credentials.get("username")
            password = self._credentials.get("password")
            if username and password:
                source = source.replace("rtsp://", f"rtsp://{username}:{password}@")

        return source

    def stop(self) -> None:
        """Ask a running ``run`` loop to return."""
        self._stop_event.set()

    def _to_frame(self, frame_id: int, bgr: np.ndarray) -> Frame:
        image = cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)
        rotation = ROTATIONS[self.rotate]
        if rotation is not None:
            image = cv2.rotate(image, rotation)
        return Frame(frame_id=frame_id, image=image)

    def run(self, on_frame: Callable[[Frame], Any]) -> int:
        """Read frames and hand each one to ``on_frame`` until a stop condition.

        Args:
            on_frame: Callback invoked on the calling thread for every frame.

        Returns:
            Number of frames delivered.
        """
        source = self._get_source()

        cap = cv2.VideoCapture(source)
        if not cap.isOpened():
            raise RuntimeError(f"Cannot open camera source: {self.source}")

        logger.info(f"Opening camera stream: {self.source}")

        self._stop_event.clear()
        frame_interval = 1.0 / self.fps if self.fps > 0 else 0
        start_time = time.time()
        last_capture_time = 0.0
        delivered = 0
        failures = 0

        try:
            while not self._stop_event.is_set():
                current_time = time.time()

                # Check termination conditions
                if self.duration and (current_time - start_time) >= self.duration:
                    break
                if self.max_frames and delivered >= self.max_frames:
                    break

                # Maintain target FPS
                if current_time - last_capture_time < frame_interval:
                    time.sleep(0.001)
                    continue

                ret, bgr = cap.read()
                last_capture_time = current_time

                if not ret or bgr is None:
                    failures += 1
                    logger.warning(f"Failed to read frame from camera ({failures} in a row)")
                    if failures >= self.max_read_failures:
                        break
                    continue

                failures = 0
                on_frame(self._to_frame(delivered, bgr))
                delivered += 1
        finally:
            cap.release()

        logger.info(f"Delivered {delivered} frames from camera")
        return delivered
