"""Live Fusion Pipeline Nodes.

Runs the depth and object providers against a live camera stream. Frames
flow through the orchestrator's admission gate, so at most one frame is being
processed at any time and frames arriving meanwhile are dropped.
"""

import logging
import threading
from typing import Any, Dict, Optional

import cv2

from depth_fusion.pipelines.depth_estimation.nodes import DepthConfig, MidasDepthProvider
from depth_fusion.pipelines.frame_fusion.nodes import FusionConfig
from depth_fusion.pipelines.object_detection.nodes import DetectionConfig, UltralyticsObjectProvider
from depth_fusion.streaming import CameraFrameSource, Frame, FusionOrchestrator, LatestResultSink
from depth_fusion.utils.visualization import draw_annotated_detections

logger = logging.getLogger(__name__)

WINDOW_NAME = "depth_fusion"


def _display_loop(
    source: CameraFrameSource,
    capture_thread: threading.Thread,
    sink: LatestResultSink,
    latest: Dict[str, Optional[Frame]],
    mirror: bool,
) -> None:
    """Draw the newest frame with the newest published detections until 'q'."""
    while capture_thread.is_alive():
        frame = latest.get("frame")
        if frame is not None:
            canvas = cv2.cvtColor(frame.image, cv2.COLOR_RGB2BGR)
            cv2.imshow(WINDOW_NAME, draw_annotated_detections(canvas, sink.latest(), mirror=mirror))

        if cv2.waitKey(1) & 0xFF == ord("q"):
            logger.info("Display closed, stopping camera")
            source.stop()
            break

    cv2.destroyAllWindows()


def run_live_fusion(
    depth_model: Any,
    detection_model: Any,
    depth_params: Dict[str, Any],
    detection_params: Dict[str, Any],
    fusion_params: Dict[str, Any],
    params: Dict[str, Any],
) -> Dict[str, Any]:
    """Stream camera frames through the fusion orchestrator.

    Args:
        depth_model: Depth estimation model
        detection_model: Detection model
        depth_params: Depth parameters
        detection_params: Detection parameters
        fusion_params: Frame fusion parameters
        params: Live fusion parameters (source, fps, rotate, max_frames,
            duration, display, mirror)

    Returns:
        Session summary: frame counters and average provider timings
    """
    depth_provider = MidasDepthProvider(depth_model, DepthConfig.from_params(depth_params))
    detection_config = DetectionConfig.from_params(detection_params)
    object_provider = UltralyticsObjectProvider(detection_model, detection_config)
    sink = LatestResultSink()

    source = CameraFrameSource(
        source=params.get("source", 0),
        fps=params.get("fps", 30),
        rotate=params.get("rotate", 0),
        max_frames=params.get("max_frames"),
        duration=params.get("duration"),
        credentials=params.get("credentials"),
    )

    with FusionOrchestrator(
        depth_provider,
        object_provider,
        sink,
        config=FusionConfig.from_params(fusion_params, detector_size=detection_config.native_size),
    ) as orchestrator:
        if params.get("display", False):
            latest: Dict[str, Optional[Frame]] = {"frame": None}

            def on_frame(frame: Frame) -> bool:
                latest["frame"] = frame
                return orchestrator.submit(frame)

            capture_thread = threading.Thread(
                target=source.run,
                args=(on_frame,),
                name="camera-capture",
                daemon=True,
            )
            capture_thread.start()
            _display_loop(source, capture_thread, sink, latest, params.get("mirror", False))
            capture_thread.join()
        else:
            source.run(orchestrator.submit)

        orchestrator.wait_idle()
        summary = orchestrator.summary()

    orchestrator.profiler.log_summary()
    logger.info(
        f"Live fusion finished: {summary['published']} published, "
        f"{summary['dropped']} dropped, {summary['failed_cycles']} failed"
    )

    return summary
