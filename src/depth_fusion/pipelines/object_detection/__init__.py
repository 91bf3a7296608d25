"""Object Detection Pipeline.

This module implements the Object Provider: a detector reporting labelled
boxes in a fixed detector-native coordinate space.
"""

from kedro.pipeline import Pipeline, node, pipeline

from .nodes import (
    DetectionConfig,
    DetectionResult,
    DetectorFactory,
    RawDetection,
    UltralyticsObjectProvider,
    detect_objects,
    load_detection_model,
    parse_detections,
)

__all__ = [
    "DetectionConfig",
    "DetectionResult",
    "DetectorFactory",
    "RawDetection",
    "UltralyticsObjectProvider",
    "detect_objects",
    "load_detection_model",
    "parse_detections",
    "create_pipeline",
]


def create_pipeline(**kwargs) -> Pipeline:
    """Create the object detection pipeline.

    Returns:
        A Kedro Pipeline object for object detection.
    """
    return pipeline(
        [
            node(
                func=load_detection_model,
                inputs="params:object_detection",
                outputs="detection_model",
                name="load_detection_model",
                tags=["detection", "model"],
            ),
            node(
                func=detect_objects,
                inputs=["detection_model", "raw_frames", "params:object_detection"],
                outputs="detection_results",
                name="detect_objects",
                tags=["detection", "inference"],
            ),
        ],
        tags=["object_detection"],
    )
