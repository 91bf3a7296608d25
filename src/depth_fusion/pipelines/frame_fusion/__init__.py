"""Frame Fusion Pipeline.

This module reconciles detector-native, view and depth-surface coordinates,
samples and calibrates a depth value per detection, and reports the result.
"""

from kedro.pipeline import Pipeline, node, pipeline

from .nodes import (
    AnnotatedDetection,
    DepthRange,
    FusionConfig,
    FusionResult,
    ScaleFactors,
    compute_fusion_metrics,
    fuse_detections,
    fuse_frames,
    fusion_config_for_detector,
    log_fusion_to_mlflow,
    normalize_depth,
    observe_range,
    render_annotated_frames,
    sample_depth,
    to_depth_space,
    to_view_space,
)

__all__ = [
    "AnnotatedDetection",
    "DepthRange",
    "FusionConfig",
    "FusionResult",
    "ScaleFactors",
    "to_view_space",
    "to_depth_space",
    "sample_depth",
    "observe_range",
    "normalize_depth",
    "fuse_detections",
    "fuse_frames",
    "fusion_config_for_detector",
    "compute_fusion_metrics",
    "log_fusion_to_mlflow",
    "render_annotated_frames",
    "create_pipeline",
]


def create_pipeline(**kwargs) -> Pipeline:
    """Create the frame fusion pipeline.

    Returns:
        A Kedro Pipeline object for frame fusion.
    """
    return pipeline(
        [
            node(
                func=fuse_frames,
                inputs=[
                    "raw_frames",
                    "depth_surfaces",
                    "detection_results",
                    "params:frame_fusion",
                    "params:object_detection",
                ],
                outputs="fusion_results",
                name="fuse_frames",
                tags=["fusion", "calibration"],
            ),
            node(
                func=compute_fusion_metrics,
                inputs="fusion_results",
                outputs="fusion_metrics",
                name="compute_fusion_metrics",
                tags=["fusion", "metrics"],
            ),
            node(
                func=log_fusion_to_mlflow,
                inputs=["fusion_metrics", "params:frame_fusion"],
                outputs=None,
                name="log_fusion_to_mlflow",
                tags=["fusion", "mlflow"],
            ),
            node(
                func=render_annotated_frames,
                inputs=["raw_frames", "fusion_results", "params:frame_fusion"],
                outputs="annotated_frames",
                name="render_annotated_frames",
                tags=["fusion", "visualization"],
            ),
        ],
        tags=["frame_fusion"],
    )
