"""Kedro Pipeline Registry.

This module provides the central registry for all pipelines in the depth fusion project.
"""

from typing import Dict

from kedro.pipeline import Pipeline

from depth_fusion.pipelines.depth_estimation import create_pipeline as create_depth_pipeline
from depth_fusion.pipelines.frame_fusion import create_pipeline as create_fusion_pipeline
from depth_fusion.pipelines.live_fusion import create_pipeline as create_live_pipeline
from depth_fusion.pipelines.object_detection import create_pipeline as create_detection_pipeline


def register_pipelines() -> Dict[str, Pipeline]:
    """Register all project pipelines.

    Returns:
        A dictionary mapping pipeline names to Pipeline objects.
    """
    depth_estimation_pipeline = create_depth_pipeline()
    object_detection_pipeline = create_detection_pipeline()
    frame_fusion_pipeline = create_fusion_pipeline()
    live_fusion_pipeline = create_live_pipeline()

    # Recorded footage: both providers over every frame, then fusion
    batch_fusion_pipeline = (
        depth_estimation_pipeline
        + object_detection_pipeline
        + frame_fusion_pipeline
    )

    return {
        "depth_estimation": depth_estimation_pipeline,
        "object_detection": object_detection_pipeline,
        "frame_fusion": frame_fusion_pipeline,
        "live_fusion": live_fusion_pipeline,
        "batch_fusion": batch_fusion_pipeline,
        "__default__": batch_fusion_pipeline,
    }
