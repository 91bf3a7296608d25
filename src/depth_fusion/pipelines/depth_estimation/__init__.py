"""Depth Estimation Pipeline.

This module provides the Depth Provider: a monocular depth model that turns
each frame into a fixed-size depth surface.

Supported Models:
    - MiDaS: Classic depth estimation baseline
    - DepthAnything: Fast depth estimation
"""

from kedro.pipeline import Pipeline, node, pipeline

from .nodes import (
    DepthConfig,
    DepthEstimatorFactory,
    DepthSurface,
    MidasDepthProvider,
    estimate_depth_surfaces,
    load_depth_model,
)

__all__ = [
    "DepthConfig",
    "DepthSurface",
    "DepthEstimatorFactory",
    "MidasDepthProvider",
    "load_depth_model",
    "estimate_depth_surfaces",
    "create_pipeline",
]


def create_pipeline(**kwargs) -> Pipeline:
    """Create the depth estimation pipeline.

    Returns:
        A Kedro Pipeline object for depth estimation.
    """
    return pipeline(
        [
            node(
                func=load_depth_model,
                inputs="params:depth_estimation",
                outputs="depth_model",
                name="load_depth_model",
                tags=["depth", "model"],
            ),
            node(
                func=estimate_depth_surfaces,
                inputs=["depth_model", "raw_frames", "params:depth_estimation"],
                outputs="depth_surfaces",
                name="estimate_depth_surfaces",
                tags=["depth", "inference"],
            ),
        ],
        tags=["depth_estimation"],
    )
