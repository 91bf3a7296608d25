"""Live Fusion Pipeline.

Loads both providers and streams a camera through the fusion orchestrator.
"""

from kedro.pipeline import Pipeline, node, pipeline

from depth_fusion.pipelines.depth_estimation import create_pipeline as create_depth_pipeline
from depth_fusion.pipelines.object_detection import create_pipeline as create_detection_pipeline

from .nodes import run_live_fusion

__all__ = ["run_live_fusion", "create_pipeline"]


def create_pipeline(**kwargs) -> Pipeline:
    """Create the live fusion pipeline.

    Returns:
        A Kedro Pipeline object for live camera fusion.
    """
    model_loading = (
        create_depth_pipeline().only_nodes("load_depth_model")
        + create_detection_pipeline().only_nodes("load_detection_model")
    )

    streaming = pipeline(
        [
            node(
                func=run_live_fusion,
                inputs=[
                    "depth_model",
                    "detection_model",
                    "params:depth_estimation",
                    "params:object_detection",
                    "params:frame_fusion",
                    "params:live_fusion",
                ],
                outputs="live_fusion_summary",
                name="run_live_fusion",
                tags=["fusion", "streaming"],
            ),
        ],
    )

    return pipeline(model_loading + streaming, tags=["live_fusion"])
