"""Depth Provider nodes for the fusion pipeline.

This module wraps a monocular depth model as the Depth Provider of the fusion
pipeline. Whatever the model's native output resolution, every call produces a
``DepthSurface`` of a fixed configured size so that downstream calibration can
rely on a stable depth-surface coordinate space.

Supported Models:
    - MiDaS: Classic relative depth baseline (default, "small" variant)
    - DepthAnything: Fast and robust depth estimation (transformers pipeline)

Architecture Overview:

    Frame [H, W, 3] RGB → Resize to model input → Depth Model → Relative depth
                                                                    ↓
                                           Resize to surface size [256, 256]
                                                                    ↓
                                                              DepthSurface

Depth values are relative intensities (MiDaS predicts inverse depth). They are
only turned into real-world units by the frame fusion calibration step.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import cv2
import numpy as np
import torch
import torch.nn as nn

logger = logging.getLogger(__name__)


@dataclass
class DepthConfig:
    """Configuration for the depth provider.

    Attributes:
        model: Model name (midas, depth_anything)
        variant: Model variant (e.g., 'small' for MiDaS_small)
        device: Device to run inference on
        input_size: Model input size (width, height)
        surface_size: Fixed output surface size (width, height)
        mean: Per-channel normalization mean (RGB)
        std: Per-channel normalization std (RGB)
    """

    model: str = "midas"
    variant: str = "small"
    device: str = "cpu"
    input_size: Tuple[int, int] = (256, 256)
    surface_size: Tuple[int, int] = (256, 256)
    mean: Tuple[float, float, float] = (0.485, 0.456, 0.406)
    std: Tuple[float, float, float] = (0.229, 0.224, 0.225)

    def __post_init__(self):
        self.input_size = tuple(int(v) for v in self.input_size)
        self.surface_size = tuple(int(v) for v in self.surface_size)
        if min(self.surface_size) <= 0 or min(self.input_size) <= 0:
            raise ValueError(
                f"Depth sizes must be positive, got input={self.input_size} "
                f"surface={self.surface_size}"
            )

    @classmethod
    def from_params(cls, params: Optional[Dict[str, Any]]) -> "DepthConfig":
        params = params or {}
        defaults = cls()
        return cls(
            model=params.get("model", defaults.model),
            variant=params.get("variant", defaults.variant),
            device=params.get("device", defaults.device),
            input_size=params.get("input_size", defaults.input_size),
            surface_size=params.get("surface_size", defaults.surface_size),
            mean=tuple(params.get("mean", defaults.mean)),
            std=tuple(params.get("std", defaults.std)),
        )


@dataclass(frozen=True)
class DepthSurface:
    """Dense depth grid produced once per frame.

    Attributes:
        values: Read-only 2-D grid [H, W] of relative depth intensities
        inference_time: Time taken by the provider call (seconds)
    """

    values: np.ndarray
    inference_time: float = field(default=0.0, compare=False)

    def __post_init__(self):
        values = np.array(self.values, dtype=np.float32)
        if values.ndim != 2 or values.size == 0:
            raise ValueError(f"Depth surface must be a non-empty 2-D grid, got shape {values.shape}")
        values.setflags(write=False)
        object.__setattr__(self, "values", values)

    @property
    def width(self) -> int:
        return int(self.values.shape[1])

    @property
    def height(self) -> int:
        return int(self.values.shape[0])

    @property
    def size(self) -> Tuple[int, int]:
        """Surface size as (width, height)."""
        return self.width, self.height


class DepthEstimatorFactory:
    """Builds the network behind the Depth Provider from a ``DepthConfig``."""

    SUPPORTED_MODELS = ["midas", "depth_anything"]

    MIDAS_VARIANTS = {"large": "DPT_Large", "hybrid": "DPT_Hybrid", "small": "MiDaS_small"}
    DEPTH_ANYTHING_VARIANTS = {
        "small": "LiheYoung/depth-anything-small-hf",
        "base": "LiheYoung/depth-anything-base-hf",
        "large": "LiheYoung/depth-anything-large-hf",
    }

    @staticmethod
    def create(config: DepthConfig) -> Any:
        builders = {
            "midas": DepthEstimatorFactory._create_midas,
            "depth_anything": DepthEstimatorFactory._create_depth_anything,
        }
        name = config.model.lower()
        if name not in builders:
            raise ValueError(
                f"Unsupported depth model '{config.model}', expected one of "
                f"{DepthEstimatorFactory.SUPPORTED_MODELS}"
            )
        return builders[name](config)

    @staticmethod
    def _create_depth_anything(config: DepthConfig) -> Any:
        """Depth Anything as a transformers ``depth-estimation`` pipeline."""
        from transformers import pipeline

        variants = DepthEstimatorFactory.DEPTH_ANYTHING_VARIANTS
        model_id = variants.get(config.variant.lower(), variants["small"])
        depth_pipe = pipeline(
            "depth-estimation",
            model=model_id,
            device=0 if config.device.startswith("cuda") else -1,
        )
        logger.info(f"Depth Anything ready: {model_id}")
        return depth_pipe

    @staticmethod
    def _create_midas(config: DepthConfig) -> nn.Module:
        """MiDaS from torch hub; predicts relative inverse depth."""
        model_type = DepthEstimatorFactory.MIDAS_VARIANTS.get(config.variant.lower(), "MiDaS_small")
        try:
            model = torch.hub.load("intel-isl/MiDaS", model_type, pretrained=True, trust_repo=True)
        except Exception as e:
            raise RuntimeError(f"Could not load MiDaS '{model_type}' from torch hub: {e}") from e

        model.eval()
        logger.info(f"MiDaS ready: {model_type}")
        return model


def load_depth_model(params: Dict[str, Any]) -> Any:
    """Kedro node: build the depth network described by ``params:depth_estimation``."""
    config = DepthConfig.from_params(params)
    model = DepthEstimatorFactory.create(config)

    if isinstance(model, nn.Module):
        model = model.to(config.device)

    logger.info(f"Depth model loaded: {config.model} ({config.variant}) on {config.device}")
    return model


class MidasDepthProvider:
    """Depth Provider backed by a MiDaS-style model.

    ``estimate`` never mutates the input image and always returns a surface
    of ``config.surface_size``.
    """

    def __init__(self, model: Any, config: Optional[DepthConfig] = None):
        self.model = model
        self.config = config or DepthConfig()

    def estimate(self, image: np.ndarray) -> DepthSurface:
        """Estimate a depth surface for an RGB image [H, W, 3]."""
        start_time = time.perf_counter()

        depth_map = self._predict(image)
        depth_map = cv2.resize(
            depth_map.astype(np.float32),
            self.config.surface_size,
            interpolation=cv2.INTER_LINEAR,
        )

        return DepthSurface(values=depth_map, inference_time=time.perf_counter() - start_time)

    def _predict(self, image: np.ndarray) -> np.ndarray:
        model_name = self.config.model.lower()

        if model_name == "depth_anything":
            # HuggingFace pipeline
            from PIL import Image

            output = self.model(Image.fromarray(np.ascontiguousarray(image)))
            return np.array(output["depth"])

        resized = cv2.resize(image, self.config.input_size, interpolation=cv2.INTER_LINEAR)
        image_tensor = torch.from_numpy(resized.astype(np.float32) / 255.0)

        mean = torch.tensor(self.config.mean, dtype=torch.float32)
        std = torch.tensor(self.config.std, dtype=torch.float32)
        image_tensor = (image_tensor - mean) / std

        # HWC to BCHW
        image_tensor = image_tensor.permute(2, 0, 1).unsqueeze(0).to(self.config.device)

        with torch.no_grad():
            prediction = self.model(image_tensor)

        return prediction.squeeze().cpu().numpy()


def estimate_depth_surfaces(
    model: Any,
    frames: List[np.ndarray],
    params: Dict[str, Any],
) -> List[DepthSurface]:
    """Estimate a depth surface for each frame.

    Args:
        model: Depth estimation model
        frames: List of RGB frames [H, W, 3]
        params: Depth parameters

    Returns:
        List of DepthSurface objects, one per frame
    """
    provider = MidasDepthProvider(model, DepthConfig.from_params(params))

    surfaces = [provider.estimate(frame) for frame in frames]

    total_time = sum(s.inference_time for s in surfaces)
    avg_time = total_time / len(surfaces) if surfaces else 0
    fps = 1.0 / avg_time if avg_time > 0 else 0

    logger.info(f"Depth estimation complete: {len(surfaces)} frames, {fps:.1f} FPS")
    return surfaces
