"""Frame Fusion Pipeline Nodes.

This module fuses the outputs of the two perception providers into a single
annotated result set: every detected object receives a calibrated depth value
in real-world units.

Three coordinate spaces are involved:

    Detector-native space (300x300)      View space (frame W x H)      Depth-surface space (256x256)
    ┌──────────────┐   to_view_space    ┌────────────────────┐   to_depth_space   ┌──────────┐
    │  RawDetection│ ─────────────────→ │ AnnotatedDetection │ ─────────────────→ │ (x, y)   │
    └──────────────┘  scale = view/det  └────────────────────┘ scale = depth/view └──────────┘
                      * correction + offset                      (box center only)

The two transforms scale in opposite directions and are kept as separate pure
functions, each parameterized by its own native dimensions.

Depth calibration per detection:

    raw   = mean of the 3x3 neighbourhood around the box center (bounds-clipped)
    range = (min, max) over the full depth surface for this frame
    depth = (raw - min) / (max - min) * (out_max - out_min) + out_min

A flat surface (max == min) yields the configured fallback, or the midpoint
of the output range when none is configured.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from depth_fusion.pipelines.depth_estimation.nodes import DepthSurface
from depth_fusion.pipelines.object_detection.nodes import DetectionConfig, DetectionResult, RawDetection

logger = logging.getLogger(__name__)

Size = Tuple[int, int]  # (width, height)
Box = Tuple[int, int, int, int]  # (left, top, right, bottom)


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class FusionConfig:
    """Calibration constants for frame fusion.

    ``correction_factor`` and ``offset`` are empirical calibration parameters
    compensating for the mismatch between the detector's reference frame and
    the camera view. They are expected to be re-tuned per device.

    Attributes:
        detector_size: Detector-native coordinate space (width, height)
        correction_factor: Multiplicative correction applied to both axes, in (0, 1]
        offset: Pixel offsets (x, y) applied after scaling, may be negative
        output_range: Real-world depth range (min, max) for calibrated values
        sample_radius: Neighbourhood radius for depth sampling (1 -> 3x3)
        clamp_to_view: Clamp remapped boxes to the view bounds
        degenerate_fallback: Depth reported for flat surfaces (None -> midpoint)
    """

    detector_size: Size = (300, 300)
    correction_factor: float = 0.7
    offset: Tuple[int, int] = (-10, 0)
    output_range: Tuple[float, float] = (0.0, 20.0)
    sample_radius: int = 1
    clamp_to_view: bool = True
    degenerate_fallback: Optional[float] = None

    def __post_init__(self):
        self.detector_size = tuple(int(v) for v in self.detector_size)
        self.offset = tuple(int(v) for v in self.offset)
        self.output_range = tuple(float(v) for v in self.output_range)

        if min(self.detector_size) <= 0:
            raise ValueError(f"detector_size must be positive, got {self.detector_size}")
        if not 0.0 < self.correction_factor <= 1.0:
            raise ValueError(
                f"correction_factor must be in (0, 1], got {self.correction_factor}"
            )
        if self.output_range[0] >= self.output_range[1]:
            raise ValueError(f"output_range must be increasing, got {self.output_range}")
        if self.sample_radius < 0:
            raise ValueError(f"sample_radius must be >= 0, got {self.sample_radius}")

    @classmethod
    def from_params(
        cls,
        params: Optional[Dict[str, Any]],
        detector_size: Optional[Size] = None,
    ) -> "FusionConfig":
        """Build a config from a Kedro parameters dict.

        ``detector_size`` is the Object Provider's native size. When given it
        is authoritative, and a ``detector_size`` entry in ``params`` must agree
        with it.
        """
        params = params or {}
        defaults = cls()
        if detector_size is None:
            detector_size = params.get("detector_size", defaults.detector_size)
        elif "detector_size" in params and tuple(params["detector_size"]) != tuple(detector_size):
            raise ValueError(
                f"frame_fusion.detector_size {tuple(params['detector_size'])} does not match "
                f"the detector native size {tuple(detector_size)}"
            )
        return cls(
            detector_size=detector_size,
            correction_factor=params.get("correction_factor", defaults.correction_factor),
            offset=params.get("offset", defaults.offset),
            output_range=params.get("output_range", defaults.output_range),
            sample_radius=params.get("sample_radius", defaults.sample_radius),
            clamp_to_view=params.get("clamp_to_view", defaults.clamp_to_view),
            degenerate_fallback=params.get("degenerate_fallback", defaults.degenerate_fallback),
        )


@dataclass(frozen=True)
class ScaleFactors:
    """Per-frame ratios between the three coordinate spaces.

    Recomputed every cycle since the frame size may change between frames.
    """

    detector_to_view_x: float
    detector_to_view_y: float
    view_to_depth_x: float
    view_to_depth_y: float

    @classmethod
    def compute(cls, view_size: Size, detector_size: Size, depth_size: Size) -> "ScaleFactors":
        return cls(
            detector_to_view_x=_axis_scale(view_size[0], detector_size[0], "x"),
            detector_to_view_y=_axis_scale(view_size[1], detector_size[1], "y"),
            view_to_depth_x=_axis_scale(depth_size[0], view_size[0], "x"),
            view_to_depth_y=_axis_scale(depth_size[1], view_size[1], "y"),
        )

    def to_dict(self) -> Dict[str, float]:
        return {
            "detector_to_view_x": self.detector_to_view_x,
            "detector_to_view_y": self.detector_to_view_y,
            "view_to_depth_x": self.view_to_depth_x,
            "view_to_depth_y": self.view_to_depth_y,
        }


@dataclass(frozen=True)
class DepthRange:
    """Observed (min, max) over a depth surface.

    Attributes:
        min: Smallest sample on the surface
        max: Largest sample on the surface
        sample_count: Number of samples visited to compute the range
    """

    min: float
    max: float
    sample_count: int

    @property
    def is_degenerate(self) -> bool:
        span = self.max - self.min
        return not np.isfinite(span) or span <= 0


@dataclass(frozen=True)
class AnnotatedDetection:
    """A detection remapped to view space with a calibrated depth.

    Attributes:
        bbox: Box in view coordinates (left, top, right, bottom), integers
        label: Class label
        confidence: Detector confidence
        depth: Calibrated depth in real-world units (meters)
    """

    bbox: Box
    label: str
    confidence: float
    depth: float

    @property
    def center(self) -> Tuple[int, int]:
        left, top, right, bottom = self.bbox
        return int((left + right) / 2), int((top + bottom) / 2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bbox": list(self.bbox),
            "label": self.label,
            "confidence": self.confidence,
            "depth": self.depth,
        }


@dataclass(frozen=True)
class FusionResult:
    """Output of one fusion cycle."""

    frame_id: int
    detections: Tuple[AnnotatedDetection, ...]
    scale_factors: ScaleFactors
    depth_range: DepthRange
    depth_time: float = 0.0
    detection_time: float = 0.0

    @property
    def num_detections(self) -> int:
        return len(self.detections)


# =============================================================================
# Coordinate Calibrator
# =============================================================================


def _axis_scale(target: int, source: int, axis: str) -> float:
    if source <= 0 or target <= 0:
        raise ValueError(
            f"Cannot scale {axis} axis between sizes {source} and {target}: dimensions must be positive"
        )
    return target / source


def to_view_space(
    bbox: Sequence[float],
    detector_size: Size,
    view_size: Size,
    correction_factor: float = 0.7,
    offset: Tuple[int, int] = (-10, 0),
    clamp: bool = True,
) -> Box:
    """Map a detector-native box into camera-view coordinates.

    Each coordinate is scaled by ``view / detector`` on its axis, multiplied
    by ``correction_factor``, shifted by ``offset`` and truncated to int.

    Args:
        bbox: Box [x1, y1, x2, y2] in detector-native coordinates
        detector_size: Detector-native size (width, height)
        view_size: Camera view size (width, height)
        correction_factor: Empirical scale correction for both axes
        offset: Pixel offsets (x, y) applied after scaling
        clamp: Clamp the result to [0, width] x [0, height]

    Returns:
        Box (left, top, right, bottom) in view coordinates

    Raises:
        ValueError: If any dimension is not positive.
    """
    scale_x = _axis_scale(view_size[0], detector_size[0], "x") * correction_factor
    scale_y = _axis_scale(view_size[1], detector_size[1], "y") * correction_factor
    offset_x, offset_y = offset

    x1, y1, x2, y2 = (float(v) for v in bbox[:4])
    left = int(x1 * scale_x + offset_x)
    top = int(y1 * scale_y + offset_y)
    right = int(x2 * scale_x + offset_x)
    bottom = int(y2 * scale_y + offset_y)

    if clamp:
        width, height = view_size
        left, right = (min(max(v, 0), width) for v in (left, right))
        top, bottom = (min(max(v, 0), height) for v in (top, bottom))

    return left, top, right, bottom


def to_depth_space(bbox: Box, view_size: Size, depth_size: Size) -> Tuple[int, int]:
    """Map the center of a view-space box into depth-surface coordinates.

    Scales by ``depth / view`` per axis, the inverse direction of
    ``to_view_space``.

    Args:
        bbox: Box (left, top, right, bottom) in view coordinates
        view_size: Camera view size (width, height)
        depth_size: Depth surface size (width, height)

    Returns:
        (x, y) integer point on the depth surface, not bounds-checked
    """
    scale_x = _axis_scale(depth_size[0], view_size[0], "x")
    scale_y = _axis_scale(depth_size[1], view_size[1], "y")

    left, top, right, bottom = bbox
    center_x = int((left + right) / 2)
    center_y = int((top + bottom) / 2)

    return int(center_x * scale_x), int(center_y * scale_y)


# =============================================================================
# Depth Sampler and Normalizer
# =============================================================================


def sample_depth(x: int, y: int, surface: DepthSurface, radius: int = 1) -> float:
    """Average the in-bounds samples of a square neighbourhood at (x, y).

    The neighbourhood spans ``2 * radius + 1`` samples per axis and is clipped
    to the surface bounds. Returns 0.0 when no sample is in bounds.
    """
    x_start, x_stop = max(x - radius, 0), min(x + radius + 1, surface.width)
    y_start, y_stop = max(y - radius, 0), min(y + radius + 1, surface.height)

    if x_start >= x_stop or y_start >= y_stop:
        return 0.0

    return float(np.mean(surface.values[y_start:y_stop, x_start:x_stop]))


def observe_range(surface: DepthSurface) -> DepthRange:
    """Scan every sample of the surface once and return its (min, max)."""
    values = surface.values
    return DepthRange(
        min=float(np.min(values)),
        max=float(np.max(values)),
        sample_count=int(values.size),
    )


def normalize_depth(
    raw: float,
    depth_min: float,
    depth_max: float,
    out_min: float,
    out_max: float,
    fallback: Optional[float] = None,
) -> float:
    """Linearly rescale a raw sample from [depth_min, depth_max] to [out_min, out_max].

    When the input range is flat (or not finite) the result is ``fallback``,
    or the midpoint of the output range if no fallback is given.
    """
    span = depth_max - depth_min
    if not np.isfinite(span) or span <= 0:
        return float(fallback) if fallback is not None else (out_min + out_max) / 2.0

    return float((raw - depth_min) / span * (out_max - out_min) + out_min)


# =============================================================================
# Fusion
# =============================================================================


def fuse_detections(
    detections: Sequence[RawDetection],
    surface: DepthSurface,
    view_size: Size,
    config: Optional[FusionConfig] = None,
    frame_id: int = 0,
) -> FusionResult:
    """Calibrate every detection of one frame against its depth surface.

    Detections are processed independently; output order follows input order.

    Args:
        detections: Raw detections in detector-native coordinates
        surface: Depth surface for the same frame
        view_size: Frame size (width, height)
        config: Calibration constants
        frame_id: Identifier of the frame

    Returns:
        FusionResult holding the annotated detections
    """
    config = config or FusionConfig()
    out_min, out_max = config.output_range

    scale_factors = ScaleFactors.compute(view_size, config.detector_size, surface.size)
    depth_range = observe_range(surface)

    if depth_range.is_degenerate:
        logger.warning(
            f"Frame {frame_id}: flat depth surface (min=max={depth_range.min:.3f}), "
            f"reporting fallback depth"
        )

    annotated = []
    for det in detections:
        view_box = to_view_space(
            det.bbox,
            config.detector_size,
            view_size,
            correction_factor=config.correction_factor,
            offset=config.offset,
            clamp=config.clamp_to_view,
        )
        depth_x, depth_y = to_depth_space(view_box, view_size, surface.size)
        raw = sample_depth(depth_x, depth_y, surface, radius=config.sample_radius)

        depth = normalize_depth(
            raw,
            depth_range.min,
            depth_range.max,
            out_min,
            out_max,
            fallback=config.degenerate_fallback,
        )
        if not depth_range.is_degenerate:
            # An out-of-bounds sample reads 0, which may sit below the observed minimum
            depth = float(np.clip(depth, out_min, out_max))

        annotated.append(AnnotatedDetection(
            bbox=view_box,
            label=det.label,
            confidence=float(det.confidence),
            depth=depth,
        ))

    logger.debug(
        f"Frame {frame_id}: fused {len(annotated)} detections, scales={scale_factors.to_dict()}, "
        f"depth range=({depth_range.min:.3f}, {depth_range.max:.3f})"
    )

    return FusionResult(
        frame_id=frame_id,
        detections=tuple(annotated),
        scale_factors=scale_factors,
        depth_range=depth_range,
    )


def fusion_config_for_detector(
    params: Optional[Dict[str, Any]],
    detection_params: Optional[Dict[str, Any]] = None,
) -> FusionConfig:
    """Build the fusion config with the detector's own native size."""
    native_size = DetectionConfig.from_params(detection_params).native_size
    return FusionConfig.from_params(params, detector_size=native_size)


def fuse_frames(
    frames: List[np.ndarray],
    depth_surfaces: List[DepthSurface],
    detection_results: List[DetectionResult],
    params: Dict[str, Any],
    detection_params: Optional[Dict[str, Any]] = None,
) -> List[FusionResult]:
    """Fuse depth surfaces and detections for a batch of frames.

    Args:
        frames: RGB frames [H, W, 3]
        depth_surfaces: One depth surface per frame
        detection_results: One detection result per frame
        params: Frame fusion parameters
        detection_params: Object detection parameters; their ``native_size``
            defines the space the detection boxes are in

    Returns:
        List of FusionResult objects, one per frame
    """
    if not len(frames) == len(depth_surfaces) == len(detection_results):
        raise ValueError(
            f"Mismatched inputs: {len(frames)} frames, {len(depth_surfaces)} depth surfaces, "
            f"{len(detection_results)} detection results"
        )

    config = fusion_config_for_detector(params, detection_params)
    results = []

    for frame, surface, detection_result in zip(frames, depth_surfaces, detection_results):
        height, width = frame.shape[:2]
        result = fuse_detections(
            detection_result.detections,
            surface,
            (width, height),
            config,
            frame_id=detection_result.frame_id,
        )
        results.append(replace(
            result,
            depth_time=surface.inference_time,
            detection_time=detection_result.inference_time,
        ))

    total_dets = sum(r.num_detections for r in results)
    logger.info(f"Fused {len(results)} frames, {total_dets} annotated detections")

    return results


def compute_fusion_metrics(fusion_results: List[FusionResult]) -> Dict[str, float]:
    """Compute summary metrics over a batch of fusion results.

    Args:
        fusion_results: List of fusion results

    Returns:
        Dictionary of computed metrics
    """
    if not fusion_results:
        return {}

    total_frames = len(fusion_results)
    total_detections = sum(r.num_detections for r in fusion_results)

    depths = [d.depth for r in fusion_results for d in r.detections]
    depth_times = [r.depth_time for r in fusion_results]
    detection_times = [r.detection_time for r in fusion_results]

    avg_cycle_time = float(np.mean(depth_times) + np.mean(detection_times))
    fps = 1.0 / avg_cycle_time if avg_cycle_time > 0 else 0

    metrics = {
        "total_frames": total_frames,
        "total_detections": total_detections,
        "detections_per_frame": total_detections / total_frames,
        "avg_depth_time_ms": float(np.mean(depth_times)) * 1000,
        "avg_detection_time_ms": float(np.mean(detection_times)) * 1000,
        "fps": fps,
        "mean_depth": float(np.mean(depths)) if depths else 0.0,
        "min_depth": float(np.min(depths)) if depths else 0.0,
        "max_depth": float(np.max(depths)) if depths else 0.0,
        "degenerate_frames": sum(1 for r in fusion_results if r.depth_range.is_degenerate),
    }

    # Label distribution
    label_counts: Dict[str, int] = {}
    for result in fusion_results:
        for det in result.detections:
            label_counts[det.label] = label_counts.get(det.label, 0) + 1

    for label, count in label_counts.items():
        metrics[f"count_{label}"] = count

    logger.info(
        f"Fusion metrics: {total_detections} detections over {total_frames} frames, "
        f"{fps:.1f} FPS"
    )

    return metrics


def log_fusion_to_mlflow(
    metrics: Dict[str, float],
    params: Dict[str, Any],
) -> None:
    """Log fusion parameters and metrics to MLFlow.

    Args:
        metrics: Computed fusion metrics
        params: Frame fusion parameters
    """
    from depth_fusion.utils.mlflow_utils import log_fusion_run

    log_fusion_run(
        params=params,
        metrics=metrics,
        experiment_name=params.get("experiment_name", "depth_fusion"),
    )


def render_annotated_frames(
    frames: List[np.ndarray],
    fusion_results: List[FusionResult],
    params: Dict[str, Any],
) -> List[np.ndarray]:
    """Draw annotated detections onto copies of the frames.

    Args:
        frames: RGB frames [H, W, 3]
        fusion_results: One fusion result per frame
        params: Frame fusion parameters (``mirror`` for front cameras)

    Returns:
        List of BGR frames ready for video writing
    """
    import cv2

    from depth_fusion.utils.visualization import draw_annotated_detections

    mirror = params.get("mirror", False)
    rendered = []

    for frame, result in zip(frames, fusion_results):
        canvas = cv2.cvtColor(frame, cv2.COLOR_RGB2BGR)
        rendered.append(draw_annotated_detections(canvas, result.detections, mirror=mirror))

    logger.info(f"Rendered {len(rendered)} annotated frames")
    return rendered
