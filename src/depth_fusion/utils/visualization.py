"""Visualization utilities for the fusion pipeline.

Draws annotated detections as boxes captioned with their label and calibrated
depth, e.g. ``car (7.42 m)``. Front-facing cameras show a mirrored preview, so
boxes can be flipped horizontally to line up with what the user sees.

All functions work with BGR images (OpenCV format) and modify images in-place.
"""

from typing import Any, Dict, Sequence, Tuple, Union

import cv2
import numpy as np

# Class-specific colors (BGR)
CLASS_COLORS = {
    "person": (0, 0, 255),  # Red
    "bicycle": (0, 255, 0),  # Green
    "car": (255, 0, 0),  # Blue
    "motorcycle": (0, 255, 255),  # Yellow
}

DEFAULT_COLOR = (255, 255, 255)  # White
TEXT_COLOR = (0, 255, 255)  # Yellow


def format_caption(label: str, depth: float) -> str:
    """Caption shown above a box."""
    return f"{label} ({depth:.2f} m)"


def mirror_box(bbox: Sequence[int], width: int) -> Tuple[int, int, int, int]:
    """Flip a (left, top, right, bottom) box horizontally within ``width``."""
    left, top, right, bottom = (int(v) for v in bbox[:4])
    return width - right, top, width - left, bottom


def draw_annotated_detections(
    image: np.ndarray,
    detections: Sequence[Union[Any, Dict[str, Any]]],
    mirror: bool = False,
    thickness: int = 2,
    font_scale: float = 0.6,
) -> np.ndarray:
    """Draw annotated detections on an image.

    Args:
        image: Input image (H, W, C) in BGR format.
        detections: AnnotatedDetection objects or dicts with 'bbox', 'label', 'depth'.
        mirror: Flip boxes horizontally (front-facing camera preview).
        thickness: Line thickness for bounding boxes.
        font_scale: Font scale for captions.

    Returns:
        Image with detections drawn (modifies in-place and returns).
    """
    width = image.shape[1]

    for det in detections:
        if isinstance(det, dict):
            bbox = det["bbox"]
            label = det.get("label", "object")
            depth = det.get("depth", 0.0)
        else:
            bbox = det.bbox
            label = det.label
            depth = det.depth

        if mirror:
            bbox = mirror_box(bbox, width)

        x1, y1, x2, y2 = (int(v) for v in bbox[:4])
        color = CLASS_COLORS.get(label, DEFAULT_COLOR)

        cv2.rectangle(image, (x1, y1), (x2, y2), color, thickness)
        cv2.putText(
            image,
            format_caption(label, depth),
            (x1, max(y1 - 4, 12)),
            cv2.FONT_HERSHEY_SIMPLEX,
            font_scale,
            TEXT_COLOR,
            1,
            cv2.LINE_AA,
        )

    return image
