"""Object Provider nodes for the fusion pipeline.

This module wraps a bounding-box detector as the Object Provider of the fusion
pipeline. Frames are resized to a fixed detector-native resolution before
inference, so every reported box lives in that native space (300x300 by
default) regardless of the camera resolution.

Supported models (Ultralytics):
- YOLOv8 / YOLOv11
- RT-DETR (Real-Time Detection Transformer)
"""

from typing import Dict, List, Any, Optional, Sequence, Tuple
from dataclasses import dataclass, field
import logging
import time

import cv2
import numpy as np

logger = logging.getLogger(__name__)

# COCO class names, used when the model does not carry its own names
COCO_NAMES = [
    'person', 'bicycle', 'car', 'motorcycle', 'airplane', 'bus', 'train', 'truck',
    'boat', 'traffic light', 'fire hydrant', 'stop sign', 'parking meter', 'bench',
    'bird', 'cat', 'dog', 'horse', 'sheep', 'cow', 'elephant', 'bear', 'zebra',
    'giraffe', 'backpack', 'umbrella', 'handbag', 'tie', 'suitcase', 'frisbee',
    'skis', 'snowboard', 'sports ball', 'kite', 'baseball bat', 'baseball glove',
    'skateboard', 'surfboard', 'tennis racket', 'bottle', 'wine glass', 'cup',
    'fork', 'knife', 'spoon', 'bowl', 'banana', 'apple', 'sandwich', 'orange',
    'broccoli', 'carrot', 'hot dog', 'pizza', 'donut', 'cake', 'chair', 'couch',
    'potted plant', 'bed', 'dining table', 'toilet', 'tv', 'laptop', 'mouse',
    'remote', 'keyboard', 'cell phone', 'microwave', 'oven', 'toaster', 'sink',
    'refrigerator', 'book', 'clock', 'vase', 'scissors', 'teddy bear',
    'hair drier', 'toothbrush'
]

DEFAULT_ALLOWED_LABELS = ("person", "bicycle", "car", "motorcycle")


@dataclass
class DetectionConfig:
    """Configuration for the object provider.

    Attributes:
        model: Model name (yolov8, yolov11, rt_detr)
        variant: Model size variant (n, s, m, l, x)
        device: Device to run inference on
        native_size: Detector-native coordinate space (width, height)
        confidence_threshold: Minimum score for a detection to be reported
        max_results: Maximum number of detections per frame
        allowed_labels: Labels kept after inference; empty keeps everything
        weights: Optional explicit weights file
    """

    model: str = "yolov8"
    variant: str = "n"
    device: str = "cpu"
    native_size: Tuple[int, int] = (300, 300)
    confidence_threshold: float = 0.5
    max_results: int = 10
    allowed_labels: Tuple[str, ...] = DEFAULT_ALLOWED_LABELS
    weights: Optional[str] = None

    def __post_init__(self):
        self.native_size = tuple(int(v) for v in self.native_size)
        self.allowed_labels = tuple(self.allowed_labels or ())
        if min(self.native_size) <= 0:
            raise ValueError(f"Detector native size must be positive, got {self.native_size}")
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ValueError(
                f"confidence_threshold must be in [0, 1], got {self.confidence_threshold}"
            )
        if self.max_results <= 0:
            raise ValueError(f"max_results must be positive, got {self.max_results}")

    @classmethod
    def from_params(cls, params: Optional[Dict[str, Any]]) -> "DetectionConfig":
        params = params or {}
        defaults = cls()
        return cls(
            model=params.get("model", defaults.model),
            variant=params.get("variant", defaults.variant),
            device=params.get("device", defaults.device),
            native_size=params.get("native_size", defaults.native_size),
            confidence_threshold=params.get("confidence_threshold", defaults.confidence_threshold),
            max_results=params.get("max_results", defaults.max_results),
            allowed_labels=params.get("allowed_labels", defaults.allowed_labels),
            weights=params.get("weights"),
        )


@dataclass(frozen=True)
class RawDetection:
    """A single detection in detector-native coordinates."""
    bbox: np.ndarray  # [x1, y1, x2, y2]
    label: str
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bbox": np.asarray(self.bbox).tolist(),
            "label": self.label,
            "confidence": self.confidence,
        }


@dataclass
class DetectionResult:
    """Container for detection results on a single frame."""
    frame_id: int
    detections: List[RawDetection] = field(default_factory=list)
    inference_time: float = 0.0

    @property
    def num_detections(self) -> int:
        return len(self.detections)

    def get_boxes(self) -> np.ndarray:
        if not self.detections:
            return np.empty((0, 4))
        return np.array([d.bbox for d in self.detections])

    def get_scores(self) -> np.ndarray:
        if not self.detections:
            return np.empty(0)
        return np.array([d.confidence for d in self.detections])


class DetectorFactory:
    """Builds the Ultralytics network behind the Object Provider."""

    SUPPORTED_MODELS = ["yolov8", "yolov11", "rt_detr"]

    WEIGHT_PATTERNS = {
        "yolov8": "yolov8{variant}.pt",
        "yolov11": "yolo11{variant}.pt",
        "rt_detr": "rtdetr-{variant}.pt",
    }

    @staticmethod
    def create(config: DetectionConfig) -> Any:
        name = config.model.lower()
        if name not in DetectorFactory.WEIGHT_PATTERNS:
            raise ValueError(
                f"Unsupported detection model '{config.model}', expected one of "
                f"{DetectorFactory.SUPPORTED_MODELS}"
            )

        weights = config.weights or DetectorFactory.WEIGHT_PATTERNS[name].format(variant=config.variant)
        if name == "rt_detr":
            from ultralytics import RTDETR as model_cls
        else:
            from ultralytics import YOLO as model_cls

        model = model_cls(weights)
        logger.info(f"{name} detector ready: {weights}")
        return model


def load_detection_model(params: Dict[str, Any]) -> Any:
    """Kedro node: build the detector described by ``params:object_detection``."""
    config = DetectionConfig.from_params(params)
    model = DetectorFactory.create(config)
    logger.info(f"Detection model {config.model} ({config.variant}) will run on {config.device}")
    return model


def parse_detections(
    output: Sequence[Any],
    config: DetectionConfig,
    names: Optional[Dict[int, str]] = None,
) -> List[RawDetection]:
    """Convert raw Ultralytics results into filtered RawDetections.

    Applies the confidence threshold and label allow-list, then keeps the
    ``max_results`` highest-scoring detections.
    """
    allowed = set(config.allowed_labels)
    detections = []

    for frame_result in output:
        boxes = frame_result.boxes
        result_names = getattr(frame_result, "names", None) or names or {}

        for i in range(len(boxes)):
            conf = float(boxes.conf[i].cpu().item())
            cls_id = int(boxes.cls[i].cpu().item())

            if conf < config.confidence_threshold:
                continue

            if cls_id in result_names:
                label = result_names[cls_id]
            elif cls_id < len(COCO_NAMES):
                label = COCO_NAMES[cls_id]
            else:
                label = f"class_{cls_id}"

            if allowed and label not in allowed:
                continue

            detections.append(RawDetection(
                bbox=boxes.xyxy[i].cpu().numpy().astype(np.float32),
                label=label,
                confidence=conf,
            ))

    detections.sort(key=lambda d: d.confidence, reverse=True)
    return detections[:config.max_results]


class UltralyticsObjectProvider:
    """Object Provider backed by an Ultralytics detector."""

    def __init__(self, model: Any, config: Optional[DetectionConfig] = None):
        self.model = model
        self.config = config or DetectionConfig()

    def detect(self, image: np.ndarray) -> List[RawDetection]:
        """Detect objects in an RGB image [H, W, 3].

        Returns boxes in ``config.native_size`` coordinates.
        """
        native = cv2.resize(image, self.config.native_size, interpolation=cv2.INTER_LINEAR)
        # Ultralytics treats numpy input as BGR
        native = np.ascontiguousarray(native[..., ::-1])

        output = self.model.predict(
            native,
            conf=self.config.confidence_threshold,
            max_det=self.config.max_results,
            device=self.config.device,
            verbose=False,
        )

        return parse_detections(output, self.config, getattr(self.model, "names", None))


def detect_objects(
    model: Any,
    frames: List[np.ndarray],
    params: Dict[str, Any],
) -> List[DetectionResult]:
    """Run the object provider over a list of frames.

    Args:
        model: Detection model
        frames: List of RGB frames [H, W, 3]
        params: Detection parameters

    Returns:
        List of DetectionResult objects, one per frame
    """
    provider = UltralyticsObjectProvider(model, DetectionConfig.from_params(params))

    results = []
    for frame_id, frame in enumerate(frames):
        start_time = time.perf_counter()
        detections = provider.detect(frame)
        results.append(DetectionResult(
            frame_id=frame_id,
            detections=detections,
            inference_time=time.perf_counter() - start_time,
        ))

    total_dets = sum(r.num_detections for r in results)
    logger.info(f"Detection complete: {len(results)} frames, {total_dets} total detections")

    return results
