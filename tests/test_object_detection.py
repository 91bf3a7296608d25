"""Tests for Object Detection Pipeline Nodes.

This module tests the Object Provider functionality including:
- DetectionConfig parameter handling
- RawDetection and DetectionResult dataclasses
- Post-processing of Ultralytics outputs (threshold, allow-list, top-k)
- The provider adapter's resize to detector-native space
"""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest
import torch


class FakeBoxes:
    """Minimal stand-in for ultralytics Boxes."""

    def __init__(self, xyxy, conf, cls):
        self.xyxy = torch.tensor(xyxy, dtype=torch.float32)
        self.conf = torch.tensor(conf, dtype=torch.float32)
        self.cls = torch.tensor(cls, dtype=torch.float32)

    def __len__(self):
        return len(self.conf)


class FakeResult:
    """Minimal stand-in for an ultralytics Results object."""

    def __init__(self, boxes, names=None):
        self.boxes = boxes
        self.names = names


COCO_SUBSET = {0: "person", 1: "bicycle", 2: "car", 3: "motorcycle", 7: "truck"}


class TestDetectionConfig:
    """Tests for DetectionConfig."""

    def test_defaults(self):
        """Test default provider settings."""
        from depth_fusion.pipelines.object_detection.nodes import DetectionConfig

        config = DetectionConfig()

        assert config.native_size == (300, 300)
        assert config.confidence_threshold == 0.5
        assert config.max_results == 10
        assert set(config.allowed_labels) == {"person", "bicycle", "car", "motorcycle"}

    def test_from_params(self):
        """Test building config from Kedro params."""
        from depth_fusion.pipelines.object_detection.nodes import DetectionConfig

        config = DetectionConfig.from_params({
            "model": "yolov11",
            "native_size": [320, 320],
            "confidence_threshold": 0.3,
            "allowed_labels": ["car"],
        })

        assert config.model == "yolov11"
        assert config.native_size == (320, 320)
        assert config.confidence_threshold == 0.3
        assert list(config.allowed_labels) == ["car"]

    def test_invalid_threshold(self):
        """Test that an out-of-range threshold is rejected."""
        from depth_fusion.pipelines.object_detection.nodes import DetectionConfig

        with pytest.raises(ValueError):
            DetectionConfig(confidence_threshold=1.5)


class TestDetectionDataclasses:
    """Tests for RawDetection and DetectionResult."""

    def test_raw_detection_to_dict(self):
        """Test converting RawDetection to dictionary."""
        from depth_fusion.pipelines.object_detection.nodes import RawDetection

        det = RawDetection(bbox=np.array([10, 20, 30, 40]), label="car", confidence=0.9)
        d = det.to_dict()

        assert d["bbox"] == [10, 20, 30, 40]
        assert d["label"] == "car"
        assert d["confidence"] == 0.9

    def test_detection_result_accessors(self):
        """Test box and score accessors."""
        from depth_fusion.pipelines.object_detection.nodes import DetectionResult, RawDetection

        result = DetectionResult(
            frame_id=0,
            detections=[
                RawDetection(bbox=np.array([0, 0, 10, 10]), label="car", confidence=0.9),
                RawDetection(bbox=np.array([5, 5, 15, 15]), label="person", confidence=0.6),
            ],
        )

        assert result.num_detections == 2
        assert result.get_boxes().shape == (2, 4)
        np.testing.assert_allclose(result.get_scores(), [0.9, 0.6])

    def test_empty_detection_result(self):
        """Test accessors on an empty result."""
        from depth_fusion.pipelines.object_detection.nodes import DetectionResult

        result = DetectionResult(frame_id=0)

        assert result.num_detections == 0
        assert result.get_boxes().shape == (0, 4)
        assert result.get_scores().shape == (0,)


class TestParseDetections:
    """Tests for post-processing of Ultralytics outputs."""

    def test_threshold_and_allow_list(self):
        """Test that low scores and disallowed labels are dropped."""
        from depth_fusion.pipelines.object_detection.nodes import DetectionConfig, parse_detections

        boxes = FakeBoxes(
            xyxy=[[10, 10, 50, 50], [60, 60, 90, 90], [100, 100, 150, 150], [0, 0, 5, 5]],
            conf=[0.9, 0.4, 0.8, 0.95],
            cls=[2, 0, 7, 1],
        )
        output = [FakeResult(boxes, COCO_SUBSET)]

        detections = parse_detections(output, DetectionConfig())

        labels = [d.label for d in detections]
        assert labels == ["bicycle", "car"]
        assert detections[1].bbox.tolist() == [10.0, 10.0, 50.0, 50.0]

    def test_sorted_and_limited(self):
        """Test that only the top max_results detections survive, highest first."""
        from depth_fusion.pipelines.object_detection.nodes import DetectionConfig, parse_detections

        scores = [0.55, 0.95, 0.75, 0.65, 0.85]
        boxes = FakeBoxes(xyxy=[[0, 0, 10, 10]] * 5, conf=scores, cls=[0] * 5)

        detections = parse_detections([FakeResult(boxes, COCO_SUBSET)], DetectionConfig(max_results=3))

        assert [round(d.confidence, 2) for d in detections] == [0.95, 0.85, 0.75]

    def test_falls_back_to_coco_names(self):
        """Test label lookup when the output carries no names."""
        from depth_fusion.pipelines.object_detection.nodes import DetectionConfig, parse_detections

        boxes = FakeBoxes(xyxy=[[0, 0, 10, 10]], conf=[0.9], cls=[3])

        detections = parse_detections([FakeResult(boxes)], DetectionConfig())

        assert detections[0].label == "motorcycle"

    def test_empty_allow_list_keeps_everything(self):
        """Test that an empty allow-list disables label filtering."""
        from depth_fusion.pipelines.object_detection.nodes import DetectionConfig, parse_detections

        boxes = FakeBoxes(xyxy=[[0, 0, 10, 10]], conf=[0.9], cls=[7])

        detections = parse_detections([FakeResult(boxes, COCO_SUBSET)], DetectionConfig(allowed_labels=[]))

        assert detections[0].label == "truck"

    def test_no_boxes(self):
        """Test an output without boxes."""
        from depth_fusion.pipelines.object_detection.nodes import DetectionConfig, parse_detections

        boxes = FakeBoxes(xyxy=np.zeros((0, 4)).tolist(), conf=[], cls=[])

        assert parse_detections([FakeResult(boxes)], DetectionConfig()) == []


class TestUltralyticsObjectProvider:
    """Tests for the provider adapter."""

    def test_detect_resizes_to_native(self, sample_image):
        """Test that the model sees a native-size BGR image."""
        from depth_fusion.pipelines.object_detection.nodes import DetectionConfig, UltralyticsObjectProvider

        model = MagicMock()
        model.names = COCO_SUBSET
        model.predict.return_value = [
            FakeResult(FakeBoxes(xyxy=[[30, 30, 90, 90]], conf=[0.9], cls=[2]), COCO_SUBSET)
        ]

        provider = UltralyticsObjectProvider(model, DetectionConfig())
        detections = provider.detect(sample_image)

        native = model.predict.call_args[0][0]
        assert native.shape == (300, 300, 3)
        assert model.predict.call_args[1]["conf"] == 0.5
        assert len(detections) == 1
        assert detections[0].label == "car"

    def test_detect_does_not_mutate_input(self, sample_image):
        """Test that the input frame is left untouched."""
        from depth_fusion.pipelines.object_detection.nodes import UltralyticsObjectProvider

        model = MagicMock()
        model.predict.return_value = []
        original = sample_image.copy()

        UltralyticsObjectProvider(model).detect(sample_image)

        np.testing.assert_array_equal(sample_image, original)

    def test_detect_objects_node(self, sample_image):
        """Test the batch node produces one result per frame."""
        from depth_fusion.pipelines.object_detection.nodes import detect_objects

        model = MagicMock()
        model.predict.return_value = [
            FakeResult(FakeBoxes(xyxy=[[30, 30, 90, 90]], conf=[0.9], cls=[0]), COCO_SUBSET)
        ]

        results = detect_objects(model, [sample_image, sample_image], {})

        assert [r.frame_id for r in results] == [0, 1]
        assert all(r.num_detections == 1 for r in results)


class TestDetectorFactory:
    """Tests for DetectorFactory."""

    def test_unknown_model(self):
        """Test that unsupported models raise ValueError."""
        from depth_fusion.pipelines.object_detection.nodes import DetectionConfig, DetectorFactory

        with pytest.raises(ValueError, match="Unsupported detection model"):
            DetectorFactory.create(DetectionConfig(model="faster_rcnn"))

    def test_yolo_weights(self):
        """Test that YOLO weights are derived from model and variant."""
        from depth_fusion.pipelines.object_detection.nodes import DetectionConfig, DetectorFactory

        with patch("ultralytics.YOLO") as mock_yolo:
            DetectorFactory.create(DetectionConfig(model="yolov11", variant="s"))

        mock_yolo.assert_called_once_with("yolo11s.pt")

    def test_rt_detr_explicit_weights(self):
        """Test that explicit weights override the derived file name."""
        from depth_fusion.pipelines.object_detection.nodes import DetectionConfig, DetectorFactory

        with patch("ultralytics.RTDETR") as mock_rtdetr:
            DetectorFactory.create(DetectionConfig(model="rt_detr", weights="custom.pt"))

        mock_rtdetr.assert_called_once_with("custom.pt")
