"""Unit tests for visualization utilities."""

import numpy as np
import pytest


@pytest.fixture
def canvas():
    return np.zeros((480, 640, 3), dtype=np.uint8)


class TestFormatCaption:
    """Tests for caption formatting."""

    def test_caption(self):
        """Test label and depth caption."""
        from depth_fusion.utils.visualization import format_caption

        assert format_caption("car", 7.416) == "car (7.42 m)"

    def test_caption_zero(self):
        """Test a zero depth caption."""
        from depth_fusion.utils.visualization import format_caption

        assert format_caption("person", 0.0) == "person (0.00 m)"


class TestMirrorBox:
    """Tests for horizontal mirroring."""

    def test_mirror(self):
        """Test flipping a box within the view width."""
        from depth_fusion.utils.visualization import mirror_box

        assert mirror_box((34, 33, 124, 100), 640) == (516, 33, 606, 100)

    def test_mirror_twice_is_identity(self):
        """Test that mirroring is its own inverse."""
        from depth_fusion.utils.visualization import mirror_box

        box = (10, 20, 200, 300)

        assert mirror_box(mirror_box(box, 640), 640) == box


class TestDrawAnnotatedDetections:
    """Tests for drawing annotated detections."""

    def test_draws_box_in_class_color(self, canvas):
        """Test that the box edge uses the label's color."""
        from depth_fusion.pipelines.frame_fusion.nodes import AnnotatedDetection
        from depth_fusion.utils.visualization import CLASS_COLORS, draw_annotated_detections

        det = AnnotatedDetection(bbox=(100, 100, 200, 200), label="car", confidence=0.9, depth=5.0)
        result = draw_annotated_detections(canvas, [det])

        assert tuple(result[150, 100]) == CLASS_COLORS["car"]
        assert result is canvas

    def test_accepts_dicts(self, canvas):
        """Test drawing from serialized detections."""
        from depth_fusion.utils.visualization import CLASS_COLORS, draw_annotated_detections

        draw_annotated_detections(
            canvas, [{"bbox": [100, 100, 200, 200], "label": "person", "depth": 2.0}]
        )

        assert tuple(canvas[150, 200]) == CLASS_COLORS["person"]

    def test_unknown_label_default_color(self, canvas):
        """Test that unknown labels use the default color."""
        from depth_fusion.utils.visualization import DEFAULT_COLOR, draw_annotated_detections

        draw_annotated_detections(canvas, [{"bbox": [100, 100, 200, 200], "label": "truck", "depth": 1.0}])

        assert tuple(canvas[150, 100]) == DEFAULT_COLOR

    def test_mirror(self, canvas):
        """Test that mirrored boxes are drawn on the opposite side."""
        from depth_fusion.utils.visualization import draw_annotated_detections

        draw_annotated_detections(
            canvas, [{"bbox": [10, 100, 60, 200], "label": "bicycle", "depth": 3.0}], mirror=True
        )

        assert canvas[150, 580:631].any()
        assert not canvas[150, 0:70].any()

    def test_no_detections(self, canvas):
        """Test that an empty set leaves the image unchanged."""
        from depth_fusion.utils.visualization import draw_annotated_detections

        result = draw_annotated_detections(canvas, ())

        assert not result.any()
