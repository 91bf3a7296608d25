"""Unit tests for custom Kedro datasets."""

from unittest.mock import MagicMock, patch

import cv2
import numpy as np
import pytest


def _mock_capture(frames, fps=30.0):
    cap = MagicMock()
    cap.isOpened.return_value = True
    cap.read.side_effect = [(True, f) for f in frames] + [(False, None)]
    cap.get.side_effect = lambda prop: {
        cv2.CAP_PROP_FRAME_COUNT: len(frames),
        cv2.CAP_PROP_FPS: fps,
    }.get(prop, 0)
    return cap


class TestVideoDataSet:
    """Tests for VideoDataSet."""

    def test_describe(self):
        """Test dataset description."""
        from depth_fusion.datasets import VideoDataSet

        dataset = VideoDataSet(filepath="drive.mp4", load_args={"target_fps": 10})

        desc = dataset._describe()
        assert desc["filepath"] == "drive.mp4"
        assert desc["load_args"]["target_fps"] == 10

    def test_exists_false(self):
        """Test exists returns False for non-existent file."""
        from depth_fusion.datasets import VideoDataSet

        assert not VideoDataSet(filepath="/nonexistent/video.mp4")._exists()

    def test_save_not_implemented(self):
        """Test that save raises NotImplementedError."""
        from depth_fusion.datasets import VideoDataSet

        with pytest.raises(NotImplementedError):
            VideoDataSet(filepath="drive.mp4")._save([np.zeros((10, 10, 3))])

    def test_load_converts_to_rgb(self, tmp_path):
        """Test that frames are returned in RGB order by default."""
        from depth_fusion.datasets import VideoDataSet

        bgr = np.zeros((4, 6, 3), dtype=np.uint8)
        bgr[..., 0] = 200
        cap = _mock_capture([bgr.copy() for _ in range(3)])

        with patch("depth_fusion.datasets.cv2.VideoCapture", return_value=cap):
            frames = VideoDataSet(filepath=str(tmp_path / "drive.mp4"))._load()

        assert len(frames) == 3
        assert frames[0][0, 0].tolist() == [0, 0, 200]
        cap.release.assert_called_once()

    def test_load_keeps_bgr(self, tmp_path):
        """Test that rgb=False leaves OpenCV channel order alone."""
        from depth_fusion.datasets import VideoDataSet

        bgr = np.zeros((4, 6, 3), dtype=np.uint8)
        bgr[..., 0] = 200
        cap = _mock_capture([bgr.copy()])

        with patch("depth_fusion.datasets.cv2.VideoCapture", return_value=cap):
            frames = VideoDataSet(filepath=str(tmp_path / "drive.mp4"), load_args={"rgb": False})._load()

        assert frames[0][0, 0].tolist() == [200, 0, 0]

    def test_load_target_fps_and_max_frames(self, tmp_path):
        """Test frame skipping and the frame limit."""
        from depth_fusion.datasets import VideoDataSet

        frames_in = [np.full((4, 6, 3), i, dtype=np.uint8) for i in range(12)]
        cap = _mock_capture(frames_in, fps=30.0)

        with patch("depth_fusion.datasets.cv2.VideoCapture", return_value=cap):
            frames = VideoDataSet(
                filepath=str(tmp_path / "drive.mp4"),
                load_args={"target_fps": 10, "max_frames": 3},
            )._load()

        assert [int(f[0, 0, 0]) for f in frames] == [0, 3, 6]

    def test_load_rotation(self, tmp_path):
        """Test that rotate swaps frame dimensions."""
        from depth_fusion.datasets import VideoDataSet

        cap = _mock_capture([np.zeros((4, 6, 3), dtype=np.uint8)])

        with patch("depth_fusion.datasets.cv2.VideoCapture", return_value=cap):
            frames = VideoDataSet(filepath=str(tmp_path / "drive.mp4"), load_args={"rotate": 270})._load()

        assert frames[0].shape == (6, 4, 3)

    def test_load_missing_file(self, tmp_path):
        """Test that an unreadable file raises FileNotFoundError."""
        from depth_fusion.datasets import VideoDataSet

        with pytest.raises(FileNotFoundError):
            VideoDataSet(filepath=str(tmp_path / "missing.mp4"))._load()


class TestVideoWriterDataSet:
    """Tests for VideoWriterDataSet."""

    def test_load_not_implemented(self):
        """Test that load raises NotImplementedError."""
        from depth_fusion.datasets import VideoWriterDataSet

        with pytest.raises(NotImplementedError):
            VideoWriterDataSet(filepath="out.mp4")._load()

    def test_save_empty(self, tmp_path):
        """Test that saving no frames writes nothing."""
        from depth_fusion.datasets import VideoWriterDataSet

        dataset = VideoWriterDataSet(filepath=str(tmp_path / "out.mp4"))
        dataset._save([])

        assert not dataset._exists()

    def test_save_writes_every_frame(self, tmp_path):
        """Test that every frame is handed to the writer at the first frame's size."""
        from depth_fusion.datasets import VideoWriterDataSet

        writer = MagicMock()
        writer.isOpened.return_value = True
        frames = [np.zeros((48, 64, 3), dtype=np.uint8), np.zeros((24, 32, 3), dtype=np.uint8)]

        with patch("depth_fusion.datasets.cv2.VideoWriter", return_value=writer) as mock_writer:
            VideoWriterDataSet(
                filepath=str(tmp_path / "reporting" / "out.mp4"),
                save_args={"fps": 10},
            )._save(frames)

        assert mock_writer.call_args[0][2] == 10
        assert mock_writer.call_args[0][3] == (64, 48)
        assert writer.write.call_count == 2
        assert writer.write.call_args[0][0].shape == (48, 64, 3)
        writer.release.assert_called_once()
        assert (tmp_path / "reporting").is_dir()

    def test_describe(self):
        """Test dataset description."""
        from depth_fusion.datasets import VideoWriterDataSet

        desc = VideoWriterDataSet(filepath="out.mp4", save_args={"codec": "mp4v"})._describe()

        assert desc["save_args"]["codec"] == "mp4v"
