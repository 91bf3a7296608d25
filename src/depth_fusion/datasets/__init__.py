"""Custom Kedro Datasets for the depth fusion project.

This module provides:
- VideoDataSet: recorded drive footage loaded as a list of frames
- VideoWriterDataSet: annotated frames encoded back to a video file
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import cv2
import numpy as np
from kedro.io import AbstractDataset
from kedro.io.core import get_filepath_str

logger = logging.getLogger(__name__)


class VideoDataSet(AbstractDataset[List[np.ndarray], List[np.ndarray]]):
    """Loads a video file as a list of frames for batch fusion.

    Example catalog.yml entry:
        raw_frames:
            type: depth_fusion.datasets.VideoDataSet
            filepath: data/01_raw/drive.mp4
            load_args:
                target_fps: 10
                max_frames: 300
                rgb: true
    """

    def __init__(
        self,
        filepath: str,
        load_args: Optional[Dict[str, Any]] = None,
        save_args: Optional[Dict[str, Any]] = None,
        credentials: Optional[Dict[str, Any]] = None,
        fs_args: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        """Create a reader for a recorded drive.

        ``load_args`` understands:
        - target_fps: Keep roughly this many frames per second
        - max_frames: Maximum number of frames to load
        - start_frame: Frame index to start from
        - rotate: Clockwise rotation in degrees (0, 90, 180, 270)
        - rgb: Convert frames from OpenCV's BGR to RGB (default: True)

        ``save_args``, ``credentials`` and ``fs_args`` are accepted for catalog
        compatibility and ignored.
        """
        self._filepath = Path(filepath)
        self._load_args = load_args or {}
        self._save_args = save_args or {}
        self._metadata = metadata or {}

    def _load(self) -> List[np.ndarray]:
        from depth_fusion.streaming.source import ROTATIONS

        filepath = get_filepath_str(self._filepath, "file")

        cap = cv2.VideoCapture(filepath)
        if not cap.isOpened():
            raise FileNotFoundError(f"Cannot open video file: {filepath}")

        total_frames = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))
        video_fps = cap.get(cv2.CAP_PROP_FPS) or 30.0

        logger.info(f"Loading video: {filepath} ({total_frames} frames, {video_fps:.1f} FPS)")

        target_fps = self._load_args.get("target_fps", video_fps)
        max_frames = self._load_args.get("max_frames") or total_frames
        start_frame = self._load_args.get("start_frame", 0)
        rgb = self._load_args.get("rgb", True)
        rotate = self._load_args.get("rotate", 0)
        if rotate not in ROTATIONS:
            raise ValueError(f"rotate must be one of {sorted(ROTATIONS)}, got {rotate}")

        frame_skip = max(1, int(video_fps / target_fps)) if target_fps < video_fps else 1

        if start_frame > 0:
            cap.set(cv2.CAP_PROP_POS_FRAMES, start_frame)

        frames = []
        read_count = 0
        try:
            while len(frames) < max_frames:
                ok, frame = cap.read()
                if not ok:
                    break
                read_count += 1
                if (read_count - 1) % frame_skip:
                    continue

                if rgb:
                    frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
                if ROTATIONS[rotate] is not None:
                    frame = cv2.rotate(frame, ROTATIONS[rotate])

                frames.append(frame)
        finally:
            cap.release()

        logger.info(f"Kept {len(frames)} of {read_count} frames read")
        return frames

    def _save(self, data: List[np.ndarray]) -> None:
        raise NotImplementedError("VideoDataSet is read-only; write annotated output with VideoWriterDataSet")

    def _describe(self) -> Dict[str, Any]:
        return {
            "filepath": str(self._filepath),
            "load_args": self._load_args,
        }

    def _exists(self) -> bool:
        return self._filepath.exists()


class VideoWriterDataSet(AbstractDataset[None, List[np.ndarray]]):
    """Writes annotated BGR frames to a video file.

    Example catalog.yml entry:
        annotated_frames:
            type: depth_fusion.datasets.VideoWriterDataSet
            filepath: data/08_reporting/annotated_drive.mp4
            save_args:
                fps: 10
                codec: mp4v
    """

    def __init__(
        self,
        filepath: str,
        load_args: Optional[Dict[str, Any]] = None,
        save_args: Optional[Dict[str, Any]] = None,
        credentials: Optional[Dict[str, Any]] = None,
        fs_args: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        """``save_args`` takes ``fps`` (default 30) and a FourCC ``codec`` (default mp4v)."""
        self._filepath = Path(filepath)
        self._load_args = load_args or {}
        self._save_args = save_args or {}
        self._metadata = metadata or {}

    def _load(self) -> None:
        raise NotImplementedError("VideoWriterDataSet is write-only; read footage with VideoDataSet")

    def _save(self, data: List[np.ndarray]) -> None:
        """Encode frames (H, W, 3) in BGR order."""
        if not data:
            logger.warning("No annotated frames to write")
            return

        filepath = get_filepath_str(self._filepath, "file")
        Path(filepath).parent.mkdir(parents=True, exist_ok=True)

        fps = self._save_args.get("fps", 30)
        codec = self._save_args.get("codec", "mp4v")
        height, width = data[0].shape[:2]

        writer = cv2.VideoWriter(filepath, cv2.VideoWriter_fourcc(*codec), fps, (width, height))
        if not writer.isOpened():
            raise RuntimeError(f"Cannot open video writer: {filepath}")

        try:
            for frame in data:
                if frame.shape[:2] != (height, width):
                    frame = cv2.resize(frame, (width, height))
                writer.write(frame)
        finally:
            writer.release()

        logger.info(f"Wrote {len(data)} annotated frames to {filepath}")

    def _describe(self) -> Dict[str, Any]:
        return {
            "filepath": str(self._filepath),
            "save_args": self._save_args,
        }

    def _exists(self) -> bool:
        return self._filepath.exists()


__all__ = [
    "VideoDataSet",
    "VideoWriterDataSet",
]
