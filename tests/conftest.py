"""Pytest configuration and fixtures for depth fusion tests."""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))


@pytest.fixture
def sample_image():
    """Create a sample 640x480 RGB frame for testing."""
    return np.random.randint(0, 255, (480, 640, 3), dtype=np.uint8)


@pytest.fixture
def gradient_values():
    """256x256 depth grid increasing left to right from 10 to 200."""
    row = np.linspace(10.0, 200.0, 256, dtype=np.float32)
    return np.tile(row, (256, 1))


@pytest.fixture
def gradient_surface(gradient_values):
    """Depth surface built from the gradient grid."""
    from depth_fusion.pipelines.depth_estimation.nodes import DepthSurface

    return DepthSurface(values=gradient_values)


@pytest.fixture
def flat_surface():
    """Depth surface with no variation."""
    from depth_fusion.pipelines.depth_estimation.nodes import DepthSurface

    return DepthSurface(values=np.full((256, 256), 42.0, dtype=np.float32))


@pytest.fixture
def raw_detection():
    """A car detection in 300x300 detector-native coordinates."""
    from depth_fusion.pipelines.object_detection.nodes import RawDetection

    return RawDetection(bbox=(30.0, 30.0, 90.0, 90.0), label="car", confidence=0.9)


@pytest.fixture
def sample_detections():
    """Several raw detections in detector-native coordinates."""
    from depth_fusion.pipelines.object_detection.nodes import RawDetection

    return [
        RawDetection(bbox=(30.0, 30.0, 90.0, 90.0), label="car", confidence=0.9),
        RawDetection(bbox=(150.0, 100.0, 200.0, 280.0), label="person", confidence=0.8),
        RawDetection(bbox=(250.0, 200.0, 300.0, 300.0), label="bicycle", confidence=0.6),
    ]
