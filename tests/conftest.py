"""
Pytest configuration and shared fixtures for SnapBooth tests.
"""

import sys
from datetime import datetime
from io import BytesIO
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from snapbooth.camera.camera_session import CameraSession
from snapbooth.camera.devices import MockDeviceProvider
from snapbooth.capture.sequencer import CaptureSequencer
from snapbooth.frames.catalog import get_frame_catalog
from snapbooth.imaging.compositor import StripCompositor
from snapbooth.storage.frame_store import FrameStore

FIXED_NOW = datetime(2026, 1, 24, 14, 30, 22)


@pytest.fixture
def mock_provider():
    """Mock camera at 640x480 (smallest allowed resolution)."""
    return MockDeviceProvider(resolution=(640, 480))


@pytest.fixture
def camera_session(mock_provider):
    """Camera session with short timeouts."""
    return CameraSession(mock_provider, readiness_timeout=0.5, preview_fps=10, poll_interval=0.005)


@pytest.fixture
def fast_sequencer():
    """Sequencer with millisecond timing."""
    return CaptureSequencer(
        shots=4,
        countdown_seconds=2,
        tick_interval=0.01,
        settle_delay=0.01,
        frame_wait_timeout=1.0,
    )


@pytest.fixture
def compositor():
    """Compositor with a fixed clock."""
    return StripCompositor(clock=lambda: FIXED_NOW)


@pytest.fixture
def template_frame():
    """The 'classic' template frame."""
    return get_frame_catalog().get("classic")


@pytest.fixture
def sample_rgba():
    """A random 48x64 RGBA buffer."""
    rng = np.random.default_rng(42)
    return rng.integers(0, 256, (48, 64, 4), dtype=np.uint8)


@pytest.fixture
def photo_images():
    """Four solid-colour 640x480 RGBA photos."""
    colors = [(255, 0, 0), (0, 255, 0), (0, 0, 255), (255, 255, 0)]
    images = []
    for r, g, b in colors:
        img = np.empty((480, 640, 4), dtype=np.uint8)
        img[...] = (r, g, b, 255)
        images.append(img)
    return images


def _png_bytes(size: tuple[int, int], color) -> bytes:
    buf = BytesIO()
    Image.new("RGBA", size, color).save(buf, "PNG")
    return buf.getvalue()


@pytest.fixture
def white_png_frame():
    """A plain white bitmap frame (same aspect as the strip)."""
    return _png_bytes((300, 900), (255, 255, 255, 255))


@pytest.fixture
def png_bytes_factory():
    """Build PNG bytes of a given size and colour."""
    return _png_bytes


@pytest.fixture
def frame_store(tmp_path):
    """Frame store in a temp directory."""
    return FrameStore(tmp_path / "frames.json")
