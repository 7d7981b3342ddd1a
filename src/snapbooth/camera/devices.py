"""
Video Device Providers

Device capability layer for the camera session:
- enumerate video input devices (diagnostics only)
- request a stream matching StreamConstraints
- stop a stream's tracks

OpenCVDeviceProvider drives a real webcam through cv2.VideoCapture.
MockDeviceProvider generates synthetic frames for development and tests
and counts every open and track stop.
"""

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from enum import IntEnum
from pathlib import Path

import numpy as np

from snapbooth.errors import DeviceUnavailable, PlaybackError

logger = logging.getLogger(__name__)

# Conditional import for development without a webcam stack
try:
    import cv2

    CV2_AVAILABLE = True
except ImportError:
    CV2_AVAILABLE = False
    logger.warning("OpenCV not available - only the mock camera backend can be used")


class ReadyState(IntEnum):
    """Decode readiness of a live video source."""

    HAVE_NOTHING = 0
    HAVE_METADATA = 1
    HAVE_CURRENT_DATA = 2
    HAVE_FUTURE_DATA = 3
    HAVE_ENOUGH_DATA = 4


# Minimum state at which a frame can be reliably sampled
READINESS_THRESHOLD = ReadyState.HAVE_CURRENT_DATA

FALLBACK_RESOLUTION = (640, 480)


@dataclass(frozen=True)
class StreamConstraints:
    """Requested stream shape. Min/max bounds are hard, ideal is a hint."""

    min_width: int = 640
    min_height: int = 480
    ideal_width: int = 1280
    ideal_height: int = 960
    max_width: int = 1920
    max_height: int = 1440
    min_aspect: float = 0.75
    max_aspect: float = 1.333333
    facing_mode: str = "user"

    def accepts(self, width: int, height: int) -> bool:
        """Check whether a granted resolution satisfies the hard bounds."""
        if width <= 0 or height <= 0:
            return False
        if not (self.min_width <= width <= self.max_width):
            return False
        if not (self.min_height <= height <= self.max_height):
            return False
        # Small tolerance so 4:3 (1.3333...) passes the 1.333333 bound
        aspect = width / height
        return self.min_aspect - 1e-4 <= aspect <= self.max_aspect + 1e-4

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class DeviceInfo:
    """A video input device as reported by enumeration."""

    device_id: str
    label: str
    kind: str = "videoinput"


class MediaTrack:
    """A single video track. Stopping is idempotent and releases the device once."""

    def __init__(self, label: str, release=None):
        self.label = label
        self._release = release
        self._ended = False

    @property
    def ended(self) -> bool:
        return self._ended

    def stop(self) -> None:
        if self._ended:
            return
        self._ended = True
        if self._release:
            self._release(self)


class VideoStream:
    """
    Base class for an acquired video stream.

    Subclasses provide metadata, playback and frame sampling. Frames are
    returned as (H, W, 3) RGB uint8 arrays.
    """

    def __init__(self, tracks: list[MediaTrack]):
        self.tracks = tracks
        self.width = 0
        self.height = 0
        self.paused = True
        self._metadata_loaded = False

    @property
    def metadata_loaded(self) -> bool:
        return self._metadata_loaded

    @property
    def active(self) -> bool:
        """True while at least one track is live."""
        return any(not t.ended for t in self.tracks)

    @property
    def ready_state(self) -> ReadyState:
        raise NotImplementedError

    async def wait_for_metadata(self) -> None:
        raise NotImplementedError

    async def play(self) -> None:
        raise NotImplementedError

    def pause(self) -> None:
        self.paused = True

    async def read_frame(self) -> np.ndarray | None:
        raise NotImplementedError

    def stop(self) -> None:
        """Stop all tracks of this stream."""
        for track in self.tracks:
            track.stop()


class DeviceProvider:
    """Base class for device capability providers."""

    async def enumerate_devices(self) -> list[DeviceInfo]:
        raise NotImplementedError

    async def request_stream(self, constraints: StreamConstraints) -> VideoStream:
        raise NotImplementedError


# ==================== Mock (simulation) ====================


class MockVideoStream(VideoStream):
    """Synthetic stream for development/testing without hardware."""

    def __init__(
        self,
        tracks: list[MediaTrack],
        resolution: tuple[int, int] = (1280, 960),
        metadata_delay: float | None = 0.0,
        ready_delay: float = 0.0,
        fail_play: bool = False,
        color: tuple[int, int, int] | None = None,
    ):
        super().__init__(tracks)
        self._resolution = resolution
        self._metadata_delay = metadata_delay
        self._ready_delay = ready_delay
        self._fail_play = fail_play
        self._color = color
        self._metadata_time: float | None = None
        self._forced_state: ReadyState | None = None
        self.frames_read = 0

    @property
    def ready_state(self) -> ReadyState:
        if not self.active or not self._metadata_loaded:
            return ReadyState.HAVE_NOTHING
        if self._forced_state is not None:
            return self._forced_state
        if time.monotonic() - self._metadata_time >= self._ready_delay:
            return ReadyState.HAVE_ENOUGH_DATA
        return ReadyState.HAVE_METADATA

    def force_ready_state(self, state: ReadyState | None) -> None:
        """Pin the reported ready state (None restores normal behaviour)."""
        self._forced_state = state

    async def wait_for_metadata(self) -> None:
        if self._metadata_delay is None:
            # Metadata never arrives
            await asyncio.Event().wait()
        await asyncio.sleep(self._metadata_delay)
        self.width, self.height = self._resolution
        self._metadata_loaded = True
        self._metadata_time = time.monotonic()
        logger.info(f"[MOCK] Metadata loaded: {self.width}x{self.height}")

    async def play(self) -> None:
        if self._fail_play:
            raise PlaybackError("[MOCK] playback refused")
        self.paused = False

    async def read_frame(self) -> np.ndarray | None:
        if not self.active or not self._metadata_loaded:
            return None
        self.frames_read += 1
        h, w = self.height, self.width
        if self._color is not None:
            frame = np.empty((h, w, 3), dtype=np.uint8)
            frame[...] = self._color
            return frame
        # Moving gradient so consecutive frames differ
        ys, xs = np.indices((h, w))
        shift = self.frames_read * 8
        frame = np.stack(
            [(xs + shift) % 256, (ys + shift) % 256, np.full((h, w), 128)],
            axis=-1,
        )
        return frame.astype(np.uint8)


class MockDeviceProvider(DeviceProvider):
    """Mock provider that counts opens and track stops."""

    def __init__(
        self,
        resolution: tuple[int, int] = (1280, 960),
        available: bool = True,
        metadata_delay: float | None = 0.0,
        ready_delay: float = 0.0,
        fail_play: bool = False,
        color: tuple[int, int, int] | None = None,
    ):
        self.resolution = resolution
        self.available = available
        self.metadata_delay = metadata_delay
        self.ready_delay = ready_delay
        self.fail_play = fail_play
        self.color = color

        self.open_count = 0
        self.stop_count = 0
        self.streams: list[MockVideoStream] = []
        logger.info("[MOCK] Device provider initialized")

    @property
    def active_streams(self) -> list[MockVideoStream]:
        return [s for s in self.streams if s.active]

    async def enumerate_devices(self) -> list[DeviceInfo]:
        if not self.available:
            return []
        return [DeviceInfo(device_id="mock-0", label="Mock Camera")]

    def _on_track_stop(self, track: MediaTrack) -> None:
        self.stop_count += 1
        logger.info(f"[MOCK] Track stopped: {track.label}")

    async def request_stream(self, constraints: StreamConstraints) -> VideoStream:
        await asyncio.sleep(0)
        if not self.available:
            raise DeviceUnavailable("[MOCK] no camera available")
        if not constraints.accepts(*self.resolution):
            raise DeviceUnavailable(
                f"[MOCK] {self.resolution[0]}x{self.resolution[1]} does not satisfy constraints"
            )

        self.open_count += 1
        track = MediaTrack(f"mock-track-{self.open_count}", release=self._on_track_stop)
        stream = MockVideoStream(
            [track],
            resolution=self.resolution,
            metadata_delay=self.metadata_delay,
            ready_delay=self.ready_delay,
            fail_play=self.fail_play,
            color=self.color,
        )
        self.streams.append(stream)
        logger.info(f"[MOCK] Stream granted ({self.open_count} opened)")
        return stream


# ==================== OpenCV ====================


class OpenCVVideoStream(VideoStream):
    """
    Stream backed by cv2.VideoCapture.

    Every blocking device call (read, property probe, release) goes through
    a single-worker executor owned by the stream, so preview reads, capture
    grabs and the final release never overlap on the device.
    """

    def __init__(self, capture, device_index: int):
        self._capture = capture
        self.device_index = device_index
        self._device_executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix=f"camera-{device_index}"
        )
        track = MediaTrack(f"opencv-{device_index}", release=self._release)
        super().__init__([track])
        self._last_frame: np.ndarray | None = None
        self._last_read_ok = False

    def _release(self, track: MediaTrack) -> None:
        # Queued behind any read still in flight
        self._device_executor.submit(self._release_blocking)
        self._device_executor.shutdown(wait=False)

    def _release_blocking(self) -> None:
        try:
            self._capture.release()
            logger.info(f"Released camera device {self.device_index}")
        except Exception as e:
            logger.error(f"Error releasing camera device {self.device_index}: {e}")

    @property
    def ready_state(self) -> ReadyState:
        if not self.active or not self._metadata_loaded:
            return ReadyState.HAVE_NOTHING
        if self._last_read_ok:
            return ReadyState.HAVE_ENOUGH_DATA
        return ReadyState.HAVE_METADATA

    async def _run_on_device(self, func):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._device_executor, func)

    def _read_blocking(self) -> np.ndarray | None:
        ok, frame = self._capture.read()
        self._last_read_ok = bool(ok)
        if not ok or frame is None:
            return None
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

    def _probe_blocking(self) -> tuple[np.ndarray | None, int, int]:
        frame = self._read_blocking()
        if frame is not None:
            height, width = frame.shape[:2]
        else:
            width = int(self._capture.get(cv2.CAP_PROP_FRAME_WIDTH))
            height = int(self._capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
        return frame, width, height

    async def wait_for_metadata(self) -> None:
        if not self.active:
            raise PlaybackError("stream already stopped")
        frame, self.width, self.height = await self._run_on_device(self._probe_blocking)
        if frame is not None:
            self._last_frame = frame
        self._metadata_loaded = True
        logger.info(f"Camera metadata: {self.width}x{self.height}")

    async def play(self) -> None:
        if not self.active:
            raise PlaybackError("stream already stopped")
        self.paused = False

    async def read_frame(self) -> np.ndarray | None:
        if not self.active:
            return None
        if self.paused:
            return self._last_frame
        frame = await self._run_on_device(self._read_blocking)
        if frame is not None:
            self._last_frame = frame
        return frame


class OpenCVDeviceProvider(DeviceProvider):
    """Webcam provider using OpenCV."""

    def __init__(self, device_index: int = 0):
        if not CV2_AVAILABLE:
            raise RuntimeError("OpenCV not available")
        self.device_index = device_index

    async def enumerate_devices(self) -> list[DeviceInfo]:
        return [
            DeviceInfo(device_id=str(p), label=p.name)
            for p in sorted(Path("/dev").glob("video*"))
        ]

    def _open_blocking(self, constraints: StreamConstraints):
        capture = cv2.VideoCapture(self.device_index)
        if not capture.isOpened():
            capture.release()
            return None
        capture.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.ideal_width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.ideal_height)
        return capture

    async def request_stream(self, constraints: StreamConstraints) -> VideoStream:
        loop = asyncio.get_running_loop()
        capture = await loop.run_in_executor(None, self._open_blocking, constraints)
        if capture is None:
            raise DeviceUnavailable(f"could not open camera device {self.device_index}")

        width = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
        if not constraints.accepts(width, height):
            capture.release()
            raise DeviceUnavailable(
                f"camera {self.device_index} offers {width}x{height}, "
                f"outside requested constraints"
            )

        logger.info(f"Camera device {self.device_index} opened at {width}x{height}")
        return OpenCVVideoStream(capture, self.device_index)


def create_device_provider(backend: str = "opencv", device_index: int = 0) -> DeviceProvider:
    """Create a provider, falling back to simulation mode without OpenCV."""
    if backend == "opencv" and CV2_AVAILABLE:
        return OpenCVDeviceProvider(device_index=device_index)
    if backend == "opencv":
        logger.warning("OpenCV backend requested but unavailable - running in simulation mode")
    return MockDeviceProvider()
