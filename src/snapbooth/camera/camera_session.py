"""
Camera Session - Live Device Lifecycle

Owns a single video stream at a time:
Uninitialized -> Requesting -> Active | Error(message) -> Stopped

While Active, a preview pump samples the current frame at a bounded rate
(at most preview_fps per second) and pushes it to subscribers. Renderers
and filters are pure consumers of those pushes; the capture sequencer uses
wait_for_frame() as its "next render opportunity".
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, ClassVar

import numpy as np
from PIL import Image

from snapbooth.camera.devices import (
    FALLBACK_RESOLUTION,
    READINESS_THRESHOLD,
    DeviceProvider,
    ReadyState,
    StreamConstraints,
    VideoStream,
)
from snapbooth.errors import (
    DeviceUnavailable,
    PlaybackError,
    SnapBoothError,
    SourceNotReady,
    Timeout,
)
from snapbooth.imaging.filters import rgb_to_rgba

logger = logging.getLogger(__name__)

MAX_PREVIEW_FPS = 10.0


# ==================== Session status ====================


@dataclass(frozen=True)
class Uninitialized:
    name: ClassVar[str] = "uninitialized"


@dataclass(frozen=True)
class Requesting:
    name: ClassVar[str] = "requesting"


@dataclass(frozen=True)
class Active:
    name: ClassVar[str] = "active"


@dataclass(frozen=True)
class Error:
    message: str
    name: ClassVar[str] = "error"


@dataclass(frozen=True)
class Stopped:
    name: ClassVar[str] = "stopped"


CameraStatus = Uninitialized | Requesting | Active | Error | Stopped

FrameCallback = Callable[[np.ndarray, datetime], None]


class CameraSession:
    """
    Single-stream camera session with readiness detection and teardown.

    Acquiring a new stream always stops the previous stream's tracks first,
    so at most one device handle is live per session.
    """

    def __init__(
        self,
        provider: DeviceProvider,
        constraints: StreamConstraints | None = None,
        readiness_timeout: float = 5.0,
        preview_fps: float = MAX_PREVIEW_FPS,
        poll_interval: float = 0.02,
    ):
        """
        Initialize the camera session.

        Args:
            provider: Device capability provider
            constraints: Stream constraints (defaults to StreamConstraints())
            readiness_timeout: Seconds allowed for metadata and again for a
                decodable frame once metadata is available
            preview_fps: Preview push rate, capped at 10 per second
            poll_interval: Ready-state polling interval while opening
        """
        self.provider = provider
        self.constraints = constraints or StreamConstraints()
        self.readiness_timeout = readiness_timeout
        self.preview_fps = min(preview_fps, MAX_PREVIEW_FPS)
        self.poll_interval = poll_interval

        self._status: CameraStatus = Uninitialized()
        self._stream: VideoStream | None = None
        self._pump_task: asyncio.Task | None = None
        self._open_lock = asyncio.Lock()
        # Bumped by every open() and close(); an open that sees a newer
        # generation after an await has been superseded
        self._generation = 0
        self._visible = True

        self._latest_frame: np.ndarray | None = None
        self._frame_timestamp: datetime | None = None
        self._frame_count = 0
        self._frame_waiters: list[asyncio.Future] = []

        self._frame_callbacks: list[FrameCallback] = []
        self._status_callbacks: list[Callable[[CameraStatus], None]] = []

        logger.info(
            f"CameraSession initialized: provider={type(provider).__name__}, "
            f"timeout={readiness_timeout}s, preview_fps={self.preview_fps}"
        )

    # ==================== State ====================

    @property
    def status(self) -> CameraStatus:
        return self._status

    @property
    def stream(self) -> VideoStream | None:
        return self._stream

    @property
    def is_active(self) -> bool:
        return isinstance(self._status, Active)

    @property
    def ready_state(self) -> ReadyState:
        if self._stream is None:
            return ReadyState.HAVE_NOTHING
        return self._stream.ready_state

    @property
    def is_ready(self) -> bool:
        """Metadata loaded, decodable frame available and playback advancing."""
        stream = self._stream
        return (
            stream is not None
            and stream.active
            and stream.metadata_loaded
            and stream.ready_state >= READINESS_THRESHOLD
            and not stream.paused
        )

    @property
    def frame_count(self) -> int:
        return self._frame_count

    @property
    def visible(self) -> bool:
        return self._visible

    def _set_status(self, status: CameraStatus) -> None:
        if status == self._status:
            return
        old = self._status
        self._status = status
        logger.info(f"Camera status: {old.name} -> {status.name}")
        for callback in self._status_callbacks:
            try:
                callback(status)
            except Exception as e:
                logger.error(f"Status callback error: {e}")

    # ==================== Lifecycle ====================

    async def open(self, constraints: StreamConstraints | None = None) -> None:
        """
        Acquire a stream and wait until it is ready and playing.

        A close() issued while the open is still in progress supersedes it:
        whatever stream was acquired is stopped and the session stays Stopped.

        Raises:
            DeviceUnavailable: No device granted access
            Timeout: Metadata or a decodable frame did not arrive in time
            PlaybackError: Playback could not start
        """
        async with self._open_lock:
            # Never hold two device handles
            self._teardown()
            self._generation += 1
            generation = self._generation
            if constraints is not None:
                self.constraints = constraints

            self._set_status(Requesting())
            await self._log_devices()
            if self._superseded(generation):
                return

            stream: VideoStream | None = None
            try:
                try:
                    stream = await self.provider.request_stream(self.constraints)
                except SnapBoothError:
                    raise
                except Exception as e:
                    raise DeviceUnavailable(f"failed to access camera: {e}") from e
                if self._superseded(generation):
                    self._discard(stream)
                    return

                self._stream = stream
                await self._wait_until_ready(stream, generation)
                if self._superseded(generation):
                    self._discard(stream)
                    return

                try:
                    await stream.play()
                except SnapBoothError:
                    raise
                except Exception as e:
                    raise PlaybackError(f"failed to start video playback: {e}") from e
                if self._superseded(generation):
                    self._discard(stream)
                    return

            except SnapBoothError as e:
                if self._superseded(generation):
                    self._discard(stream)
                    return
                logger.error(f"Camera initialization error: {e.message}")
                self._teardown()
                self._set_status(Error(e.message))
                raise
            except asyncio.CancelledError:
                if self._superseded(generation):
                    self._discard(stream)
                    raise
                self._teardown()
                self._set_status(Stopped())
                raise

            self._set_status(Active())
            self._pump_task = asyncio.create_task(self._pump_loop(stream), name="preview_pump")
            logger.info(
                f"Camera initialization complete: {stream.width}x{stream.height}"
            )

    def _superseded(self, generation: int) -> bool:
        return generation != self._generation

    def _discard(self, stream: VideoStream | None) -> None:
        """Release a stream acquired by an open that was closed meanwhile."""
        if stream is not None:
            stream.stop()
            if self._stream is stream:
                self._stream = None
        logger.info("Camera open superseded by close, stream released")

    async def _log_devices(self) -> None:
        """Diagnostic device listing; failures are only logged."""
        try:
            devices = await self.provider.enumerate_devices()
            logger.info(
                f"Available video devices: {len(devices)} "
                + ", ".join(f"{d.label or 'Unnamed device'} ({d.device_id})" for d in devices)
            )
        except Exception as e:
            logger.warning(f"Error enumerating devices: {e}")

    async def _wait_until_ready(self, stream: VideoStream, generation: int) -> None:
        try:
            await asyncio.wait_for(stream.wait_for_metadata(), timeout=self.readiness_timeout)
        except asyncio.TimeoutError:
            raise Timeout("video metadata loading timeout") from None

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.readiness_timeout
        while stream.ready_state < READINESS_THRESHOLD:
            if self._superseded(generation):
                return
            if loop.time() >= deadline:
                raise Timeout(f"video not ready: ready_state={int(stream.ready_state)}")
            await asyncio.sleep(self.poll_interval)

    def close(self) -> None:
        """
        Stop all tracks and clear the handle. Safe to call repeatedly.

        Also supersedes an open() that is still waiting on the device.
        """
        self._generation += 1
        had_stream = self._stream is not None
        self._teardown()
        if had_stream or not isinstance(self._status, (Uninitialized, Stopped)):
            self._set_status(Stopped())

    def _teardown(self) -> None:
        if self._pump_task is not None:
            self._pump_task.cancel()
            self._pump_task = None

        if self._stream is not None:
            self._stream.stop()
            logger.info("Camera stream stopped")
            self._stream = None

        self._latest_frame = None
        self._fail_waiters(SourceNotReady("camera stream closed"))

    def set_visible(self, visible: bool) -> None:
        """Preview painting only happens while the session is visible."""
        self._visible = visible
        logger.debug(f"Camera preview visible={visible}")

    async def ensure_playing(self) -> None:
        """Resume playback if it was paused."""
        stream = self._stream
        if stream is None or not stream.active:
            raise SourceNotReady("no active camera stream")
        if stream.paused:
            try:
                await stream.play()
            except SnapBoothError:
                raise
            except Exception as e:
                raise PlaybackError(f"failed to resume playback: {e}") from e

    # ==================== Preview pump ====================

    async def _pump_loop(self, stream: VideoStream) -> None:
        """Push frames to subscribers at no more than preview_fps."""
        interval = 1.0 / self.preview_fps
        loop = asyncio.get_running_loop()
        logger.info(f"Preview pump started ({self.preview_fps} updates/s max)")

        while self._stream is stream and stream.active:
            started = loop.time()
            if self._visible and self.is_ready:
                try:
                    frame = await stream.read_frame()
                except Exception as e:
                    logger.error(f"Preview read error: {e}")
                    frame = None
                # The session may have closed while the read was suspended
                if frame is not None and self._stream is stream:
                    self._publish(frame)
            elapsed = loop.time() - started
            await asyncio.sleep(max(0.0, interval - elapsed))

        logger.info("Preview pump stopped")

    def _publish(self, frame: np.ndarray) -> None:
        timestamp = datetime.now()
        self._latest_frame = frame
        self._frame_timestamp = timestamp
        self._frame_count += 1

        for callback in self._frame_callbacks:
            try:
                callback(frame, timestamp)
            except Exception as e:
                logger.error(f"Frame callback error: {e}")

        waiters, self._frame_waiters = self._frame_waiters, []
        for fut in waiters:
            if not fut.done():
                fut.set_result(frame)

    def _fail_waiters(self, exc: Exception) -> None:
        waiters, self._frame_waiters = self._frame_waiters, []
        for fut in waiters:
            if not fut.done():
                fut.set_exception(exc)

    async def wait_for_frame(self, timeout: float | None = None) -> np.ndarray:
        """
        Suspend until the next frame is pushed.

        Raises:
            SourceNotReady: Session closed or no frame within timeout
        """
        if self._stream is None:
            raise SourceNotReady("no active camera stream")
        fut = asyncio.get_running_loop().create_future()
        self._frame_waiters.append(fut)
        try:
            return await asyncio.wait_for(fut, timeout=timeout)
        except asyncio.TimeoutError:
            raise SourceNotReady(f"no frame rendered within {timeout}s") from None
        finally:
            if fut in self._frame_waiters:
                self._frame_waiters.remove(fut)

    # ==================== Capture ====================

    async def grab_frame(self) -> np.ndarray:
        """
        Sample the current video frame as RGBA at the native resolution.

        Falls back to 640x480 when the source reports no dimensions.

        Raises:
            SourceNotReady: Below the decodable threshold or no frame available
        """
        stream = self._stream
        if stream is None or not stream.active:
            raise SourceNotReady("no active camera stream")
        if stream.ready_state < READINESS_THRESHOLD:
            raise SourceNotReady(
                f"video not ready for capture (ready_state={int(stream.ready_state)})"
            )

        frame = await stream.read_frame()
        if frame is None:
            raise SourceNotReady("video source returned no frame")

        width = stream.width or FALLBACK_RESOLUTION[0]
        height = stream.height or FALLBACK_RESOLUTION[1]
        if frame.shape[1] != width or frame.shape[0] != height:
            frame = np.asarray(Image.fromarray(frame).resize((width, height)))

        return rgb_to_rgba(frame)

    # ==================== Subscriptions / status ====================

    def on_frame(self, callback: FrameCallback) -> None:
        """Register callback for pushed preview frames."""
        self._frame_callbacks.append(callback)
        logger.debug(f"Frame callback registered, total: {len(self._frame_callbacks)}")

    def remove_frame_callback(self, callback: FrameCallback) -> None:
        if callback in self._frame_callbacks:
            self._frame_callbacks.remove(callback)

    def on_status_change(self, callback: Callable[[CameraStatus], None]) -> None:
        """Register callback for status transitions."""
        self._status_callbacks.append(callback)

    def get_status(self) -> dict:
        """Get camera session status."""
        stream = self._stream
        status = {
            "status": self._status.name,
            "ready": self.is_ready,
            "ready_state": int(self.ready_state),
            "visible": self._visible,
            "frame_count": self._frame_count,
            "preview_fps": self.preview_fps,
            "constraints": self.constraints.to_dict(),
            "resolution": (stream.width, stream.height) if stream else None,
            "paused": stream.paused if stream else None,
        }
        if isinstance(self._status, Error):
            status["error"] = self._status.message
        return status

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.close()
