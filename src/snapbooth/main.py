"""
SnapBooth Main Controller

Drives one guided booth session through its steps:
FRAMES -> CAMERA -> STRIP

Coordinates:
- Frame selection and custom frame persistence
- Camera session and filtered live preview
- Timed capture sequence
- Strip composition
- Download and upload of the finished strip
- REST API server
"""

import asyncio
import logging
import signal
import sys
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable

from snapbooth.camera.camera_session import CameraSession
from snapbooth.camera.preview import PreviewRenderer
from snapbooth.capture.sequencer import CaptureSequencer
from snapbooth.errors import (
    CaptureCancelled,
    CompositionFailed,
    NoFrameSelected,
    NotReady,
    SnapBoothError,
    StorageQuotaExceeded,
    UploadFailed,
)
from snapbooth.frames.frame import CustomFrame, FrameSelection
from snapbooth.imaging.compositor import PhotoStrip, StripCompositor
from snapbooth.imaging.filters import FilterKind
from snapbooth.storage.download import save_strip
from snapbooth.storage.frame_store import FrameStore
from snapbooth.storage.uploader import StripUploader, UploadStatus

logger = logging.getLogger(__name__)


class BoothStep(str, Enum):
    """Booth session steps."""

    FRAMES = "frames"  # Choosing a frame
    CAMERA = "camera"  # Live preview and capture
    STRIP = "strip"  # Finished strip, download/upload


class PhotoBoothController:
    """
    Main controller wiring the capture-and-compositing pipeline.

    Errors from user actions are recorded in last_error (with a retry
    flag) before they propagate, so a front end can offer a retry.
    """

    def __init__(
        self,
        camera: CameraSession,
        frame_store: FrameStore,
        sequencer: CaptureSequencer | None = None,
        compositor: StripCompositor | None = None,
        uploader: StripUploader | None = None,
        download_dir: str | Path = "runtime/downloads",
        default_filter: "FilterKind | str" = FilterKind.NONE,
    ):
        self.camera = camera
        self.frame_store = frame_store
        self.sequencer = sequencer or CaptureSequencer()
        self.compositor = compositor or StripCompositor()
        self.uploader = uploader
        self.download_dir = Path(download_dir)

        self._step = BoothStep.FRAMES
        self._setup_complete = False
        self._filter = FilterKind.parse(default_filter)
        self._strip: PhotoStrip | None = None
        self._last_error: SnapBoothError | None = None
        self._last_step_change = datetime.now()

        self.preview = PreviewRenderer(filter_kind=self._filter)
        self.preview.attach(camera)

        self._running = False
        self._background_tasks: list[asyncio.Task] = []
        self._on_step_change_callbacks: list[Callable[[BoothStep], None]] = []

        logger.info("PhotoBoothController initialized")

    # ==================== State ====================

    @property
    def step(self) -> BoothStep:
        return self._step

    @property
    def setup_complete(self) -> bool:
        return self._setup_complete

    @property
    def filter_kind(self) -> FilterKind:
        return self._filter

    @property
    def selection(self) -> FrameSelection | None:
        return self.frame_store.selection

    @property
    def strip(self) -> PhotoStrip | None:
        return self._strip

    @property
    def last_error(self) -> SnapBoothError | None:
        return self._last_error

    def _record_error(self, error: SnapBoothError) -> None:
        self._last_error = error
        logger.error(f"{type(error).__name__}: {error.message}")

    def clear_error(self) -> None:
        """Dismiss the current error notice."""
        self._last_error = None

    def _transition_to(self, step: BoothStep) -> None:
        if step is self._step:
            return
        old_step = self._step
        self._step = step
        self._last_step_change = datetime.now()
        logger.info(f"Step: {old_step.value} -> {step.value}")

        for callback in self._on_step_change_callbacks:
            try:
                callback(step)
            except Exception as e:
                logger.error(f"Step change callback error: {e}")

    def on_step_change(self, callback: Callable[[BoothStep], None]) -> None:
        """Register callback for step changes."""
        self._on_step_change_callbacks.append(callback)

    # ==================== Frames ====================

    def list_frames(self) -> list[FrameSelection]:
        """Templates followed by custom frames."""
        return [*self.frame_store.catalog.list(), *self.frame_store.custom_frames]

    def select_frame(self, ref: str | None) -> FrameSelection | None:
        """
        Select a frame by reference ('template:<id>' / 'custom:<id>').

        Raises:
            KeyError: Unknown frame
            StorageQuotaExceeded: Selection could not be saved
        """
        try:
            return self.frame_store.select(ref)
        except StorageQuotaExceeded as e:
            self._record_error(e)
            raise

    def add_custom_frame(self, data: bytes, name: str = "", kind: "str | None" = None) -> CustomFrame:
        """
        Store and select a custom frame.

        Raises:
            StorageQuotaExceeded: Frame dropped; the previous selection is kept
        """
        try:
            return self.frame_store.add(data, name=name, kind=kind, select=True)
        except StorageQuotaExceeded as e:
            self._record_error(e)
            raise

    def delete_custom_frame(self, frame_id: str) -> bool:
        return self.frame_store.delete(frame_id)

    def set_filter(self, kind: "FilterKind | str") -> FilterKind:
        """Set the filter for the preview and the next capture run."""
        self._filter = FilterKind.parse(kind)
        self.preview.filter_kind = self._filter
        logger.info(f"Filter set: {self._filter.value}")
        return self._filter

    async def complete_setup(self) -> bool:
        """
        Finish frame setup and move to the camera step.

        Returns:
            True if the camera opened

        Raises:
            NoFrameSelected: No frame is selected
        """
        if self.selection is None:
            error = NoFrameSelected("please select a frame first")
            self._record_error(error)
            raise error
        self._setup_complete = True
        logger.info(f"Setup complete with frame {self.frame_store.selected_ref}")
        return await self.switch_step(BoothStep.CAMERA)

    # ==================== Steps / camera ====================

    async def switch_step(self, step: "BoothStep | str") -> bool:
        """
        Move to another step.

        Leaving CAMERA cancels any capture run and releases the camera.
        Entering CAMERA (after setup) opens it.

        Returns:
            False if the camera failed to open on entering CAMERA

        Raises:
            NotReady: Step not reachable yet
        """
        step = BoothStep(step)
        if step is BoothStep.CAMERA and not self._setup_complete:
            raise NotReady("complete frame setup first")
        if step is BoothStep.STRIP and self._strip is None:
            raise NotReady("no strip has been created yet")

        if self._step is BoothStep.CAMERA and step is not BoothStep.CAMERA:
            self.sequencer.cancel()
            self.close_camera()

        self._transition_to(step)

        if step is BoothStep.CAMERA:
            return await self.open_camera()
        return True

    async def open_camera(self) -> bool:
        """
        Open (or reopen) the camera.

        A new camera session never continues a capture run started on the
        previous one, so any run in progress is cancelled first.

        Returns:
            True if the camera is active. Failures are kept in last_error.
        """
        if self.sequencer.cancel():
            logger.info("Capture run cancelled by camera reopen")
        try:
            await self.camera.open()
        except SnapBoothError as e:
            self._record_error(e)
            return False
        if not self.camera.is_active:
            # Closed while the device was still being acquired
            logger.info("Camera closed before it finished opening")
            return False
        self.camera.set_visible(True)
        self._last_error = None
        return True

    def close_camera(self) -> None:
        self.camera.set_visible(False)
        self.camera.close()
        self.preview.surface.clear()

    # ==================== Capture ====================

    async def take_photos(self) -> PhotoStrip:
        """
        Run the capture sequence and compose the strip.

        Composition failure returns to the camera step; success moves
        to the strip step.

        Raises:
            NotReady / NoFrameSelected / SourceNotReady: Capture failed
            CaptureCancelled: The run was cancelled
            CompositionFailed: The strip could not be composed
        """
        if self._step is not BoothStep.CAMERA:
            error = NotReady("the camera step is not active")
            self._record_error(error)
            raise error

        selection = self.selection
        try:
            images = await self.sequencer.run(self.camera, selection, self._filter)
        except CaptureCancelled:
            logger.info("Capture run cancelled")
            raise
        except SnapBoothError as e:
            self._record_error(e)
            raise

        try:
            strip = await self.compositor.compose(selection, list(images))
        except CompositionFailed as e:
            self._record_error(e)
            self._transition_to(BoothStep.CAMERA)
            raise

        self._strip = strip
        self._last_error = None
        if self.uploader:
            self.uploader.reset()
        await self.switch_step(BoothStep.STRIP)
        return strip

    def cancel_capture(self) -> bool:
        return self.sequencer.cancel()

    async def reset(self) -> bool:
        """Discard the strip and go back to the camera for a new session."""
        self.sequencer.reset()
        self._strip = None
        self._last_error = None
        if self.uploader:
            self.uploader.reset()
        logger.info("Session reset")
        if not self._setup_complete:
            self._transition_to(BoothStep.FRAMES)
            return True
        # Always start the new session on a fresh stream
        if self._step is BoothStep.CAMERA:
            self.close_camera()
        self._transition_to(BoothStep.CAMERA)
        return await self.open_camera()

    # ==================== Output ====================

    def download(self, directory: str | Path | None = None) -> Path:
        """
        Save the current strip as snaptogether-strip-<epoch ms>.jpg.

        Raises:
            NotReady: No strip yet
        """
        if self._strip is None:
            raise NotReady("no strip to download")
        return save_strip(self._strip, directory or self.download_dir)

    async def upload(self) -> UploadStatus:
        """
        Upload the current strip. Failure is reported through the
        returned status and last_error; the strip stays downloadable.

        Raises:
            NotReady: No strip yet, or uploads are not configured
        """
        if self._strip is None:
            raise NotReady("no strip to upload")
        if self.uploader is None:
            raise NotReady("uploads are not configured")

        if not await self.uploader.upload(self._strip):
            if self.uploader.status is UploadStatus.FAILURE:
                self._record_error(UploadFailed(self.uploader.last_error or "upload failed"))
        return self.uploader.status

    def get_status(self) -> dict:
        """Get full booth status."""
        selection = self.selection
        error = None
        if self._last_error is not None:
            error = {
                "type": type(self._last_error).__name__,
                "message": self._last_error.message,
                "retryable": self._last_error.retryable,
            }
        return {
            "step": self._step.value,
            "setup_complete": self._setup_complete,
            "last_step_change": self._last_step_change.isoformat(),
            "filter": self._filter.value,
            "selection": selection.to_dict(include_data=False)
            if isinstance(selection, CustomFrame)
            else (selection.to_dict() if selection else None),
            "strip": self._strip.to_dict() if self._strip else None,
            "last_error": error,
            "camera": self.camera.get_status(),
            "capture": self.sequencer.get_status(),
            "frames": self.frame_store.get_status(),
            "upload": self.uploader.get_status() if self.uploader else None,
        }

    # ==================== Application lifecycle ====================

    async def start(self) -> None:
        """Run the booth service until a shutdown signal arrives."""
        logger.info("=== Starting SnapBooth ===")
        from snapbooth.config import api_config

        self._setup_signal_handlers()
        self._running = True

        if api_config.enabled:
            from snapbooth.api.server import start_server

            task = asyncio.create_task(
                start_server(host=api_config.host, port=api_config.port, controller=self),
                name="api_server",
            )
            self._background_tasks.append(task)
            logger.info(f"API server task started on {api_config.host}:{api_config.port}")

        # A saved selection lets the booth go straight to the camera
        if self.selection is not None:
            self._setup_complete = True
            await self.switch_step(BoothStep.CAMERA)

        logger.info("=== SnapBooth Running ===")
        try:
            while self._running:
                await asyncio.sleep(1)
        except asyncio.CancelledError:
            logger.info("Main loop cancelled")

        await self._shutdown()

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""

        def signal_handler(signum, frame):
            logger.info(f"Signal {signum} received, initiating shutdown...")
            self._running = False

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    async def _shutdown(self) -> None:
        """Clean shutdown of all components."""
        logger.info("Initiating shutdown...")

        if self._background_tasks:
            for task in self._background_tasks:
                if not task.done():
                    task.cancel()
            try:
                await asyncio.wait_for(
                    asyncio.gather(*self._background_tasks, return_exceptions=True),
                    timeout=5.0,
                )
            except asyncio.TimeoutError:
                logger.warning("Background tasks did not cancel within 5s")
            self._background_tasks.clear()

        self.sequencer.cancel()
        self.camera.close()
        if self.uploader:
            self.uploader.shutdown()

        logger.info("Shutdown complete")


def create_controller_from_config() -> PhotoBoothController:
    """Build a controller with every component taken from config."""
    from snapbooth.camera.devices import create_device_provider
    from snapbooth.capture.sequencer import create_sequencer_from_config
    from snapbooth.config import camera_config, capture_config, download_config
    from snapbooth.imaging.compositor import get_strip_compositor
    from snapbooth.storage.frame_store import create_frame_store_from_config
    from snapbooth.storage.uploader import create_uploader_from_config

    provider = create_device_provider(camera_config.backend, camera_config.device_index)
    camera = CameraSession(
        provider,
        readiness_timeout=camera_config.readiness_timeout,
        preview_fps=camera_config.preview_fps,
    )
    return PhotoBoothController(
        camera=camera,
        frame_store=create_frame_store_from_config(),
        sequencer=create_sequencer_from_config(),
        compositor=get_strip_compositor(),
        uploader=create_uploader_from_config(),
        download_dir=download_config.output_dir,
        default_filter=capture_config.default_filter,
    )


# ==================== Entry Point ====================


async def app() -> None:
    """Main application entry point."""
    from snapbooth.config import ensure_runtime_dirs, setup_logging

    setup_logging()
    ensure_runtime_dirs()

    controller = create_controller_from_config()
    await controller.start()


def main() -> None:
    """CLI entry point."""
    print("=== SnapBooth ===")
    print("Four-shot photo strip booth")
    print()

    try:
        asyncio.run(app())
    except KeyboardInterrupt:
        print("\nShutdown requested by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
