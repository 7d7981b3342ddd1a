"""
Capture Sequencer

Runs the timed four-shot sequence against an open CameraSession:

    Idle -> (per shot: CountingDown(n..1) -> Capturing(i) -> settle) -> Completed | Failed

No settle after the last shot. Any failure discards every image taken so far;
the next run starts from Idle with an empty list.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, ClassVar

import numpy as np

from snapbooth.camera.devices import READINESS_THRESHOLD
from snapbooth.errors import (
    CaptureCancelled,
    NoFrameSelected,
    NotReady,
    SnapBoothError,
    SourceNotReady,
)
from snapbooth.imaging.filters import FilterKind, apply_filter

logger = logging.getLogger(__name__)


# ==================== Sequence state ====================


@dataclass(frozen=True)
class Idle:
    name: ClassVar[str] = "idle"


@dataclass(frozen=True)
class CountingDown:
    shot: int
    seconds_remaining: int
    name: ClassVar[str] = "counting_down"


@dataclass(frozen=True)
class Capturing:
    shot: int
    name: ClassVar[str] = "capturing"


@dataclass(frozen=True)
class Completed:
    name: ClassVar[str] = "completed"


@dataclass(frozen=True)
class Failed:
    reason: str
    name: ClassVar[str] = "failed"


SequenceState = Idle | CountingDown | Capturing | Completed | Failed


class CaptureSequencer:
    """Timed multi-shot capture with cancellation and failure cleanup."""

    def __init__(
        self,
        shots: int = 4,
        countdown_seconds: int = 3,
        tick_interval: float = 1.0,
        settle_delay: float = 0.25,
        frame_wait_timeout: float | None = 2.0,
    ):
        """
        Initialize the sequencer.

        Args:
            shots: Photos per run
            countdown_seconds: Countdown ticks before each shot
            tick_interval: Seconds per tick
            settle_delay: Pause between shots
            frame_wait_timeout: Max wait for the next preview frame per shot
        """
        self.shots = shots
        self.countdown_seconds = countdown_seconds
        self.tick_interval = tick_interval
        self.settle_delay = settle_delay
        self.frame_wait_timeout = frame_wait_timeout

        self._state: SequenceState = Idle()
        self._images: list[np.ndarray] = []
        self._task: asyncio.Task | None = None
        self._cancel_requested = False

        self._tick_callbacks: list[Callable[[int, int], None]] = []
        self._capture_callbacks: list[Callable[[int, np.ndarray], None]] = []
        self._state_callbacks: list[Callable[[SequenceState], None]] = []

        logger.info(
            f"CaptureSequencer initialized: {shots} shots, "
            f"{countdown_seconds}x{tick_interval}s countdown, settle={settle_delay}s"
        )

    @property
    def state(self) -> SequenceState:
        return self._state

    @property
    def images(self) -> tuple[np.ndarray, ...]:
        return tuple(self._images)

    @property
    def is_running(self) -> bool:
        return self._task is not None

    def _set_state(self, state: SequenceState) -> None:
        if state == self._state:
            return
        self._state = state
        logger.debug(f"Capture state: {state}")
        for callback in self._state_callbacks:
            try:
                callback(state)
            except Exception as e:
                logger.error(f"State callback error: {e}")

    def _check_preconditions(self, camera, selection) -> None:
        if self._task is not None:
            raise NotReady("a capture run is already in progress")
        if not camera.is_active or not camera.is_ready:
            raise NotReady("camera not ready")
        if selection is None:
            raise NoFrameSelected("please select a frame first")

    async def run(self, camera, selection, filter_kind: "FilterKind | str" = FilterKind.NONE) -> tuple[np.ndarray, ...]:
        """
        Take a full sequence of photos.

        Args:
            camera: Active CameraSession
            selection: Current frame selection (must not be None)
            filter_kind: Filter applied to each captured frame

        Returns:
            Immutable tuple of the filtered RGBA images in capture order

        Raises:
            NotReady: Camera not ready or a run already in progress
            NoFrameSelected: No frame selected
            SourceNotReady: Video source dropped below the threshold mid-run
            CaptureCancelled: cancel() was called during the run
        """
        self._check_preconditions(camera, selection)
        filter_kind = FilterKind.parse(filter_kind)

        self._images = []
        self._cancel_requested = False
        self._set_state(Idle())
        logger.info(f"Starting capture sequence: filter={filter_kind.value}, frame={selection.ref}")

        self._task = asyncio.create_task(self._run_shots(camera, filter_kind), name="capture_sequence")
        try:
            images = await self._task
        except asyncio.CancelledError:
            if self._cancel_requested:
                # cancel() already discarded the photos
                raise CaptureCancelled("capture cancelled") from None
            self._abort("cancelled")
            raise
        except SnapBoothError as e:
            self._abort(e.message)
            raise
        except Exception as e:
            self._abort(str(e))
            raise
        finally:
            self._task = None

        self._set_state(Completed())
        logger.info(f"Capture sequence completed: {len(images)} photos")
        return images

    async def _run_shots(self, camera, filter_kind: FilterKind) -> tuple[np.ndarray, ...]:
        for shot in range(self.shots):
            for remaining in range(self.countdown_seconds, 0, -1):
                self._set_state(CountingDown(shot, remaining))
                self._notify_tick(shot, remaining)
                await asyncio.sleep(self.tick_interval)

            self._set_state(Capturing(shot))
            await camera.ensure_playing()
            # Next render opportunity
            await camera.wait_for_frame(timeout=self.frame_wait_timeout)

            if camera.ready_state < READINESS_THRESHOLD:
                raise SourceNotReady(f"video not ready for photo {shot + 1}")

            frame = await camera.grab_frame()
            image = apply_filter(frame, filter_kind)
            self._images.append(image)
            logger.info(f"Photo {shot + 1}/{self.shots} captured")
            self._notify_capture(shot, image)

            if shot < self.shots - 1:
                await asyncio.sleep(self.settle_delay)

        return tuple(self._images)

    def _abort(self, reason: str) -> None:
        discarded = len(self._images)
        self._images = []
        self._set_state(Failed(reason))
        logger.warning(f"Capture sequence failed ({reason}), discarded {discarded} photos")

    def cancel(self) -> bool:
        """
        Abort the current run. No partial strip is produced.

        Returns:
            True if a run was cancelled
        """
        if self._task is None:
            return False
        self._cancel_requested = True
        self._task.cancel()
        self._abort("cancelled")
        return True

    def reset(self) -> None:
        """Return to Idle with no images. Cancels a run in progress."""
        self.cancel()
        self._images = []
        self._set_state(Idle())

    # ==================== Callbacks ====================

    def on_tick(self, callback: Callable[[int, int], None]) -> None:
        """Register callback(shot, seconds_remaining) for countdown ticks."""
        self._tick_callbacks.append(callback)

    def on_capture(self, callback: Callable[[int, np.ndarray], None]) -> None:
        """Register callback(shot, image) for each stored photo."""
        self._capture_callbacks.append(callback)

    def on_state_change(self, callback: Callable[[SequenceState], None]) -> None:
        self._state_callbacks.append(callback)

    def _notify_tick(self, shot: int, remaining: int) -> None:
        for callback in self._tick_callbacks:
            try:
                callback(shot, remaining)
            except Exception as e:
                logger.error(f"Tick callback error: {e}")

    def _notify_capture(self, shot: int, image: np.ndarray) -> None:
        for callback in self._capture_callbacks:
            try:
                callback(shot, image)
            except Exception as e:
                logger.error(f"Capture callback error: {e}")

    def get_status(self) -> dict:
        status = {
            "state": self._state.name,
            "running": self.is_running,
            "photos": len(self._images),
            "shots": self.shots,
        }
        if isinstance(self._state, CountingDown):
            status["shot"] = self._state.shot
            status["seconds_remaining"] = self._state.seconds_remaining
        elif isinstance(self._state, Capturing):
            status["shot"] = self._state.shot
        elif isinstance(self._state, Failed):
            status["reason"] = self._state.reason
        return status


# Factory function
def create_sequencer_from_config() -> CaptureSequencer:
    """Create a sequencer from capture config."""
    from snapbooth.config import capture_config

    return CaptureSequencer(
        shots=capture_config.shots,
        countdown_seconds=capture_config.countdown_seconds,
        tick_interval=capture_config.tick_interval,
        settle_delay=capture_config.settle_delay,
        frame_wait_timeout=capture_config.frame_wait_timeout,
    )
