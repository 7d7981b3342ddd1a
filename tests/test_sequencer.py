"""
Tests for the timed capture sequence.
"""

import asyncio

import numpy as np
import pytest

from snapbooth.camera.camera_session import CameraSession
from snapbooth.camera.devices import MockDeviceProvider, ReadyState
from snapbooth.capture.sequencer import (
    CaptureSequencer,
    Completed,
    CountingDown,
    Failed,
    Idle,
)
from snapbooth.errors import CaptureCancelled, NoFrameSelected, NotReady, SourceNotReady
from snapbooth.imaging.filters import FilterKind, apply_filter


class TestPreconditions:
    """Checks that run before any state change."""

    def test_camera_not_open(self, fast_sequencer, camera_session, template_frame):
        async def run():
            with pytest.raises(NotReady):
                await fast_sequencer.run(camera_session, template_frame)

        asyncio.run(run())
        assert isinstance(fast_sequencer.state, Idle)
        assert fast_sequencer.images == ()

    def test_no_frame_selected(self, fast_sequencer, camera_session):
        async def run():
            await camera_session.open()
            try:
                with pytest.raises(NoFrameSelected):
                    await fast_sequencer.run(camera_session, None)
            finally:
                camera_session.close()

        asyncio.run(run())
        assert isinstance(fast_sequencer.state, Idle)

    def test_second_run_rejected(self, fast_sequencer, camera_session, template_frame):
        async def run():
            await camera_session.open()
            first = asyncio.create_task(fast_sequencer.run(camera_session, template_frame))
            await asyncio.sleep(0)
            with pytest.raises(NotReady):
                await fast_sequencer.run(camera_session, template_frame)
            images = await first
            camera_session.close()
            return images

        images = asyncio.run(run())
        assert len(images) == 4


class TestRun:
    """Tests for a full sequence."""

    def test_completes_with_four_ordered_images(self, fast_sequencer, camera_session, template_frame):
        captured = []
        ticks = []
        fast_sequencer.on_capture(lambda shot, image: captured.append((shot, image)))
        fast_sequencer.on_tick(lambda shot, remaining: ticks.append((shot, remaining)))

        async def run():
            await camera_session.open()
            images = await fast_sequencer.run(camera_session, template_frame)
            camera_session.close()
            return images

        images = asyncio.run(run())

        assert isinstance(images, tuple)
        assert len(images) == 4
        assert [shot for shot, _ in captured] == [0, 1, 2, 3]
        for (_, image), result in zip(captured, images):
            assert image is result
        assert ticks == [(s, r) for s in range(4) for r in (2, 1)]
        assert isinstance(fast_sequencer.state, Completed)

    def test_images_are_filtered_rgba(self, template_frame):
        provider = MockDeviceProvider(resolution=(640, 480), color=(200, 100, 50))
        session = CameraSession(provider, readiness_timeout=0.2)
        sequencer = CaptureSequencer(countdown_seconds=1, tick_interval=0.0, settle_delay=0.0)

        async def run():
            await session.open()
            images = await sequencer.run(session, template_frame, "sepia")
            session.close()
            return images

        images = asyncio.run(run())
        raw = np.empty((480, 640, 4), dtype=np.uint8)
        raw[...] = (200, 100, 50, 255)
        expected = apply_filter(raw, FilterKind.SEPIA)
        for image in images:
            assert image.shape == (480, 640, 4)
            np.testing.assert_array_equal(image, expected)

    def test_state_sequence(self, fast_sequencer, camera_session, template_frame):
        states = []
        fast_sequencer.on_state_change(lambda s: states.append(s))

        async def run():
            await camera_session.open()
            await fast_sequencer.run(camera_session, template_frame)
            camera_session.close()

        asyncio.run(run())
        assert states[0] == CountingDown(0, 2)
        assert states[-1] == Completed()
        assert sum(1 for s in states if s.name == "capturing") == 4


class TestFailures:
    """Failures discard every image taken so far."""

    def test_source_drop_discards_partial_images(self, template_frame):
        provider = MockDeviceProvider(resolution=(640, 480))
        session = CameraSession(provider, readiness_timeout=0.2)
        sequencer = CaptureSequencer(
            countdown_seconds=1, tick_interval=0.01, settle_delay=0.01, frame_wait_timeout=0.2
        )

        def drop_after_second(shot, image):
            if shot == 1:
                provider.streams[-1].force_ready_state(ReadyState.HAVE_METADATA)

        sequencer.on_capture(drop_after_second)

        async def run():
            await session.open()
            with pytest.raises(SourceNotReady):
                await sequencer.run(session, template_frame)
            session.close()

        asyncio.run(run())
        assert sequencer.images == ()
        assert isinstance(sequencer.state, Failed)
        assert not sequencer.is_running

    def test_cancel_discards_images(self, camera_session, template_frame):
        sequencer = CaptureSequencer(countdown_seconds=1, tick_interval=0.05, settle_delay=0.01)
        captured = []
        sequencer.on_capture(lambda shot, image: captured.append(shot))

        async def run():
            await camera_session.open()
            task = asyncio.create_task(sequencer.run(camera_session, template_frame))
            while not captured:
                await asyncio.sleep(0.01)
            assert sequencer.cancel()
            with pytest.raises(CaptureCancelled):
                await task
            camera_session.close()

        asyncio.run(run())
        assert sequencer.state == Failed("cancelled")
        assert sequencer.images == ()
        assert not sequencer.cancel()

    def test_new_run_after_failure_starts_fresh(self, fast_sequencer, camera_session, template_frame):
        async def run():
            with pytest.raises(NotReady):
                await fast_sequencer.run(camera_session, template_frame)
            await camera_session.open()
            images = await fast_sequencer.run(camera_session, template_frame)
            camera_session.close()
            return images

        images = asyncio.run(run())
        assert len(images) == 4

    def test_hidden_preview_times_out(self, camera_session, template_frame):
        sequencer = CaptureSequencer(countdown_seconds=0, frame_wait_timeout=0.1)

        async def run():
            await camera_session.open()
            camera_session.set_visible(False)
            with pytest.raises(SourceNotReady):
                await sequencer.run(camera_session, template_frame)
            camera_session.close()

        asyncio.run(run())
        assert sequencer.images == ()


class TestStatus:
    def test_get_status(self, fast_sequencer):
        status = fast_sequencer.get_status()
        assert status["state"] == "idle"
        assert status["photos"] == 0
        assert status["running"] is False
