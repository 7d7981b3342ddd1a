"""
End-to-end tests for the booth controller.
"""

import asyncio
from datetime import datetime

import numpy as np
import pytest

from snapbooth.camera.camera_session import CameraSession
from snapbooth.camera.devices import MockDeviceProvider
from snapbooth.capture.sequencer import CaptureSequencer, Failed
from snapbooth.errors import (
    CaptureCancelled,
    CompositionFailed,
    DeviceUnavailable,
    NoFrameSelected,
    NotReady,
    StorageQuotaExceeded,
)
from snapbooth.imaging.compositor import StripCompositor
from snapbooth.main import BoothStep, PhotoBoothController
from snapbooth.storage.frame_store import FrameStore
from snapbooth.storage.uploader import StripUploader, UploadStatus

FIXED_NOW = datetime(2026, 1, 24, 14, 30, 22)


@pytest.fixture
def provider():
    return MockDeviceProvider(resolution=(640, 480), color=(200, 100, 50))


@pytest.fixture
def controller(tmp_path, provider):
    camera = CameraSession(provider, readiness_timeout=0.5, poll_interval=0.005)
    return PhotoBoothController(
        camera=camera,
        frame_store=FrameStore(tmp_path / "frames.json"),
        sequencer=CaptureSequencer(
            countdown_seconds=1, tick_interval=0.01, settle_delay=0.01, frame_wait_timeout=1.0
        ),
        compositor=StripCompositor(clock=lambda: FIXED_NOW),
        uploader=StripUploader(gallery_dir=tmp_path / "gallery"),
        download_dir=tmp_path / "downloads",
    )


class TestSetup:
    """Tests for the frames step."""

    def test_setup_requires_selection(self, controller):
        with pytest.raises(NoFrameSelected):
            asyncio.run(controller.complete_setup())
        assert controller.step is BoothStep.FRAMES
        assert isinstance(controller.last_error, NoFrameSelected)

    def test_camera_step_requires_setup(self, controller):
        with pytest.raises(NotReady):
            asyncio.run(controller.switch_step(BoothStep.CAMERA))

    def test_complete_setup_opens_camera(self, controller, provider):
        controller.select_frame("template:classic")

        async def run():
            opened = await controller.complete_setup()
            active = controller.camera.is_active
            controller.close_camera()
            return opened, active

        opened, active = asyncio.run(run())
        assert opened and active
        assert controller.step is BoothStep.CAMERA
        assert provider.open_count == 1

    def test_camera_failure_offers_retry(self, controller, provider):
        provider.available = False
        controller.select_frame("template:classic")

        async def run():
            opened = await controller.complete_setup()
            error = controller.last_error
            provider.available = True
            retried = await controller.open_camera()
            controller.close_camera()
            return opened, error, retried

        opened, error, retried = asyncio.run(run())
        assert not opened
        assert isinstance(error, DeviceUnavailable)
        assert error.retryable
        assert retried
        assert controller.last_error is None

    def test_custom_frame_quota(self, tmp_path, controller):
        controller.frame_store.max_bytes = 2048
        controller.select_frame("template:film")
        with pytest.raises(StorageQuotaExceeded):
            controller.add_custom_frame(b"\x89PNG" + b"\x01" * 4096)
        assert controller.frame_store.selected_ref == "template:film"
        assert isinstance(controller.last_error, StorageQuotaExceeded)

    def test_filter_updates_preview(self, controller):
        controller.set_filter("vintage")
        assert controller.preview.filter_kind.value == "vintage"
        with pytest.raises(ValueError):
            controller.set_filter("unknown")


class TestSession:
    """Full capture-to-strip flow."""

    def test_sepia_strip_end_to_end(self, controller, provider):
        controller.select_frame("template:classic")
        controller.set_filter("sepia")

        async def run():
            await controller.complete_setup()
            return await controller.take_photos()

        strip = asyncio.run(run())

        assert controller.step is BoothStep.STRIP
        assert strip.branding == ("SnapTogether", "01/24/2026")
        assert strip.photos_drawn == 4
        img = strip.to_image()
        assert img.size == (1200, 3600)
        # Camera released when leaving the camera step
        assert provider.active_streams == []

        # sepia(200, 100, 50) = (165, 147, 114)
        pixels = np.asarray(img.convert("RGB")).astype(int)
        slot = controller.selection.slot
        for i in range(4):
            cy = slot.slot_top(i) + slot.height // 2
            cx = slot.x + slot.width // 2
            assert np.abs(pixels[cy, cx] - (165, 147, 114)).max() < 10

    def test_download_and_upload(self, controller, tmp_path):
        controller.select_frame("template:classic")

        async def run():
            await controller.complete_setup()
            await controller.take_photos()
            return await controller.upload()

        status = asyncio.run(run())
        assert status is UploadStatus.SUCCESS

        path = controller.download()
        assert path.parent == tmp_path / "downloads"
        assert path.name.startswith("snaptogether-strip-") and path.suffix == ".jpg"
        assert path.read_bytes() == controller.strip.jpeg

    def test_download_without_strip(self, controller):
        with pytest.raises(NotReady):
            controller.download()

    def test_composition_failure_returns_to_camera(self, controller, monkeypatch):
        controller.select_frame("template:classic")

        async def broken_compose(selection, images):
            raise CompositionFailed("canvas unavailable")

        monkeypatch.setattr(controller.compositor, "compose", broken_compose)

        async def run():
            await controller.complete_setup()
            with pytest.raises(CompositionFailed):
                await controller.take_photos()
            step = controller.step
            controller.close_camera()
            return step

        assert asyncio.run(run()) is BoothStep.CAMERA
        assert isinstance(controller.last_error, CompositionFailed)
        assert controller.strip is None

    def test_leaving_camera_cancels_run(self, controller, provider):
        controller.select_frame("template:classic")
        controller.sequencer.tick_interval = 0.2

        async def run():
            await controller.complete_setup()
            task = asyncio.create_task(controller.take_photos())
            await asyncio.sleep(0.05)
            await controller.switch_step(BoothStep.FRAMES)
            with pytest.raises(CaptureCancelled):
                await task

        asyncio.run(run())
        assert controller.step is BoothStep.FRAMES
        assert controller.sequencer.state == Failed("cancelled")
        assert controller.sequencer.images == ()
        assert controller.strip is None
        assert provider.active_streams == []

    def test_reopening_camera_cancels_run(self, controller, provider):
        controller.select_frame("template:classic")
        controller.sequencer.tick_interval = 0.2

        async def run():
            await controller.complete_setup()
            task = asyncio.create_task(controller.take_photos())
            await asyncio.sleep(0.05)
            reopened = await controller.open_camera()
            with pytest.raises(CaptureCancelled):
                await task
            live = len(provider.active_streams)
            controller.close_camera()
            return reopened, live

        reopened, live = asyncio.run(run())
        assert reopened
        assert live == 1
        assert provider.open_count == 2
        assert controller.step is BoothStep.CAMERA
        assert controller.sequencer.state == Failed("cancelled")
        assert controller.sequencer.images == ()
        assert controller.strip is None

    def test_leaving_camera_while_opening(self, controller, provider):
        provider.metadata_delay = 0.1
        controller.select_frame("template:classic")

        async def run():
            setup = asyncio.create_task(controller.complete_setup())
            await asyncio.sleep(0.02)
            await controller.switch_step(BoothStep.FRAMES)
            return await setup

        opened = asyncio.run(run())
        assert not opened
        assert controller.step is BoothStep.FRAMES
        assert controller.last_error is None
        assert not controller.camera.is_active
        assert provider.active_streams == []

    def test_reset_reopens_camera(self, controller, provider):
        controller.select_frame("template:classic")

        async def run():
            await controller.complete_setup()
            await controller.take_photos()
            ok = await controller.reset()
            active = controller.camera.is_active
            controller.close_camera()
            return ok, active

        ok, active = asyncio.run(run())
        assert ok and active
        assert controller.step is BoothStep.CAMERA
        assert controller.strip is None
        assert provider.open_count == 2

    def test_status(self, controller):
        controller.select_frame("template:hearts")
        status = controller.get_status()
        assert status["step"] == "frames"
        assert status["selection"]["ref"] == "template:hearts"
        assert status["last_error"] is None
        assert status["upload"]["status"] == "idle"
