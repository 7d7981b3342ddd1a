"""
FastAPI Server - REST API for the booth front end

Provides HTTP endpoints for:
- Health and status
- Frame listing, selection, custom frame upload and deletion
- Filter selection and booth step switching
- Camera open/close and live preview JPEG
- Capture runs, strip download and upload

Security: Designed for a kiosk on localhost or a trusted LAN.
"""

import logging
import time
from datetime import datetime
from typing import Any

from snapbooth.errors import (
    CaptureCancelled,
    NoFrameSelected,
    NotReady,
    SnapBoothError,
    StorageQuotaExceeded,
)
from snapbooth.storage.download import strip_filename

logger = logging.getLogger(__name__)

try:
    from fastapi import FastAPI, HTTPException, Request, Response
    from pydantic import BaseModel

    FASTAPI_AVAILABLE = True
except ImportError:
    FASTAPI_AVAILABLE = False
    logger.warning("FastAPI not available")

try:
    import uvicorn

    UVICORN_AVAILABLE = True
except ImportError:
    UVICORN_AVAILABLE = False

API_VERSION = "1.0.0"
_started_at = time.monotonic()


# Pydantic models for API
if FASTAPI_AVAILABLE:

    class StatusResponse(BaseModel):
        """Booth status response."""

        timestamp: str
        system: dict[str, Any]
        booth: dict[str, Any] | None

    class ActionResponse(BaseModel):
        """Action result response."""

        success: bool
        message: str
        timestamp: str

    class SelectRequest(BaseModel):
        """Frame selection body ('template:<id>', 'custom:<id>' or null)."""

        ref: str | None = None

    class FilterRequest(BaseModel):
        filter: str

    class StepRequest(BaseModel):
        step: str


# Global component references
_controller = None


def set_components(controller=None) -> None:
    """Set reference to the booth controller."""
    global _controller
    _controller = controller


def _require_controller():
    if not _controller:
        raise HTTPException(status_code=503, detail="Booth not available")
    return _controller


def _action(success: bool, message: str) -> "ActionResponse":
    return ActionResponse(success=success, message=message, timestamp=datetime.now().isoformat())


def _http_error(e: SnapBoothError) -> "HTTPException":
    """Map booth errors to HTTP responses."""
    if isinstance(e, StorageQuotaExceeded):
        status = 507
    elif isinstance(e, (NotReady, NoFrameSelected, CaptureCancelled)):
        status = 409
    else:
        status = 503
    return HTTPException(
        status_code=status,
        detail={"error": type(e).__name__, "message": e.message, "retryable": e.retryable},
    )


def create_app() -> "FastAPI":
    """Create and configure the FastAPI application."""
    if not FASTAPI_AVAILABLE:
        raise RuntimeError("FastAPI not available")

    app = FastAPI(
        title="SnapBooth API",
        description="REST API for the SnapBooth photo strip booth",
        version=API_VERSION,
    )

    # ==================== Status Endpoints ====================

    @app.get("/", response_model=dict)
    async def root():
        """Root endpoint - basic health check."""
        return {
            "service": "SnapBooth",
            "version": API_VERSION,
            "status": "running",
            "timestamp": datetime.now().isoformat(),
        }

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy", "timestamp": datetime.now().isoformat()}

    @app.get("/status", response_model=StatusResponse)
    async def get_status():
        """Get full booth status."""
        import psutil

        system_status = {
            "cpu_percent": psutil.cpu_percent(),
            "memory_percent": psutil.virtual_memory().percent,
            "uptime_seconds": round(time.monotonic() - _started_at, 1),
        }
        return StatusResponse(
            timestamp=datetime.now().isoformat(),
            system=system_status,
            booth=_controller.get_status() if _controller else None,
        )

    @app.post("/error/dismiss", response_model=ActionResponse)
    async def dismiss_error():
        """Dismiss the current error notice."""
        controller = _require_controller()
        controller.clear_error()
        return _action(True, "Error dismissed")

    # ==================== Frames ====================

    @app.get("/frames")
    async def list_frames():
        """List template and custom frames."""
        controller = _require_controller()
        frames = []
        for frame in controller.list_frames():
            frames.append(frame.to_dict(include_data=False) if frame.is_custom else frame.to_dict())
        return {"frames": frames, "selected": controller.frame_store.selected_ref}

    @app.post("/frames/select", response_model=ActionResponse)
    async def select_frame(request: SelectRequest):
        """Select a frame (null clears the selection)."""
        controller = _require_controller()
        try:
            selection = controller.select_frame(request.ref)
        except KeyError:
            raise HTTPException(status_code=404, detail=f"Unknown frame: {request.ref}")
        except StorageQuotaExceeded as e:
            raise _http_error(e)
        return _action(True, f"Selected {selection.ref}" if selection else "Selection cleared")

    @app.post("/frames/custom")
    async def add_custom_frame(request: Request, name: str = "", kind: str | None = None):
        """Upload custom frame art as the raw request body."""
        controller = _require_controller()
        data = await request.body()
        try:
            frame = controller.add_custom_frame(data, name=name, kind=kind)
        except StorageQuotaExceeded as e:
            raise _http_error(e)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return frame.to_dict(include_data=False)

    @app.delete("/frames/custom/{frame_id}", response_model=ActionResponse)
    async def delete_custom_frame(frame_id: str):
        controller = _require_controller()
        if not controller.delete_custom_frame(frame_id):
            raise HTTPException(status_code=404, detail=f"Unknown custom frame: {frame_id}")
        return _action(True, f"Deleted custom:{frame_id}")

    # ==================== Session ====================

    @app.post("/filter", response_model=ActionResponse)
    async def set_filter(request: FilterRequest):
        controller = _require_controller()
        try:
            kind = controller.set_filter(request.filter)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return _action(True, f"Filter set to {kind.value}")

    @app.post("/setup/complete", response_model=ActionResponse)
    async def complete_setup():
        """Finish frame setup and open the camera."""
        controller = _require_controller()
        try:
            opened = await controller.complete_setup()
        except SnapBoothError as e:
            raise _http_error(e)
        return _action(opened, "Camera ready" if opened else _error_message(controller))

    @app.post("/step", response_model=ActionResponse)
    async def switch_step(request: StepRequest):
        controller = _require_controller()
        try:
            ok = await controller.switch_step(request.step)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown step: {request.step}")
        except SnapBoothError as e:
            raise _http_error(e)
        return _action(ok, f"Step {controller.step.value}" if ok else _error_message(controller))

    @app.post("/reset", response_model=ActionResponse)
    async def reset_session():
        """Discard the strip and start a new session."""
        controller = _require_controller()
        ok = await controller.reset()
        return _action(ok, "Session reset" if ok else _error_message(controller))

    # ==================== Camera Endpoints ====================

    @app.post("/camera/open", response_model=ActionResponse)
    async def open_camera():
        """Open or retry the camera."""
        controller = _require_controller()
        opened = await controller.open_camera()
        return _action(opened, "Camera active" if opened else _error_message(controller))

    @app.post("/camera/close", response_model=ActionResponse)
    async def close_camera():
        controller = _require_controller()
        controller.close_camera()
        return _action(True, "Camera closed")

    @app.get("/camera/preview")
    async def camera_preview():
        """Latest filtered preview frame."""
        controller = _require_controller()
        image_bytes = controller.preview.surface.to_jpeg(quality=80)
        if not image_bytes:
            raise HTTPException(status_code=404, detail="No preview frame available")
        return Response(
            content=image_bytes,
            media_type="image/jpeg",
            headers={"Content-Disposition": 'inline; filename="preview.jpg"', "Cache-Control": "no-store"},
        )

    @app.get("/camera/status")
    async def camera_status():
        controller = _require_controller()
        return controller.camera.get_status()

    # ==================== Capture / Strip ====================

    @app.post("/capture")
    async def take_photos():
        """Run the four-shot sequence and compose the strip."""
        controller = _require_controller()
        try:
            strip = await controller.take_photos()
        except SnapBoothError as e:
            raise _http_error(e)
        return strip.to_dict()

    @app.post("/capture/cancel", response_model=ActionResponse)
    async def cancel_capture():
        controller = _require_controller()
        cancelled = controller.cancel_capture()
        return _action(cancelled, "Capture cancelled" if cancelled else "No capture running")

    @app.get("/capture/status")
    async def capture_status():
        controller = _require_controller()
        return controller.sequencer.get_status()

    @app.get("/strip")
    async def download_strip():
        """Download the strip as a JPEG attachment."""
        controller = _require_controller()
        if controller.strip is None:
            raise HTTPException(status_code=404, detail="No strip available")
        filename = strip_filename()
        return Response(
            content=controller.strip.jpeg,
            media_type="image/jpeg",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.post("/strip/upload")
    async def upload_strip():
        """Upload the strip. The result is reported as a status, not an HTTP error."""
        controller = _require_controller()
        try:
            status = await controller.upload()
        except NotReady as e:
            raise _http_error(e)
        return {
            "status": status.value,
            "error": controller.uploader.last_error,
            "location": controller.uploader.last_location,
        }

    return app


def _error_message(controller) -> str:
    error = controller.last_error
    return error.message if error else "failed"


async def start_server(host: str = "127.0.0.1", port: int = 8080, controller=None) -> None:
    """
    Start the API server.

    Args:
        host: Bind host
        port: Bind port
        controller: PhotoBoothController instance
    """
    if not FASTAPI_AVAILABLE or not UVICORN_AVAILABLE:
        logger.error("FastAPI or uvicorn not available")
        return

    set_components(controller)
    app = create_app()

    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="info",
        access_log=True,
    )
    server = uvicorn.Server(config)

    logger.info(f"Starting API server on {host}:{port}")
    await server.serve()
