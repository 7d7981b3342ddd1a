"""
Camera module for SnapBooth.

Provides:
- CameraSession: single-stream lifecycle, readiness and bounded-rate preview pushes
- Device providers: OpenCV webcam and mock (simulation) backends
- PreviewRenderer / PreviewSurface: filtered live preview
"""

from .camera_session import (
    Active,
    CameraSession,
    CameraStatus,
    Error,
    Requesting,
    Stopped,
    Uninitialized,
)
from .devices import (
    CV2_AVAILABLE,
    READINESS_THRESHOLD,
    DeviceInfo,
    DeviceProvider,
    MockDeviceProvider,
    OpenCVDeviceProvider,
    ReadyState,
    StreamConstraints,
    VideoStream,
    create_device_provider,
)
from .preview import PreviewRenderer, PreviewSurface

__all__ = [
    "CameraSession",
    "CameraStatus",
    "Uninitialized",
    "Requesting",
    "Active",
    "Error",
    "Stopped",
    "CV2_AVAILABLE",
    "READINESS_THRESHOLD",
    "DeviceInfo",
    "DeviceProvider",
    "MockDeviceProvider",
    "OpenCVDeviceProvider",
    "ReadyState",
    "StreamConstraints",
    "VideoStream",
    "create_device_provider",
    "PreviewRenderer",
    "PreviewSurface",
]
