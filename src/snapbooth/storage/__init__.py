"""
Storage module for SnapBooth.

Provides:
- FrameStore: custom frame persistence with quota enforcement
- StripUploader: gallery + rclone uploads with tri-state status
- Download helpers: timestamped strip file names
"""

from .download import save_strip, strip_filename
from .frame_store import FrameStore, create_frame_store_from_config
from .uploader import RCLONE_AVAILABLE, StripUploader, UploadStatus, create_uploader_from_config

__all__ = [
    "save_strip",
    "strip_filename",
    "FrameStore",
    "create_frame_store_from_config",
    "RCLONE_AVAILABLE",
    "StripUploader",
    "UploadStatus",
    "create_uploader_from_config",
]
