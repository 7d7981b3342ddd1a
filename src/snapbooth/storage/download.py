"""
Strip download: timestamped file names and saving to a directory.
"""

import logging
from datetime import datetime
from pathlib import Path

from snapbooth.imaging.compositor import PhotoStrip

logger = logging.getLogger(__name__)

FILENAME_PREFIX = "snaptogether-strip-"


def strip_filename(timestamp: datetime | None = None) -> str:
    """File name for a strip: snaptogether-strip-<epoch ms>.jpg"""
    timestamp = timestamp or datetime.now()
    return f"{FILENAME_PREFIX}{round(timestamp.timestamp() * 1000)}.jpg"


def save_strip(strip: PhotoStrip, directory: str | Path, timestamp: datetime | None = None) -> Path:
    """
    Write a strip's JPEG bytes into a directory.

    Args:
        strip: Encoded strip
        directory: Target directory (created if missing)
        timestamp: Time used for the file name (now if None)

    Returns:
        Path of the written file
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / strip_filename(timestamp)
    path.write_bytes(strip.jpeg)
    logger.info(f"Strip saved: {path} ({len(strip.jpeg)} bytes)")
    return path
