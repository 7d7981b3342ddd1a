"""
Strip Uploader - gallery copy plus optional rclone remote.

Every upload writes the strip into the local gallery directory. When an
rclone remote is configured and rclone is on PATH, the file is also copied
to <remote>:<remote_path>/YYYY/MM/DD/ with retries.

Status: idle -> in_progress -> success | failure. A failed upload never
touches the strip itself.
"""

import asyncio
import logging
import shutil
import subprocess
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from snapbooth.imaging.compositor import PhotoStrip
from snapbooth.storage.download import strip_filename

logger = logging.getLogger(__name__)

# Check if rclone is available
RCLONE_AVAILABLE = shutil.which("rclone") is not None


class UploadStatus(str, Enum):
    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILURE = "failure"


class RcloneError(Exception):
    """rclone exited with an error or timed out."""


class StripUploader:
    """Uploads composed strips and tracks a tri-state result."""

    def __init__(
        self,
        gallery_dir: str | Path,
        rclone_remote: str = "",
        remote_path: str = "SnapBooth",
        bandwidth_limit: str = "",
        enabled: bool = True,
    ):
        """
        Initialize the uploader.

        Args:
            gallery_dir: Local gallery directory
            rclone_remote: rclone remote name (empty for gallery only)
            remote_path: Base path on the remote
            bandwidth_limit: rclone --bwlimit value (e.g. '1M')
            enabled: Enable uploads
        """
        self.gallery_dir = Path(gallery_dir)
        self.rclone_remote = rclone_remote
        self.remote_path = remote_path
        self.bandwidth_limit = bandwidth_limit
        self.enabled = enabled
        self.remote_enabled = bool(rclone_remote) and RCLONE_AVAILABLE

        self._status = UploadStatus.IDLE
        self._last_error: str | None = None
        self._last_location: str | None = None
        self._status_callbacks: list[Callable[[UploadStatus], None]] = []

        # Dedicated thread pool for rclone
        self._upload_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="rclone")

        if rclone_remote and not RCLONE_AVAILABLE:
            logger.warning("rclone not found in PATH - strips are kept in the gallery only")
        logger.info(
            f"StripUploader initialized: gallery={self.gallery_dir}, "
            f"remote={f'{rclone_remote}:{remote_path}' if self.remote_enabled else 'none'}"
        )

    @property
    def status(self) -> UploadStatus:
        return self._status

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def last_location(self) -> str | None:
        return self._last_location

    def _set_status(self, status: UploadStatus) -> None:
        if status is self._status:
            return
        self._status = status
        logger.debug(f"Upload status: {status.value}")
        for callback in self._status_callbacks:
            try:
                callback(status)
            except Exception as e:
                logger.error(f"Upload status callback error: {e}")

    def on_status_change(self, callback: Callable[[UploadStatus], None]) -> None:
        """Register callback for upload status transitions."""
        self._status_callbacks.append(callback)

    def reset(self) -> None:
        """Back to idle (a new strip was composed)."""
        self._last_error = None
        self._last_location = None
        self._set_status(UploadStatus.IDLE)

    async def upload(self, strip: PhotoStrip) -> bool:
        """
        Upload a strip.

        Returns:
            True on success. Failures are reported through status only.
        """
        if not self.enabled:
            logger.debug("Uploads disabled, skipping")
            return False
        if self._status is UploadStatus.IN_PROGRESS:
            logger.warning("Upload already in progress, skipping")
            return False

        self._last_error = None
        self._set_status(UploadStatus.IN_PROGRESS)
        loop = asyncio.get_running_loop()
        filename = strip_filename(strip.created_at)

        try:
            local_path = await loop.run_in_executor(None, self._write_gallery, strip, filename)
            location = str(local_path)
            if self.remote_enabled:
                location = await self._copy_to_remote(local_path, strip.created_at)
        except Exception as e:
            self._last_error = str(e)
            logger.error(f"Upload failed: {filename} - {e}")
            self._set_status(UploadStatus.FAILURE)
            return False

        self._last_location = location
        logger.info(f"Upload successful: {location}")
        self._set_status(UploadStatus.SUCCESS)
        return True

    def _write_gallery(self, strip: PhotoStrip, filename: str) -> Path:
        self.gallery_dir.mkdir(parents=True, exist_ok=True)
        path = self.gallery_dir / filename
        path.write_bytes(strip.jpeg)
        return path

    def _get_remote_dir(self, created_at: datetime) -> str:
        """Remote: SnapBooth/2026/01/24/"""
        return (
            f"{self.rclone_remote}:{self.remote_path}/"
            f"{created_at.year}/{created_at.month:02d}/{created_at.day:02d}"
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(RcloneError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _copy_to_remote(self, local_path: Path, created_at: datetime) -> str:
        remote_dir = self._get_remote_dir(created_at)
        logger.info(f"Uploading strip: {local_path.name} -> {remote_dir}")
        await asyncio.get_running_loop().run_in_executor(
            self._upload_executor,
            lambda: self._run_rclone(["copy", str(local_path), remote_dir]),
        )
        return f"{remote_dir}/{local_path.name}"

    def _run_rclone(self, args: list[str], timeout: int = 120) -> str:
        """
        Run an rclone command.

        Raises:
            RcloneError: Non-zero exit or timeout
        """
        cmd = ["rclone"] + args
        if self.bandwidth_limit:
            cmd.extend(["--bwlimit", self.bandwidth_limit])

        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
        except subprocess.TimeoutExpired as e:
            raise RcloneError(f"rclone timed out after {timeout}s") from e
        if result.returncode != 0:
            raise RcloneError(result.stderr.strip() or f"rclone exited with {result.returncode}")
        return result.stdout

    def get_status(self) -> dict:
        """Get uploader status."""
        return {
            "enabled": self.enabled,
            "status": self._status.value,
            "gallery_dir": str(self.gallery_dir),
            "remote": f"{self.rclone_remote}:{self.remote_path}" if self.remote_enabled else None,
            "rclone_available": RCLONE_AVAILABLE,
            "last_location": self._last_location,
            "last_error": self._last_error,
        }

    def shutdown(self) -> None:
        """Shut down the rclone executor."""
        self._upload_executor.shutdown(wait=False)
        logger.debug("StripUploader executor shut down")


# Factory function
def create_uploader_from_config() -> StripUploader:
    """Create an uploader from upload config."""
    from snapbooth.config import upload_config

    return StripUploader(
        gallery_dir=upload_config.gallery_dir,
        rclone_remote=upload_config.rclone_remote,
        remote_path=upload_config.remote_path,
        bandwidth_limit=upload_config.bandwidth_limit,
        enabled=upload_config.enabled,
    )
