"""
Configuration management for SnapBooth using Pydantic settings.

Loads configuration from:
1. .env file (if present)
2. config/config.json (defaults)
3. Environment variables (override with SNAPBOOTH_ prefix)
"""

import json
import logging
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"
RUNTIME_DIR = PROJECT_ROOT / "runtime"
ASSETS_DIR = Path(__file__).parent / "assets"

# Load .env file from project root (if exists)
_env_file = PROJECT_ROOT / ".env"
if _env_file.exists():
    load_dotenv(_env_file)
    logger.debug(f"Loaded environment from {_env_file}")


def load_json_config() -> dict[str, Any]:
    """Load configuration from config.json file."""
    config_file = CONFIG_DIR / "config.json"
    if config_file.exists():
        with open(config_file) as f:
            return json.load(f)
    return {}


_json_config = load_json_config()


class CameraConfig(BaseSettings):
    """Live camera device and preview configuration."""

    model_config = {"env_prefix": "SNAPBOOTH_CAMERA_"}

    backend: str = Field(
        default=_json_config.get("camera", {}).get("backend", "opencv"),
        description="Device provider: 'opencv' or 'mock'",
    )
    device_index: int = Field(
        default=_json_config.get("camera", {}).get("device_index", 0),
        description="OpenCV device index to open",
    )
    readiness_timeout: float = Field(
        default=_json_config.get("camera", {}).get("readiness_timeout", 5.0),
        description="Seconds allowed between metadata and a decodable frame",
    )
    preview_fps: float = Field(
        default=_json_config.get("camera", {}).get("preview_fps", 10.0),
        description="Live preview update rate (at most 10 per second)",
    )

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v):
        if v not in ("opencv", "mock"):
            raise ValueError(f"backend must be 'opencv' or 'mock', got {v}")
        return v

    @field_validator("preview_fps")
    @classmethod
    def validate_preview_fps(cls, v):
        if v <= 0 or v > 10:
            raise ValueError(f"preview_fps must be in (0, 10], got {v}")
        return v

    @field_validator("readiness_timeout")
    @classmethod
    def validate_readiness_timeout(cls, v):
        if v <= 0:
            raise ValueError(f"readiness_timeout must be positive, got {v}")
        return v


class CaptureConfig(BaseSettings):
    """Capture sequence timing."""

    model_config = {"env_prefix": "SNAPBOOTH_CAPTURE_"}

    shots: int = Field(
        default=_json_config.get("capture", {}).get("shots", 4),
        description="Photos per strip",
    )
    countdown_seconds: int = Field(
        default=_json_config.get("capture", {}).get("countdown_seconds", 3),
        description="Countdown before each shot",
    )
    tick_interval: float = Field(
        default=_json_config.get("capture", {}).get("tick_interval", 1.0),
        description="Seconds per countdown tick",
    )
    settle_delay: float = Field(
        default=_json_config.get("capture", {}).get("settle_delay", 0.25),
        description="Pause between shots (not after the last)",
    )
    frame_wait_timeout: float = Field(
        default=_json_config.get("capture", {}).get("frame_wait_timeout", 2.0),
        description="Max wait for the next preview frame before a shot",
    )
    default_filter: str = Field(
        default=_json_config.get("capture", {}).get("default_filter", "none"),
        description="Filter applied when none is chosen",
    )

    @field_validator("shots")
    @classmethod
    def validate_shots(cls, v):
        if v != 4:
            raise ValueError(f"a strip holds exactly 4 shots, got {v}")
        return v

    @field_validator("countdown_seconds")
    @classmethod
    def validate_countdown(cls, v):
        if v < 0 or v > 10:
            raise ValueError(f"countdown_seconds must be 0-10, got {v}")
        return v


class StripConfig(BaseSettings):
    """Strip compositor configuration."""

    model_config = {"env_prefix": "SNAPBOOTH_STRIP_"}

    brand_name: str = Field(
        default=_json_config.get("strip", {}).get("brand_name", "SnapTogether"),
        description="Product name drawn under the photos",
    )
    jpeg_quality: int = Field(
        default=_json_config.get("strip", {}).get("jpeg_quality", 95),
        description="JPEG quality of the encoded strip",
    )
    font_path: str = Field(
        default=_json_config.get("strip", {}).get(
            "font_path", "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"
        ),
        description="Regular TrueType font for the date line",
    )
    bold_font_path: str = Field(
        default=_json_config.get("strip", {}).get(
            "bold_font_path", "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"
        ),
        description="Bold TrueType font for the brand name",
    )

    @field_validator("jpeg_quality")
    @classmethod
    def validate_quality(cls, v):
        if v < 1 or v > 100:
            raise ValueError(f"jpeg_quality must be 1-100, got {v}")
        return v


class StorageConfig(BaseSettings):
    """Custom frame persistence."""

    model_config = {"env_prefix": "SNAPBOOTH_STORAGE_"}

    frames_file: str = Field(
        default=_json_config.get("storage", {}).get(
            "frames_file", str(RUNTIME_DIR / "frames.json")
        ),
        description="JSON file holding custom frames and the last selection",
    )
    max_bytes: int = Field(
        default=_json_config.get("storage", {}).get("max_bytes", 5 * 1024 * 1024),
        description="Quota for the serialized frame store",
    )


class UploadConfig(BaseSettings):
    """Strip upload (gallery + optional rclone remote)."""

    model_config = {"env_prefix": "SNAPBOOTH_UPLOAD_"}

    enabled: bool = Field(
        default=_json_config.get("upload", {}).get("enabled", True),
        description="Enable strip uploads",
    )
    gallery_dir: str = Field(
        default=_json_config.get("upload", {}).get(
            "gallery_dir", str(RUNTIME_DIR / "gallery")
        ),
        description="Local gallery receiving uploaded strips",
    )
    rclone_remote: str = Field(
        default=_json_config.get("upload", {}).get("rclone_remote", ""),
        description="rclone remote name (empty for gallery only)",
    )
    remote_path: str = Field(
        default=_json_config.get("upload", {}).get("remote_path", "SnapBooth"),
        description="Base path on the remote",
    )
    bandwidth_limit: str = Field(
        default=_json_config.get("upload", {}).get("bandwidth_limit", ""),
        description="rclone --bwlimit value",
    )


class DownloadConfig(BaseSettings):
    """Local strip downloads."""

    model_config = {"env_prefix": "SNAPBOOTH_DOWNLOAD_"}

    output_dir: str = Field(
        default=_json_config.get("download", {}).get(
            "output_dir", str(RUNTIME_DIR / "downloads")
        ),
        description="Directory for downloaded strips",
    )


class APIConfig(BaseSettings):
    """FastAPI server configuration."""

    model_config = {"env_prefix": "SNAPBOOTH_API_"}

    enabled: bool = Field(
        default=_json_config.get("api", {}).get("enabled", True),
        description="Enable REST API server",
    )
    host: str = Field(
        default=_json_config.get("api", {}).get("host", "127.0.0.1"),
        description="API server bind host",
    )
    port: int = Field(
        default=_json_config.get("api", {}).get("port", 8080),
        description="API server port",
    )


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    model_config = {"env_prefix": "SNAPBOOTH_LOGGING_"}

    level: str = Field(
        default=_json_config.get("logging", {}).get("level", "INFO"),
        description="Log level",
    )
    file: str = Field(
        default=_json_config.get("logging", {}).get(
            "file", str(RUNTIME_DIR / "logs" / "snapbooth.log")
        ),
        description="Log file path",
    )


# Global configuration instances
camera_config = CameraConfig()
capture_config = CaptureConfig()
strip_config = StripConfig()
storage_config = StorageConfig()
upload_config = UploadConfig()
download_config = DownloadConfig()
api_config = APIConfig()
logging_config = LoggingConfig()


def setup_logging() -> None:
    """Configure logging for the application with log rotation."""
    from logging.handlers import RotatingFileHandler

    log_dir = Path(logging_config.file).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    # 10MB max, keep 5 backups
    file_handler = RotatingFileHandler(
        logging_config.file,
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, logging_config.level.upper()))
    root_logger.addHandler(file_handler)
    root_logger.addHandler(logging.StreamHandler())

    logger.info(
        f"Logging configured: level={logging_config.level}, "
        f"file={logging_config.file} (rotating, 10MB max, 5 backups)"
    )


def ensure_runtime_dirs() -> None:
    """Create runtime directories if they don't exist."""
    dirs = [
        Path(storage_config.frames_file).parent,
        Path(upload_config.gallery_dir),
        Path(download_config.output_dir),
        Path(logging_config.file).parent,
    ]
    for d in dirs:
        d.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Ensured directory exists: {d}")
