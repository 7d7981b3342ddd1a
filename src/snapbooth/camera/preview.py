"""
Live preview rendering.

PreviewRenderer subscribes to a CameraSession's frame pushes, applies the
active filter and paints the result onto a PreviewSurface. It never reads
device or timing state itself.
"""

import logging
from datetime import datetime
from io import BytesIO

import numpy as np
from PIL import Image

from snapbooth.imaging.filters import FilterKind, apply_filter, rgb_to_rgba

logger = logging.getLogger(__name__)


class PreviewSurface:
    """Drawing surface holding the most recently painted RGBA frame."""

    def __init__(self):
        self._buffer: np.ndarray | None = None
        self._painted_at: datetime | None = None
        self.paint_count = 0

    @property
    def size(self) -> tuple[int, int] | None:
        """(width, height) of the last painted frame."""
        if self._buffer is None:
            return None
        return self._buffer.shape[1], self._buffer.shape[0]

    @property
    def painted_at(self) -> datetime | None:
        return self._painted_at

    def paint(self, buffer: np.ndarray, timestamp: datetime | None = None) -> None:
        self._buffer = buffer
        self._painted_at = timestamp or datetime.now()
        self.paint_count += 1

    def snapshot(self) -> np.ndarray | None:
        """Copy of the current surface contents."""
        return None if self._buffer is None else self._buffer.copy()

    def clear(self) -> None:
        self._buffer = None
        self._painted_at = None

    def to_jpeg(self, quality: int = 85) -> bytes | None:
        """Encode the current surface as JPEG bytes."""
        if self._buffer is None:
            return None
        img = Image.fromarray(self._buffer[..., :3])
        buf = BytesIO()
        img.save(buf, "JPEG", quality=quality)
        return buf.getvalue()


class PreviewRenderer:
    """Paints pushed frames, optionally filtered, onto a surface."""

    def __init__(self, surface: PreviewSurface | None = None, filter_kind: FilterKind = FilterKind.NONE):
        self.surface = surface or PreviewSurface()
        self._filter = FilterKind.parse(filter_kind)

    @property
    def filter_kind(self) -> FilterKind:
        return self._filter

    @filter_kind.setter
    def filter_kind(self, value: "FilterKind | str") -> None:
        self._filter = FilterKind.parse(value)
        logger.debug(f"Preview filter set to {self._filter.value}")

    def render(self, frame: np.ndarray, timestamp: datetime) -> None:
        """Frame callback: filter and paint."""
        try:
            painted = apply_filter(rgb_to_rgba(frame), self._filter)
        except ValueError as e:
            logger.error(f"Draw error: {e}")
            return
        self.surface.paint(painted, timestamp)

    def attach(self, session) -> None:
        """Subscribe to a camera session's frame pushes."""
        session.on_frame(self.render)

    def detach(self, session) -> None:
        session.remove_frame_callback(self.render)
        self.surface.clear()
