"""
Per-pixel colour filters for RGBA raster buffers.

Buffers are numpy uint8 arrays whose last axis is RGBA, e.g. (H, W, 4)
frames or (N, 4) pixel lists. Alpha is never touched. Channel results are
rounded to nearest (ties to even) and clamped to 0..255, the same way a
canvas ImageData write clamps.
"""

import logging
from enum import Enum

import numpy as np

logger = logging.getLogger(__name__)


class FilterKind(str, Enum):
    """Stateless filter identifiers."""

    NONE = "none"
    GRAYSCALE = "grayscale"
    SEPIA = "sepia"
    INVERT = "invert"
    VINTAGE = "vintage"
    BLUEPRINT = "blueprint"

    @classmethod
    def parse(cls, value: "str | FilterKind | None") -> "FilterKind":
        """Resolve a filter name; None means no filter."""
        if value is None:
            return cls.NONE
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(
                f"unknown filter {value!r}, expected one of {[k.value for k in cls]}"
            ) from None


# Sepia colour matrix, rows are output R, G, B
_SEPIA_MATRIX = np.array(
    [
        [0.393, 0.769, 0.189],
        [0.349, 0.686, 0.168],
        [0.272, 0.534, 0.131],
    ],
    dtype=np.float64,
)

_VINTAGE_SCALE = np.array([0.9, 0.7, 0.6], dtype=np.float64)
_VINTAGE_OFFSET = np.array([40.0, 20.0, 10.0], dtype=np.float64)


def _grayscale(rgb: np.ndarray) -> np.ndarray:
    avg = rgb.mean(axis=-1, keepdims=True)
    return np.repeat(avg, 3, axis=-1)


def _sepia(rgb: np.ndarray) -> np.ndarray:
    return rgb @ _SEPIA_MATRIX.T


def _invert(rgb: np.ndarray) -> np.ndarray:
    return 255.0 - rgb


def _vintage(rgb: np.ndarray) -> np.ndarray:
    return rgb * _VINTAGE_SCALE + _VINTAGE_OFFSET


def _blueprint(rgb: np.ndarray) -> np.ndarray:
    avg = rgb.mean(axis=-1)
    out = np.empty_like(rgb)
    out[..., 0] = 0.0
    out[..., 1] = avg * 0.4
    out[..., 2] = np.minimum(255.0, avg * 1.2)
    return out


_TRANSFORMS = {
    FilterKind.GRAYSCALE: _grayscale,
    FilterKind.SEPIA: _sepia,
    FilterKind.INVERT: _invert,
    FilterKind.VINTAGE: _vintage,
    FilterKind.BLUEPRINT: _blueprint,
}


def apply_filter(buffer: np.ndarray, kind: "FilterKind | str | None") -> np.ndarray:
    """
    Apply a colour filter to an RGBA buffer.

    Args:
        buffer: uint8 array with RGBA on the last axis
        kind: Filter to apply

    Returns:
        New buffer with the same shape and dtype. For FilterKind.NONE the
        input buffer itself is returned (no copy).

    Raises:
        ValueError: If the buffer is not RGBA uint8 or the filter is unknown
    """
    kind = FilterKind.parse(kind)
    if kind is FilterKind.NONE:
        return buffer

    if buffer.dtype != np.uint8 or buffer.ndim < 2 or buffer.shape[-1] != 4:
        raise ValueError(
            f"expected uint8 RGBA buffer, got dtype={buffer.dtype} shape={buffer.shape}"
        )

    rgb = buffer[..., :3].astype(np.float64)
    transformed = _TRANSFORMS[kind](rgb)

    out = buffer.copy()
    out[..., :3] = np.clip(np.rint(transformed), 0, 255).astype(np.uint8)
    return out


def rgb_to_rgba(frame: np.ndarray) -> np.ndarray:
    """Add an opaque alpha channel to an (H, W, 3) RGB frame."""
    if frame.ndim == 3 and frame.shape[-1] == 4:
        return frame
    if frame.ndim != 3 or frame.shape[-1] != 3:
        raise ValueError(f"expected (H, W, 3) RGB frame, got shape={frame.shape}")
    alpha = np.full(frame.shape[:2] + (1,), 255, dtype=np.uint8)
    return np.concatenate([frame.astype(np.uint8, copy=False), alpha], axis=-1)
