"""
Imaging module for SnapBooth.

Provides:
- Filter engine: per-pixel RGBA colour transforms
- StripCompositor: 1200x3600 strip layout and JPEG encoding
- Frame art loading (bitmap via Pillow, SVG via CairoSVG)
"""

from .compositor import (
    STRIP_HEIGHT,
    STRIP_WIDTH,
    PhotoStrip,
    Placement,
    StripCompositor,
    compute_placement,
    get_strip_compositor,
)
from .filters import FilterKind, apply_filter, rgb_to_rgba
from .frame_art import CAIROSVG_AVAILABLE, FrameArtError, decode_frame_art, load_frame_bytes

__all__ = [
    "STRIP_HEIGHT",
    "STRIP_WIDTH",
    "PhotoStrip",
    "Placement",
    "StripCompositor",
    "compute_placement",
    "get_strip_compositor",
    "FilterKind",
    "apply_filter",
    "rgb_to_rgba",
    "CAIROSVG_AVAILABLE",
    "FrameArtError",
    "decode_frame_art",
    "load_frame_bytes",
]
