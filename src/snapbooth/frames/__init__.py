"""
Frame module for SnapBooth.

Provides:
- SlotGeometry / TemplateFrame / CustomFrame: frame selection data structures
- FrameCatalog: built-in template frames
"""

from .catalog import TEMPLATE_FRAMES, FrameCatalog, get_frame_catalog
from .frame import (
    DEFAULT_SLOT_GEOMETRY,
    CustomFrame,
    FrameKind,
    FrameSelection,
    SlotGeometry,
    TemplateFrame,
    parse_ref,
)

__all__ = [
    "TEMPLATE_FRAMES",
    "FrameCatalog",
    "get_frame_catalog",
    "DEFAULT_SLOT_GEOMETRY",
    "CustomFrame",
    "FrameKind",
    "FrameSelection",
    "SlotGeometry",
    "TemplateFrame",
    "parse_ref",
]
