"""
Built-in template frame catalog.

Read-only: the booth reads slot geometry and image references, never
mutates entries.
"""

import logging

from snapbooth.frames.frame import SlotGeometry, TemplateFrame

logger = logging.getLogger(__name__)

TEMPLATE_FRAMES: tuple[TemplateFrame, ...] = (
    TemplateFrame(
        id="classic",
        name="Classic",
        image_ref="classic.svg",
        slot=SlotGeometry(x=100, y=80, width=1000, height=700, spacing=760),
    ),
    TemplateFrame(
        id="film",
        name="Film Strip",
        image_ref="film.svg",
        slot=SlotGeometry(x=150, y=100, width=900, height=675, spacing=740),
    ),
    TemplateFrame(
        id="hearts",
        name="Hearts",
        image_ref="hearts.svg",
        slot=SlotGeometry(x=120, y=120, width=960, height=640, spacing=760),
    ),
    TemplateFrame(
        id="minimal",
        name="Minimal",
        image_ref="minimal.svg",
    ),
)


class FrameCatalog:
    """Lookup over a fixed set of template frames."""

    def __init__(self, frames: tuple[TemplateFrame, ...] = TEMPLATE_FRAMES):
        self._frames = {f.id: f for f in frames}
        logger.debug(f"Frame catalog loaded: {len(self._frames)} templates")

    def __len__(self) -> int:
        return len(self._frames)

    def __contains__(self, frame_id: str) -> bool:
        return frame_id in self._frames

    def list(self) -> list[TemplateFrame]:
        return list(self._frames.values())

    def get(self, frame_id: str) -> TemplateFrame | None:
        return self._frames.get(frame_id)


_catalog: FrameCatalog | None = None


def get_frame_catalog() -> FrameCatalog:
    """Get the global built-in catalog."""
    global _catalog
    if _catalog is None:
        _catalog = FrameCatalog()
    return _catalog
