"""
Strip Compositor

Lays frame art, four captured photos and branding onto a fixed
1200x3600 canvas and encodes the result as JPEG.

Order is fixed: white background, frame art, photos 0..3 in capture order,
branding. Every decode is awaited before the next one starts.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from io import BytesIO
from typing import Callable

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from snapbooth.errors import CompositionFailed
from snapbooth.frames.frame import DEFAULT_SLOT_GEOMETRY, FrameKind, FrameSelection, SlotGeometry
from snapbooth.imaging.frame_art import decode_frame_art, load_frame_bytes

logger = logging.getLogger(__name__)

STRIP_WIDTH = 1200
STRIP_HEIGHT = 3600
STRIP_PHOTOS = 4

BRAND_FONT_SIZE = 72
DATE_FONT_SIZE = 36
BRAND_BASELINE_Y = 3320
DATE_BASELINE_Y = 3380
DATE_FORMAT = "%m/%d/%Y"

PhotoSource = np.ndarray | Image.Image | bytes


@dataclass(frozen=True)
class Placement:
    """Where a photo is drawn and the slot rectangle it is clipped to."""

    x: float
    y: float
    width: float
    height: float
    clip: tuple[int, int, int, int]  # x, y, width, height


def compute_placement(image_size: tuple[int, int], slot: SlotGeometry, index: int) -> Placement:
    """
    Cover-fit an image into slot ``index``.

    Wider than the slot: fit to slot height, centre horizontally.
    Otherwise: fit to slot width, centre vertically. Overflow is clipped.
    """
    img_w, img_h = image_size
    if img_w <= 0 or img_h <= 0:
        raise ValueError(f"invalid image size {image_size}")

    top = slot.slot_top(index)
    img_aspect = img_w / img_h

    if img_aspect > slot.aspect_ratio:
        draw_h = float(slot.height)
        draw_w = draw_h * img_aspect
        x = slot.x + (slot.width - draw_w) / 2
        y = float(top)
    else:
        draw_w = float(slot.width)
        draw_h = draw_w / img_aspect
        x = float(slot.x)
        y = top + (slot.height - draw_h) / 2

    return Placement(x=x, y=y, width=draw_w, height=draw_h, clip=(slot.x, top, slot.width, slot.height))


@dataclass(frozen=True)
class PhotoStrip:
    """An encoded strip. Never mutated after encoding."""

    jpeg: bytes = field(repr=False)
    geometry: SlotGeometry
    frame_ref: str | None
    branding: tuple[str, ...] | None
    photos_drawn: int
    created_at: datetime = field(default_factory=datetime.now)
    width: int = STRIP_WIDTH
    height: int = STRIP_HEIGHT

    @property
    def branded(self) -> bool:
        return self.branding is not None

    def to_image(self) -> Image.Image:
        return Image.open(BytesIO(self.jpeg))

    def to_dict(self) -> dict:
        return {
            "width": self.width,
            "height": self.height,
            "size_bytes": len(self.jpeg),
            "geometry": self.geometry.to_dict(),
            "frame_ref": self.frame_ref,
            "branding": list(self.branding) if self.branding else None,
            "photos_drawn": self.photos_drawn,
            "created_at": self.created_at.isoformat(),
        }


class StripCompositor:
    """Composes four photos and frame art into a 1200x3600 strip."""

    def __init__(
        self,
        brand_name: str = "SnapTogether",
        jpeg_quality: int = 95,
        font_path: str | None = None,
        bold_font_path: str | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.brand_name = brand_name
        self.jpeg_quality = jpeg_quality
        self.font_path = font_path
        self.bold_font_path = bold_font_path
        self._clock = clock
        self._fonts: dict[tuple[str | None, int], ImageFont.FreeTypeFont | ImageFont.ImageFont] = {}
        self._last_strip: PhotoStrip | None = None

    @property
    def last_strip(self) -> PhotoStrip | None:
        """Most recent successful strip."""
        return self._last_strip

    async def compose(self, selection: FrameSelection | None, images: list[PhotoSource]) -> PhotoStrip:
        """
        Compose a strip.

        Args:
            selection: Active frame (None for no frame art)
            images: Captured photos in capture order

        Returns:
            The encoded PhotoStrip

        Raises:
            CompositionFailed: Fewer than four photos, or the canvas could
                not be allocated or encoded
        """
        if images is None or len(images) < STRIP_PHOTOS:
            count = 0 if images is None else len(images)
            raise CompositionFailed(f"not enough photos to create a strip ({count}/{STRIP_PHOTOS})")
        if len(images) > STRIP_PHOTOS:
            logger.warning(f"{len(images)} photos given, using the first {STRIP_PHOTOS}")
            images = list(images)[:STRIP_PHOTOS]

        try:
            canvas = Image.new("RGB", (STRIP_WIDTH, STRIP_HEIGHT), "white")
        except (MemoryError, ValueError) as e:
            raise CompositionFailed(f"could not allocate strip canvas: {e}") from e

        loop = asyncio.get_running_loop()

        if selection is not None:
            await self._draw_frame_art(loop, canvas, selection)

        geometry = (selection.slot if selection is not None else None) or DEFAULT_SLOT_GEOMETRY

        drawn = 0
        for index, source in enumerate(images):
            try:
                photo = await loop.run_in_executor(None, _decode_photo, source)
                self._draw_photo(canvas, photo, geometry, index)
                drawn += 1
            except Exception as e:
                logger.error(f"Error drawing photo {index}: {e}")

        branding = None
        if selection is None or not selection.is_custom:
            branding = self._draw_branding(canvas)

        try:
            buf = BytesIO()
            canvas.save(buf, "JPEG", quality=self.jpeg_quality)
        except Exception as e:
            raise CompositionFailed(f"could not encode strip: {e}") from e

        strip = PhotoStrip(
            jpeg=buf.getvalue(),
            geometry=geometry,
            frame_ref=selection.ref if selection is not None else None,
            branding=branding,
            photos_drawn=drawn,
            created_at=self._clock(),
        )
        self._last_strip = strip
        logger.info(
            f"Strip composed: {STRIP_WIDTH}x{STRIP_HEIGHT}, photos={drawn}, "
            f"frame={strip.frame_ref}, branded={strip.branded}, {len(strip.jpeg)} bytes"
        )
        return strip

    async def _draw_frame_art(self, loop, canvas: Image.Image, selection: FrameSelection) -> None:
        """Draw frame art. Any failure is logged and the strip continues without it."""
        try:
            data = await loop.run_in_executor(None, load_frame_bytes, selection)
            if selection.kind is FrameKind.VECTOR:
                art = await loop.run_in_executor(None, decode_frame_art, data, canvas.size)
                art = art.resize(canvas.size, Image.Resampling.LANCZOS)
                canvas.paste(art, (0, 0), art)
            else:
                art = await loop.run_in_executor(None, decode_frame_art, data, None)
                scale = min(canvas.width / art.width, canvas.height / art.height)
                size = (max(1, round(art.width * scale)), max(1, round(art.height * scale)))
                art = art.resize(size, Image.Resampling.LANCZOS)
                offset = ((canvas.width - size[0]) // 2, (canvas.height - size[1]) // 2)
                canvas.paste(art, offset, art)
        except Exception as e:
            logger.warning(f"Error loading frame {selection.ref}: {e} - continuing without frame art")

    @staticmethod
    def _draw_photo(canvas: Image.Image, photo: Image.Image, slot: SlotGeometry, index: int) -> None:
        placement = compute_placement(photo.size, slot, index)
        clip_x, clip_y, clip_w, clip_h = placement.clip

        size = (max(1, round(placement.width)), max(1, round(placement.height)))
        resized = photo.resize(size, Image.Resampling.LANCZOS)

        # Slot-sized tile: pasting at a negative offset crops the overflow
        tile = Image.new("RGBA", (clip_w, clip_h), (0, 0, 0, 0))
        tile.paste(resized, (round(placement.x - clip_x), round(placement.y - clip_y)))
        canvas.paste(tile, (clip_x, clip_y), tile)

    def _get_font(self, path: str | None, size: int) -> "ImageFont.FreeTypeFont | ImageFont.ImageFont":
        """Get a font with caching and fallback to Pillow's default."""
        key = (path, size)
        if key in self._fonts:
            return self._fonts[key]
        try:
            if not path:
                raise OSError("no font path")
            font = ImageFont.truetype(path, size)
        except (OSError, IOError):
            logger.debug(f"Font {path} not found, using PIL default font")
            font = ImageFont.load_default(size=size)
        self._fonts[key] = font
        return font

    def _draw_branding(self, canvas: Image.Image) -> tuple[str, ...] | None:
        date_text = self._clock().strftime(DATE_FORMAT)
        try:
            draw = ImageDraw.Draw(canvas)
            center_x = canvas.width // 2
            draw.text(
                (center_x, BRAND_BASELINE_Y),
                self.brand_name,
                fill="black",
                font=self._get_font(self.bold_font_path, BRAND_FONT_SIZE),
                anchor="ms",
            )
            draw.text(
                (center_x, DATE_BASELINE_Y),
                date_text,
                fill="black",
                font=self._get_font(self.font_path, DATE_FONT_SIZE),
                anchor="ms",
            )
        except Exception as e:
            logger.warning(f"Error drawing branding: {e}")
            return None
        return (self.brand_name, date_text)


def _decode_photo(source: PhotoSource) -> Image.Image:
    """Decode a captured photo into an RGBA image."""
    if isinstance(source, Image.Image):
        return source.convert("RGBA")
    if isinstance(source, np.ndarray):
        if source.ndim != 3 or source.shape[-1] not in (3, 4):
            raise ValueError(f"unsupported photo buffer shape {source.shape}")
        return Image.fromarray(source.astype(np.uint8, copy=False)).convert("RGBA")
    if isinstance(source, (bytes, bytearray)):
        img = Image.open(BytesIO(source))
        img.load()
        return img.convert("RGBA")
    raise TypeError(f"unsupported photo source {type(source).__name__}")


# Factory function
def _create_default_compositor() -> StripCompositor:
    """Create a compositor from config."""
    from snapbooth.config import strip_config

    return StripCompositor(
        brand_name=strip_config.brand_name,
        jpeg_quality=strip_config.jpeg_quality,
        font_path=strip_config.font_path,
        bold_font_path=strip_config.bold_font_path,
    )


# Global instance (lazy)
_compositor_instance: StripCompositor | None = None


def get_strip_compositor() -> StripCompositor:
    """Get or create the global compositor."""
    global _compositor_instance
    if _compositor_instance is None:
        _compositor_instance = _create_default_compositor()
    return _compositor_instance
