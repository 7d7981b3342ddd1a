"""
Frame art loading.

Resolves a frame selection to image bytes (packaged template file, data URL,
or stored custom bytes) and decodes them with Pillow. SVG art is rasterised
with CairoSVG when it is installed; without it SVG art cannot be drawn and
the compositor proceeds without frame art.
"""

import base64
import binascii
import logging
from io import BytesIO
from pathlib import Path
from urllib.parse import unquote_to_bytes

from PIL import Image

from snapbooth.config import ASSETS_DIR
from snapbooth.frames.frame import CustomFrame, FrameSelection, is_svg

logger = logging.getLogger(__name__)

try:
    import cairosvg

    CAIROSVG_AVAILABLE = True
except (ImportError, OSError):
    # OSError: the package is installed but libcairo is missing
    CAIROSVG_AVAILABLE = False
    logger.warning("cairosvg not available - SVG frame art will be skipped")

TEMPLATE_DIR = ASSETS_DIR / "frames"


class FrameArtError(Exception):
    """Frame art could not be loaded or decoded."""


def decode_data_url(url: str) -> bytes:
    """Decode a ``data:<mime>[;base64],<payload>`` URL."""
    header, sep, payload = url.partition(",")
    if not header.startswith("data:") or not sep:
        raise FrameArtError("malformed data URL")
    if header.endswith(";base64"):
        try:
            return base64.b64decode(payload, validate=False)
        except (binascii.Error, ValueError) as e:
            raise FrameArtError(f"invalid base64 payload: {e}") from e
    return unquote_to_bytes(payload)


def load_frame_bytes(selection: FrameSelection) -> bytes:
    """Get the raw art bytes for a selection."""
    if isinstance(selection, CustomFrame):
        return selection.data

    ref = selection.image_ref
    if ref.startswith("data:"):
        return decode_data_url(ref)

    path = Path(ref)
    if not path.is_absolute():
        path = TEMPLATE_DIR / path
    try:
        return path.read_bytes()
    except OSError as e:
        raise FrameArtError(f"cannot read frame art {path}: {e}") from e


def decode_frame_art(data: bytes, render_size: tuple[int, int] | None = None) -> Image.Image:
    """
    Decode art bytes to an RGBA image.

    Args:
        data: SVG or bitmap bytes
        render_size: Output size for SVG rasterisation (natural size if None)

    Raises:
        FrameArtError: If the art cannot be decoded
    """
    if is_svg(data):
        if not CAIROSVG_AVAILABLE:
            raise FrameArtError("SVG frame art requires cairosvg")
        kwargs = {}
        if render_size:
            kwargs = {"output_width": render_size[0], "output_height": render_size[1]}
        try:
            data = cairosvg.svg2png(bytestring=data, **kwargs)
        except Exception as e:
            raise FrameArtError(f"SVG rasterisation failed: {e}") from e

    try:
        img = Image.open(BytesIO(data))
        img.load()
    except Exception as e:
        raise FrameArtError(f"cannot decode frame art: {e}") from e
    return img.convert("RGBA")
