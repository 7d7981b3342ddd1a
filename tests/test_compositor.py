"""
Tests for strip layout, branding and encoding.
"""

import asyncio

import numpy as np
import pytest

from snapbooth.errors import CompositionFailed
from snapbooth.frames.frame import DEFAULT_SLOT_GEOMETRY, CustomFrame, SlotGeometry, TemplateFrame
from snapbooth.imaging.compositor import STRIP_HEIGHT, STRIP_WIDTH, compute_placement

# Rows covering the brand name glyphs (baseline 3320, 72px)
BRAND_ROWS = slice(3265, 3325)


def _compose(compositor, selection, images):
    return asyncio.run(compositor.compose(selection, images))


class TestComputePlacement:
    """Tests for cover-fit geometry."""

    def test_wider_image_fits_height(self):
        slot = SlotGeometry(x=100, y=80, width=1000, height=700, spacing=760)
        p = compute_placement((1600, 900), slot, 0)
        assert p.height == 700
        assert p.width == pytest.approx(700 * 16 / 9)
        assert p.y == 80
        assert p.x == pytest.approx(100 + (1000 - p.width) / 2)
        assert p.clip == (100, 80, 1000, 700)

    def test_taller_image_fits_width(self):
        slot = DEFAULT_SLOT_GEOMETRY
        p = compute_placement((640, 480), slot, 2)
        assert p.width == 1000
        assert p.height == pytest.approx(750)
        assert p.x == 100
        top = 80 + 2 * 760
        assert p.y == pytest.approx(top - 25)
        assert p.clip == (100, top, 1000, 700)

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            compute_placement((0, 10), DEFAULT_SLOT_GEOMETRY, 0)


class TestCompose:
    """Tests for strip composition."""

    def test_strip_dimensions_and_jpeg(self, compositor, template_frame, photo_images):
        strip = _compose(compositor, template_frame, photo_images)
        assert strip.jpeg[:2] == b"\xff\xd8"
        img = strip.to_image()
        assert img.size == (STRIP_WIDTH, STRIP_HEIGHT)
        assert img.format == "JPEG"
        assert strip.photos_drawn == 4
        assert strip.frame_ref == "template:classic"
        assert strip.geometry == template_frame.slot

    def test_photos_drawn_in_order_and_clipped(self, compositor, photo_images):
        strip = _compose(compositor, None, photo_images)
        pixels = np.asarray(strip.to_image().convert("RGB")).astype(int)
        geom = DEFAULT_SLOT_GEOMETRY
        expected = [(255, 0, 0), (0, 255, 0), (0, 0, 255), (255, 255, 0)]
        for i, color in enumerate(expected):
            cy = geom.slot_top(i) + geom.height // 2
            cx = geom.x + geom.width // 2
            assert np.abs(pixels[cy, cx] - color).max() < 12
            # Overflow above and below the slot is clipped
            gap_y = geom.slot_top(i) + geom.height + 20
            assert pixels[gap_y, cx].min() > 240
        # Left margin untouched
        assert pixels[400, 40].min() > 240

    def test_mixed_aspect_ratios_cover_and_clip(self, compositor):
        # (width, height): wide, tall, square, 4:3
        sizes = [(1600, 400), (400, 1600), (800, 800), (640, 480)]
        colors = [(255, 0, 0), (0, 255, 0), (0, 0, 255), (255, 255, 0)]
        images = []
        for (w, h), color in zip(sizes, colors):
            img = np.empty((h, w, 4), dtype=np.uint8)
            img[...] = (*color, 255)
            images.append(img)

        strip = _compose(compositor, None, images)
        assert strip.photos_drawn == 4
        pixels = np.asarray(strip.to_image().convert("RGB")).astype(int)
        geom = DEFAULT_SLOT_GEOMETRY
        left, right = geom.x, geom.x + geom.width
        for i, color in enumerate(colors):
            top = geom.slot_top(i)
            cy = top + geom.height // 2
            # Slot covered edge to edge (sampled clear of JPEG edge blocks)
            for cx in (left + 12, left + geom.width // 2, right - 13):
                assert np.abs(pixels[cy, cx] - color).max() < 12
            assert np.abs(pixels[top + 12, left + geom.width // 2] - color).max() < 12
            # Horizontal and vertical overflow clipped at the slot bounds
            assert pixels[cy, left - 10].min() > 240
            assert pixels[cy, right + 10].min() > 240
            assert pixels[top + geom.height + 20, left + geom.width // 2].min() > 240

    def test_uses_default_geometry_without_slot(self, compositor, photo_images):
        minimal = TemplateFrame(id="plain", name="Plain", image_ref="missing.svg")
        strip = _compose(compositor, minimal, photo_images)
        assert strip.geometry == DEFAULT_SLOT_GEOMETRY

    def test_missing_frame_art_is_skipped(self, compositor, photo_images):
        broken = TemplateFrame(id="gone", name="Gone", image_ref="does-not-exist.svg")
        strip = _compose(compositor, broken, photo_images)
        assert strip.photos_drawn == 4

    def test_undecodable_photo_is_skipped(self, compositor, photo_images):
        images = list(photo_images)
        images[1] = b"not an image"
        strip = _compose(compositor, None, images)
        assert strip.photos_drawn == 3

    def test_extra_photos_ignored(self, compositor, photo_images):
        strip = _compose(compositor, None, photo_images + [photo_images[0]])
        assert strip.photos_drawn == 4


class TestBranding:
    """Branding only appears without a custom frame."""

    def test_branding_without_frame(self, compositor, photo_images):
        strip = _compose(compositor, None, photo_images)
        assert strip.branding == ("SnapTogether", "01/24/2026")
        pixels = np.asarray(strip.to_image().convert("L"))
        assert pixels[BRAND_ROWS].min() < 100

    def test_branding_with_template(self, compositor, template_frame, photo_images):
        strip = _compose(compositor, template_frame, photo_images)
        assert strip.branded
        pixels = np.asarray(strip.to_image().convert("L"))
        assert pixels[BRAND_ROWS].min() < 100

    def test_no_branding_with_custom_frame(self, compositor, white_png_frame, photo_images):
        custom = CustomFrame.create(white_png_frame, name="White")
        strip = _compose(compositor, custom, photo_images)
        assert strip.branding is None
        assert not strip.branded
        assert strip.frame_ref == custom.ref
        pixels = np.asarray(strip.to_image().convert("L"))
        assert pixels[3200:3450].min() > 230


class TestFailure:
    """Composition failures leave the previous strip alone."""

    def test_fewer_than_four_images(self, compositor, photo_images):
        with pytest.raises(CompositionFailed):
            _compose(compositor, None, photo_images[:3])
        assert compositor.last_strip is None

    def test_previous_strip_kept(self, compositor, photo_images):
        first = _compose(compositor, None, photo_images)
        with pytest.raises(CompositionFailed):
            _compose(compositor, None, photo_images[:2])
        assert compositor.last_strip is first
