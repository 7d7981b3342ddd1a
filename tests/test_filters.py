"""
Tests for the per-pixel filter engine.
"""

import numpy as np
import pytest

from snapbooth.imaging.filters import FilterKind, apply_filter, rgb_to_rgba


def _pixel(r, g, b, a=255):
    return np.array([[r, g, b, a]], dtype=np.uint8)


class TestFilterKind:
    """Tests for filter name parsing."""

    def test_parse_names(self):
        assert FilterKind.parse("sepia") is FilterKind.SEPIA
        assert FilterKind.parse(" Blueprint ") is FilterKind.BLUEPRINT
        assert FilterKind.parse(None) is FilterKind.NONE
        assert FilterKind.parse(FilterKind.INVERT) is FilterKind.INVERT

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            FilterKind.parse("lomo")


class TestApplyFilter:
    """Tests for the colour transforms."""

    @pytest.mark.parametrize("kind", list(FilterKind))
    def test_shape_and_alpha_preserved(self, sample_rgba, kind):
        out = apply_filter(sample_rgba, kind)
        assert out.shape == sample_rgba.shape
        assert out.dtype == np.uint8
        np.testing.assert_array_equal(out[..., 3], sample_rgba[..., 3])

    def test_none_returns_same_buffer(self, sample_rgba):
        assert apply_filter(sample_rgba, FilterKind.NONE) is sample_rgba

    def test_input_not_mutated(self, sample_rgba):
        before = sample_rgba.copy()
        apply_filter(sample_rgba, FilterKind.SEPIA)
        np.testing.assert_array_equal(sample_rgba, before)

    def test_grayscale(self):
        out = apply_filter(_pixel(10, 20, 60), FilterKind.GRAYSCALE)
        assert out[0].tolist() == [30, 30, 30, 255]

    def test_grayscale_rounds_to_nearest(self):
        # mean(1, 2, 2) = 1.666..., mean(0, 0, 1) = 0.333...
        assert apply_filter(_pixel(1, 2, 2), FilterKind.GRAYSCALE)[0, 0] == 2
        assert apply_filter(_pixel(0, 0, 1), FilterKind.GRAYSCALE)[0, 0] == 0

    def test_sepia_clamps(self):
        out = apply_filter(_pixel(255, 255, 255), FilterKind.SEPIA)
        # 0.272+0.534+0.131 = 0.937 -> 238.935
        assert out[0].tolist() == [255, 255, 239, 255]

    def test_sepia_values(self):
        out = apply_filter(_pixel(100, 50, 20), FilterKind.SEPIA)
        # R: 39.3+38.45+3.78=81.53  G: 34.9+34.3+3.36=72.56  B: 27.2+26.7+2.62=56.52
        assert out[0].tolist() == [82, 73, 57, 255]

    def test_invert(self):
        out = apply_filter(_pixel(0, 100, 255, 7), FilterKind.INVERT)
        assert out[0].tolist() == [255, 155, 0, 7]

    def test_invert_round_trip(self, sample_rgba):
        twice = apply_filter(apply_filter(sample_rgba, FilterKind.INVERT), FilterKind.INVERT)
        np.testing.assert_array_equal(twice, sample_rgba)

    def test_vintage(self):
        out = apply_filter(_pixel(255, 100, 0), FilterKind.VINTAGE)
        # R: 229.5+40 -> 270 clamps, G: 70+20, B: 0+10
        assert out[0].tolist() == [255, 90, 10, 255]

    def test_blueprint(self):
        out = apply_filter(_pixel(30, 60, 90), FilterKind.BLUEPRINT)
        # avg 60: G=24, B=72
        assert out[0].tolist() == [0, 24, 72, 255]

    def test_blueprint_caps_blue(self):
        out = apply_filter(_pixel(250, 250, 250), FilterKind.BLUEPRINT)
        assert out[0].tolist() == [0, 100, 255, 255]

    @pytest.mark.parametrize("kind", [k for k in FilterKind if k is not FilterKind.NONE])
    def test_output_within_range_on_extremes(self, kind):
        buf = np.array(
            [[0, 0, 0, 0], [255, 255, 255, 255], [255, 0, 0, 128], [0, 255, 255, 1]],
            dtype=np.uint8,
        )
        out = apply_filter(buf, kind)
        assert out.min() >= 0 and out.max() <= 255
        np.testing.assert_array_equal(out[:, 3], buf[:, 3])

    def test_rejects_rgb_buffer(self):
        with pytest.raises(ValueError):
            apply_filter(np.zeros((4, 4, 3), dtype=np.uint8), FilterKind.SEPIA)


class TestRgbToRgba:
    """Tests for alpha channel insertion."""

    def test_adds_opaque_alpha(self):
        rgb = np.full((2, 3, 3), 9, dtype=np.uint8)
        rgba = rgb_to_rgba(rgb)
        assert rgba.shape == (2, 3, 4)
        assert (rgba[..., 3] == 255).all()

    def test_passes_rgba_through(self, sample_rgba):
        assert rgb_to_rgba(sample_rgba) is sample_rgba

    def test_rejects_grayscale(self):
        with pytest.raises(ValueError):
            rgb_to_rgba(np.zeros((4, 4), dtype=np.uint8))
