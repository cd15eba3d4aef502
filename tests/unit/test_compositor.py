"""Tests for timestamp overlay compositing."""

import io
from unittest.mock import patch

import pytest
from PIL import Image, ImageChops

from metastamp.core.compositor import (
    MIN_FONT_SIZE,
    composite,
    compute_anchor,
    compute_layout,
    effective_font_size,
    render_overlay,
    shadow_mask,
    stroke_band_mask,
    stroke_extents,
)
from metastamp.core.exceptions import ConfigurationError, RenderError
from metastamp.core.image_utils import load_font, measure_text_width
from metastamp.core.models import Position, StyleConfig
from metastamp.core.outputs import OutputRegistry

TEXT = "2024-01-18 14:30:45"


@pytest.fixture
def registry(tmp_path):
    with OutputRegistry(tmp_path / "outputs") as registry:
        yield registry


def _is_unchanged(before: Image.Image, after: Image.Image) -> bool:
    # Allow one level of rounding from alpha compositing
    diff = ImageChops.difference(before.convert("RGBA"), after)
    return all(high <= 1 for _, high in diff.getextrema())


def _coverage(mask: Image.Image) -> int:
    return sum(1 for value in mask.getdata() if value)


class TestEffectiveFontSize:
    """Tests for font size clamping."""

    def test_lower_bound_wins_on_narrow_images(self):
        assert effective_font_size(500, 240) == MIN_FONT_SIZE

    def test_requested_size_kept_on_wide_images(self):
        assert effective_font_size(120, 2000) == 120

    def test_capped_at_a_tenth_of_the_width(self):
        assert effective_font_size(120, 1000) == 100

    def test_tiny_request_raised_to_minimum(self):
        assert effective_font_size(10, 5000) == MIN_FONT_SIZE


class TestComputeAnchor:
    """Tests for corner placement."""

    def test_bottom_right(self):
        x, y = compute_anchor(Position.BOTTOM_RIGHT, 1000, 1000, 300, 100, 20, 20)
        assert (x, y) == (1000 - 300 - 20, 980)

    def test_bottom_left(self):
        assert compute_anchor(Position.BOTTOM_LEFT, 1000, 800, 300, 100, 20, 30) == (20, 770)

    def test_top_left_is_pushed_down_by_font_size(self):
        assert compute_anchor(Position.TOP_LEFT, 1000, 800, 300, 100, 20, 30) == (20, 130)

    def test_top_right(self):
        assert compute_anchor(Position.TOP_RIGHT, 1000, 800, 300, 100, 0, 0) == (700, 100)

    def test_accepts_position_value(self):
        assert compute_anchor("bottomRight", 100, 100, 10, 24, 5, 5) == (85, 95)


class TestComputeLayout:
    """Tests for compute_layout function."""

    def test_bottom_right_placement_uses_measured_width(self):
        layout = compute_layout(TEXT, StyleConfig(), (1000, 1000))
        font = load_font("Inter", 100)
        assert layout.font_size == 100
        assert layout.text_width == measure_text_width(TEXT, font)
        assert layout.x == 1000 - layout.text_width - 20
        assert layout.y == 980

    def test_narrow_image_uses_minimum_font(self):
        layout = compute_layout(TEXT, StyleConfig(font_size=500), (240, 240))
        assert layout.font_size == MIN_FONT_SIZE


class TestMasks:
    """Tests for stroke and shadow masks."""

    def test_stroke_band_mask_has_coverage(self):
        font = load_font("Inter", 40)
        band = stroke_band_mask((400, 100), "88", font, (10, 80), 6)
        assert band.mode == "L"
        assert band.getbbox() is not None

    def test_stroke_extents(self):
        assert stroke_extents(1) == (1, 0)
        assert stroke_extents(2) == (1, 1)
        assert stroke_extents(5) == (3, 2)
        assert stroke_extents(0.4) == (1, 0)
        assert stroke_extents(2.6) == (2, 1)

    def test_unit_stroke_is_a_single_outer_ring(self):
        font = load_font("Inter", 40)
        thin = stroke_band_mask((400, 100), "88", font, (10, 80), 1)
        wider = stroke_band_mask((400, 100), "88", font, (10, 80), 2)
        assert 0 < _coverage(thin) < _coverage(wider)

    def test_shadow_mask_is_offset(self):
        band = Image.new("L", (20, 20), 0)
        band.paste(255, (5, 5, 10, 10))
        shadow = shadow_mask(band, 3, 4, 0)
        assert shadow.getbbox() == (8, 9, 13, 14)

    def test_shadow_mask_blur_spreads(self):
        band = Image.new("L", (40, 40), 0)
        band.paste(255, (15, 15, 25, 25))
        shadow = shadow_mask(band, 0, 0, 8)
        left, top, right, bottom = shadow.getbbox()
        assert left < 15 and top < 15 and right > 25 and bottom > 25


class TestRenderOverlay:
    """Tests for render_overlay function."""

    def test_keeps_native_size_and_leaves_source_untouched(self):
        source = Image.new("RGB", (400, 200), "black")
        surface = render_overlay(source, TEXT, StyleConfig())
        assert surface.size == (400, 200)
        assert surface.mode == "RGBA"
        assert source.getpixel((0, 0)) == (0, 0, 0)
        assert not _is_unchanged(source, surface)

    def test_fill_color_lands_in_the_chosen_corner(self):
        source = Image.new("RGB", (400, 200), "black")
        style = StyleConfig(
            font_color="#FF0000", stroke_width=0, position=Position.BOTTOM_LEFT
        )
        surface = render_overlay(source, TEXT, style)
        bbox = ImageChops.difference(source.convert("RGBA"), surface).getbbox()
        assert bbox is not None
        left, top, right, bottom = bbox
        assert left >= 15
        assert bottom <= 200
        assert top > 100
        red, green, blue, _ = max(surface.crop(bbox).getdata(), key=lambda p: p[0])
        assert red > 200 and green < 60 and blue < 60

    def test_stroke_draws_outline_color(self):
        source = Image.new("RGB", (400, 200), "white")
        style = StyleConfig(font_color="#FFFFFF", stroke_color="#000000", stroke_width=6)
        surface = render_overlay(source, TEXT, style)
        darkest = min(surface.getdata(), key=lambda p: p[0])
        assert darkest[0] < 60

    def test_no_stroke_means_no_shadow(self):
        """Test that the shadow only accompanies the outline."""
        source = Image.new("RGB", (400, 200), "white")
        style = StyleConfig(
            font_color="#FFFFFF",
            stroke_width=0,
            shadow_enabled=True,
            shadow_color="#000000",
            shadow_blur=0,
        )
        assert _is_unchanged(source, render_overlay(source, TEXT, style))

    def test_shadow_changes_output_when_stroked(self):
        source = Image.new("RGB", (400, 200), "white")
        base = StyleConfig(stroke_width=4, shadow_offset_x=6, shadow_offset_y=6)
        plain = render_overlay(source, TEXT, base)
        shadowed = render_overlay(
            source, TEXT, base.model_copy(update={"shadow_enabled": True, "shadow_color": "#0000FF"})
        )
        assert ImageChops.difference(plain, shadowed).getbbox() is not None

    def test_transparent_colors_leave_image_unchanged(self):
        source = Image.new("RGB", (300, 100), "gray")
        style = StyleConfig(font_color="rgba(255, 0, 0, 0)", stroke_color="rgba(0, 0, 0, 0)")
        assert _is_unchanged(source, render_overlay(source, TEXT, style))

    def test_text_outside_the_frame_is_clipped(self):
        source = Image.new("RGB", (300, 100), "gray")
        style = StyleConfig(position=Position.BOTTOM_LEFT, offset_x=5000)
        surface = render_overlay(source, TEXT, style)
        assert surface.size == (300, 100)
        assert _is_unchanged(source, surface)

    def test_top_left_text_stays_near_top(self):
        source = Image.new("RGB", (600, 600), "black")
        style = StyleConfig(position=Position.TOP_LEFT, stroke_width=0, font_color="#FFFFFF")
        surface = render_overlay(source, TEXT, style)
        _, top, _, bottom = ImageChops.difference(source.convert("RGBA"), surface).getbbox()
        assert bottom <= 60 + 20 + 2
        assert top >= 0

    def test_palette_and_grayscale_sources(self):
        for mode in ("L", "P", "RGBA"):
            surface = render_overlay(Image.new(mode, (200, 100)), TEXT, StyleConfig())
            assert surface.mode == "RGBA"


class TestComposite:
    """Tests for composite function."""

    def test_returns_encoded_output_with_live_handle(self, registry):
        output = composite(Image.new("RGB", (320, 240), "blue"), TEXT, StyleConfig(), registry)
        assert output.format == "JPEG"
        assert (output.width, output.height) == (320, 240)
        assert output.handle in registry
        assert registry.read(output.handle) == output.data
        with Image.open(io.BytesIO(output.data)) as reloaded:
            assert reloaded.format == "JPEG"
            assert reloaded.size == (320, 240)

    def test_png_output(self, registry):
        output = composite(
            Image.new("RGB", (320, 240)), TEXT, StyleConfig(), registry, output_format="png"
        )
        assert output.format == "PNG"
        assert output.extension == "png"
        with Image.open(io.BytesIO(output.data)) as reloaded:
            assert reloaded.format == "PNG"

    def test_invalid_color_is_reported_as_configuration_error(self, registry):
        style = StyleConfig(font_color="no-such-color")
        with pytest.raises(ConfigurationError):
            composite(Image.new("RGB", (100, 100)), TEXT, style, registry)
        assert len(registry) == 0

    def test_unexpected_errors_become_render_errors(self, registry):
        with patch(
            "metastamp.core.compositor.render_overlay", side_effect=ValueError("bad surface")
        ):
            with pytest.raises(RenderError, match="bad surface"):
                composite(Image.new("RGB", (100, 100)), TEXT, StyleConfig(), registry)
