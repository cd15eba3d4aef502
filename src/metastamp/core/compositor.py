"""Overlay compositing of the timestamp text onto an image.

Layer order, bottom to top:

1. the source image, unscaled
2. the shadow, cast by the stroke band only
3. the stroke band, ``stroke_width`` wide and centred on the glyph outline
4. the text fill

The fill never casts a shadow of its own, so there is exactly one shadow
silhouette whatever the stroke width. Without a stroke there is no shadow.
"""

import math
from dataclasses import dataclass
from typing import Optional, Tuple

from PIL import Image, ImageChops, ImageDraw, ImageFilter

from .exceptions import with_error_handling
from .image_utils import (
    RGBA,
    Font,
    encode_image,
    load_font,
    measure_text_width,
    parse_color,
)
from .models import Position, RenderedOutput, StyleConfig
from .outputs import OutputRegistry

MIN_FONT_SIZE = 24
FONT_SIZE_WIDTH_RATIO = 10
DEFAULT_QUALITY = 95

# "left, descender": y is the bottom of the text line.
TEXT_ANCHOR = "ld"


@dataclass(frozen=True)
class TextLayout:
    """Where and how large the stamp is drawn."""

    font_size: float
    text_width: float
    x: float
    y: float


def effective_font_size(requested: float, surface_width: int) -> float:
    """Clamp the configured size to ``[24, width / 10]``; the lower bound wins."""
    return max(min(requested, surface_width / FONT_SIZE_WIDTH_RATIO), MIN_FONT_SIZE)


def compute_anchor(
    position: Position,
    surface_width: int,
    surface_height: int,
    text_width: float,
    font_size: float,
    offset_x: float,
    offset_y: float,
) -> Tuple[float, float]:
    """Anchor point for the text, offsets measured inward from the corner."""
    position = Position(position)
    if position.is_right:
        x = surface_width - text_width - offset_x
    else:
        x = offset_x

    if position.is_bottom:
        y = surface_height - offset_y
    else:
        # Push the line down by one text height so it sits inside the frame
        y = font_size + offset_y
    return x, y


def compute_layout(
    text: str,
    style: StyleConfig,
    surface_size: Tuple[int, int],
    font: Optional[Font] = None,
) -> TextLayout:
    """Font size, measured width and anchor for ``text`` on a surface."""
    width, height = surface_size
    font_size = effective_font_size(style.font_size, width)
    if font is None:
        font = load_font(style.font_family, font_size)
    text_width = measure_text_width(text, font)
    x, y = compute_anchor(
        style.position, width, height, text_width, font_size, style.offset_x, style.offset_y
    )
    return TextLayout(font_size=font_size, text_width=text_width, x=x, y=y)


def _text_mask(
    size: Tuple[int, int], text: str, font: Font, xy: Tuple[float, float], stroke: int = 0
) -> Image.Image:
    mask = Image.new("L", size, 0)
    ImageDraw.Draw(mask).text(
        xy, text, fill=255, font=font, anchor=TEXT_ANCHOR, stroke_width=stroke, stroke_fill=255
    )
    return mask


def stroke_extents(stroke_width: float) -> Tuple[int, int]:
    """
    Split a stroke width into whole pixels grown outward and eroded inward.

    Widths are rounded to whole pixels, at least one. An odd width puts the
    extra pixel outside the glyph, so a width of 1 is a 1px outer ring.
    """
    total = max(1, int(round(stroke_width)))
    outward = (total + 1) // 2
    return outward, total - outward


def stroke_band_mask(
    size: Tuple[int, int], text: str, font: Font, xy: Tuple[float, float], stroke_width: float
) -> Image.Image:
    """
    Mask of an outline ``stroke_width`` wide centred on the glyph edges.

    Part of the width grows outward (FreeType stroker, round joins) and the
    rest eats inward (erosion of the plain glyph); see ``stroke_extents``.
    """
    outward, inward = stroke_extents(stroke_width)
    outer = _text_mask(size, text, font, xy, stroke=outward)
    inner = _text_mask(size, text, font, xy)
    if inward:
        inner = inner.filter(ImageFilter.MinFilter(2 * inward + 1))
    return ImageChops.subtract(outer, inner)


def shadow_mask(
    band: Image.Image, offset_x: float, offset_y: float, blur: float
) -> Image.Image:
    """Offset and blur a stroke band into its shadow (blur radius ``blur / 2``)."""
    shadow = Image.new("L", band.size, 0)
    shadow.paste(band, (int(round(offset_x)), int(round(offset_y))))
    if blur > 0:
        shadow = shadow.filter(ImageFilter.GaussianBlur(blur / 2))
    return shadow


def _paint(surface: Image.Image, mask: Image.Image, color: RGBA) -> None:
    """Alpha-composite a solid ``color`` through ``mask`` onto ``surface`` in place."""
    alpha = color[3]
    if alpha == 0:
        return
    if alpha < 255:
        mask = mask.point(lambda v: int(math.floor(v * alpha / 255 + 0.5)))
    layer = Image.new("RGBA", surface.size, color[:3] + (0,))
    layer.putalpha(mask)
    surface.alpha_composite(layer)


def _text_region(
    text: str, font: Font, anchor: Tuple[float, float], stroke: int, pad: int
) -> Tuple[int, int, int, int]:
    probe = ImageDraw.Draw(Image.new("L", (1, 1)))
    left, top, right, bottom = probe.textbbox(
        anchor, text, font=font, anchor=TEXT_ANCHOR, stroke_width=stroke
    )
    return (
        math.floor(left) - pad,
        math.floor(top) - pad,
        math.ceil(right) + pad,
        math.ceil(bottom) + pad,
    )


def render_overlay(image: Image.Image, text: str, style: StyleConfig) -> Image.Image:
    """
    Draw ``text`` onto a copy of ``image`` following ``style``.

    Masks are built only for the text's bounding region (grown by the
    stroke, shadow offset and blur) and the layered result is composited
    into the surface, clipped to its bounds.

    Args:
        image: Decoded source surface, left untouched
        text: Display string
        style: Stamp style

    Returns:
        RGBA working surface at the source's native size
    """
    surface = image.convert("RGBA")

    font_size = effective_font_size(style.font_size, surface.width)
    font = load_font(style.font_family, font_size)
    layout = compute_layout(text, style, surface.size, font=font)

    stroked = style.stroke_width > 0
    shadowed = stroked and style.shadow_enabled
    outward = stroke_extents(style.stroke_width)[0] if stroked else 0
    pad = 2
    if shadowed:
        pad += int(math.ceil(max(abs(style.shadow_offset_x), abs(style.shadow_offset_y))))
        pad += int(math.ceil(style.shadow_blur * 1.5))

    left, top, right, bottom = _text_region(
        text, font, (layout.x, layout.y), outward, pad
    )
    tile = Image.new("RGBA", (max(right - left, 1), max(bottom - top, 1)), (0, 0, 0, 0))
    anchor = (layout.x - left, layout.y - top)

    if stroked:
        band = stroke_band_mask(tile.size, text, font, anchor, style.stroke_width)
        if shadowed:
            _paint(
                tile,
                shadow_mask(band, style.shadow_offset_x, style.shadow_offset_y, style.shadow_blur),
                parse_color(style.shadow_color),
            )
        _paint(tile, band, parse_color(style.stroke_color))

    _paint(tile, _text_mask(tile.size, text, font, anchor), parse_color(style.font_color))

    # Clip the tile to the surface before compositing
    dest_left, dest_top = max(left, 0), max(top, 0)
    dest_right, dest_bottom = min(right, surface.width), min(bottom, surface.height)
    if dest_right > dest_left and dest_bottom > dest_top:
        visible = tile.crop(
            (dest_left - left, dest_top - top, dest_right - left, dest_bottom - top)
        )
        surface.alpha_composite(visible, dest=(dest_left, dest_top))
    return surface


@with_error_handling
def composite(
    image: Image.Image,
    text: str,
    style: StyleConfig,
    registry: OutputRegistry,
    output_format: str = "JPEG",
    quality: int = DEFAULT_QUALITY,
) -> RenderedOutput:
    """
    Render the stamp and encode the result.

    Returns:
        The encoded blob plus a handle minted from ``registry``

    Raises:
        ImageEncodeError: If the surface cannot be serialized
        RenderError: For any other drawing failure
    """
    surface = render_overlay(image, text, style)
    output_format = output_format.upper()
    data = encode_image(surface, output_format, quality)
    handle = registry.mint(data, output_format)
    return RenderedOutput(
        data=data,
        handle=handle,
        format=output_format,
        width=surface.width,
        height=surface.height,
    )
