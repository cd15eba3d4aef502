"""Image processing utilities for MetaStamp."""

import io
import mimetypes
import re
from functools import lru_cache
from pathlib import PurePath
from typing import Iterator, List, Tuple, Union

from PIL import Image, ImageColor, ImageFont, UnidentifiedImageError

from .exceptions import ConfigurationError, ImageDecodeError, ImageEncodeError
from .logging_config import get_logger

RGBA = Tuple[int, int, int, int]
Font = Union[ImageFont.FreeTypeFont, ImageFont.ImageFont]

IMAGE_EXTENSIONS = (
    ".jpg", ".jpeg", ".png", ".webp", ".tif", ".tiff", ".bmp", ".gif",
    ".heic", ".heif",
)

# Last resorts after the requested family; Pillow searches the system font
# directories for bare file names.
FALLBACK_FONT_FILES = (
    "DejaVuSans-Bold.ttf",
    "LiberationSans-Bold.ttf",
    "Arial Bold.ttf",
    "arialbd.ttf",
)

_CSS_RGBA = re.compile(
    r"^rgba?\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*"
    r"(?:,\s*(\d*\.?\d+)\s*)?\)$",
    re.IGNORECASE,
)


def parse_color(value: str) -> RGBA:
    """
    Parse a CSS-style color into an RGBA tuple.

    Accepts everything ``PIL.ImageColor`` understands plus ``rgba(r, g, b, a)``
    with a fractional alpha between 0 and 1, as used by the default shadow.

    Raises:
        ConfigurationError: If the color cannot be parsed
    """
    text = value.strip()
    match = _CSS_RGBA.match(text)
    if match:
        red, green, blue, alpha = match.groups()
        channels = [min(int(c), 255) for c in (red, green, blue)]
        if alpha is None:
            opacity = 255
        else:
            level = float(alpha)
            # CSS alpha is 0..1; larger values are taken as 0..255
            opacity = round(level * 255) if level <= 1 else min(int(level), 255)
        return (channels[0], channels[1], channels[2], opacity)
    try:
        return ImageColor.getcolor(text, "RGBA")  # type: ignore[return-value]
    except ValueError as exc:
        raise ConfigurationError(f"Invalid color: {value!r}") from exc


def _family_font_files(family: str) -> Iterator[str]:
    compact = family.replace(" ", "")
    for name in dict.fromkeys((compact, family)):
        yield f"{name}-Bold.ttf"
        yield f"{name}-Bold.otf"
        yield f"{name}Bold.ttf"
    for name in dict.fromkeys((compact, family)):
        yield f"{name}.ttf"
        yield f"{name}-Regular.ttf"


@lru_cache(maxsize=64)
def load_font(family: str, size: float) -> Font:
    """
    Load the bold face of ``family`` at ``size`` pixels.

    The chain is: bold file for the family, regular file for the family,
    common bold sans fonts, then Pillow's bundled scalable default font.
    Measuring and drawing must use the same returned object.
    """
    logger = get_logger("fonts")
    for candidate in (*_family_font_files(family), *FALLBACK_FONT_FILES):
        try:
            return ImageFont.truetype(candidate, size)
        except OSError:
            continue
    logger.debug(f"No font file found for family '{family}', using Pillow default")
    return ImageFont.load_default(size=size)


def measure_text_width(text: str, font: Font) -> float:
    """Advance width of ``text`` in pixels (what a canvas ``measureText`` reports)."""
    return float(font.getlength(text))


def decode_image(data: bytes) -> Image.Image:
    """
    Load raw bytes into a Pillow surface.

    Raises:
        ImageDecodeError: If the bytes are not a readable image
    """
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (
        UnidentifiedImageError,
        Image.DecompressionBombError,
        OSError,
        SyntaxError,
        ValueError,
    ) as exc:
        raise ImageDecodeError(f"Could not load image: {exc}") from exc
    return image


def encode_image(surface: Image.Image, format_type: str = "JPEG", quality: int = 95) -> bytes:
    """
    Serialize a surface.

    JPEG output drops the alpha channel; PNG and WEBP keep it.

    Raises:
        ImageEncodeError: If Pillow cannot write the surface
    """
    format_type = format_type.upper()
    if format_type == "JPEG":
        surface = surface.convert("RGB")
    elif surface.mode not in ("RGB", "RGBA"):
        surface = surface.convert("RGBA")

    output_stream = io.BytesIO()
    try:
        if format_type == "PNG":
            surface.save(output_stream, format=format_type)
        else:
            surface.save(output_stream, format=format_type, quality=quality)
    except (OSError, KeyError, ValueError) as exc:
        raise ImageEncodeError(f"Could not encode image as {format_type}: {exc}") from exc
    return output_stream.getvalue()


def guess_content_type(name: str) -> str:
    """Content type from a file name, ``application/octet-stream`` when unknown."""
    suffix = PurePath(name).suffix.lower()
    if suffix in (".heic", ".heif"):
        return f"image/{suffix[1:]}"
    content_type, _ = mimetypes.guess_type(name)
    return content_type or "application/octet-stream"


def is_image_name(name: str) -> bool:
    """Whether a file or key name carries an image extension."""
    return name.lower().endswith(IMAGE_EXTENSIONS) and not name.endswith("/")


def relative_key(source_key: str, source_prefix: str) -> str:
    """
    Strip ``source_prefix`` from an S3 key.

    Args:
        source_key: Original S3 key
        source_prefix: Source prefix to remove

    Returns:
        Key relative to the prefix
    """
    if source_prefix and source_key.startswith(source_prefix):
        return source_key[len(source_prefix):].lstrip("/")
    return source_key


def join_key(prefix: str, name: str) -> str:
    """Join an S3 prefix and a name with a single slash."""
    if prefix:
        return f"{prefix.rstrip('/')}/{name}"
    return name


def unique_names(names: List[str]) -> List[str]:
    """Disambiguate repeated names with ``-1``, ``-2`` suffixes before the extension."""
    seen = {}
    result = []
    taken = set(names)
    for name in names:
        if name not in seen:
            seen[name] = 0
            result.append(name)
            continue
        path = PurePath(name)
        while True:
            seen[name] += 1
            candidate = f"{path.stem}-{seen[name]}{path.suffix}"
            if candidate not in taken:
                break
        taken.add(candidate)
        result.append(candidate)
    return result
