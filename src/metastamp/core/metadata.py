"""Capture timestamp resolution from embedded image metadata."""

import io
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple

from PIL import Image
from PIL.ExifTags import IFD, Base

from .logging_config import get_logger
from .models import ResolvedTimestamp

# Field name -> (sub-IFD holding it, tag id). Names follow exiftool/exifr.
EXIF_FIELDS: Dict[str, Tuple[Optional[IFD], int]] = {
    "DateTimeOriginal": (IFD.Exif, Base.DateTimeOriginal),
    "CreateDate": (IFD.Exif, Base.DateTimeDigitized),
    "ModifyDate": (None, Base.DateTime),
}

# Capture time is authoritative; the other two are administrative.
TIMESTAMP_FIELDS: Tuple[str, ...] = ("DateTimeOriginal", "CreateDate", "ModifyDate")

EXIF_DATETIME_FORMATS = (
    "%Y:%m:%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y:%m:%d %H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%Y:%m:%d",
)

MetadataDecoder = Callable[[bytes, Iterable[str]], Mapping[str, Any]]
Clock = Callable[[], datetime]


def decode_metadata(file_bytes: bytes, fields: Iterable[str]) -> Dict[str, Any]:
    """
    Read the requested EXIF fields from raw image bytes.

    Args:
        file_bytes: Complete image file contents
        fields: Field names of interest (keys of ``EXIF_FIELDS``)

    Returns:
        Mapping of the requested fields that are present. Unsupported or
        corrupt input yields an empty mapping.
    """
    logger = get_logger("metadata")
    wanted = [name for name in fields if name in EXIF_FIELDS]
    found: Dict[str, Any] = {}
    try:
        with Image.open(io.BytesIO(file_bytes)) as image:
            exif = image.getexif()
            sub_ifds = {}
            for name in wanted:
                ifd, tag = EXIF_FIELDS[name]
                value = None
                if ifd is not None:
                    if ifd not in sub_ifds:
                        sub_ifds[ifd] = exif.get_ifd(ifd)
                    value = sub_ifds[ifd].get(tag)
                if value is None:
                    # Some writers put every date tag in IFD0
                    value = exif.get(tag)
                if value not in (None, "", b""):
                    found[name] = value
    except Exception as exc:  # noqa: BLE001
        logger.debug(f"Metadata decoding failed: {exc}")
        return {}
    return found


def parse_exif_datetime(value: Any) -> Optional[datetime]:
    """
    Parse an EXIF date value into a naive local datetime.

    Accepts the EXIF ``YYYY:MM:DD HH:MM:SS`` form, dash separated dates,
    ISO 8601 strings and ``datetime`` objects. Offset-aware values are
    converted to local time. Returns ``None`` when nothing parses.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        if isinstance(value, bytes):
            value = value.decode("utf-8", errors="ignore")
        if not isinstance(value, str):
            return None
        text = value.strip().strip("\x00").strip()
        if not text:
            return None
        parsed = None
        for fmt in EXIF_DATETIME_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
        if parsed is None:
            try:
                parsed = datetime.fromisoformat(text)
            except ValueError:
                return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


class MetadataResolver:
    """Resolve the timestamp to stamp onto an image.

    The first of ``TIMESTAMP_FIELDS`` that is present and parseable wins.
    Otherwise the clock's current time is used and flagged as a fallback.
    ``resolve`` never raises.
    """

    def __init__(
        self,
        decoder: MetadataDecoder = decode_metadata,
        clock: Clock = datetime.now,
        fields: Tuple[str, ...] = TIMESTAMP_FIELDS,
    ):
        self._decoder = decoder
        self._clock = clock
        self._fields = fields
        self._logger = get_logger("metadata")

    def resolve(self, file_bytes: bytes) -> ResolvedTimestamp:
        try:
            metadata = self._decoder(file_bytes, self._fields) or {}
            for name in self._fields:
                if name not in metadata:
                    continue
                instant = parse_exif_datetime(metadata[name])
                if instant is None:
                    self._logger.debug(f"Ignoring unparseable {name}: {metadata[name]!r}")
                    continue
                return ResolvedTimestamp(
                    instant=instant, is_fallback=False, source_field=name
                )
        except Exception as exc:  # noqa: BLE001
            self._logger.warning(f"Error extracting EXIF data: {exc}")

        return ResolvedTimestamp(instant=self._clock(), is_fallback=True)


def resolve_timestamp(
    file_bytes: bytes,
    decoder: MetadataDecoder = decode_metadata,
    clock: Clock = datetime.now,
) -> ResolvedTimestamp:
    """Functional form of ``MetadataResolver(decoder, clock).resolve``."""
    return MetadataResolver(decoder=decoder, clock=clock).resolve(file_bytes)
