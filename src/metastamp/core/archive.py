"""Packaging of rendered outputs into a single downloadable file."""

import io
import zipfile
from typing import Iterable, List, Tuple

from .exceptions import ArchiveError
from .image_utils import unique_names
from .logging_config import get_logger
from .models import ArchiveEntry

ARCHIVE_NAME = "metastamp_images.zip"


def pack(entries: Iterable[ArchiveEntry]) -> bytes:
    """
    Bundle entries into one ZIP archive.

    Repeated names are disambiguated so no entry shadows another.

    Raises:
        ArchiveError: If the archive cannot be written
    """
    entries = list(entries)
    names = unique_names([entry.name for entry in entries])
    buffer = io.BytesIO()
    try:
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for name, entry in zip(names, entries):
                archive.writestr(name, entry.data)
    except (OSError, ValueError, zipfile.BadZipFile) as exc:
        raise ArchiveError(f"Could not build archive: {exc}") from exc
    return buffer.getvalue()


def export_items(entries: Iterable[ArchiveEntry]) -> Tuple[str, bytes]:
    """
    Produce the single download for a set of rendered outputs.

    One entry is returned as-is; several are zipped into
    ``metastamp_images.zip``.

    Returns:
        Tuple of (file name, blob)

    Raises:
        ArchiveError: If there is nothing to export or packing fails
    """
    logger = get_logger("archive")
    entries: List[ArchiveEntry] = list(entries)
    if not entries:
        raise ArchiveError("No finished images to export")
    if len(entries) == 1:
        logger.debug(f"Single output, exporting {entries[0].name} directly")
        return entries[0].name, entries[0].data

    blob = pack(entries)
    logger.info(f"Packed {len(entries)} images into {ARCHIVE_NAME} ({len(blob)} bytes)")
    return ARCHIVE_NAME, blob
