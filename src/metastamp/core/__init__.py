"""Core utilities and shared components for MetaStamp."""

from .archive import ARCHIVE_NAME, export_items, pack
from .compositor import composite, compute_anchor, effective_font_size, render_overlay
from .formatting import (
    DATE_FORMAT_PRESETS,
    TIME_FORMAT_PRESETS,
    combine_formats,
    format_timestamp,
)
from .image_utils import decode_image, encode_image, load_font, parse_color
from .logging_config import get_logger, set_debug, setup_logger
from .exceptions import (
    MetaStampError,
    ImageDecodeError,
    ImageEncodeError,
    RenderError,
    ArchiveError,
    ConfigurationError,
    S3Error,
    InvalidStateTransition,
    with_error_handling,
)
from .metadata import MetadataResolver, resolve_timestamp
from .models import (
    BatchSummary,
    Position,
    RenderedOutput,
    ResolvedTimestamp,
    SourceFile,
    StyleConfig,
    WorkItem,
    WorkItemState,
)
from .orchestrator import BatchOrchestrator
from .outputs import OutputRegistry
from .preferences import PreferenceStore

__all__ = [
    "StyleConfig",
    "Position",
    "ResolvedTimestamp",
    "SourceFile",
    "RenderedOutput",
    "WorkItem",
    "WorkItemState",
    "BatchSummary",
    "format_timestamp",
    "combine_formats",
    "DATE_FORMAT_PRESETS",
    "TIME_FORMAT_PRESETS",
    "MetadataResolver",
    "resolve_timestamp",
    "composite",
    "render_overlay",
    "compute_anchor",
    "effective_font_size",
    "decode_image",
    "encode_image",
    "load_font",
    "parse_color",
    "BatchOrchestrator",
    "OutputRegistry",
    "ARCHIVE_NAME",
    "pack",
    "export_items",
    "PreferenceStore",
    "setup_logger",
    "get_logger",
    "set_debug",
    "MetaStampError",
    "ImageDecodeError",
    "ImageEncodeError",
    "RenderError",
    "ArchiveError",
    "ConfigurationError",
    "S3Error",
    "InvalidStateTransition",
    "with_error_handling",
]
