"""Main module for the MetaStamp CLI."""

import argparse
import json
import sys
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from . import __version__
from .core.archive import ARCHIVE_NAME
from .core.compositor import DEFAULT_QUALITY
from .core.exceptions import ArchiveError, ConfigurationError, MetaStampError
from .core.factories import S3ClientFactory, StampingPipelineFactory
from .core.formatting import DATE_FORMAT_PRESETS, TIME_FORMAT_PRESETS
from .core.image_utils import parse_color, unique_names
from .core.logging_config import get_logger, set_debug
from .core.models import OUTPUT_EXTENSIONS, Position, StyleConfig, WorkItem
from .core.observability import MetricsCollector
from .core.outputs import OutputRegistry
from .core.preferences import COLOR_FIELDS, PreferenceStore
from .core.protocols import ImageSource, OutputSink
from .core.storage import LocalImageSource, LocalOutputSink, S3ImageSource, S3OutputSink

VERSION = __version__

# argparse dest -> StyleConfig field
STYLE_OVERRIDES = {
    "position": "position",
    "font_size": "font_size",
    "font_family": "font_family",
    "font_color": "font_color",
    "stroke_color": "stroke_color",
    "stroke_width": "stroke_width",
    "offset_x": "offset_x",
    "offset_y": "offset_y",
    "shadow": "shadow_enabled",
    "shadow_blur": "shadow_blur",
    "shadow_offset_x": "shadow_offset_x",
    "shadow_offset_y": "shadow_offset_y",
    "shadow_color": "shadow_color",
}


def _add_style_arguments(parser: argparse.ArgumentParser) -> None:
    style = parser.add_argument_group("style overrides (default: saved preferences)")
    style.add_argument("--position", choices=[p.value for p in Position])
    style.add_argument("--font-size", type=float, help="Requested font size in pixels")
    style.add_argument("--font-family", help="Font family, e.g. Inter")
    style.add_argument("--font-color", help="Text color, e.g. '#FBBF24'")
    style.add_argument("--stroke-color", help="Outline color")
    style.add_argument("--stroke-width", type=float, help="Outline width, 0 disables it")
    style.add_argument("--offset-x", type=float, help="Horizontal inset from the corner")
    style.add_argument("--offset-y", type=float, help="Vertical inset from the corner")
    style.add_argument(
        "--shadow",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Drop shadow under the outline",
    )
    style.add_argument("--shadow-blur", type=float)
    style.add_argument("--shadow-offset-x", type=float)
    style.add_argument("--shadow-offset-y", type=float)
    style.add_argument("--shadow-color", help="e.g. 'rgba(0, 0, 0, 0.5)'")
    style.add_argument(
        "--date-preset",
        choices=[preset.value for preset in DATE_FORMAT_PRESETS],
        help="Date format preset",
    )
    style.add_argument(
        "--time-preset",
        choices=[preset.value for preset in TIME_FORMAT_PRESETS],
        help="Time format preset ('' for no time)",
    )
    style.add_argument(
        "--format",
        dest="custom_format",
        help="Custom format string, e.g. 'DD MMM YYYY hh:mm A'",
    )


def build_parser() -> argparse.ArgumentParser:
    """Argument parser for every ``metastamp`` subcommand."""
    parser = argparse.ArgumentParser(
        prog="metastamp",
        description="MetaStamp - stamp capture timestamps onto photos",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Stamp local photos into ./stamped
  metastamp stamp photos/ --output-dir stamped

  # Stamp an S3 prefix, top-left, 12h clock, single zip download
  metastamp stamp --source-bucket my-photos --source-prefix trip/ \\
                  --position topLeft --time-preset "hh:mm A" --archive

  # Show saved preferences
  metastamp config show
        """,
    )

    config_parent = argparse.ArgumentParser(add_help=False)
    config_parent.add_argument(
        "--config",
        default=None,
        help="Preferences file (default: $METASTAMP_CONFIG_PATH or ~/.config/metastamp/config.json)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    stamp_parser = subparsers.add_parser(
        "stamp", parents=[config_parent], help="Stamp timestamps onto images"
    )
    stamp_parser.add_argument("paths", nargs="*", help="Image files or directories")
    stamp_parser.add_argument("--source-bucket", help="Read images from this S3 bucket")
    stamp_parser.add_argument("--source-prefix", default="", help="Source S3 prefix")
    stamp_parser.add_argument(
        "--output-dir", default=None, help="Write outputs to this directory (default: .)"
    )
    stamp_parser.add_argument("--dest-bucket", help="Upload outputs to this S3 bucket")
    stamp_parser.add_argument("--dest-prefix", default="", help="Destination S3 prefix")
    stamp_parser.add_argument(
        "--archive",
        action="store_true",
        help=f"Write a single download ({ARCHIVE_NAME} for several images)",
    )
    stamp_parser.add_argument(
        "--output-format",
        type=str.upper,
        default="JPEG",
        choices=sorted(OUTPUT_EXTENSIONS),
        help="Encoding of stamped images (default: JPEG)",
    )
    stamp_parser.add_argument(
        "--quality", type=int, default=DEFAULT_QUALITY, help="JPEG/WEBP quality"
    )
    stamp_parser.add_argument(
        "--save-config",
        action="store_true",
        help="Persist the effective style as the new preferences",
    )
    stamp_parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    _add_style_arguments(stamp_parser)

    config_parser = subparsers.add_parser(
        "config", parents=[config_parent], help="Inspect or reset saved preferences"
    )
    config_parser.add_argument("action", choices=["show", "reset", "path"])

    subparsers.add_parser("presets", help="List date and time format presets")
    subparsers.add_parser("version", help="Show version information")

    return parser


def style_from_args(base: StyleConfig, args: argparse.Namespace) -> StyleConfig:
    """
    Apply command-line overrides on top of the saved style.

    Raises:
        ConfigurationError: If the resulting style is invalid
    """
    overrides: Dict[str, Any] = {}
    for dest, field_name in STYLE_OVERRIDES.items():
        value = getattr(args, dest, None)
        if value is not None:
            overrides[field_name] = value

    try:
        style = StyleConfig.model_validate({**base.model_dump(), **overrides})
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid style: {exc}") from exc

    date_preset = getattr(args, "date_preset", None)
    time_preset = getattr(args, "time_preset", None)
    if date_preset is not None or time_preset is not None:
        style = style.with_presets(date_preset, time_preset)
    custom_format = getattr(args, "custom_format", None)
    if custom_format:
        style = style.with_custom_format(custom_format)

    for name in COLOR_FIELDS:
        parse_color(getattr(style, name))
    return style


def _build_source(args: argparse.Namespace) -> ImageSource:
    if args.source_bucket:
        return S3ImageSource(
            S3ClientFactory.create_s3_client(), args.source_bucket, args.source_prefix
        )
    return LocalImageSource(args.paths)


def _build_sink(args: argparse.Namespace) -> OutputSink:
    if args.dest_bucket:
        return S3OutputSink(S3ClientFactory.create_s3_client(), args.dest_bucket, args.dest_prefix)
    return LocalOutputSink(args.output_dir or ".")


def _log_progress(item: WorkItem) -> None:
    logger = get_logger("cli")
    if item.state.is_terminal:
        detail = item.display_timestamp if item.error == "" else item.error
        logger.info(f"{item.source_name}: {item.state.value} ({detail})")


def run_stamp(args: argparse.Namespace) -> int:
    """Execute ``metastamp stamp``; returns the process exit code."""
    logger = get_logger("cli")
    if args.debug:
        set_debug(True)

    store = PreferenceStore(args.config)
    style = style_from_args(store.load(), args)
    if args.save_config and store.save(style):
        print(f"Saved preferences to {store.path}")

    try:
        files = _build_source(args).load_all()
    except (MetaStampError, OSError) as exc:
        print(f"Error: could not read inputs: {exc}", file=sys.stderr)
        return 1

    if not files:
        print("No images found.", file=sys.stderr)
        return 1

    sink = _build_sink(args)
    metrics = MetricsCollector()
    with OutputRegistry() as registry:
        orchestrator = StampingPipelineFactory.create_pipeline(
            style=style,
            registry=registry,
            observer=_log_progress,
            output_format=args.output_format,
            quality=args.quality,
            metrics_collector=metrics,
        )
        orchestrator.process_batch(files)
        summary = orchestrator.summary()

        written: List[str] = []
        try:
            if args.archive:
                name, blob = orchestrator.export()
                content_type = (
                    "application/zip"
                    if name == ARCHIVE_NAME
                    else orchestrator.done_items()[0].output.content_type
                )
                written.append(sink.write(name, blob, content_type))
            else:
                done = orchestrator.done_items()
                # Sources in different directories can share a download name
                names = unique_names([item.download_name for item in done])
                for name, item in zip(names, done):
                    written.append(sink.write(name, item.output.data, item.output.content_type))
        except ArchiveError as exc:
            print(f"Error: {exc}", file=sys.stderr)
        except (MetaStampError, OSError) as exc:
            logger.error(f"Failed to write outputs: {exc}")
            print(f"Error: could not write outputs: {exc}", file=sys.stderr)
        finally:
            orchestrator.clear()

    for location in written:
        print(f"Wrote {location}")

    stats = metrics.get_summary("stamp_image")
    print(
        f"Stamped {summary.done}/{summary.total} image(s), {summary.failed} failed, "
        f"{summary.fallback_count} without capture time"
    )
    if stats:
        print(f"Average time per image: {stats['avg_duration'] * 1000:.1f} ms")
    for failure in summary.failures:
        print(f"  failed: {failure}", file=sys.stderr)

    return 0 if summary.done > 0 else 1


def run_config(args: argparse.Namespace) -> int:
    """Execute ``metastamp config``."""
    store = PreferenceStore(args.config)
    if args.action == "path":
        print(store.path)
    elif args.action == "reset":
        if not store.clear():
            return 1
        print(f"Preferences reset ({store.path})")
    else:
        print(json.dumps(store.load().to_storage(), indent=2))
    return 0


def run_presets() -> int:
    print("Date presets:")
    for preset in DATE_FORMAT_PRESETS:
        print(f"  {preset.value:<16} {preset.label}")
    print("Time presets:")
    for preset in TIME_FORMAT_PRESETS:
        print(f"  {preset.value or '(none)':<16} {preset.label}")
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    """
    Entry point for the ``metastamp`` command-line interface.

    Subcommands: ``stamp``, ``config``, ``presets`` and ``version``.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "stamp":
        if args.paths and args.source_bucket:
            parser.error("give either local paths or --source-bucket, not both")
        if args.output_dir and args.dest_bucket:
            parser.error("give either --output-dir or --dest-bucket, not both")
        try:
            exit_code = run_stamp(args)
        except ConfigurationError as exc:
            parser.error(str(exc))
        sys.exit(exit_code)

    elif args.command == "config":
        sys.exit(run_config(args))

    elif args.command == "presets":
        sys.exit(run_presets())

    elif args.command == "version":
        print("MetaStamp CLI")
        print(f"Version {VERSION}")
        print("Capture-time stamping for photos")
        sys.exit(0)

    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
