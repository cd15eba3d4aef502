"""Custom exceptions and error handling utilities for MetaStamp."""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, TypeVar

from .logging_config import get_logger


class MetaStampError(Exception):
    """Base exception for all MetaStamp errors."""


class ImageDecodeError(MetaStampError):
    """Error raised when a source file cannot be loaded into a surface."""


class ImageEncodeError(MetaStampError):
    """Error raised when a rendered surface cannot be serialized."""


class RenderError(MetaStampError):
    """Error raised when stamping a single image fails for any other reason."""


class ArchiveError(MetaStampError):
    """Error raised when packaging rendered outputs fails."""


class ConfigurationError(MetaStampError):
    """Error raised for invalid configuration options."""


class S3Error(MetaStampError):
    """Error raised for S3 related failures."""


class InvalidStateTransition(MetaStampError):
    """Error raised when a work item leaves a terminal state."""


F = TypeVar("F", bound=Callable[..., Any])


def with_error_handling(func: F) -> F:
    """Wrap a function with standardized error handling.

    MetaStamp errors are logged and re-raised untouched; anything else is
    logged with its traceback and wrapped in a RenderError.
    """

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:  # type: ignore[override]
        logger = get_logger("compositor")
        try:
            return func(*args, **kwargs)
        except MetaStampError:
            logger.error(f"Pipeline error in {func.__name__}", exc_info=True)
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error(f"Unhandled error in {func.__name__}: {exc}", exc_info=True)
            raise RenderError(str(exc)) from exc

    return wrapper  # type: ignore[return-value]
