"""Centralized logging configuration for MetaStamp."""

import os
import sys
import logging
from typing import Optional

# Set by set_debug(); applies to loggers configured afterwards too
_level_override: Optional[int] = None


def setup_logger(
    name: str = "metastamp",
    level: Optional[str] = None,
    format_type: str = "structured",
) -> logging.Logger:
    """
    Setup centralized logging with environment variable configuration.

    Args:
        name: Logger name (defaults to "metastamp")
        level: Log level override (defaults to env var or INFO)
        format_type: Logging format ("structured" or "simple")

    Returns:
        Configured logger instance

    Environment Variables:
        LOG_LEVEL: Set logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        LOG_FORMAT: Set format type ("structured" or "simple")
    """
    logger = logging.getLogger(name)

    if level:
        logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    elif not logger.handlers:
        # Only on first setup, so set_debug() survives later get_logger() calls
        env_level = os.getenv("LOG_LEVEL", "INFO").upper()
        logger.setLevel(_level_override or getattr(logging, env_level, logging.INFO))

    # Avoid duplicate handlers
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)

        env_format = os.getenv("LOG_FORMAT", format_type).lower()

        if env_format == "structured":
            formatter = logging.Formatter(
                "%(asctime)s | %(name)s | %(levelname)-8s | "
                "%(filename)s:%(lineno)d | %(funcName)s() | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        else:
            formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            )

        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.propagate = False
    return logger


def get_logger(name: str = "metastamp") -> logging.Logger:
    """
    Get a logger instance with consistent configuration.

    Names without the package prefix are nested under "metastamp" so that
    a single LOG_LEVEL controls the whole tree.

    Args:
        name: Logger name

    Returns:
        Configured logger instance
    """
    if name != "metastamp" and not name.startswith("metastamp."):
        name = f"metastamp.{name}"
    return setup_logger(name)


def set_debug(enabled: bool = True) -> None:
    """Switch every MetaStamp logger (and the root logger) to DEBUG."""
    global _level_override
    level = logging.DEBUG if enabled else logging.INFO
    _level_override = level if enabled else None
    logging.getLogger().setLevel(level)
    for name in list(logging.root.manager.loggerDict):
        if name == "metastamp" or name.startswith("metastamp."):
            logging.getLogger(name).setLevel(level)


# Create default logger instance
logger = setup_logger()
