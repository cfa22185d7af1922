"""
Logging utilities for the runtime.

All loggers hang off the ``openwork`` package logger. Nothing here is
configured on import; call ``setup_logging`` from the application.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

_root_logger = logging.getLogger("openwork")

_DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _coerce_level(level: str | int) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return level


def setup_logging(
    level: str | int = "INFO",
    format: str | None = None,
    stream: TextIO | None = None,
    file: str | None = None,
) -> None:
    """
    Configure handlers on the package logger.

    Args:
        level: Log level name or number
        format: Custom log format string
        stream: Output stream (defaults to stderr)
        file: Optional file path to also write logs to

    Example:
        from openwork.logging import setup_logging

        setup_logging("DEBUG", file="openwork.log")
    """
    level = _coerce_level(level)
    _root_logger.setLevel(level)
    _root_logger.handlers.clear()

    formatter = logging.Formatter(format or _DEFAULT_FORMAT)

    stream_handler = logging.StreamHandler(stream or sys.stderr)
    stream_handler.setFormatter(formatter)
    stream_handler.setLevel(level)
    _root_logger.addHandler(stream_handler)

    if file:
        file_handler = logging.FileHandler(file)
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        _root_logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a child logger for a submodule.

    Args:
        name: Submodule name (e.g., "engine", "mcp.client")
    """
    if name.startswith("openwork."):
        return logging.getLogger(name)
    return logging.getLogger(f"openwork.{name}")


def set_level(level: str | int) -> None:
    """Set the log level for the package logger."""
    _root_logger.setLevel(_coerce_level(level))


def disable() -> None:
    """Disable all runtime logging."""
    _root_logger.disabled = True


def enable() -> None:
    """Re-enable runtime logging."""
    _root_logger.disabled = False
