"""
Logging utilities for cpmkeeper.

Every module logs through a child of the ``cpmkeeper`` logger obtained
with :func:`get_logger`. Library use stays silent (a ``NullHandler`` is
attached) until the CLI calls :func:`setup_logging`.
"""

from __future__ import annotations

import os
import sys
import time
import logging
import threading
from contextlib import contextmanager
from typing import IO, Iterator, Optional

from cpmkeeper.constants import (
    LOG_DATE_FORMAT,
    LOG_DEFAULT_FORMAT,
    LOG_VERBOSE_FORMAT,
)

_ROOT = "cpmkeeper"

_logging_configured: bool = False
_lock = threading.Lock()


class ColoredFormatter(logging.Formatter):
    """Logging formatter with optional ANSI color support."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(
        self,
        fmt: str,
        *,
        datefmt: Optional[str] = None,
        use_color: bool = True,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        if not (self.use_color and self._should_use_color()):
            return super().format(record)

        color = self.COLORS.get(record.levelname)
        if not color:
            return super().format(record)

        # Colour a copy of the level name only; handlers share the record.
        original = record.levelname
        record.levelname = f"{color}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original

    @staticmethod
    def _should_use_color() -> bool:
        """Determine whether ANSI colors should be emitted."""
        if os.environ.get("NO_COLOR"):
            return False
        if os.environ.get("CI"):
            return False
        try:
            return sys.stderr.isatty()
        except (AttributeError, OSError):
            return False


def setup_logging(
    *,
    level: int = logging.INFO,
    verbose: bool = False,
    stream: Optional[IO[str]] = None,
) -> None:
    """Configure the ``cpmkeeper`` logger hierarchy.

    Safe to call repeatedly; previous handlers are replaced.

    Args:
        level: Logging level (e.g., ``logging.INFO``, ``logging.DEBUG``).
        verbose: Enable verbose formatting with timestamps.
        stream: Output stream; defaults to ``sys.stderr``.
    """
    global _logging_configured

    with _lock:
        root_logger = logging.getLogger(_ROOT)
        root_logger.handlers.clear()
        root_logger.setLevel(level)

        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setLevel(level)

        fmt = LOG_VERBOSE_FORMAT if verbose else LOG_DEFAULT_FORMAT
        handler.setFormatter(
            ColoredFormatter(
                fmt,
                datefmt=LOG_DATE_FORMAT,
                use_color=not os.environ.get("NO_COLOR"),
            )
        )

        root_logger.addHandler(handler)
        root_logger.propagate = False
        _logging_configured = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger within the cpmkeeper namespace.

    Args:
        name: Logger name. ``"analysis"`` and ``"cpmkeeper.analysis"``
            resolve to the same logger.

    Returns:
        A logger instance under the ``cpmkeeper`` hierarchy.
    """
    if not name or name == _ROOT:
        logger = logging.getLogger(_ROOT)
    elif name.startswith(f"{_ROOT}."):
        logger = logging.getLogger(name)
    else:
        logger = logging.getLogger(f"{_ROOT}.{name}")

    if not logger.handlers and (not logger.parent or not logger.parent.handlers):
        logger.addHandler(logging.NullHandler())

    return logger


@contextmanager
def log_duration(logger: logging.Logger, label: str) -> Iterator[None]:
    """Log how long the wrapped block took, at DEBUG level.

    Example::

        with log_duration(logger, "dotnet restore (App.sln)"):
            await cli.restore_and_get_warnings(root, sln)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug("%s: %.0fms", label, elapsed_ms)


def is_logging_configured() -> bool:
    """Return True if cpmkeeper logging has been configured."""
    return _logging_configured


def disable_logging() -> None:
    """Disable all cpmkeeper logging output."""
    global _logging_configured

    with _lock:
        root_logger = logging.getLogger(_ROOT)
        root_logger.handlers.clear()
        root_logger.addHandler(logging.NullHandler())
        root_logger.setLevel(logging.NOTSET)
        _logging_configured = False
