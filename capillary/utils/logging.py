"""
Logging for the capillary package.

Every module takes a logger with ``get_logger(__name__)``; only entry points
(the CLI, an embedding application) call ``setup_logging``. Pipeline stages
log per-stage counts at DEBUG and results at INFO, and wrap whole passes in
``ProcessingTimer`` so a slow image shows up in the log with its duration.

Usage:
    from capillary.utils.logging import get_logger, setup_logging

    setup_logging(level="DEBUG", log_dir="~/capillary-logs")
    logger = get_logger(__name__)
    logger.info("Detected %d loops in %s", len(loops), path)
"""

import logging
import os
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Union

# Overrides the level passed to setup_logging when set
LOG_LEVEL_ENV = "CAPILLARY_LOG_LEVEL"

DEFAULT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# Third-party loggers that flood DEBUG output (PIL logs every PNG chunk)
_NOISY_LOGGERS = ("PIL",)

_LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[35m",
}
_RESET = "\033[0m"


class ColoredFormatter(logging.Formatter):
    """Colours the level name for terminals."""

    def format(self, record: logging.LogRecord) -> str:
        color = _LEVEL_COLORS.get(record.levelno)
        if color is None:
            return super().format(record)
        # Handlers share the record; colour a copy
        tinted = logging.makeLogRecord(record.__dict__)
        tinted.levelname = f"{color}{record.levelname}{_RESET}"
        return super().format(tinted)


_loggers: Dict[str, logging.Logger] = {}
_installed: List[logging.Handler] = []


def get_logger(name: str) -> logging.Logger:
    """Return the (cached) logger for a module name."""
    logger = _loggers.get(name)
    if logger is None:
        logger = _loggers[name] = logging.getLogger(name)
    return logger


def _resolve_level(level: Union[str, int]) -> int:
    level = os.environ.get(LOG_LEVEL_ENV) or level
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return level


def setup_logging(
    level: Union[str, int] = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    log_dir: Optional[Union[str, Path]] = None,
    console: bool = True,
    colored: bool = True,
    format_string: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the root logger.

    Console output goes to stderr so command output on stdout (loop lists,
    deskew angles) stays pipeable. Calling this again replaces the handlers
    installed by the previous call.

    Args:
        level: Level name or number; ``$CAPILLARY_LOG_LEVEL`` wins if set
        log_file: Append log records to this file
        log_dir: Write to ``capillary_<timestamp>.log`` in this directory
            (ignored when log_file is given)
        console: Log to stderr
        colored: Colour level names when stderr is a terminal
        format_string: Record format (default DEFAULT_FORMAT)

    Returns:
        The root logger
    """
    level = _resolve_level(level)
    fmt = format_string or DEFAULT_FORMAT

    root = logging.getLogger()
    while _installed:
        handler = _installed.pop()
        root.removeHandler(handler)
        handler.close()
    root.setLevel(level)

    handlers = []
    if console:
        stream = logging.StreamHandler(sys.stderr)
        use_color = colored and sys.stderr.isatty()
        stream.setFormatter(ColoredFormatter(fmt) if use_color else logging.Formatter(fmt))
        handlers.append(stream)

    log_path = None
    if log_file:
        log_path = Path(log_file).expanduser()
    elif log_dir:
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_path = Path(log_dir).expanduser() / f"capillary_{stamp}.log"

    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode="a")
        file_handler.setFormatter(logging.Formatter(fmt))
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(level)
        root.addHandler(handler)
        _installed.append(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))

    if log_path is not None:
        root.info("Logging to file: %s", log_path)
    return root


def log_parameters(logger: logging.Logger, params: dict, title: str = "Parameters") -> None:
    """Log a parameter dict as an aligned block; long containers are summarised."""
    rule = "=" * 50
    width = max((len(str(key)) for key in params), default=0)

    logger.info(rule)
    logger.info(title)
    logger.info(rule)
    for key, value in params.items():
        if isinstance(value, (list, tuple, dict)) and len(value) > 5:
            value = f"<{type(value).__name__} of {len(value)}>"
        logger.info("  %s: %s", str(key).ljust(width), value)
    logger.info(rule)


def log_processing_start(logger: logging.Logger, operation: str, **details) -> None:
    """Log that ``operation`` started, with optional key/value details."""
    logger.info("Starting: %s", operation)
    for key, value in details.items():
        logger.info("  %s: %s", key, value)


def _format_duration(seconds: float) -> str:
    if seconds < 1:
        return f"{seconds * 1000:.0f} ms"
    if seconds < 60:
        return f"{seconds:.1f} seconds"
    return f"{seconds / 60:.1f} minutes"


def log_processing_end(
    logger: logging.Logger,
    operation: str,
    duration_seconds: Optional[float] = None,
    **results
) -> None:
    """Log that ``operation`` finished, with its duration and any results."""
    if duration_seconds is None:
        logger.info("Completed: %s", operation)
    else:
        logger.info("Completed: %s in %s", operation, _format_duration(duration_seconds))
    for key, value in results.items():
        logger.info("  %s: %s", key, value)


class ProcessingTimer:
    """
    Time a pipeline pass and log the outcome.

    Success is logged at INFO through :func:`log_processing_end`; an
    exception is logged at ERROR and re-raised. ``duration`` holds the
    elapsed seconds after the block exits.

    Example:
        >>> with ProcessingTimer(logger, "image enhancement") as timer:
        ...     enhanced = enhance_pixels(pixels)
        >>> timer.duration
        0.042
    """

    def __init__(self, logger: logging.Logger, operation: str):
        self.logger = logger
        self.operation = operation
        self.duration: Optional[float] = None
        self._start = 0.0

    def __enter__(self) -> "ProcessingTimer":
        self.logger.debug("Starting: %s", self.operation)
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.duration = time.perf_counter() - self._start
        if exc_type is None:
            log_processing_end(self.logger, self.operation, self.duration)
        else:
            self.logger.error(
                "Failed: %s after %s - %s",
                self.operation, _format_duration(self.duration), exc_val,
            )
        return False
