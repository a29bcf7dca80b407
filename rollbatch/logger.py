"""
Logging setup.

All loggers hang off the ``rollbatch`` logger, which is configured once:
a console handler (rich on a terminal, plain lines with the thread name
otherwise) at INFO, or DEBUG when DEBUG=1, plus an optional per-run log
file that always records DEBUG.

Usage:
    from rollbatch.logger import get_logger
    logger = get_logger(__name__)
    logger.info("Batch started")
"""

from __future__ import annotations

import logging
import sys
import threading
from datetime import datetime
from pathlib import Path

from rich.logging import RichHandler

from .config import Config, get_config
from .utils.timing import format_duration

ROOT_LOGGER_NAME = "rollbatch"

PLAIN_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s:%(lineno)d | %(message)s"

_configure_lock = threading.Lock()
_configured = False


def _console_handler(level: int) -> logging.Handler:
    if sys.stdout.isatty():
        handler: logging.Handler = RichHandler(rich_tracebacks=True, show_path=False)
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt="%H:%M:%S"))
    handler.setLevel(level)
    return handler


def _file_handler(log_dir: Path) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_dir / f"rollbatch_{datetime.now():%Y%m%d_%H%M%S}.log", encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def configure_logging(config: Config) -> logging.Logger:
    """
    Attach handlers to the ``rollbatch`` logger. Later calls are no-ops.

    Args:
        config: Supplies the debug flag, log directory and file switch

    Returns:
        The package root logger
    """
    global _configured
    root = logging.getLogger(ROOT_LOGGER_NAME)
    with _configure_lock:
        if _configured:
            return root
        root.setLevel(logging.DEBUG)
        root.propagate = False
        root.addHandler(_console_handler(logging.DEBUG if config.debug else logging.INFO))
        if config.log_to_file:
            file_handler = _file_handler(config.logs_dir)
            root.addHandler(file_handler)
            root.debug(f"Log file: {file_handler.baseFilename}")
        _configured = True
    return root


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """
    Logger under the ``rollbatch`` hierarchy.

    ``"cli"`` and ``"rollbatch.cli"`` name the same logger.
    """
    configure_logging(get_config())
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def log_timing(logger: logging.Logger, operation: str, duration_sec: float) -> None:
    """Sub-second operations go to DEBUG, longer ones to INFO."""
    level = logging.DEBUG if duration_sec < 1 else logging.INFO
    logger.log(level, f"{operation} took {format_duration(duration_sec)}")
