"""
Shared plumbing for pipeline components.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..config import Config, get_config
from ..exceptions import RollBatchError
from ..logger import get_logger


def format_fields(message: str, fields: dict[str, Any]) -> str:
    """Append ``key=value`` pairs to a log message."""
    if not fields:
        return message
    return message + " " + " ".join(f"{key}={value}" for key, value in fields.items())


class BaseProcessor:
    """
    Pipeline component with configuration and a named logger.

    Subclasses set ``name``; it becomes the logger name (``rollbatch.<name>``).
    """

    name: str = "BaseProcessor"

    def __init__(self, config: Optional[Config] = None):
        self.config = config or get_config()
        self.logger = get_logger(self.name)

    @property
    def debug_mode(self) -> bool:
        return self.config.debug

    def _log(self, level: int, message: str, fields: dict[str, Any], exc_info: bool = False) -> None:
        if self.logger.isEnabledFor(level):
            self.logger.log(level, format_fields(message, fields), exc_info=exc_info)

    def log_debug(self, message: str, **fields: Any) -> None:
        if self.debug_mode:
            self._log(logging.DEBUG, message, fields)

    def log_info(self, message: str, **fields: Any) -> None:
        self._log(logging.INFO, message, fields)

    def log_warning(self, message: str, **fields: Any) -> None:
        self._log(logging.WARNING, message, fields)

    def log_error(self, message: str, error: Optional[BaseException] = None) -> None:
        """
        Log a failure.

        Application errors are logged with their message and scope; any
        other exception with its type. Tracebacks only in debug mode.
        """
        if error is None:
            self._log(logging.ERROR, message, {})
        elif isinstance(error, RollBatchError):
            self._log(logging.ERROR, f"{message}: {error}", {"scope": error.scope}, exc_info=self.debug_mode)
        else:
            self._log(logging.ERROR, f"{message}: {type(error).__name__}: {error}", {}, exc_info=self.debug_mode)
