"""minik3s logger."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from click import style

from minik3s.core.errors import Minik3sError
from minik3s.core.logging.common import get_caller_fq_name
from minik3s.core.logging.formatter import Minik3sLogFormatter
from minik3s.core.logging.levels import LogLevel
from minik3s.core.logging.spinner import Spinner


class Minik3sLogger(logging.Logger):
    """Singleton logger for the minik3s CLI.

    Adds `warn()` as a first-class method, attaches the caller location
    to records when debug logging is on, and owns the spinner.
    """

    _instance = None

    def __new__(cls, name, level=logging.NOTSET):
        """Create the logger or return the existing instance."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, name: str, level: int = logging.NOTSET) -> None:
        super().__init__(name, level)
        self.log_level = LogLevel.INFO
        self._formatter: Optional[Minik3sLogFormatter] = None
        self._spinner: Optional[Spinner] = None

    def info(self, msg: object, *args: object, **kwargs) -> None:
        """Log an info message."""
        self._log_at(logging.INFO, msg, *args, **kwargs)

    def warn(self, msg: object, *args: object, **kwargs) -> None:
        """Log a warning message."""
        self._log_at(logging.WARNING, msg, *args, **kwargs)

    def warning(self, msg: object, *args: object, **kwargs) -> None:
        """Log a warning message."""
        self._log_at(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: object, *args: object, **kwargs) -> None:
        """Log an error message."""
        self._log_at(logging.ERROR, msg, *args, **kwargs)

    def debug(self, msg: object, *args: object, **kwargs) -> None:
        """Log a debug message."""
        self._log_at(logging.DEBUG, msg, *args, **kwargs)

    def set_level(self, level: LogLevel) -> None:
        """Set the level of the logger and its handler on the root logger."""
        self.log_level = level
        self.setLevel(level.py_level)
        for handler in logging.getLogger().handlers:
            if handler.__class__.__name__ == "Minik3sLoggerHandler":
                handler.setLevel(level.py_level)
        verbose = level == LogLevel.DEBUG
        if self._formatter:
            self._formatter.always_verbose = verbose
        if self._spinner:
            self._spinner.always_verbose = verbose

    def styled_prefix(self, level: LogLevel = LogLevel.INFO) -> str:
        """Return the colored prefix of a level."""
        return style(level.prefix, fg=level.color, bold=True)

    @contextmanager
    def spinner(self, message: str) -> Iterator[None]:
        """Display a spinner while a task is in progress."""
        if not isinstance(self._spinner, Spinner):
            raise Minik3sError(
                f"Spinner is not of type Spinner, got: {type(self._spinner)}."
            )
        with self._spinner.spinner(message):
            yield

    def _log_at(self, level: int, msg: object, *args: object, **kwargs) -> None:
        msg_str = str(msg).strip()
        if not msg_str or not self.isEnabledFor(level):
            return
        kwargs.setdefault("stacklevel", 3)
        if self.isEnabledFor(logging.DEBUG):
            kwargs.setdefault("extra", {})
            kwargs["extra"]["fq_caller"] = get_caller_fq_name(kwargs["stacklevel"])
        self._log(level, msg_str, args, **kwargs)
