"""Log levels for the minik3s logger."""

import logging
from enum import Enum


class LogLevel(Enum):
    """Logging levels for minik3s.

    Each member carries the line prefix, the click color and the
    matching standard library level.
    """

    DEBUG = ("[v]  ", "magenta", logging.DEBUG)
    INFO = ("[i]  ", "cyan", logging.INFO)
    WARN = ("[w]  ", "yellow", logging.WARNING)
    ERROR = ("[e]  ", "red", logging.ERROR)

    def __init__(self, prefix: str, color: str, py_level: int):
        self.prefix = prefix
        self.color = color
        self.py_level = py_level

    @classmethod
    def from_name(cls, name: str) -> "LogLevel":
        """Return the level for a case-insensitive name, e.g. `"warn"`."""
        return cls[name.upper()]

    @classmethod
    def for_record(cls, levelno: int) -> "LogLevel":
        """Return the closest level at or below a standard library level."""
        for level in sorted(cls, key=lambda lvl: lvl.py_level, reverse=True):
            if levelno >= level.py_level:
                return level
        return cls.DEBUG
