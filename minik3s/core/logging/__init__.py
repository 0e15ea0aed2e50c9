"""Logging utilities for minik3s."""

from . import common, formatter, handler, levels, logger, spinner, utils

__all__ = [
    "common",
    "formatter",
    "handler",
    "levels",
    "logger",
    "spinner",
    "utils",
]
