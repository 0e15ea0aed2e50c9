"""Strip ANSI escape sequences from strings."""

import re

_OSC = re.compile(r"\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)")
_CSI = re.compile(r"\x1b(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")


def strip_ansi(value: str = "") -> str:
    """
    Remove ANSI escape sequences from a string.

    Engine output (image pull progress, container logs) may carry
    terminal control codes that make no sense in a pipe or a file.

    Examples
    --------
    >>> strip_ansi("\\x1b[1;36m[i]  \\x1b[0mready")
    '[i]  ready'
    """
    # OSC first: these may contain '[' and confuse the CSI pattern
    return _CSI.sub("", _OSC.sub("", value))
