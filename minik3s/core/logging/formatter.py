"""Logging formatter for the minik3s logger."""

import logging
import os
import shutil
import sys
import textwrap

from click import style

from minik3s.ansi import strip_ansi
from minik3s.core.logging.levels import LogLevel

INDENT = " " * 5


class Minik3sLogFormatter(logging.Formatter):
    """Prefix each record with a colored level marker.

    Continuation lines are indented under the first line. On a TTY,
    lines are wrapped to the terminal width; otherwise ANSI sequences
    are stripped and lines are left as they are.

    Parameters
    ----------
    always_verbose : bool
        Show the caller location for every record, not only for debug
        records.
    """

    def __init__(self, always_verbose: bool = False):
        super().__init__()
        self.always_verbose = always_verbose

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record for output."""
        msg = record.getMessage()
        if not msg.strip():
            return ""

        level = LogLevel.for_record(record.levelno)
        tty = sys.stderr.isatty()
        prefix = style(level.prefix, fg=level.color, bold=True) if tty else level.prefix
        left = f"{prefix}{self._caller(record)}"
        lines = msg.splitlines()
        if tty:
            return self._wrap(lines, left)
        return "\n".join(
            [f"{left}{strip_ansi(lines[0])}"]
            + [f"{INDENT}{strip_ansi(line)}" for line in lines[1:]]
        )

    def _caller(self, record: logging.LogRecord) -> str:
        if not (self.always_verbose or record.levelno == logging.DEBUG):
            return ""
        fq_caller = getattr(record, "fq_caller", "")
        if fq_caller:
            return f"{fq_caller} "
        return f"{os.path.basename(record.pathname)}:{record.lineno} "

    def _wrap(self, lines: list[str], left: str) -> str:
        width = shutil.get_terminal_size(fallback=(80, 24)).columns
        wrapped = []
        for i, line in enumerate(lines):
            wrapper = textwrap.TextWrapper(
                width=width,
                initial_indent=left if i == 0 else INDENT,
                subsequent_indent=INDENT,
                replace_whitespace=False,
            )
            wrapped.append(wrapper.fill(line) or wrapper.initial_indent)
        return "\n".join(wrapped)
