"""minik3s logger handler."""

import logging
import sys

from minik3s.core.logging.spinner import Spinner


class Minik3sLoggerHandler(logging.StreamHandler):
    """User-facing log handler.

    Writes to the current `sys.stderr` (so click's CliRunner captures
    it) and clears the spinner line before every record.
    """

    def __init__(self, spinner: Spinner):
        super().__init__()
        self.spinner = spinner

    @property
    def stream(self):
        """Return the current sys.stderr."""
        return sys.stderr

    @stream.setter
    def stream(self, value):
        pass

    def emit(self, record: logging.LogRecord):
        """Emit a record after clearing the spinner line."""
        with self.spinner.output_lock:
            self.spinner.clear_line()
            super().emit(record)
