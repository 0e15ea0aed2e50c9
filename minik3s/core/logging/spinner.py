"""Spinner shown while long engine operations run."""

from __future__ import annotations

import itertools
import sys
import threading
import time
from contextlib import contextmanager
from typing import Iterator, Optional

from click import style

from minik3s.core.logging.levels import LogLevel
from minik3s.shutdown import shutdown_event

CLEAR_LINE = "\033[2K\r"


class _SpinnerThread(threading.Thread):
    """Draw the spinner until `done` or the shutdown event is set."""

    def __init__(
        self, message: str, output_lock: threading.RLock, done: threading.Event
    ) -> None:
        super().__init__(daemon=True)
        self.message = message
        self.output_lock = output_lock
        self.done = done
        self.prefix = style(LogLevel.INFO.prefix, fg=LogLevel.INFO.color, bold=True)

    def run(self) -> None:
        """Run the spinner loop."""
        for c in itertools.cycle(r"\|/-"):
            if self.done.is_set() or shutdown_event.is_set():
                break
            # Skip a frame rather than block a log record
            if self.output_lock.acquire(blocking=False):
                try:
                    sys.stderr.write(f"\r{self.prefix}{self.message} {c}")
                    sys.stderr.flush()
                finally:
                    self.output_lock.release()
            time.sleep(0.1)


class Spinner:
    """
    Spinner for long-running tasks.

    The spinner only appears when stderr is a TTY and the logger is not
    verbose. Log records emitted while it spins are written normally;
    the handler clears the spinner line first.

    Parameters
    ----------
    always_verbose : bool
        Disable the spinner entirely.
    """

    def __init__(self, always_verbose: bool = False) -> None:
        self.always_verbose = always_verbose
        self.output_lock = threading.RLock()
        self._thread: Optional[_SpinnerThread] = None

    @contextmanager
    def spinner(self, message: str = "") -> Iterator[None]:
        """Display a spinner while the body of the `with` block runs."""
        if self.always_verbose or not sys.stderr.isatty():
            yield
            return

        done = threading.Event()
        self._thread = _SpinnerThread(message, self.output_lock, done)
        self._thread.start()
        try:
            yield
        finally:
            done.set()
            self._thread.join(timeout=0.2)
            self._thread = None
            self.clear_line()

    def clear_line(self) -> None:
        """Clear the current terminal line if stderr is a TTY."""
        if sys.stderr.isatty():
            with self.output_lock:
                sys.stderr.write(CLEAR_LINE)
                sys.stderr.flush()
