"""Shared helpers for minik3s logging."""

import inspect
import os


def get_caller_fq_name(stacklevel: int = 3) -> str:
    """Return `module:file:line` of the frame `stacklevel` levels up."""
    frame = inspect.currentframe()
    for _ in range(stacklevel):
        if frame is not None:
            frame = frame.f_back
    if frame is None:
        return "<unknown>"
    module = frame.f_globals.get("__name__", "<unknown>")
    filename = os.path.basename(frame.f_code.co_filename)
    return f"{module}:{filename}:{frame.f_lineno}"
