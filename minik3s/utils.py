"""Utility functions for minik3s CLI and core operations."""

from __future__ import annotations

import logging
import os
import sys
import traceback
from functools import wraps
from importlib.metadata import PackageNotFoundError, version
from inspect import signature
from typing import TYPE_CHECKING, Any, Dict, Optional

from click import echo, make_pass_decorator

from minik3s.core.errors import EngineError, EngineUnavailableError, Minik3sError, UserError
from minik3s.shutdown import shutdown_event

if TYPE_CHECKING:
    from minik3s.core.docker.engine import ContainerEngine


# ----------------------------------------------------------------------
# CLI Decorators & Exception Handling
# ----------------------------------------------------------------------
def pass_environment() -> Any:
    """
    Return a Click pass decorator for the Minik3sContext.

    Returns
    -------
    Any
        A decorator that passes the Minik3sContext instance.
    """
    from minik3s.core.context import Minik3sContext

    return make_pass_decorator(Minik3sContext, ensure=True)


def handle_exception(
    error: BaseException,
    ctx: Optional[Any] = None,
    additional_msg: str = "",
    skip_traceback: bool = False,
) -> None:
    """
    Log an exception and exit with its exit code.

    User errors are logged without a traceback. Any other error is
    logged with the origin of the failure and followed by its
    traceback.

    Parameters
    ----------
    error : BaseException
        The exception object.
    ctx : Optional[Any]
        Optional CLI context object with logger.
    additional_msg : str
        Additional message to log, if any.
    skip_traceback : bool
        If True, suppresses traceback output.

    Raises
    ------
    SystemExit
        Exits the program with the appropriate exit code.
    """
    shutdown_event.set()

    if isinstance(error, UserError):
        error_msg = error.msg
        exit_code = error.exit_code
        skip_traceback = True
    elif isinstance(error, Minik3sError):
        error_msg = error.msg
        exit_code = error.exit_code
    elif isinstance(error, KeyboardInterrupt):
        error_msg = "Interrupted."
        exit_code = 130
        skip_traceback = True
    else:
        error_msg = str(error)
        exit_code = 1

    tb = error.__traceback__
    while tb and tb.tb_next:
        tb = tb.tb_next
    if tb:
        frame = tb.tb_frame
        filename = os.path.basename(frame.f_code.co_filename)
        module = frame.f_globals.get("__name__", "")
        origin = f"{module}:{filename}:{tb.tb_lineno}"
    else:
        origin = "unknown:unknown:0"

    logger = getattr(ctx, "logger", None) or logging.getLogger("minik3s")
    logger.error(f"[Origin: {origin}]{additional_msg} {error_msg}")

    if not skip_traceback:
        echo(err=True)
        echo(
            "".join(traceback.format_exception(type(error), error, error.__traceback__)),
            err=True,
        )

    sys.exit(exit_code)


def exception_handler(func: Any) -> Any:
    """
    Route exceptions raised by a command through `handle_exception()`.

    `SystemExit` is passed through untouched.

    Parameters
    ----------
    func : Callable
        The function to wrap.

    Returns
    -------
    Callable
        The wrapped function.
    """

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        ctx = kwargs.get("ctx")
        if ctx is None:
            params = list(signature(func).parameters)
            if "ctx" in params and len(args) > params.index("ctx"):
                ctx = args[params.index("ctx")]
            elif "self" in params and args:
                ctx = args[0]
        try:
            return func(*args, **kwargs)
        except SystemExit:
            raise
        except BaseException as e:
            handle_exception(e, ctx)

    return wrapper


# ----------------------------------------------------------------------
# Engine Utilities
# ----------------------------------------------------------------------
def check_daemon(engine: ContainerEngine) -> None:
    """
    Check that the container engine answers.

    Raises
    ------
    EngineUnavailableError
        If the engine cannot be pinged.
    """
    try:
        engine.ping()
    except EngineError as e:
        raise EngineUnavailableError(
            f"Error when pinging the Docker server. Is the Docker daemon running?\n"
            f"Error from Docker: {e}",
            "If Docker is already running, check whether you are using the "
            "intended Docker context. You can view existing contexts with "
            "`docker context ls` and switch with `docker context use <context>`.",
        ) from e


# ----------------------------------------------------------------------
# Miscellaneous
# ----------------------------------------------------------------------
def generate_identifier(identifiers: Optional[Dict[str, Any]] = None) -> str:
    """
    Return an object identifier string used for creating log messages.

    Examples
    --------
    >>> generate_identifier({"cluster": "dev", "node": "minik3s-dev-server"})
    '[cluster: dev] [node: minik3s-dev-server]'
    """
    return " ".join(f"[{k}: {v}]" for k, v in (identifiers or {}).items())


def parse_key_value_pair(pair: str, hard_fail: bool = False) -> tuple[str, str]:
    """
    Parse a `KEY=VALUE` string.

    Parameters
    ----------
    pair : str
        Key-value pair to parse. The value may contain `=`.
    hard_fail : bool, optional
        Raise instead of returning empty parts when the pair is invalid.

    Returns
    -------
    tuple[str, str]
        Tuple of key and value.

    Raises
    ------
    UserError
        If `hard_fail` is set and the key or value is missing.
    """
    pair = pair.strip()
    key, sep, value = pair.partition("=")
    if hard_fail and (not sep or not key or not value):
        raise UserError(
            f"Invalid key-value pair: '{pair}'", "Use the form KEY=VALUE."
        )
    return key, value


def validate_yes(value: str) -> bool:
    """Return True if the input is 'y' or 'yes' (case-insensitive)."""
    return value.replace(" ", "").lower() in ("y", "yes")


def cli_ver() -> str:
    """Return the installed CLI version."""
    try:
        return version("minik3s")
    except PackageNotFoundError:
        return "unknown"
