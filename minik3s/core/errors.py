"""Error classes for the minik3s CLI."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from minik3s.core.cluster.outcome import NodeOutcome


class Minik3sError(Exception):
    """Base exception class for all minik3s errors.

    Parameters
    ----------
    msg : str, optional
        Message to log and include in the exception.

    Attributes
    ----------
    msg : str
        Error message associated with the exception.
    exit_code : int
        Exit code for the error type. Defaults to 1.
    """

    exit_code = 1

    def __init__(self, msg: str = "") -> None:
        super().__init__(msg)
        self.msg = msg

    def __str__(self) -> str:
        """Return the error message as a string."""
        return self.msg


class UserError(Minik3sError):
    """User errors that minik3s can safely log and display.

    Parameters
    ----------
    msg : str, optional
        Message to log and include in the exception.
    hint_msg : str, optional
        Additional guidance for resolving the issue.
    """

    exit_code = 2

    def __init__(self, msg: str = "", hint_msg: str = "") -> None:
        if hint_msg:
            super().__init__(f"User error: {msg}\nHint: {hint_msg}")
        else:
            super().__init__(f"User error: {msg}")


class ValidationError(UserError):
    """Invalid user input, raised before any engine call."""


class MalformedPortSpecError(ValidationError):
    """A port publishing rule or its node selector does not parse."""


class InvalidPortBindingError(ValidationError):
    """A merged port rule cannot be turned into engine port bindings."""


class ClusterExistsError(ValidationError):
    """A cluster with the requested name already owns engine resources."""


class ClusterNotFoundError(UserError):
    """The requested cluster does not exist."""


class EngineUnavailableError(UserError):
    """The container engine client cannot be built or reached."""


class EngineError(Minik3sError):
    """A container engine primitive failed."""


class EngineNotFoundError(EngineError):
    """A container engine object does not exist (anymore)."""


class ReadinessTimeoutError(Minik3sError):
    """The server did not report readiness within the wait timeout."""


class PartialFailureError(Minik3sError):
    """Some nodes of a bulk operation failed.

    Attributes
    ----------
    outcomes : list[NodeOutcome]
        Every per-node outcome of the operation, failed or not.
    """

    exit_code = 3

    def __init__(self, msg: str = "", outcomes: list[NodeOutcome] | None = None):
        self.outcomes = list(outcomes or [])
        failed = [o for o in self.outcomes if not o.ok]
        if failed:
            lines = [f"  - {o}" for o in failed]
            msg = f"{msg}\n" + "\n".join(lines)
        super().__init__(msg)

    @property
    def failed(self) -> list[NodeOutcome]:
        """Return the failed outcomes only."""
        return [o for o in self.outcomes if not o.ok]


class RollbackError(Minik3sError):
    """Cleanup after a failed create did not complete.

    Resources listed in `orphans` were left behind and need manual
    cleanup.
    """

    exit_code = 4

    def __init__(self, msg: str = "", orphans: list[str] | None = None) -> None:
        self.orphans = list(orphans or [])
        if self.orphans:
            msg = (
                f"{msg}\nThe following resources could not be removed and "
                f"must be cleaned up manually:\n"
                + "\n".join(f"  - {o}" for o in self.orphans)
            )
        super().__init__(msg)
