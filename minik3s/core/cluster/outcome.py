"""Per-node results of bulk cluster operations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class NodeOutcome:
    """
    Result of one engine action against one node.

    Parameters
    ----------
    cluster : str
        Cluster the node belongs to.
    node : str
        Node (container or network) name.
    action : str
        Action attempted, e.g. `"stop"` or `"remove"`.
    error : Optional[str]
        Error message if the action failed, else None.
    """

    cluster: str
    node: str
    action: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        """Whether the action succeeded."""
        return self.error is None

    def __str__(self) -> str:
        """Return a one-line summary of the outcome."""
        status = "ok" if self.ok else f"failed: {self.error}"
        return f"[cluster: {self.cluster}] [node: {self.node}] {self.action} {status}"
