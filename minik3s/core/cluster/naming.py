"""Deterministic names for cluster nodes and networks.

Node names double as container names, hostnames and network aliases,
so every generated name must stay a valid RFC 1123 host name.
"""

from __future__ import annotations

import re
from typing import Optional

from minik3s.core.errors import Minik3sError, ValidationError
from minik3s.settings import (
    CLUSTER_NAME_MAX_LEN,
    NAME_PREFIX,
    ROLE_SERVER,
    ROLE_WORKER,
)

_CLUSTER_NAME_CHARS = re.compile(r"^[A-Za-z0-9-]+$")
_WORKER_SUFFIX = re.compile(r"-worker-(\d+)$")


def check_cluster_name(name: str) -> None:
    """
    Validate that a cluster name is also a valid host name.

    The length is capped below the 63-character host name limit so node
    names derived from the cluster name stay within it.

    Parameters
    ----------
    name : str
        Cluster name to validate.

    Raises
    ------
    ValidationError
        If the name is empty, too long, starts or ends with a dash, or
        contains characters other than letters, digits and dashes.
    """
    hint = (
        f"Cluster names may contain up to {CLUSTER_NAME_MAX_LEN} letters, "
        "digits and dashes, and may not start or end with a dash."
    )
    if not name:
        raise ValidationError("Cluster name cannot be empty.", hint)
    if len(name) > CLUSTER_NAME_MAX_LEN:
        raise ValidationError(f"Cluster name '{name}' is too long.", hint)
    if name.startswith("-") or name.endswith("-"):
        raise ValidationError(
            f"Cluster name '{name}' cannot start or end with '-'.", hint
        )
    if not _CLUSTER_NAME_CHARS.match(name):
        raise ValidationError(
            f"Cluster name '{name}' contains characters other than "
            "'A-Z', 'a-z', '0-9' or '-'.",
            hint,
        )


def node_name(role: str, cluster_name: str, ordinal: Optional[int] = None) -> str:
    """
    Return the node name for a role and ordinal within a cluster.

    Parameters
    ----------
    role : str
        `"server"` or `"worker"`.
    cluster_name : str
        Name of the cluster.
    ordinal : Optional[int]
        Zero-based worker ordinal. Must be None for the server.

    Returns
    -------
    str
        The node name.

    Examples
    --------
    >>> node_name("server", "dev")
    'minik3s-dev-server'
    >>> node_name("worker", "dev", 1)
    'minik3s-dev-worker-1'
    """
    if role == ROLE_SERVER:
        if ordinal is not None:
            raise Minik3sError("The server node does not take an ordinal.")
        return f"{NAME_PREFIX}-{cluster_name}-{ROLE_SERVER}"
    if role == ROLE_WORKER:
        if ordinal is None or ordinal < 0:
            raise Minik3sError(
                f"Worker nodes need a non-negative ordinal, got {ordinal!r}."
            )
        return f"{NAME_PREFIX}-{cluster_name}-{ROLE_WORKER}-{ordinal}"
    raise Minik3sError(f"Unknown node role: '{role}'")


def all_node_names(cluster_name: str, workers: int) -> list[str]:
    """Return the server name followed by every worker name in order."""
    names = [node_name(ROLE_SERVER, cluster_name)]
    names.extend(node_name(ROLE_WORKER, cluster_name, i) for i in range(workers))
    return names


def parse_ordinal(name: str) -> Optional[int]:
    """Return the worker ordinal encoded in a node name, if any."""
    match = _WORKER_SUFFIX.search(name.lstrip("/"))
    return int(match.group(1)) if match else None


def network_name(cluster_name: str) -> str:
    """Return the name of the cluster's private network."""
    return f"{NAME_PREFIX}-{cluster_name}"
