"""Cluster interface for minik3s."""

from __future__ import annotations

from typing import TYPE_CHECKING

from minik3s.core.cluster.lifecycle import ClusterLifecycle
from minik3s.core.cluster.state import ClusterStateReader
from minik3s.core.cluster.validator import ClusterValidator

if TYPE_CHECKING:
    from minik3s.core.context import Minik3sContext


class ClusterManager:
    """Exposes cluster operations.

    Parameters
    ----------
    ctx : Minik3sContext
        An instantiated Minik3sContext object with user input and
        context.

    Attributes
    ----------
    state : ClusterStateReader
        Reads clusters back from engine labels.
    validator : ClusterValidator
        Validates create requests.
    lifecycle : ClusterLifecycle
        Creates, deletes, stops and starts clusters.
    """

    def __init__(self, ctx: Minik3sContext):
        self._ctx = ctx
        self.state = ClusterStateReader(ctx)
        self.validator = ClusterValidator(ctx, self)
        self.lifecycle = ClusterLifecycle(ctx, self)
