"""Validation of cluster create requests."""

from __future__ import annotations

from typing import TYPE_CHECKING

from minik3s.core.cluster.naming import check_cluster_name
from minik3s.core.cluster.ports import compile_node_ports
from minik3s.core.errors import ClusterExistsError, ValidationError

if TYPE_CHECKING:
    from minik3s.core.cluster.lifecycle import CreateRequest
    from minik3s.core.cluster.manager import ClusterManager
    from minik3s.core.context import Minik3sContext


class ClusterValidator:
    """
    Validate cluster input before any engine resources are created.

    Parameters
    ----------
    ctx : Minik3sContext
        An instantiated Minik3sContext object with user input and
        context.
    manager : ClusterManager
        The cluster manager whose state reader is used for engine
        lookups.

    Methods
    -------
    check_create_request(request)
        Validate every field of a create request that can be checked
        without the engine.
    check_name_available(name)
        Fail if any labelled container or network already uses the name.
    """

    def __init__(self, ctx: Minik3sContext, manager: ClusterManager):
        self._ctx = ctx
        self._manager = manager

    def check_create_request(self, request: CreateRequest) -> None:
        """
        Validate a create request.

        Raises
        ------
        ValidationError
            If a field is out of range, malformed, or `--timeout` is
            given without `--wait`. Port rule errors are raised as
            `MalformedPortSpecError` or `InvalidPortBindingError`, both
            subclasses.
        """
        check_cluster_name(request.name)
        if request.workers < 0:
            raise ValidationError(
                f"Invalid number of workers: {request.workers}.",
                "Use 0 or more workers.",
            )
        if not 1 <= request.api_port <= 65535:
            raise ValidationError(f"Invalid API port: {request.api_port}.")
        if request.port_auto_offset < 0:
            raise ValidationError(
                f"Invalid port auto offset: {request.port_auto_offset}.",
                "Use 0 to disable host port spreading.",
            )
        if request.timeout < 0:
            raise ValidationError(f"Invalid timeout: {request.timeout}.")
        if request.timeout and not request.wait:
            raise ValidationError(
                "--timeout requires --wait.",
                "Add --wait, or drop --timeout.",
            )
        for entry in request.env:
            key, sep, _ = entry.partition("=")
            if not sep or not key:
                raise ValidationError(
                    f"Invalid environment variable: '{entry}'.",
                    "Use the form KEY=VALUE.",
                )
        for volume in request.volumes:
            self.check_volume(volume)
        if not request.image:
            raise ValidationError("Image cannot be empty.")
        compile_node_ports(
            request.publish,
            request.name,
            request.workers,
            request.api_port,
            request.port_auto_offset,
        )

    def check_volume(self, volume: str) -> None:
        """
        Validate a bind mount of the form `src:dst[:mode]`.

        Raises
        ------
        ValidationError
            If the source or destination is missing or the mode is not
            `ro` or `rw`.
        """
        parts = volume.split(":")
        if len(parts) not in (2, 3) or not parts[0] or not parts[1]:
            raise ValidationError(
                f"Invalid volume: '{volume}'.", "Use the form SRC:DST[:ro|rw]."
            )
        if not parts[1].startswith("/"):
            raise ValidationError(
                f"Invalid volume: '{volume}'. The destination must be an "
                "absolute path."
            )
        if len(parts) == 3 and parts[2] not in ("ro", "rw"):
            raise ValidationError(
                f"Invalid volume mode '{parts[2]}' in '{volume}'.",
                "Use 'ro' or 'rw'.",
            )

    def check_name_available(self, name: str) -> None:
        """
        Fail if a cluster name is already in use.

        Raises
        ------
        ClusterExistsError
            If any labelled container or network carries the name.
        """
        resources = self._manager.state.cluster_resources(name)
        if not resources.empty:
            owned = [c.name for c in resources.containers] + [
                n.name for n in resources.networks
            ]
            raise ClusterExistsError(
                f"Cluster '{name}' already exists ({', '.join(owned)}).",
                f"Delete it first with 'minik3s delete -n {name}' or pick "
                "another name.",
            )
