"""Read cluster state back from the container engine.

Identity labels are the only persistent store: every call lists labelled
containers and networks again and nothing is cached between calls.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional

from minik3s.core.docker.wrappers import Minik3sContainer, Minik3sNetwork
from minik3s.core.errors import EngineError
from minik3s.settings import (
    APP_LABEL_KEY,
    APP_LABEL_VALUE,
    CLUSTER_LABEL_KEY,
    COMPONENT_LABEL_KEY,
    ROLE_SERVER,
    ROLE_WORKER,
)

if TYPE_CHECKING:
    from minik3s.core.context import Minik3sContext


class NodeRole(Enum):
    """Role of a node within a cluster."""

    SERVER = ROLE_SERVER
    WORKER = ROLE_WORKER


class ClusterStatus(Enum):
    """
    Aggregate status of a cluster.

    Raw engine states other than `running` and `exited` are passed
    through as members of the same value.
    """

    RUNNING = "running"
    STOPPED = "stopped"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"
    CREATED = "created"
    RESTARTING = "restarting"
    PAUSED = "paused"
    DEAD = "dead"
    REMOVING = "removing"

    def __str__(self) -> str:
        """Return the status value."""
        return self.value


def classify_status(server_state: str, worker_states: list[str]) -> ClusterStatus:
    """
    Derive the cluster status from the raw states of its nodes.

    Parameters
    ----------
    server_state : str
        Raw engine state of the server container.
    worker_states : list[str]
        Raw engine states of the worker containers.

    Returns
    -------
    ClusterStatus
        `UNHEALTHY` if any worker state differs from the server's,
        `STOPPED` if the server has exited, otherwise the server state.

    Examples
    --------
    >>> classify_status("running", ["running", "exited"])
    <ClusterStatus.UNHEALTHY: 'unhealthy'>
    >>> classify_status("exited", [])
    <ClusterStatus.STOPPED: 'stopped'>
    """
    if any(state != server_state for state in worker_states):
        return ClusterStatus.UNHEALTHY
    if server_state == "exited":
        return ClusterStatus.STOPPED
    try:
        return ClusterStatus(server_state)
    except ValueError:
        return ClusterStatus.UNKNOWN


@dataclass
class Node:
    """A server or worker container of a cluster."""

    id: str
    name: str
    role: NodeRole
    ordinal: Optional[int]
    ports: list[str]
    state: str
    created: str = ""

    @classmethod
    def from_container(cls, container: Minik3sContainer) -> Node:
        """Build a node from a labelled container."""
        role = NodeRole(container.role)
        return cls(
            id=container.id,
            name=container.name,
            role=role,
            ordinal=container.ordinal if role == NodeRole.WORKER else None,
            ports=container.published_ports(),
            state=container.state,
            created=container.created,
        )


@dataclass
class Cluster:
    """A cluster as observed through the engine."""

    name: str
    image: str
    status: ClusterStatus
    server: Node
    workers: list[Node] = field(default_factory=list)
    server_ports: list[str] = field(default_factory=list)

    @property
    def workers_running(self) -> int:
        """Number of workers in the `running` state."""
        return sum(1 for w in self.workers if w.state == "running")

    @property
    def nodes(self) -> list[Node]:
        """The server followed by the workers."""
        return [self.server, *self.workers]


@dataclass
class ClusterResources:
    """Every labelled container and network of one cluster."""

    name: str
    containers: list[Minik3sContainer] = field(default_factory=list)
    networks: list[Minik3sNetwork] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        """Whether the cluster owns nothing at all."""
        return not self.containers and not self.networks

    def by_role(self, role: str) -> list[Minik3sContainer]:
        """Containers with the given `component` label."""
        containers = [c for c in self.containers if c.role == role]
        return sorted(containers, key=_ordinal_key)


class ClusterStateReader:
    """
    Query clusters through their identity labels.

    Parameters
    ----------
    ctx : Minik3sContext
        An instantiated Minik3sContext object with user input and
        context.
    """

    def __init__(self, ctx: Minik3sContext):
        self._ctx = ctx

    def list(self, all_clusters: bool = False, name: str = "") -> dict[str, Cluster]:
        """
        List clusters and their nodes.

        Parameters
        ----------
        all_clusters : bool
            List every cluster.
        name : str
            Cluster to list when `all_clusters` is False.

        Returns
        -------
        dict[str, Cluster]
            Clusters keyed by name, sorted by name. Empty when neither a
            name nor `all_clusters` is given.
        """
        if not all_clusters and not name:
            return {}

        labels = self._labels(component=ROLE_SERVER)
        if not all_clusters:
            labels[CLUSTER_LABEL_KEY] = name
        servers = self._ctx.engine.list_containers(labels)

        clusters: dict[str, Cluster] = {}
        for server in sorted(servers, key=lambda c: c.cluster_name or ""):
            cluster_name = server.cluster_name
            try:
                workers = self._ctx.engine.list_containers(
                    self._labels(component=ROLE_WORKER, cluster=cluster_name)
                )
            except EngineError as e:
                self._ctx.logger.warn(
                    f"Failed to list workers of cluster '{cluster_name}': {e}"
                )
                workers = []
            clusters[cluster_name] = self._build_cluster(server, workers)
        return clusters

    def get(self, name: str) -> Optional[Cluster]:
        """Return one cluster by name, or None if it has no server."""
        return self.list(name=name).get(name)

    def server_containers(self, name: str) -> list[Minik3sContainer]:
        """Return every server container labelled with a cluster name."""
        return self._ctx.engine.list_containers(
            self._labels(component=ROLE_SERVER, cluster=name)
        )

    def cluster_names(self) -> list[str]:
        """
        Return every cluster name that owns a labelled container or
        network.

        Partially created clusters without a server are included.
        """
        names = set()
        for container in self._ctx.engine.list_containers(self._labels()):
            if container.cluster_name:
                names.add(container.cluster_name)
        for network in self._ctx.engine.list_networks(self._labels()):
            if network.cluster_name:
                names.add(network.cluster_name)
        return sorted(names)

    def cluster_resources(self, name: str) -> ClusterResources:
        """Return every labelled container and network of a cluster."""
        labels = self._labels(cluster=name)
        return ClusterResources(
            name=name,
            containers=self._ctx.engine.list_containers(labels),
            networks=self._ctx.engine.list_networks(labels),
        )

    def _build_cluster(
        self, server: Minik3sContainer, workers: list[Minik3sContainer]
    ) -> Cluster:
        server_node = Node.from_container(server)
        worker_nodes = [Node.from_container(w) for w in sorted(workers, key=_ordinal_key)]
        return Cluster(
            name=server.cluster_name,
            image=server.image_ref,
            status=classify_status(server_node.state, [w.state for w in worker_nodes]),
            server=server_node,
            workers=worker_nodes,
            server_ports=server_node.ports,
        )

    @staticmethod
    def _labels(component: str = "", cluster: str = "") -> dict[str, str]:
        labels = {APP_LABEL_KEY: APP_LABEL_VALUE}
        if component:
            labels[COMPONENT_LABEL_KEY] = component
        if cluster:
            labels[CLUSTER_LABEL_KEY] = cluster
        return labels


def _ordinal_key(container: Minik3sContainer) -> tuple[int, str]:
    ordinal = container.ordinal
    return (ordinal if ordinal is not None else -1, container.name)
