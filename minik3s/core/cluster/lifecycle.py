"""Create, delete, stop and start clusters."""

from __future__ import annotations

import io
import os
import secrets
import shutil
import string
import tarfile
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Callable

import yaml

from minik3s import utils
from minik3s.core.cluster.naming import network_name, node_name
from minik3s.core.cluster.outcome import NodeOutcome
from minik3s.core.cluster.ports import PublishedPortSet, compile_node_ports
from minik3s.core.cluster.state import Cluster, ClusterResources
from minik3s.core.docker.engine import NodeConfig
from minik3s.core.docker.wrappers import Minik3sContainer
from minik3s.core.errors import (
    ClusterNotFoundError,
    EngineError,
    EngineNotFoundError,
    Minik3sError,
    PartialFailureError,
    ReadinessTimeoutError,
    RollbackError,
    UserError,
    ValidationError,
)
from minik3s.settings import (
    APP_LABEL_KEY,
    APP_LABEL_VALUE,
    CLUSTER_LABEL_KEY,
    COMPONENT_LABEL_KEY,
    CREATED_LABEL_FORMAT,
    CREATED_LABEL_KEY,
    DEFAULT_API_PORT,
    DEFAULT_IMAGE,
    DEFAULT_REGISTRY,
    KUBECONFIG_FILENAME,
    ROLE_SERVER,
    ROLE_WORKER,
    WORKER_TMPFS,
)
from minik3s.shutdown import shutdown_event

if TYPE_CHECKING:
    from minik3s.core.cluster.manager import ClusterManager
    from minik3s.core.context import Minik3sContext

PAST_TENSE = {
    "start": "Started",
    "stop": "Stopped",
    "remove": "Removed",
    "delete": "Deleted",
}


@dataclass
class CreateRequest:
    """
    Everything needed to create a cluster.

    Parameters
    ----------
    name : str
        Cluster name.
    image : str
        k3s image reference.
    workers : int
        Number of worker nodes.
    publish : list[str]
        Port publishing rules.
    volumes : list[str]
        Bind mounts (`src:dst[:mode]`) for every node.
    env : list[str]
        Extra `KEY=VALUE` environment entries for the server.
    server_args : list[str]
        Extra arguments for `k3s server`.
    api_port : int
        API server port.
    wait : bool
        Wait for the server to report readiness.
    timeout : int
        Seconds to wait with `wait`; 0 waits forever.
    port_auto_offset : int
        Base host port offset for workers; 0 disables spreading.
    """

    name: str
    image: str = DEFAULT_IMAGE
    workers: int = 0
    publish: list[str] = field(default_factory=list)
    volumes: list[str] = field(default_factory=list)
    env: list[str] = field(default_factory=list)
    server_args: list[str] = field(default_factory=list)
    api_port: int = DEFAULT_API_PORT
    wait: bool = False
    timeout: int = 0
    port_auto_offset: int = 0


def normalize_image(image: str) -> str:
    """
    Qualify an image reference with the default registry.

    References with at most one `/` are prefixed with `docker.io/`,
    unless their first component is a registry host (contains `.` or
    `:`, or is `localhost`).

    Examples
    --------
    >>> normalize_image("rancher/k3s:v1.29.4-k3s1")
    'docker.io/rancher/k3s:v1.29.4-k3s1'
    >>> normalize_image("registry.local:5000/k3s")
    'registry.local:5000/k3s'
    """
    parts = image.split("/")
    if len(parts) > 2:
        return image
    if len(parts) == 2:
        head = parts[0]
        if "." in head or ":" in head or head == "localhost":
            return image
    return f"{DEFAULT_REGISTRY}/{image}"


def generate_secret(length: int) -> str:
    """Return a random string of ASCII letters."""
    return "".join(secrets.choice(string.ascii_letters) for _ in range(length))


class ClusterLifecycle:
    """
    Drive cluster create, delete, stop and start against the engine.

    Parameters
    ----------
    ctx : Minik3sContext
        An instantiated Minik3sContext object with user input and
        context.
    manager : ClusterManager
        The cluster manager (state reader and validator).

    Methods
    -------
    create(request)
        Create and start a cluster, rolling back on failure.
    delete(name, all_clusters)
        Remove clusters and every resource they own.
    stop(name, all_clusters)
        Stop every node of clusters.
    start(name, all_clusters)
        Start every node of clusters.
    fetch_credentials(name)
        Copy the cluster's kubeconfig to the local cluster directory.
    cluster_dir(name)
        Return the local directory of a cluster.
    """

    def __init__(self, ctx: Minik3sContext, manager: ClusterManager):
        self._ctx = ctx
        self._manager = manager

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------
    def create(self, request: CreateRequest) -> Cluster:
        """
        Create a cluster.

        All input is validated and every port rule compiled before the
        engine is touched. Any failure after the cluster network exists
        removes everything created so far.

        Parameters
        ----------
        request : CreateRequest
            The cluster to create.

        Returns
        -------
        Cluster
            The cluster as read back from the engine.

        Raises
        ------
        ValidationError
            If the request is invalid or the name is in use.
        ReadinessTimeoutError
            If `wait` is set and the server is not ready in time.
        RollbackError
            If cleanup after a failure left resources behind.
        """
        logger = self._ctx.logger
        validator = self._manager.validator
        validator.check_create_request(request)
        validator.check_name_available(request.name)
        node_ports = compile_node_ports(
            request.publish,
            request.name,
            request.workers,
            request.api_port,
            request.port_auto_offset,
        )

        image = normalize_image(request.image)
        network = network_name(request.name)
        secret_env = {}
        if request.workers > 0:
            length = self._ctx.config.secret_length
            secret_env = {
                "K3S_CLUSTER_SECRET": generate_secret(length),
                "K3S_TOKEN": generate_secret(length),
            }

        logger.info(f"Creating cluster '{request.name}'...")
        network_id = self._ctx.engine.create_network(
            network,
            labels={APP_LABEL_KEY: APP_LABEL_VALUE, CLUSTER_LABEL_KEY: request.name},
        )
        logger.debug(f"Created cluster network '{network}' with ID {network_id}")

        try:
            self._pull_image(image)
            server = node_name(ROLE_SERVER, request.name)
            server_id = self._create_node(
                NodeConfig(
                    name=server,
                    image=image,
                    command=[
                        "server",
                        "--https-listen-port",
                        str(request.api_port),
                        *request.server_args,
                    ],
                    network=network,
                    env={
                        "K3S_KUBECONFIG_OUTPUT": self._ctx.config.kubeconfig_path,
                        **dict(e.split("=", 1) for e in request.env),
                        **secret_env,
                    },
                    labels=self._labels(ROLE_SERVER, request.name),
                    ports=node_ports[server],
                    volumes=list(request.volumes),
                ),
                request.name,
            )
            if request.wait:
                self._wait_for_server(request.name, server_id, request.timeout)

            if request.workers:
                logger.info(
                    f"Booting {request.workers} worker(s) for cluster '{request.name}'..."
                )
            for i in range(request.workers):
                worker = node_name(ROLE_WORKER, request.name, i)
                self._create_node(
                    NodeConfig(
                        name=worker,
                        image=image,
                        command=[],
                        network=network,
                        env={
                            **secret_env,
                            "K3S_URL": f"https://{server}:{request.api_port}",
                        },
                        labels=self._labels(ROLE_WORKER, request.name),
                        ports=node_ports[worker],
                        volumes=list(request.volumes),
                        tmpfs=dict(WORKER_TMPFS),
                    ),
                    request.name,
                )
        except (Exception, KeyboardInterrupt) as e:
            self._rollback(request.name, e)
            raise

        self._make_cluster_dir(request.name)
        cluster = self._manager.state.get(request.name)
        if cluster is None:
            raise Minik3sError(
                f"Cluster '{request.name}' was created but cannot be read back."
            )
        logger.info(
            f"Created cluster '{request.name}'. You can now use it with:\n"
            f'export KUBECONFIG="$(minik3s get-credentials -n {request.name})"\n'
            "kubectl cluster-info"
        )
        return cluster

    def _labels(self, role: str, cluster_name: str) -> dict[str, str]:
        return {
            APP_LABEL_KEY: APP_LABEL_VALUE,
            COMPONENT_LABEL_KEY: role,
            CLUSTER_LABEL_KEY: cluster_name,
            CREATED_LABEL_KEY: datetime.now().strftime(CREATED_LABEL_FORMAT),
        }

    def _pull_image(self, image: str) -> None:
        logger = self._ctx.logger
        with logger.spinner(f"Pulling image {image}..."):
            for message in self._ctx.engine.pull_image(image):
                status = message.get("status", "")
                if status and "progress" not in message:
                    logger.debug(f"{message.get('id', image)}: {status}")
        logger.info(f"Pulled image {image}")

    def _create_node(self, config: NodeConfig, cluster_name: str) -> str:
        identifier = utils.generate_identifier(
            {"cluster": cluster_name, "node": config.name}
        )
        self._ctx.logger.info(f"Creating node... {identifier}")
        container_id = self._ctx.engine.create_container(config)
        self._ctx.engine.start_container(container_id)
        self._ctx.logger.debug(
            f"Started node with ID {container_id[:12]} and ports "
            f"{_describe_ports(config.ports)} {identifier}"
        )
        return container_id

    def _wait_for_server(self, cluster_name: str, server_id: str, timeout: int) -> None:
        """
        Poll the server logs until they contain the readiness marker.

        Raises
        ------
        ReadinessTimeoutError
            If `timeout` is non-zero and elapsed.
        Minik3sError
            If a shutdown was requested while waiting.
        """
        config = self._ctx.config
        marker = config.readiness_marker.encode()
        start = time.monotonic()
        with self._ctx.logger.spinner(
            f"Waiting for the server of cluster '{cluster_name}' to be ready..."
        ):
            while True:
                if shutdown_event.is_set():
                    raise Minik3sError(
                        f"Shutdown requested while waiting for cluster '{cluster_name}'."
                    )
                if marker in self._ctx.engine.container_logs(server_id):
                    break
                elapsed = time.monotonic() - start
                if timeout and elapsed > timeout:
                    raise ReadinessTimeoutError(
                        f"Cluster '{cluster_name}' was not ready after {timeout}s."
                    )
                time.sleep(config.poll_interval)
        self._ctx.logger.info(f"Server of cluster '{cluster_name}' is ready.")

    def _rollback(self, cluster_name: str, error: BaseException) -> None:
        """
        Remove everything created for a cluster after a failed create.

        Raises
        ------
        RollbackError
            If anything could not be removed. The original error is
            chained.
        """
        self._ctx.logger.warn(
            f"Failed to create cluster '{cluster_name}', rolling back: {error}"
        )
        try:
            resources = self._manager.state.cluster_resources(cluster_name)
        except EngineError as e:
            raise RollbackError(
                f"Rollback of cluster '{cluster_name}' failed: {e}",
                orphans=[network_name(cluster_name)],
            ) from error
        outcomes, leftover_networks = self._delete_cluster(resources)
        orphans = [o.node for o in outcomes if not o.ok] + leftover_networks
        if orphans:
            raise RollbackError(
                f"Rollback of cluster '{cluster_name}' failed.", orphans=orphans
            ) from error
        self._ctx.logger.info(f"Rolled back cluster '{cluster_name}'.")

    # ------------------------------------------------------------------
    # Delete / stop / start
    # ------------------------------------------------------------------
    def delete(self, name: str = "", all_clusters: bool = False) -> list[NodeOutcome]:
        """
        Delete clusters: workers, then the server, then the local
        directory, then the network.

        A failure to remove a server keeps that cluster's directory and
        network so the delete can be retried. Every cluster is processed
        even if an earlier one failed.

        Returns
        -------
        list[NodeOutcome]
            Per-node outcomes, all successful.

        Raises
        ------
        ClusterNotFoundError
            If a named cluster owns no resources.
        PartialFailureError
            If any node could not be removed.
        """
        if all_clusters:
            targets = [
                self._manager.state.cluster_resources(n)
                for n in self._manager.state.cluster_names()
            ]
        else:
            self._require_name(name)
            resources = self._manager.state.cluster_resources(name)
            if resources.empty:
                raise ClusterNotFoundError(
                    f"Cluster '{name}' does not exist.",
                    "List clusters with 'minik3s list -a'.",
                )
            targets = [resources]

        if not targets:
            self._ctx.logger.info("No clusters found.")
            return []

        outcomes: list[NodeOutcome] = []
        for resources in targets:
            self._ctx.logger.info(f"Deleting cluster '{resources.name}'...")
            cluster_outcomes, leftovers = self._delete_cluster(resources)
            outcomes.extend(cluster_outcomes)
            for network in leftovers:
                self._ctx.logger.warn(
                    f"Network '{network}' of cluster '{resources.name}' was not "
                    "removed and may need manual cleanup."
                )
            self._report_cluster("delete", resources.name, cluster_outcomes)
        return self._aggregate("delete", outcomes)

    def _delete_cluster(
        self, resources: ClusterResources
    ) -> tuple[list[NodeOutcome], list[str]]:
        """Remove one cluster; return node outcomes and unremoved networks."""
        engine = self._ctx.engine
        name = resources.name
        outcomes = self._fan_out(
            name, resources.by_role(ROLE_WORKER), "remove", engine.remove_container
        )

        server_outcomes = [
            self._run(name, c.name, "remove", engine.remove_container, c.id)
            for c in resources.by_role(ROLE_SERVER)
        ]
        outcomes.extend(server_outcomes)
        if not all(o.ok for o in server_outcomes):
            return outcomes, [n.name for n in resources.networks]

        self._remove_cluster_dir(name)

        leftovers = []
        for network in resources.networks:
            try:
                engine.remove_network(network.id)
            except EngineNotFoundError:
                continue
            except EngineError as e:
                self._ctx.logger.warn(str(e))
                leftovers.append(network.name)
        return outcomes, leftovers

    def stop(self, name: str = "", all_clusters: bool = False) -> list[NodeOutcome]:
        """
        Stop clusters: the server first, then the workers.

        Every node is attempted regardless of earlier failures.

        Raises
        ------
        ClusterNotFoundError
            If a named cluster does not exist.
        PartialFailureError
            If any node could not be stopped.
        """
        engine = self._ctx.engine
        outcomes: list[NodeOutcome] = []
        for cluster in self._target_clusters(name, all_clusters):
            self._ctx.logger.info(f"Stopping cluster '{cluster.name}'...")
            cluster_outcomes = [
                self._run(
                    cluster.name,
                    cluster.server.name,
                    "stop",
                    engine.stop_container,
                    cluster.server.id,
                )
            ]
            cluster_outcomes.extend(
                self._fan_out(cluster.name, cluster.workers, "stop", engine.stop_container)
            )
            self._report_cluster("stop", cluster.name, cluster_outcomes)
            outcomes.extend(cluster_outcomes)
        return self._aggregate("stop", outcomes)

    def start(self, name: str = "", all_clusters: bool = False) -> list[NodeOutcome]:
        """
        Start clusters: the server first, then the workers.

        Workers of a cluster whose server fails to start are left
        untouched.

        Raises
        ------
        ClusterNotFoundError
            If a named cluster does not exist.
        PartialFailureError
            If any node could not be started.
        """
        engine = self._ctx.engine
        outcomes: list[NodeOutcome] = []
        for cluster in self._target_clusters(name, all_clusters):
            self._ctx.logger.info(f"Starting cluster '{cluster.name}'...")
            server = self._run(
                cluster.name,
                cluster.server.name,
                "start",
                engine.start_container,
                cluster.server.id,
            )
            cluster_outcomes = [server]
            if server.ok:
                cluster_outcomes.extend(
                    self._fan_out(
                        cluster.name, cluster.workers, "start", engine.start_container
                    )
                )
            self._report_cluster("start", cluster.name, cluster_outcomes)
            outcomes.extend(cluster_outcomes)
        return self._aggregate("start", outcomes)

    def _target_clusters(self, name: str, all_clusters: bool) -> list[Cluster]:
        if not all_clusters:
            self._require_name(name)
        clusters = self._manager.state.list(all_clusters=all_clusters, name=name)
        if not all_clusters and name not in clusters:
            raise ClusterNotFoundError(
                f"Cluster '{name}' does not exist.",
                "List clusters with 'minik3s list -a'.",
            )
        if not clusters:
            self._ctx.logger.info("No clusters found.")
        return list(clusters.values())

    def _require_name(self, name: str) -> None:
        if not name:
            raise ValidationError(
                "No cluster name given.", "Pass a cluster name or use --all."
            )

    def _fan_out(
        self,
        cluster_name: str,
        nodes: list,
        action: str,
        fn: Callable[[str], None],
    ) -> list[NodeOutcome]:
        """Run `fn(node.id)` for every node concurrently, outcomes in order."""
        if not nodes:
            return []
        with ThreadPoolExecutor(max_workers=self._ctx.config.max_parallel) as executor:
            futures = [
                executor.submit(self._run, cluster_name, n.name, action, fn, n.id)
                for n in nodes
            ]
            return [f.result() for f in futures]

    def _run(
        self,
        cluster_name: str,
        node: str,
        action: str,
        fn: Callable[[str], None],
        node_id: str,
    ) -> NodeOutcome:
        identifier = utils.generate_identifier({"cluster": cluster_name, "node": node})
        try:
            fn(node_id)
        except EngineNotFoundError:
            self._ctx.logger.debug(f"Node no longer exists, skipping {action}. {identifier}")
            return NodeOutcome(cluster_name, node, action)
        except EngineError as e:
            self._ctx.logger.error(f"Failed to {action} node: {e} {identifier}")
            return NodeOutcome(cluster_name, node, action, error=str(e))
        self._ctx.logger.info(f"{PAST_TENSE[action]} node. {identifier}")
        return NodeOutcome(cluster_name, node, action)

    def _report_cluster(
        self, action: str, cluster_name: str, outcomes: list[NodeOutcome]
    ) -> None:
        if all(o.ok for o in outcomes):
            self._ctx.logger.info(f"{PAST_TENSE[action]} cluster '{cluster_name}'.")
        else:
            self._ctx.logger.error(f"Failed to {action} cluster '{cluster_name}'.")

    def _aggregate(self, action: str, outcomes: list[NodeOutcome]) -> list[NodeOutcome]:
        failed = [o for o in outcomes if not o.ok]
        if failed:
            raise PartialFailureError(
                f"Failed to {action} {len(failed)} of {len(outcomes)} node(s):",
                outcomes=outcomes,
            )
        return outcomes

    # ------------------------------------------------------------------
    # Credentials and local directories
    # ------------------------------------------------------------------
    def fetch_credentials(self, name: str) -> str:
        """
        Return the path of the cluster's kubeconfig, copying it out of
        the server container if it is not present locally.

        Raises
        ------
        ClusterNotFoundError
            If the cluster has no server container.
        UserError
            If the server has not written its kubeconfig yet.
        Minik3sError
            If more than one server matches, or the copied file is not a
            kubeconfig.
        """
        self._require_name(name)
        servers = self._manager.state.server_containers(name)
        if not servers:
            raise ClusterNotFoundError(
                f"Cluster '{name}' does not exist.",
                "List clusters with 'minik3s list -a'.",
            )
        if len(servers) > 1:
            raise Minik3sError(
                f"Found {len(servers)} server containers for cluster '{name}': "
                f"{', '.join(s.name for s in servers)}"
            )

        dest = os.path.join(self.cluster_dir(name), KUBECONFIG_FILENAME)
        if os.path.isfile(dest):
            self._ctx.logger.debug(f"Using existing credentials at {dest}")
            return dest

        content = self._copy_kubeconfig(name, servers[0])
        os.makedirs(self.cluster_dir(name), exist_ok=True)
        with open(dest, "wb") as f:
            f.write(content)
        self._ctx.logger.debug(f"Wrote credentials of cluster '{name}' to {dest}")
        return dest

    def _copy_kubeconfig(self, name: str, server: Minik3sContainer) -> bytes:
        path = self._ctx.config.kubeconfig_path
        try:
            archive = self._ctx.engine.copy_from_container(server.id, path)
        except EngineNotFoundError as e:
            raise UserError(
                f"The server of cluster '{name}' has not written its credentials yet.",
                "Wait for the cluster to start, e.g. with 'minik3s create --wait'.",
            ) from e

        try:
            with tarfile.open(fileobj=io.BytesIO(archive)) as tar:
                member = next(m for m in tar.getmembers() if m.isfile())
                extracted = tar.extractfile(member)
                content = extracted.read().strip(b"\x00") if extracted else b""
        except (tarfile.TarError, StopIteration) as e:
            raise Minik3sError(
                f"Unexpected archive copying {path} from '{server.name}': {e}"
            ) from e

        try:
            parsed = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise Minik3sError(f"Credentials of cluster '{name}' are not YAML: {e}") from e
        if not isinstance(parsed, dict):
            raise Minik3sError(f"Credentials of cluster '{name}' are not a kubeconfig.")
        return content

    def cluster_dir(self, name: str) -> str:
        """Return the local directory of a cluster."""
        return os.path.join(self._ctx.config.config_root, name)

    def _make_cluster_dir(self, name: str) -> None:
        try:
            os.makedirs(self.cluster_dir(name), exist_ok=True)
        except OSError as e:
            self._ctx.logger.warn(
                f"Failed to create directory {self.cluster_dir(name)}: {e}"
            )

    def _remove_cluster_dir(self, name: str) -> None:
        path = self.cluster_dir(name)
        if not os.path.isdir(path):
            return
        try:
            shutil.rmtree(path)
        except OSError as e:
            self._ctx.logger.warn(f"Failed to remove directory {path}: {e}")


def _describe_ports(ports: PublishedPortSet) -> str:
    docker_ports = ports.to_docker()
    if not docker_ports:
        return "<none>"
    return ", ".join(
        f"{key}->{','.join(str(p) if p else 'random' for _, p in bindings)}"
        for key, bindings in docker_ports.items()
    )
