"""Container engine primitives used by the cluster lifecycle."""

from __future__ import annotations

import contextlib
from dataclasses import dataclass, field
from typing import Iterator, Optional

import docker
from docker.errors import APIError, DockerException, NotFound

from minik3s.core.cluster.ports import PublishedPortSet
from minik3s.core.docker.wrappers import Minik3sContainer, Minik3sNetwork
from minik3s.core.errors import EngineError, EngineNotFoundError


@dataclass
class NodeConfig:
    """
    Everything the engine needs to create one node container.

    Parameters
    ----------
    name : str
        Container name, also used as hostname and network alias.
    image : str
        Fully qualified image reference.
    command : list[str]
        Container command.
    network : str
        Network the container is attached to.
    env : dict[str, str]
        Container environment.
    labels : dict[str, str]
        Identity labels.
    ports : PublishedPortSet
        Published ports.
    volumes : list[str]
        Bind mounts as `src:dst[:mode]`.
    privileged : bool
        Run the container privileged.
    tmpfs : dict[str, str]
        tmpfs mounts keyed by container path.
    """

    name: str
    image: str
    command: list[str]
    network: str
    env: dict[str, str] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    ports: PublishedPortSet = field(default_factory=PublishedPortSet)
    volumes: list[str] = field(default_factory=list)
    privileged: bool = True
    tmpfs: dict[str, str] = field(default_factory=dict)


def label_filters(labels: dict[str, str]) -> list[str]:
    """Return `key=value` label filters for a label mapping."""
    return [f"{k}={v}" for k, v in labels.items()]


@contextlib.contextmanager
def engine_errors(action: str) -> Iterator[None]:
    """
    Translate Docker SDK exceptions into minik3s engine errors.

    Parameters
    ----------
    action : str
        Short description of the attempted action, used as the message
        prefix.
    """
    try:
        yield
    except NotFound as e:
        raise EngineNotFoundError(f"{action}: {e.explanation or e}") from e
    except APIError as e:
        raise EngineError(f"{action}: {e.explanation or e}") from e
    except (DockerException, OSError) as e:
        raise EngineError(f"{action}: {e}") from e


class ContainerEngine:
    """
    Thin layer over the Docker SDK exposing the primitives minik3s uses.

    Parameters
    ----------
    docker_client : docker.DockerClient
        High-level Docker client.
    api_client : docker.APIClient
        Low-level Docker client.

    Notes
    -----
    Every method raises `EngineError` (or `EngineNotFoundError` for
    objects that do not exist) instead of Docker SDK exceptions.
    """

    def __init__(self, docker_client: docker.DockerClient, api_client: docker.APIClient):
        self.docker_client = docker_client
        self.api_client = api_client

    def ping(self) -> bool:
        """Return True if the engine answers."""
        with engine_errors("Failed to reach the container engine"):
            return bool(self.docker_client.ping())

    def version(self) -> dict:
        """Return the engine version information."""
        with engine_errors("Failed to read the container engine version"):
            return self.docker_client.version()

    def create_network(self, name: str, labels: dict[str, str]) -> str:
        """Create a bridge network and return its ID."""
        with engine_errors(f"Failed to create network '{name}'"):
            network = self.docker_client.networks.create(
                name, driver="bridge", labels=labels
            )
            return network.id

    def remove_network(self, network_id: str) -> None:
        """Remove a network by ID or name."""
        with engine_errors(f"Failed to remove network '{network_id}'"):
            self.api_client.remove_network(network_id)

    def list_networks(self, labels: dict[str, str]) -> list[Minik3sNetwork]:
        """List networks carrying every given label."""
        with engine_errors("Failed to list networks"):
            networks = self.docker_client.networks.list(
                filters={"label": label_filters(labels)}
            )
        return [Minik3sNetwork(n) for n in networks]

    def pull_image(self, image: str) -> Iterator[dict]:
        """
        Pull an image, yielding decoded progress messages.

        Raises
        ------
        EngineError
            If the pull cannot start or the engine reports an error
            while streaming.
        """
        with engine_errors(f"Failed to pull image '{image}'"):
            for message in self.api_client.pull(image, stream=True, decode=True):
                if "error" in message:
                    raise EngineError(
                        f"Failed to pull image '{image}': {message['error']}"
                    )
                yield message

    def create_container(self, config: NodeConfig) -> str:
        """Create (but do not start) a node container and return its ID."""
        api = self.api_client
        with engine_errors(f"Failed to create container '{config.name}'"):
            host_config = api.create_host_config(
                port_bindings=config.ports.to_docker(),
                binds=list(config.volumes),
                privileged=config.privileged,
                tmpfs=dict(config.tmpfs) or None,
            )
            networking_config = api.create_networking_config(
                {config.network: api.create_endpoint_config(aliases=[config.name])}
            )
            container = api.create_container(
                config.image,
                command=config.command,
                name=config.name,
                hostname=config.name,
                environment=[f"{k}={v}" for k, v in config.env.items()],
                labels=config.labels,
                ports=config.ports.exposed_ports(),
                host_config=host_config,
                networking_config=networking_config,
            )
        return container["Id"]

    def start_container(self, container_id: str) -> None:
        """Start a container."""
        with engine_errors(f"Failed to start container '{container_id}'"):
            self.api_client.start(container_id)

    def stop_container(self, container_id: str, timeout: Optional[int] = None) -> None:
        """Stop a container."""
        with engine_errors(f"Failed to stop container '{container_id}'"):
            if timeout is None:
                self.api_client.stop(container_id)
            else:
                self.api_client.stop(container_id, timeout=timeout)

    def remove_container(self, container_id: str) -> None:
        """Force-remove a container together with its anonymous volumes."""
        with engine_errors(f"Failed to remove container '{container_id}'"):
            self.api_client.remove_container(container_id, v=True, force=True)

    def list_containers(
        self, labels: dict[str, str], all: bool = True
    ) -> list[Minik3sContainer]:
        """List containers carrying every given label."""
        with engine_errors("Failed to list containers"):
            containers = self.docker_client.containers.list(
                all=all, filters={"label": label_filters(labels)}, ignore_removed=True
            )
        return [Minik3sContainer(c) for c in containers]

    def container_logs(self, container_id: str) -> bytes:
        """Return the combined stdout and stderr of a container."""
        with engine_errors(f"Failed to read logs of container '{container_id}'"):
            return self.api_client.logs(container_id, stdout=True, stderr=True)

    def copy_from_container(self, container_id: str, path: str) -> bytes:
        """Return the raw tar archive of a path inside a container."""
        with engine_errors(f"Failed to copy '{path}' from container '{container_id}'"):
            stream, _ = self.api_client.get_archive(container_id, path)
            return b"".join(stream)
