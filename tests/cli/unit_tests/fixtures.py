"""Shared pytest fixtures for minik3s unit tests.

The `FakeEngine` below keeps containers and networks in memory and
returns the same wrapper objects as the real engine, so cluster
lifecycle behaviour can be tested without Docker.
"""

import io
import itertools
import tarfile
from typing import Iterator
from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner
from docker.models.containers import Container
from docker.models.networks import Network

from minik3s.core.cluster.manager import ClusterManager
from minik3s.core.config import Minik3sConfig
from minik3s.core.docker.engine import NodeConfig
from minik3s.core.docker.wrappers import Minik3sContainer, Minik3sNetwork
from minik3s.core.errors import EngineError, EngineNotFoundError
from minik3s.shutdown import shutdown_event

KUBECONFIG = b"""apiVersion: v1
kind: Config
clusters:
- cluster:
    server: https://localhost:6443
  name: default
"""


def make_tar(filename: str, content: bytes) -> bytes:
    """Return a tar archive holding a single file, as the engine copies it."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        info = tarfile.TarInfo(filename)
        info.size = len(content)
        tar.addfile(info, io.BytesIO(content))
    return buf.getvalue()


class FakeEngine:
    """In-memory stand-in for `ContainerEngine`.

    Attributes
    ----------
    calls : list[tuple[str, str]]
        Every `(action, object name)` attempted, in order.
    configs : dict[str, NodeConfig]
        Node configs passed to `create_container`, by container name.
    logs : dict[str, bytes]
        Container logs by container name.
    archives : dict[str, bytes]
        Archives returned by `copy_from_container`, by container name.
    """

    def __init__(self):
        self.containers: dict[str, dict] = {}
        self.networks: dict[str, dict] = {}
        self.configs: dict[str, NodeConfig] = {}
        self.calls: list[tuple[str, str]] = []
        self.logs: dict[str, bytes] = {}
        self.archives: dict[str, bytes] = {}
        self._failures: dict[tuple[str, str], Exception] = {}
        self._ids = itertools.count(1)
        self._random_ports = itertools.count(32768)

    def fail_on(self, action: str, name: str, error: Exception | None = None) -> None:
        """Make `action` on the object called `name` raise."""
        self._failures[(action, name)] = error or EngineError(
            f"{action} {name}: simulated failure"
        )

    def _check(self, action: str, name: str) -> None:
        self.calls.append((action, name))
        if (action, name) in self._failures:
            raise self._failures[(action, name)]

    def _container(self, container_id: str) -> dict:
        if container_id not in self.containers:
            raise EngineNotFoundError(f"No such container: {container_id}")
        return self.containers[container_id]

    def ping(self) -> bool:
        self._check("ping", "engine")
        return True

    def version(self) -> dict:
        return {"Version": "27.0.1", "ApiVersion": "1.46"}

    def create_network(self, name: str, labels: dict) -> str:
        self._check("create_network", name)
        if any(n["Name"] == name for n in self.networks.values()):
            raise EngineError(f"network with name {name} already exists")
        network_id = f"net{next(self._ids)}"
        self.networks[network_id] = {"Id": network_id, "Name": name, "Labels": labels}
        return network_id

    def remove_network(self, network_id: str) -> None:
        if network_id not in self.networks:
            raise EngineNotFoundError(f"No such network: {network_id}")
        self._check("remove_network", self.networks[network_id]["Name"])
        del self.networks[network_id]

    def list_networks(self, labels: dict) -> list:
        return [
            Minik3sNetwork(Network(attrs=dict(attrs)))
            for attrs in self.networks.values()
            if labels.items() <= attrs["Labels"].items()
        ]

    def pull_image(self, image: str) -> Iterator[dict]:
        self._check("pull", image)
        yield {"status": "Pulling from rancher/k3s", "id": "latest"}
        yield {"status": f"Downloaded newer image for {image}"}

    def create_container(self, config: NodeConfig) -> str:
        self._check("create", config.name)
        if any(c["Name"] == f"/{config.name}" for c in self.containers.values()):
            raise EngineError(f"Conflict. The container name {config.name} is in use")
        container_id = f"c{next(self._ids):063d}"
        self.configs[config.name] = config
        ports = {
            key: [{"HostIp": ip, "HostPort": "" if p is None else str(p)} for ip, p in b]
            for key, b in config.ports.to_docker().items()
        }
        self.containers[container_id] = {
            "Id": container_id,
            "Name": f"/{config.name}",
            "State": {"Status": "created"},
            "Config": {
                "Image": config.image,
                "Labels": dict(config.labels),
                "Env": [f"{k}={v}" for k, v in config.env.items()],
                "Cmd": list(config.command),
            },
            "NetworkSettings": {"Ports": ports},
        }
        return container_id

    def start_container(self, container_id: str) -> None:
        attrs = self._container(container_id)
        self._check("start", attrs["Name"].lstrip("/"))
        for bindings in attrs["NetworkSettings"]["Ports"].values():
            for binding in bindings:
                if not binding["HostPort"]:
                    binding["HostPort"] = str(next(self._random_ports))
        attrs["State"]["Status"] = "running"

    def stop_container(self, container_id: str, timeout=None) -> None:
        attrs = self._container(container_id)
        self._check("stop", attrs["Name"].lstrip("/"))
        attrs["State"]["Status"] = "exited"

    def remove_container(self, container_id: str) -> None:
        attrs = self._container(container_id)
        self._check("remove", attrs["Name"].lstrip("/"))
        del self.containers[container_id]

    def list_containers(self, labels: dict, all: bool = True) -> list:
        return [
            Minik3sContainer(Container(attrs=attrs))
            for attrs in self.containers.values()
            if labels.items() <= attrs["Config"]["Labels"].items()
            and (all or attrs["State"]["Status"] == "running")
        ]

    def container_logs(self, container_id: str) -> bytes:
        attrs = self._container(container_id)
        self._check("logs", attrs["Name"].lstrip("/"))
        return self.logs.get(attrs["Name"].lstrip("/"), b"")

    def copy_from_container(self, container_id: str, path: str) -> bytes:
        attrs = self._container(container_id)
        name = attrs["Name"].lstrip("/")
        self._check("copy", name)
        if name not in self.archives:
            raise EngineNotFoundError(f"Could not find the file {path} in container")
        return self.archives[name]

    def add_cluster(
        self, name: str, workers: int = 0, state: str = "running", network: bool = True
    ) -> None:
        """Seed a labelled cluster without going through the lifecycle."""
        if network:
            self.create_network(
                f"minik3s-{name}", {"app": "minik3s", "cluster": name}
            )
        nodes = [("server", f"minik3s-{name}-server")] + [
            ("worker", f"minik3s-{name}-worker-{i}") for i in range(workers)
        ]
        for role, node in nodes:
            container_id = self.create_container(
                NodeConfig(
                    name=node,
                    image="docker.io/rancher/k3s:v1.29.4-k3s1",
                    command=[],
                    network=f"minik3s-{name}",
                    labels={
                        "app": "minik3s",
                        "component": role,
                        "cluster": name,
                        "created": "2024-05-01 12:00:00",
                    },
                )
            )
            self.containers[container_id]["State"]["Status"] = state
        self.calls.clear()

    def names(self) -> list[str]:
        """Return the names of every container, sorted."""
        return sorted(c["Name"].lstrip("/") for c in self.containers.values())

    def set_state(self, name: str, state: str) -> None:
        """Force the raw state of a container."""
        for attrs in self.containers.values():
            if attrs["Name"] == f"/{name}":
                attrs["State"]["Status"] = state


@pytest.fixture
def cli_runner():
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def fake_engine():
    """Provide an empty in-memory engine."""
    return FakeEngine()


@pytest.fixture
def fake_ctx(tmp_path, fake_engine):
    """Provide a context wired to the in-memory engine and a temp config root."""
    ctx = MagicMock()
    ctx.config = Minik3sConfig(config_root=str(tmp_path), poll_interval=0)
    ctx.engine = fake_engine
    ctx.cluster = ClusterManager(ctx)
    return ctx


@pytest.fixture(autouse=True)
def reset_shutdown_event():
    """Clear the process-wide shutdown flag around every test."""
    shutdown_event.clear()
    yield
    shutdown_event.clear()
