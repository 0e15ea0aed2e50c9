"""Unit tests for the container engine primitives."""

from unittest.mock import MagicMock

import pytest
from docker.errors import APIError, DockerException, NotFound
from docker.models.containers import Container
from docker.models.networks import Network

from minik3s.core.cluster.ports import to_binding_set
from minik3s.core.docker.engine import ContainerEngine, NodeConfig, label_filters
from minik3s.core.docker.wrappers import Minik3sContainer, Minik3sNetwork
from minik3s.core.errors import EngineError, EngineNotFoundError


def create_engine():
    """Create an engine over mocked Docker clients."""
    return ContainerEngine(MagicMock(), MagicMock())


class TestLabelFilters:
    """Test suite for label_filters."""

    def test_label_filters(self):
        """Test conversion of labels to engine filters."""
        assert label_filters({"app": "minik3s", "cluster": "dev"}) == [
            "app=minik3s",
            "cluster=dev",
        ]


class TestErrorTranslation:
    """Test suite for Docker SDK error translation."""

    def test_not_found(self):
        """Test that NotFound becomes EngineNotFoundError."""
        engine = create_engine()
        engine.api_client.start.side_effect = NotFound("No such container: abc")
        with pytest.raises(EngineNotFoundError) as exc:
            engine.start_container("abc")
        assert "No such container" in str(exc.value)

    def test_api_error(self):
        """Test that APIError becomes EngineError."""
        engine = create_engine()
        engine.api_client.stop.side_effect = APIError("conflict")
        with pytest.raises(EngineError) as exc:
            engine.stop_container("abc")
        assert not isinstance(exc.value, EngineNotFoundError)
        assert "Failed to stop container 'abc'" in str(exc.value)

    @pytest.mark.parametrize(
        "error", [DockerException("connection refused"), ConnectionError("refused")]
    )
    def test_connection_errors(self, error):
        """Test that connection failures become EngineError."""
        engine = create_engine()
        engine.docker_client.ping.side_effect = error
        with pytest.raises(EngineError):
            engine.ping()


class TestContainerEngine:
    """Test suite for ContainerEngine."""

    def test_ping_and_version(self):
        """Test ping and version passthrough."""
        engine = create_engine()
        engine.docker_client.ping.return_value = True
        engine.docker_client.version.return_value = {"Version": "27.0.1"}
        assert engine.ping() is True
        assert engine.version() == {"Version": "27.0.1"}

    def test_create_network(self):
        """Test bridge network creation with labels."""
        engine = create_engine()
        engine.docker_client.networks.create.return_value = MagicMock(id="net1")
        labels = {"app": "minik3s", "cluster": "dev"}
        assert engine.create_network("minik3s-dev", labels) == "net1"
        engine.docker_client.networks.create.assert_called_once_with(
            "minik3s-dev", driver="bridge", labels=labels
        )

    def test_list_networks_wrapped(self):
        """Test that listed networks are wrapped."""
        engine = create_engine()
        engine.docker_client.networks.list.return_value = [
            Network(attrs={"Id": "n1", "Name": "minik3s-dev", "Labels": {"cluster": "dev"}})
        ]
        networks = engine.list_networks({"app": "minik3s"})
        assert isinstance(networks[0], Minik3sNetwork)
        assert networks[0].cluster_name == "dev"
        engine.docker_client.networks.list.assert_called_once_with(
            filters={"label": ["app=minik3s"]}
        )

    def test_list_containers_wrapped(self):
        """Test that listed containers are wrapped and removed ones ignored."""
        engine = create_engine()
        engine.docker_client.containers.list.return_value = [
            Container(attrs={"Id": "c1", "Name": "/minik3s-dev-server"})
        ]
        containers = engine.list_containers({"app": "minik3s", "cluster": "dev"})
        assert isinstance(containers[0], Minik3sContainer)
        engine.docker_client.containers.list.assert_called_once_with(
            all=True,
            filters={"label": ["app=minik3s", "cluster=dev"]},
            ignore_removed=True,
        )

    def test_create_container(self):
        """Test the low-level create call for a node."""
        engine = create_engine()
        api = engine.api_client
        api.create_container.return_value = {"Id": "abc123"}
        config = NodeConfig(
            name="minik3s-dev-worker-0",
            image="docker.io/rancher/k3s:v1",
            command=[],
            network="minik3s-dev",
            env={"K3S_URL": "https://minik3s-dev-server:6443"},
            labels={"app": "minik3s"},
            ports=to_binding_set(["8081:80"]),
            volumes=["/tmp:/data:ro"],
            tmpfs={"/run": ""},
        )

        assert engine.create_container(config) == "abc123"

        api.create_host_config.assert_called_once_with(
            port_bindings={"80/tcp": [("", 8081)]},
            binds=["/tmp:/data:ro"],
            privileged=True,
            tmpfs={"/run": ""},
        )
        api.create_endpoint_config.assert_called_once_with(
            aliases=["minik3s-dev-worker-0"]
        )
        kwargs = api.create_container.call_args.kwargs
        assert api.create_container.call_args.args == ("docker.io/rancher/k3s:v1",)
        assert kwargs["name"] == "minik3s-dev-worker-0"
        assert kwargs["hostname"] == "minik3s-dev-worker-0"
        assert kwargs["environment"] == ["K3S_URL=https://minik3s-dev-server:6443"]
        assert kwargs["ports"] == [("80", "tcp")]
        assert kwargs["labels"] == {"app": "minik3s"}
        assert kwargs["host_config"] is api.create_host_config.return_value
        assert kwargs["networking_config"] is api.create_networking_config.return_value

    def test_create_container_without_tmpfs(self):
        """Test that an empty tmpfs mapping is not sent."""
        engine = create_engine()
        engine.api_client.create_container.return_value = {"Id": "x"}
        engine.create_container(NodeConfig("n", "img", [], "net"))
        assert engine.api_client.create_host_config.call_args.kwargs["tmpfs"] is None

    def test_pull_image_streams(self):
        """Test that pull progress is yielded."""
        engine = create_engine()
        engine.api_client.pull.return_value = iter(
            [{"status": "Pulling"}, {"status": "Done"}]
        )
        assert list(engine.pull_image("img")) == [{"status": "Pulling"}, {"status": "Done"}]
        engine.api_client.pull.assert_called_once_with("img", stream=True, decode=True)

    def test_pull_image_error_message(self):
        """Test that an error in the pull stream raises."""
        engine = create_engine()
        engine.api_client.pull.return_value = iter(
            [{"status": "Pulling"}, {"error": "manifest unknown"}]
        )
        with pytest.raises(EngineError) as exc:
            list(engine.pull_image("img"))
        assert "manifest unknown" in str(exc.value)

    def test_stop_container_timeout(self):
        """Test that a stop timeout is passed through."""
        engine = create_engine()
        engine.stop_container("abc", timeout=5)
        engine.api_client.stop.assert_called_once_with("abc", timeout=5)

    def test_remove_container(self):
        """Test forced removal with anonymous volumes."""
        engine = create_engine()
        engine.remove_container("abc")
        engine.api_client.remove_container.assert_called_once_with(
            "abc", v=True, force=True
        )

    def test_remove_network(self):
        """Test network removal by ID."""
        engine = create_engine()
        engine.remove_network("net1")
        engine.api_client.remove_network.assert_called_once_with("net1")

    def test_container_logs(self):
        """Test reading combined logs."""
        engine = create_engine()
        engine.api_client.logs.return_value = b"Running kubelet"
        assert engine.container_logs("abc") == b"Running kubelet"
        engine.api_client.logs.assert_called_once_with("abc", stdout=True, stderr=True)

    def test_copy_from_container(self):
        """Test that archive chunks are joined."""
        engine = create_engine()
        engine.api_client.get_archive.return_value = (iter([b"ab", b"cd"]), {})
        assert engine.copy_from_container("abc", "/output/kubeconfig.yaml") == b"abcd"
