"""Unit tests for the minik3s commands, run through Click's CliRunner."""

from unittest.mock import patch

import pytest

from minik3s.cli import cli
from minik3s.core.context import Minik3sContext
from minik3s.core.envvars import OS_ENV_KEYS
from tests.cli.unit_tests.fixtures import KUBECONFIG, make_tar


@pytest.fixture
def invoke(cli_runner, fake_engine, tmp_path):
    """Invoke the CLI against the in-memory engine and a temp config root."""
    env = {key: None for key in OS_ENV_KEYS}
    env["MINIK3S_HOME"] = str(tmp_path)

    def _invoke(*args, input=None):
        with patch.object(Minik3sContext, "_build_engine", return_value=fake_engine):
            return cli_runner.invoke(cli, list(args), env=env, input=input)

    return _invoke


class TestCommandLoading:
    """Test suite for the command group."""

    def test_help_lists_commands(self, invoke):
        """Test that every command module is listed."""
        result = invoke("--help")
        assert result.exit_code == 0
        for command in (
            "check-engine",
            "config",
            "create",
            "delete",
            "get-credentials",
            "list",
            "start",
            "stop",
        ):
            assert command in result.output

    def test_unknown_command(self, invoke):
        """Test that a mistyped command suggests the closest match."""
        result = invoke("crate")
        assert result.exit_code == 2
        assert "Did you mean 'create'?" in result.output

    def test_version(self, invoke):
        """Test the version option."""
        result = invoke("--version")
        assert result.exit_code == 0
        assert "minik3s, version" in result.output


class TestCreateCommand:
    """Test suite for the create command."""

    def test_create(self, invoke, fake_engine):
        """Test creating a cluster with spread worker ports."""
        result = invoke(
            "create", "-n", "dev", "-w", "2", "-p", "8080:80@workers",
            "--port-auto-offset", "1",
        )
        assert result.exit_code == 0, result.output
        assert "Created cluster 'dev'" in result.output
        assert fake_engine.names() == [
            "minik3s-dev-server",
            "minik3s-dev-worker-0",
            "minik3s-dev-worker-1",
        ]
        assert fake_engine.configs["minik3s-dev-worker-1"].ports.host_ports() == [8082]

    def test_defaults_from_env(self, invoke, fake_engine):
        """Test that the cluster name and API port default from config."""
        result = invoke("-e", "CLUSTER_NAME=fromenv", "-e", "API_PORT=7443", "create")
        assert result.exit_code == 0, result.output
        server = fake_engine.configs["minik3s-fromenv-server"]
        assert server.command == ["server", "--https-listen-port", "7443"]

    def test_default_name(self, invoke, fake_engine):
        """Test the built-in default cluster name."""
        result = invoke("create")
        assert result.exit_code == 0, result.output
        assert fake_engine.names() == ["minik3s-k3s-default-server"]

    def test_timeout_without_wait(self, invoke, fake_engine):
        """Test that --timeout needs --wait."""
        result = invoke("create", "-n", "dev", "--timeout", "30")
        assert result.exit_code == 2
        assert "--timeout requires --wait" in result.output
        assert fake_engine.calls == []

    def test_wait(self, invoke, fake_engine):
        """Test creating with --wait against a ready server."""
        fake_engine.logs["minik3s-dev-server"] = b"Running kubelet"
        result = invoke("create", "-n", "dev", "--wait", "-t", "5")
        assert result.exit_code == 0, result.output
        assert "is ready" in result.output

    def test_bad_port_selector(self, invoke, fake_engine):
        """Test that an unknown node selector fails before any engine call."""
        result = invoke("create", "-n", "dev", "-p", "80@minik3s-dev-worker-9")
        assert result.exit_code == 2
        assert "Unknown node selector" in result.output
        assert fake_engine.calls == []

    def test_existing_cluster(self, invoke, fake_engine):
        """Test that an existing cluster name is a user error."""
        fake_engine.add_cluster("dev")
        result = invoke("create", "-n", "dev")
        assert result.exit_code == 2
        assert "already exists" in result.output

    def test_rollback_failure_exit_code(self, invoke, fake_engine):
        """Test that a failed rollback exits with its own code."""
        fake_engine.fail_on("create", "minik3s-dev-worker-0")
        fake_engine.fail_on("remove", "minik3s-dev-server")
        result = invoke("create", "-n", "dev", "-w", "1")
        assert result.exit_code == 4
        assert "minik3s-dev-server" in result.output

    def test_engine_unreachable(self, invoke, fake_engine):
        """Test the hint when the daemon does not answer."""
        fake_engine.fail_on("ping", "engine")
        result = invoke("create", "-n", "dev")
        assert result.exit_code == 2
        assert "Is the Docker daemon running?" in result.output

    def test_invalid_config_value(self, invoke):
        """Test that a bad numeric setting is a user error."""
        result = invoke("-e", "MAX_PARALLEL=many", "create")
        assert result.exit_code == 2
        assert "MAX_PARALLEL" in result.output


class TestListCommand:
    """Test suite for the list command."""

    def test_list(self, invoke, fake_engine):
        """Test the cluster table."""
        fake_engine.add_cluster("dev", workers=2)
        fake_engine.add_cluster("idle")
        fake_engine.set_state("minik3s-idle-server", "exited")
        result = invoke("list", "-a")
        assert result.exit_code == 0, result.output
        lines = [line for line in result.output.splitlines() if line.strip()]
        assert lines[0].split() == ["NAME", "IMAGE", "STATUS", "WORKERS", "PORTS"]
        assert lines[1].split() == [
            "dev",
            "docker.io/rancher/k3s:v1.29.4-k3s1",
            "running",
            "2/2",
            "-",
        ]
        assert lines[2].split()[2:4] == ["stopped", "0/0"]

    def test_list_hides_stopped_by_default(self, invoke, fake_engine):
        """Test that stopped clusters need --all, unless named."""
        fake_engine.add_cluster("dev")
        fake_engine.add_cluster("idle")
        fake_engine.set_state("minik3s-idle-server", "exited")
        result = invoke("list")
        assert result.exit_code == 0, result.output
        assert "dev" in result.output
        assert "idle" not in result.output
        assert "stopped" in invoke("list", "-n", "idle").output

    def test_list_only_stopped(self, invoke, fake_engine):
        """Test the --all hint when every cluster is stopped."""
        fake_engine.add_cluster("idle", state="exited")
        result = invoke("list")
        assert result.exit_code == 0
        assert "Use --all to include stopped clusters." in result.output

    def test_list_one(self, invoke, fake_engine):
        """Test listing a single cluster."""
        fake_engine.add_cluster("dev")
        fake_engine.add_cluster("other")
        result = invoke("list", "-n", "dev")
        assert "dev" in result.output
        assert "other" not in result.output

    def test_list_empty(self, invoke):
        """Test listing without clusters."""
        result = invoke("list")
        assert result.exit_code == 0
        assert "No clusters found." in result.output


class TestStopStartDeleteCommands:
    """Test suite for the stop, start and delete commands."""

    def test_stop_start(self, invoke, fake_engine):
        """Test stopping and starting a named cluster."""
        fake_engine.add_cluster("dev", workers=1)
        assert invoke("stop", "-n", "dev").exit_code == 0
        assert all(c["State"]["Status"] == "exited" for c in fake_engine.containers.values())
        assert invoke("start", "-n", "dev").exit_code == 0
        assert all(c["State"]["Status"] == "running" for c in fake_engine.containers.values())

    def test_stop_missing(self, invoke):
        """Test stopping a cluster that does not exist."""
        result = invoke("stop", "-n", "nope")
        assert result.exit_code == 2
        assert "does not exist" in result.output

    def test_start_all(self, invoke, fake_engine):
        """Test starting every cluster."""
        fake_engine.add_cluster("a", state="exited")
        fake_engine.add_cluster("b", state="exited")
        assert invoke("start", "--all").exit_code == 0
        assert all(c["State"]["Status"] == "running" for c in fake_engine.containers.values())

    def test_delete(self, invoke, fake_engine):
        """Test deleting a named cluster."""
        fake_engine.add_cluster("dev", workers=1)
        result = invoke("delete", "-n", "dev")
        assert result.exit_code == 0, result.output
        assert fake_engine.containers == {}
        assert fake_engine.networks == {}

    def test_delete_partial_failure(self, invoke, fake_engine):
        """Test that a partially failed delete exits with code 3."""
        fake_engine.add_cluster("dev", workers=2)
        fake_engine.fail_on("remove", "minik3s-dev-worker-0")
        result = invoke("delete", "-n", "dev")
        assert result.exit_code == 3
        assert "minik3s-dev-worker-0" in result.output
        assert fake_engine.names() == ["minik3s-dev-worker-0"]

    def test_delete_all(self, invoke, fake_engine):
        """Test deleting every cluster."""
        fake_engine.add_cluster("a")
        fake_engine.add_cluster("b", workers=1)
        assert invoke("delete", "-a").exit_code == 0
        assert fake_engine.containers == {}

    def test_delete_missing(self, invoke):
        """Test deleting a cluster that does not exist."""
        assert invoke("delete", "-n", "nope").exit_code == 2


class TestGetCredentialsCommand:
    """Test suite for the get-credentials command."""

    def test_prints_path(self, invoke, fake_engine, tmp_path):
        """Test that only the kubeconfig path goes to stdout."""
        fake_engine.add_cluster("dev")
        fake_engine.archives["minik3s-dev-server"] = make_tar(
            "kubeconfig.yaml", KUBECONFIG
        )
        result = invoke("get-credentials", "-n", "dev")
        assert result.exit_code == 0, result.output
        path = tmp_path / "dev" / "kubeconfig.yaml"
        assert result.output.strip() == str(path)
        assert path.read_bytes() == KUBECONFIG

    def test_missing_cluster(self, invoke):
        """Test fetching credentials of an unknown cluster."""
        assert invoke("get-credentials", "-n", "nope").exit_code == 2


class TestCheckEngineCommand:
    """Test suite for the check-engine command."""

    def test_reachable(self, invoke):
        """Test the version report."""
        result = invoke("check-engine")
        assert result.exit_code == 0
        assert "Docker engine 27.0.1 (API 1.46) is reachable." in result.output


class TestConfigCommand:
    """Test suite for the config command."""

    def test_writes_template(self, invoke, tmp_path):
        """Test that a missing config file is created from the template."""
        result = invoke("config")
        assert result.exit_code == 0, result.output
        assert (tmp_path / "minik3s.cfg").read_text().startswith("[config]")
        assert "IMAGE=rancher/k3s:v1.29.4-k3s1" in result.output
        assert "MAX_PARALLEL=4" in result.output

    def test_file_values_shown(self, invoke, tmp_path):
        """Test that config file values take effect."""
        (tmp_path / "minik3s.cfg").write_text("[config]\nCLUSTER_NAME=fromfile\n")
        result = invoke("config")
        assert "CLUSTER_NAME=fromfile" in result.output

    def test_reset_declined(self, invoke, tmp_path):
        """Test that declining the reset keeps the file."""
        (tmp_path / "minik3s.cfg").write_text("[config]\nIMAGE=custom\n")
        result = invoke("config", "--reset", input="n\n")
        assert result.exit_code == 0, result.output
        assert "Opted out" in result.output
        assert "IMAGE=custom" in (tmp_path / "minik3s.cfg").read_text()

    def test_reset_yes(self, invoke, tmp_path):
        """Test resetting without a prompt."""
        (tmp_path / "minik3s.cfg").write_text("[config]\nIMAGE=custom\n")
        result = invoke("config", "--reset", "-y")
        assert result.exit_code == 0, result.output
        assert "IMAGE=custom" not in (tmp_path / "minik3s.cfg").read_text()


class TestLogLevels:
    """Test suite for the global logging options."""

    def test_error_level_hides_info(self, invoke):
        """Test that --log-level ERROR hides info records."""
        result = invoke("--log-level", "ERROR", "create", "-n", "dev")
        assert result.exit_code == 0, result.output
        assert "[i]" not in result.output

    def test_verbose_shows_debug(self, invoke):
        """Test that -v shows debug records."""
        result = invoke("-v", "create", "-n", "dev")
        assert result.exit_code == 0, result.output
        assert "[v]" in result.output
