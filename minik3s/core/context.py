"""Core context and controls for the minik3s CLI."""

from __future__ import annotations

import docker
from docker.errors import DockerException

from minik3s import utils
from minik3s.core.cluster.manager import ClusterManager
from minik3s.core.config import Minik3sConfig
from minik3s.core.docker.engine import ContainerEngine
from minik3s.core.docker.socket import resolve_docker_socket
from minik3s.core.envvars import EnvironmentVariables
from minik3s.core.errors import EngineUnavailableError, Minik3sError
from minik3s.core.logging.levels import LogLevel
from minik3s.core.logging.logger import Minik3sLogger
from minik3s.core.logging.utils import configure_logging


class Minik3sContext:
    """Expose context and core controls to CLI commands.

    Attributes
    ----------
    logger : Minik3sLogger
        Logs CLI activity.
    env : EnvironmentVariables
        Merged environment variables.
    config : Minik3sConfig
        Immutable configuration built from `env`.
    engine : ContainerEngine
        Container engine primitives. Built lazily on first access.
    cluster : ClusterManager
        Cluster naming, ports, state and lifecycle.

    Methods
    -------
    initialize()
        Hydrate the context with user-provided inputs.
    """

    def __init__(self):
        # ---- User-provided inputs ----
        self._user_env_args: list[str] = []
        self.log_level = LogLevel.INFO
        # ------------------------------

        self.logger: Minik3sLogger = configure_logging()
        self.env: EnvironmentVariables | None = None
        self.config: Minik3sConfig | None = None
        self.cluster: ClusterManager | None = None
        self._engine: ContainerEngine | None = None
        self._initialized = False

    @utils.exception_handler
    def initialize(self) -> None:
        """Load environment variables and configuration.

        Raises
        ------
        Minik3sError
            If the context has already been initialized.
        UserError
            If a configuration value is invalid.
        """
        if self._initialized:
            raise Minik3sError("Context has already been initialized.")
        self.env = EnvironmentVariables(self)
        self.env.log_env_vars()
        self.config = Minik3sConfig.from_env(self.env)
        self.cluster = ClusterManager(self)
        self._initialized = True

    @property
    def config_file(self) -> str:
        """Path to the user's `minik3s.cfg` file."""
        if self.env is None:
            raise Minik3sError("config_file accessed before initialization")
        return self.env.config_file

    @property
    def engine(self) -> ContainerEngine:
        """Return the container engine, connecting on first access.

        Raises
        ------
        EngineUnavailableError
            If the Docker socket cannot be resolved or the client
            cannot be built.
        """
        if self._engine is None:
            self._engine = self._build_engine()
        return self._engine

    @engine.setter
    def engine(self, value: ContainerEngine) -> None:
        self._engine = value

    def _build_engine(self) -> ContainerEngine:
        if self.env is None:
            raise Minik3sError("engine accessed before initialization")
        self.logger.debug(
            "Attempting to locate Docker socket file for current Docker context..."
        )
        socket = resolve_docker_socket(self.env.copy())
        self.logger.debug(f"Docker socket path: {socket}")
        try:
            docker_client = docker.DockerClient(base_url=socket)
            api_client = docker.APIClient(base_url=socket)
        except DockerException as e:
            raise EngineUnavailableError(
                f"Failed to build a Docker client for '{socket}': {e}",
                "Is the Docker daemon running? Check the active context with "
                "'docker context ls'.",
            ) from e
        return ContainerEngine(docker_client, api_client)
