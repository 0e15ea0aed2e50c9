"""Immutable per-invocation configuration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from minik3s.core.errors import UserError
from minik3s.settings import (
    DEFAULT_API_PORT,
    DEFAULT_CLUSTER_NAME,
    DEFAULT_IMAGE,
    DEFAULT_MAX_PARALLEL,
    KUBECONFIG_CONTAINER_PATH,
    POLL_INTERVAL,
    READINESS_MARKER,
    SECRET_LENGTH,
)

if TYPE_CHECKING:
    from minik3s.core.envvars import EnvironmentVariables


@dataclass(frozen=True)
class Minik3sConfig:
    """
    Configuration shared by every cluster operation of one invocation.

    Built once from the merged environment and never mutated. Command
    options override these defaults per call; they do not change the
    config itself.
    """

    config_root: str
    image: str = DEFAULT_IMAGE
    cluster_name: str = DEFAULT_CLUSTER_NAME
    api_port: int = DEFAULT_API_PORT
    port_auto_offset: int = 0
    wait_timeout: int = 0
    max_parallel: int = DEFAULT_MAX_PARALLEL
    docker_host: str = ""
    readiness_marker: str = READINESS_MARKER
    poll_interval: float = POLL_INTERVAL
    kubeconfig_path: str = KUBECONFIG_CONTAINER_PATH
    secret_length: int = SECRET_LENGTH

    @classmethod
    def from_env(cls, env: EnvironmentVariables) -> Minik3sConfig:
        """
        Build the configuration from merged environment variables.

        Parameters
        ----------
        env : EnvironmentVariables
            Merged `-e` options, OS environment and config file values.

        Returns
        -------
        Minik3sConfig
            The configuration.

        Raises
        ------
        UserError
            If a numeric setting is not a valid integer or out of range.
        """
        return cls(
            config_root=env.config_root,
            image=env.get("IMAGE") or DEFAULT_IMAGE,
            cluster_name=env.get("CLUSTER_NAME") or DEFAULT_CLUSTER_NAME,
            api_port=_int_setting(env, "API_PORT", DEFAULT_API_PORT, 1, 65535),
            port_auto_offset=_int_setting(env, "PORT_AUTO_OFFSET", 0, 0),
            wait_timeout=_int_setting(env, "WAIT_TIMEOUT", 0, 0),
            max_parallel=_int_setting(env, "MAX_PARALLEL", DEFAULT_MAX_PARALLEL, 1),
            docker_host=env.get("DOCKER_HOST"),
        )


def _int_setting(
    env: EnvironmentVariables,
    key: str,
    default: int,
    minimum: int,
    maximum: int | None = None,
) -> int:
    raw = env.get(key)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise UserError(
            f"Invalid value for {key}: '{raw}'. Expected an integer.",
            "Check the -e options, your shell environment and the config "
            "file ('minik3s config').",
        ) from e
    if value < minimum or (maximum is not None and value > maximum):
        bounds = f">= {minimum}" if maximum is None else f"{minimum}-{maximum}"
        raise UserError(f"Invalid value for {key}: {value}. Expected {bounds}.")
    return value
