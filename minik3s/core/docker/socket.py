"""Resolve the Docker socket to use."""

from __future__ import annotations

import json
import os
import subprocess
from typing import Mapping, Optional

from minik3s.core.errors import EngineUnavailableError


def resolve_docker_socket(env: Optional[Mapping[str, str]] = None) -> str:
    """
    Return the Docker socket to use, preferring DOCKER_HOST if set.

    Falls back to the endpoint of the active Docker context as reported
    by `docker context inspect`.

    Parameters
    ----------
    env : Mapping[str, str], optional
        Environment variables to resolve the socket from. Defaults to
        `os.environ`.

    Returns
    -------
    str
        The Docker socket URL.

    Raises
    ------
    EngineUnavailableError
        If the socket cannot be determined.
    """
    if env is None:
        env = os.environ
    socket_path = env.get("DOCKER_HOST")
    if socket_path:
        return socket_path
    hint = "Set DOCKER_HOST or make sure the docker CLI is installed."
    try:
        result = subprocess.run(
            ["docker", "context", "inspect"],
            capture_output=True,
            check=True,
            text=True,
            env={**os.environ, **env},
        )
    except (OSError, subprocess.CalledProcessError) as e:
        raise EngineUnavailableError(
            f"Failed to determine Docker socket: {e}", hint
        ) from e
    try:
        context = json.loads(result.stdout)[0]
        return context["Endpoints"]["docker"].get("Host", "")
    except (ValueError, IndexError, KeyError, TypeError) as e:
        raise EngineUnavailableError(
            f"Unexpected output from 'docker context inspect': {e}", hint
        ) from e
