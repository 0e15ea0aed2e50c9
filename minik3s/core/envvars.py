"""Environment variable utilities for minik3s."""

from __future__ import annotations

import os
from configparser import ConfigParser, Error as ConfigParserError
from typing import TYPE_CHECKING, Any

from minik3s import utils
from minik3s.settings import (
    CONFIG_FILENAME,
    CONFIG_ROOT_ENV,
    CONFIG_TEMPLATE,
    DEFAULT_CONFIG_ROOT,
)

if TYPE_CHECKING:
    from minik3s.core.context import Minik3sContext

OS_ENV_KEYS = [
    "API_PORT",
    "CLUSTER_NAME",
    "DOCKER_HOST",
    "IMAGE",
    "MAX_PARALLEL",
    "MINIK3S_HOME",
    "PORT_AUTO_OFFSET",
    "WAIT_TIMEOUT",
]


class EnvironmentVariables(dict):
    """minik3s environment variables.

    Parameters
    ----------
    ctx : Minik3sContext
        An instantiated Minik3sContext object containing user input
        and context.

    Notes
    -----
    Values are merged from, highest precedence first: `-e KEY=VALUE`
    options, selected OS environment variables, and the `[config]`
    section of the user's minik3s.cfg file.
    """

    def __init__(self, ctx: Minik3sContext) -> None:
        super().__init__()
        self._ctx = ctx
        self._parse_user_env_args()
        self._parse_os_env()
        self.config_root = os.path.abspath(
            os.path.expanduser(self.get(CONFIG_ROOT_ENV) or DEFAULT_CONFIG_ROOT)
        )
        self.config_file = os.path.join(self.config_root, CONFIG_FILENAME)
        self._parse_config_file()

    def get(self, key: Any, default: Any = None) -> str:
        """Return the value for a key, always as a string."""
        val = super().get(key, default)
        return str(val) if val is not None else ""

    def _strip_quotes(self, value: str) -> str:
        """Strip matching surrounding quotes from a config file value.

        Examples
        --------
        >>> env._strip_quotes('"rancher/k3s:latest"')
        'rancher/k3s:latest'
        >>> env._strip_quotes("6443")
        '6443'
        """
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            return value[1:-1]
        return value

    def _parse_user_env_args(self) -> None:
        """Parse `-e KEY=VALUE` options (highest precedence)."""
        for env_var in self._ctx._user_env_args:
            k, v = utils.parse_key_value_pair(env_var, hard_fail=True)
            self[k.upper()] = str(v)

    def _parse_os_env(self) -> None:
        """Parse whitelisted variables from the user's shell."""
        for k, v in os.environ.items():
            k = k.upper()
            if k in OS_ENV_KEYS and not self.get(k):
                self[k] = str(v)

    def _parse_config_file(self) -> None:
        """Parse the `[config]` section of the user's `minik3s.cfg` file.

        A missing file is skipped silently. A malformed file is logged as
        a warning and skipped.
        """
        config_file = self.config_file
        if not os.path.isfile(config_file):
            return

        try:
            config = ConfigParser(interpolation=None)
            config.optionxform = str  # type: ignore[assignment, method-assign]
            config.read(config_file)
            items = config.items("config")
        except ConfigParserError as e:
            self._ctx.logger.warn(
                f"Failed to parse config file {config_file} with error:\n{e}\n"
                f"Variables set in the config file will not be loaded. You can "
                f"reset your configuration file with 'minik3s config --reset'. "
                f"The valid config file structure is:\n{CONFIG_TEMPLATE}"
            )
            return

        for k, v in items:
            k = k.upper()
            if not self.get(k) and v:
                self[k] = self._strip_quotes(str(v))

    def log_env_vars(self) -> None:
        """Log the registered variables at debug level, aligned by key."""
        if not self:
            return
        sorted_items = sorted(self.items())
        width = max(len(str(k)) for k, _ in sorted_items) + 4
        env_block = "\n".join(f"\t{str(k).ljust(width)}{v}" for k, v in sorted_items)
        self._ctx.logger.debug(f"Registered environment variables:\n{env_block}")
