"""minik3s CLI entrypoint."""

import difflib
import os
import sys
from importlib import import_module
from typing import Any

import click

from minik3s import utils
from minik3s.core.context import Minik3sContext
from minik3s.core.logging.levels import LogLevel
from minik3s.core.logging.utils import configure_logging


class CommandLineInterface(click.Group):
    """Click group that loads commands from the `minik3s.cmd` package."""

    def list_commands(self, ctx: click.Context) -> list[str]:
        """List available commands."""
        cmd_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), "cmd"))
        commands = [
            filename[:-3].replace("_", "-")
            for filename in os.listdir(cmd_dir)
            if filename.endswith(".py") and not filename.startswith("__")
        ]
        return sorted(commands)

    def get_command(self, ctx: click.Context, name: str) -> Any:
        """Load and return the command module."""
        logger = configure_logging()
        mod_name = name.replace("-", "_")
        try:
            mod = import_module(f"minik3s.cmd.{mod_name}")
        except ModuleNotFoundError:
            suggestion = difflib.get_close_matches(name, self.list_commands(ctx), n=1)
            suggestion_msg = f" Did you mean '{suggestion[0]}'?" if suggestion else ""
            logger.error(f"Command '{name}' not found.{suggestion_msg}")
            sys.exit(2)
        cmd = getattr(mod, "cli", None)
        if cmd is None:
            logger.error(f"No 'cli' object in {mod_name}")
            sys.exit(1)
        return cmd


@click.command(cls=CommandLineInterface)
@click.version_option(version=utils.cli_ver(), prog_name="minik3s")
@click.option(
    "-v",
    "--verbose",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.option(
    "--log-level",
    type=click.Choice(["ERROR", "WARN", "INFO", "DEBUG"], case_sensitive=False),
    default="INFO",
    help="Set the minimum log level (ERROR, WARN, INFO, DEBUG).",
)
@click.option(
    "-e",
    "--env",
    default=[],
    type=str,
    multiple=True,
    help="Add or override configuration variables (KEY=VALUE).",
)
@utils.exception_handler
@utils.pass_environment()
def cli(ctx: Minik3sContext, verbose: bool, log_level: str, env: list[str]) -> None:
    """Run multi-node k3s clusters as Docker containers."""
    ctx._user_env_args = list(env)
    ctx.log_level = LogLevel.DEBUG if verbose else LogLevel.from_name(log_level)
    ctx.logger.set_level(ctx.log_level)
