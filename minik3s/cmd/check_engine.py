"""Command to check the container engine connection."""

import click

from minik3s import utils
from minik3s.core.context import Minik3sContext


@click.command("check-engine", help="Check that the Docker engine is reachable.")
@utils.exception_handler
@utils.pass_environment()
def cli(ctx: Minik3sContext) -> None:
    """Ping the engine and log its version."""
    ctx.initialize()
    utils.check_daemon(ctx.engine)
    version = ctx.engine.version()
    ctx.logger.info(
        f"Docker engine {version.get('Version', 'unknown')} "
        f"(API {version.get('ApiVersion', 'unknown')}) is reachable."
    )
