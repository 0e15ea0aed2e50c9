"""Command to start stopped clusters."""

import click

from minik3s import utils
from minik3s.core.context import Minik3sContext


@click.command(
    "start",
    help=(
        "Start a stopped cluster: the server first, then the workers. "
        "Workers are not started if the server fails to start."
    ),
)
@click.option("-n", "--name", default="", type=str, help="Cluster to start.")
@click.option(
    "-a", "--all", "all_clusters", is_flag=True, default=False, help="Start all clusters."
)
@utils.exception_handler
@utils.pass_environment()
def cli(ctx: Minik3sContext, name: str, all_clusters: bool) -> None:
    """Start one or all clusters."""
    ctx.initialize()
    utils.check_daemon(ctx.engine)
    name = "" if all_clusters else name or ctx.config.cluster_name
    with ctx.logger.spinner("Starting clusters..."):
        ctx.cluster.lifecycle.start(name=name, all_clusters=all_clusters)
