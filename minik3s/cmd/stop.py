"""Command to stop clusters."""

import click

from minik3s import utils
from minik3s.core.context import Minik3sContext


@click.command(
    "stop",
    help="Stop the server and the workers of a cluster without removing them.",
)
@click.option("-n", "--name", default="", type=str, help="Cluster to stop.")
@click.option(
    "-a", "--all", "all_clusters", is_flag=True, default=False, help="Stop all clusters."
)
@utils.exception_handler
@utils.pass_environment()
def cli(ctx: Minik3sContext, name: str, all_clusters: bool) -> None:
    """Stop one or all clusters."""
    ctx.initialize()
    utils.check_daemon(ctx.engine)
    name = "" if all_clusters else name or ctx.config.cluster_name
    with ctx.logger.spinner("Stopping clusters..."):
        ctx.cluster.lifecycle.stop(name=name, all_clusters=all_clusters)
