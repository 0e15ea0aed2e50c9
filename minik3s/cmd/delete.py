"""Command to delete clusters."""

import click

from minik3s import utils
from minik3s.core.context import Minik3sContext


@click.command(
    "delete",
    help=(
        "Delete a cluster: its workers, its server, its local directory and "
        "its network.\n\n"
        "Delete every cluster, including partially created ones, with:\n\n"
        "minik3s delete --all"
    ),
)
@click.option("-n", "--name", default="", type=str, help="Cluster to delete.")
@click.option(
    "-a", "--all", "all_clusters", is_flag=True, default=False, help="Delete all clusters."
)
@utils.exception_handler
@utils.pass_environment()
def cli(ctx: Minik3sContext, name: str, all_clusters: bool) -> None:
    """Delete one or all clusters."""
    ctx.initialize()
    utils.check_daemon(ctx.engine)
    name = "" if all_clusters else name or ctx.config.cluster_name
    ctx.cluster.lifecycle.delete(name=name, all_clusters=all_clusters)
