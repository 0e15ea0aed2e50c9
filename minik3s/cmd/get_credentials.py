"""Command to fetch the kubeconfig of a cluster."""

import click

from minik3s import utils
from minik3s.core.context import Minik3sContext


@click.command(
    "get-credentials",
    help=(
        "Copy the kubeconfig of a cluster to the local cluster directory and "
        "print its path, e.g.:\n\n"
        'export KUBECONFIG="$(minik3s get-credentials -n dev)"'
    ),
)
@click.option("-n", "--name", default="", type=str, help="Cluster name.")
@utils.exception_handler
@utils.pass_environment()
def cli(ctx: Minik3sContext, name: str) -> None:
    """Print the path of a cluster's kubeconfig."""
    ctx.initialize()
    utils.check_daemon(ctx.engine)
    path = ctx.cluster.lifecycle.fetch_credentials(name or ctx.config.cluster_name)
    click.echo(path)
