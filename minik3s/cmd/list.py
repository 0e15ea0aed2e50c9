"""Command to list clusters."""

import click

from minik3s import utils
from minik3s.core.context import Minik3sContext

HEADERS = ("NAME", "IMAGE", "STATUS", "WORKERS", "PORTS")


@click.command(
    "list",
    help="List clusters with their image, status, running workers and server ports.",
)
@click.option("-n", "--name", default="", type=str, help="Only list this cluster.")
@click.option(
    "-a",
    "--all",
    "all_clusters",
    is_flag=True,
    default=False,
    help="Also list clusters whose server is not running.",
)
@utils.exception_handler
@utils.pass_environment()
def cli(ctx: Minik3sContext, name: str, all_clusters: bool) -> None:
    """List one or all clusters."""
    ctx.initialize()
    utils.check_daemon(ctx.engine)
    clusters = ctx.cluster.state.list(all_clusters=not name, name=name)
    if not (all_clusters or name):
        clusters = {
            k: c for k, c in clusters.items() if c.server.state == "running"
        }
    if not clusters:
        hint = "" if all_clusters or name else " Use --all to include stopped clusters."
        ctx.logger.info(f"No clusters found.{hint}")
        return

    rows = [HEADERS] + [
        (
            c.name,
            c.image,
            str(c.status),
            f"{c.workers_running}/{len(c.workers)}",
            ",".join(c.server_ports) or "-",
        )
        for c in clusters.values()
    ]
    widths = [max(len(row[i]) for row in rows) for i in range(len(HEADERS) - 1)]
    for row in rows:
        cells = [cell.ljust(width) for cell, width in zip(row, widths)]
        click.echo("  ".join([*cells, row[-1]]))
