"""Command to create a cluster."""

import click

from minik3s import utils
from minik3s.core.cluster.lifecycle import CreateRequest
from minik3s.core.context import Minik3sContext


@click.command(
    "create",
    help=(
        "Create a k3s cluster: one server node and optional worker nodes, "
        "each running in its own container on a private network.\n\n"
        "Publish ports with --publish, e.g.:\n\n"
        "minik3s create -n dev -w 2 -p 8080:80@workers --port-auto-offset 1\n\n"
        "A rule without a node selector applies to the server. Selectors "
        "are 'all', 'server', 'master', 'workers' or a node name."
    ),
)
@click.option(
    "-n", "--name", default="", type=str, help="Cluster name. Defaults to 'k3s-default'."
)
@click.option("-i", "--image", default="", type=str, help="k3s image to use.")
@click.option(
    "-w", "--workers", default=0, type=int, show_default=True, help="Number of workers."
)
@click.option(
    "-p",
    "--publish",
    "--add-port",
    "publish",
    multiple=True,
    type=str,
    help="Publish ports: [ip:][host-port:]container-port[/proto][@node]...",
)
@click.option(
    "-v",
    "--volume",
    "volumes",
    multiple=True,
    type=str,
    help="Bind mount for every node: SRC:DST[:ro|rw].",
)
@click.option(
    "-e",
    "--env",
    multiple=True,
    type=str,
    help="Environment variable for the server: KEY=VALUE.",
)
@click.option(
    "-x",
    "--server-arg",
    "server_args",
    multiple=True,
    type=str,
    help="Extra argument for 'k3s server'.",
)
@click.option(
    "--api-port", default=None, type=int, help="API server port. Defaults to 6443."
)
@click.option(
    "--wait",
    is_flag=True,
    default=False,
    help="Wait for the server to be ready before creating workers.",
)
@click.option(
    "-t",
    "--timeout",
    default=None,
    type=int,
    help="Seconds to wait with --wait (0 waits forever).",
)
@click.option(
    "--port-auto-offset",
    default=None,
    type=int,
    help="Shift worker host ports by this base plus the worker ordinal. "
    "0 disables shifting.",
)
@utils.exception_handler
@utils.pass_environment()
def cli(
    ctx: Minik3sContext,
    name: str,
    image: str,
    workers: int,
    publish: tuple[str, ...],
    volumes: tuple[str, ...],
    env: tuple[str, ...],
    server_args: tuple[str, ...],
    api_port: int | None,
    wait: bool,
    timeout: int | None,
    port_auto_offset: int | None,
) -> None:
    """Create a cluster."""
    ctx.initialize()
    config = ctx.config
    if timeout is None:
        timeout = config.wait_timeout if wait else 0
    request = CreateRequest(
        name=name or config.cluster_name,
        image=image or config.image,
        workers=workers,
        publish=list(publish),
        volumes=list(volumes),
        env=list(env),
        server_args=list(server_args),
        api_port=config.api_port if api_port is None else api_port,
        wait=wait,
        timeout=timeout,
        port_auto_offset=(
            config.port_auto_offset if port_auto_offset is None else port_auto_offset
        ),
    )
    ctx.cluster.validator.check_create_request(request)
    utils.check_daemon(ctx.engine)
    ctx.cluster.lifecycle.create(request)
