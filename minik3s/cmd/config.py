"""Command to manage the minik3s config file."""

import dataclasses
import os

import click

from minik3s import utils
from minik3s.core.context import Minik3sContext
from minik3s.settings import CONFIG_TEMPLATE


@click.command(
    "config",
    help=(
        "Show the effective configuration, or create the config file "
        "(minik3s.cfg) from a template if it does not exist yet."
    ),
)
@click.option(
    "-r",
    "--reset",
    is_flag=True,
    default=False,
    help="Overwrite the config file with the template.",
)
@click.option(
    "-y", "--yes", is_flag=True, default=False, help="Do not ask for confirmation."
)
@click.option(
    "--edit", is_flag=True, default=False, help="Open the config file in an editor."
)
@utils.exception_handler
@utils.pass_environment()
def cli(ctx: Minik3sContext, reset: bool, yes: bool, edit: bool) -> None:
    """Show, create or reset the config file."""
    ctx.initialize()
    exists = os.path.isfile(ctx.config_file)
    if not exists:
        ctx.logger.info(f"No config file found, writing template to {ctx.config_file}")
        write_template(ctx)
    elif reset:
        if yes or utils.validate_yes(
            click.prompt(
                f"{ctx.logger.styled_prefix()}Configuration file exists. Overwrite? [Y/N]",
                type=str,
            )
        ):
            write_template(ctx)
            ctx.logger.info(f"Reset config file {ctx.config_file}")
        else:
            ctx.logger.info("Opted out of resetting the config file.")

    if edit:
        click.edit(filename=ctx.config_file)
        return

    ctx.logger.info(f"Config file: {ctx.config_file}")
    for f in dataclasses.fields(ctx.config):
        click.echo(f"{f.name.upper()}={getattr(ctx.config, f.name)}")


def write_template(ctx: Minik3sContext) -> None:
    """Write the template config file, creating its directory."""
    os.makedirs(os.path.dirname(ctx.config_file), exist_ok=True)
    with open(ctx.config_file, "w") as config_file:
        config_file.write(CONFIG_TEMPLATE.lstrip())
