"""Entry point for the ``shiftdeck`` command."""

from __future__ import annotations

import click

from shiftdeck import __version__
from shiftdeck.cli.commands.deploy import deploy, launch, status, strategy, undeploy
from shiftdeck.config.env_loader import load_env_file
from shiftdeck.lib.logging_config import setup_logging


@click.group()
@click.version_option(__version__, prog_name="shiftdeck")
@click.option(
    "--settings",
    "settings_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Deployer settings file (default: shiftdeck.yaml if present)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose debug logging")
@click.option("--quiet", "-q", is_flag=True, help="Only show warnings and errors")
@click.pass_context
def cli(
    ctx: click.Context, settings_path: str | None, verbose: bool, quiet: bool
) -> None:
    """ShiftDeck - build and deploy application artifacts on OpenShift.

    Example:

        shiftdeck deploy app.yaml --wait

        shiftdeck status my-app
    """
    setup_logging(verbose=verbose, quiet=quiet)
    load_env_file()
    ctx.ensure_object(dict)
    ctx.obj["settings_path"] = settings_path
    ctx.obj["quiet"] = quiet


cli.add_command(deploy)
cli.add_command(undeploy)
cli.add_command(status)
cli.add_command(launch)
cli.add_command(strategy)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
