"""Entry point for the ``terradeck`` command line."""

from __future__ import annotations

import click

from terradeck import __version__
from terradeck.cli.commands.auth import auth
from terradeck.cli.commands.deploy import deploy
from terradeck.cli.commands.serve import serve


@click.group()
@click.version_option(version=__version__, prog_name="terradeck")
def main() -> None:
    """TerraDeck - drive Terraform deployments to Azure.

    Stage Terraform configuration, authenticate, plan and apply, and follow
    each deployment's progress.
    """


main.add_command(auth)
main.add_command(deploy)
main.add_command(serve)


if __name__ == "__main__":  # pragma: no cover
    main()
