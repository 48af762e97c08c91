"""CLI command for checking Azure credentials.

Implements 'terradeck auth' which runs the same credential gate a
deployment runs before Terraform is invoked.
"""

from __future__ import annotations

import asyncio
import sys

import click

from terradeck.cli.commands.deploy import handle_deployment_errors, load_config
from terradeck.deploy.credentials import AzureCredentialGate
from terradeck.deploy.registry import create_process_runner
from terradeck.lib.logging_config import get_logger, setup_logging
from terradeck.models.config import LoginMode

logger = get_logger(__name__)


@click.command()
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Path to terradeck.yaml",
)
@click.option(
    "--no-login",
    is_flag=True,
    help="Only check existing credentials, never start a login",
)
@click.option(
    "--simulate",
    is_flag=True,
    help="Use the simulated runner instead of executing commands",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose debug logging")
def auth(
    config_file: str | None, no_login: bool, simulate: bool, verbose: bool
) -> None:
    """Check Azure credentials, logging in if needed.

    Example:

        terradeck auth

        terradeck auth --no-login
    """
    setup_logging(verbose=verbose, quiet=not verbose)

    with handle_deployment_errors():
        overrides: dict[str, object] = {}
        if no_login:
            overrides["login_mode"] = LoginMode.DISABLED.value
        if simulate:
            overrides["runner"] = "simulated"
        config = load_config(config_file, overrides)

        gate = AzureCredentialGate(
            create_process_runner(config),
            azure_cli=config.azure_cli_binary,
            login_mode=config.login_mode,
            timeout=config.process_timeout,
        )
        result = asyncio.run(gate.authenticate(on_output=_echo_output))

    for line in result.diagnostic_lines:
        click.echo(f"  {line}")
    click.echo()
    if result.success:
        click.secho(result.message, fg="green", bold=True)
        sys.exit(0)

    logger.debug(f"Authentication failed: {result.message}")
    click.secho(result.message, fg="red", bold=True)
    sys.exit(3)


def _echo_output(chunk: str) -> None:
    click.echo(chunk, nl=False)
