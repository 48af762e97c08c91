"""CLI command for running a single deployment in-process.

Implements ``terradeck deploy`` which stages a bundle directory, runs the
deployment state machine and prints each update as it is recorded.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

import click

from terradeck.config.loader import ConfigLoader
from terradeck.deploy.bundles import read_bundle_directory
from terradeck.deploy.registry import DeploymentRegistry
from terradeck.lib.errors import ConfigError, DeploymentError
from terradeck.lib.logging_config import get_logger, setup_logging
from terradeck.models.config import OrchestratorConfig
from terradeck.models.deployment import (
    ConfigurationBundle,
    DeploymentAction,
    DeploymentJob,
    DeploymentStatus,
    DeploymentUpdate,
)

logger = get_logger(__name__)

POLL_INTERVAL_SECONDS = 0.5

_STATUS_COLORS = {
    DeploymentStatus.COMPLETED: "green",
    DeploymentStatus.FAILED: "red",
}


@contextmanager
def handle_deployment_errors() -> Generator[None, None, None]:
    """Context manager for consistent error handling in CLI commands.

    Exit codes:
        2: Configuration error
        3: Deployment/execution error
    """
    try:
        yield
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        click.secho("Error: Configuration error", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(2)
    except DeploymentError as e:
        logger.error(f"Deployment error: {e}")
        click.secho(f"Error: {e.operation} failed", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(3)


def load_config(
    config_file: str | None, overrides: dict[str, object] | None = None
) -> OrchestratorConfig:
    """Resolve orchestrator configuration for a CLI command."""
    return ConfigLoader().load(config_file=config_file, overrides=overrides)


@click.command()
@click.argument(
    "bundle_dir",
    type=click.Path(exists=True, file_okay=False),
)
@click.option("--name", "subject_name", default=None, help="Deployment label")
@click.option(
    "--action",
    type=click.Choice([a.value for a in DeploymentAction]),
    default=DeploymentAction.DEPLOY.value,
    show_default=True,
    help="deploy = plan and apply, plan = stop after plan, apply = apply (plans first)",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Path to terradeck.yaml",
)
@click.option(
    "--work-root",
    type=click.Path(file_okay=False),
    default=None,
    help="Parent directory for working directories",
)
@click.option(
    "--simulate",
    is_flag=True,
    help="Use the simulated runner instead of executing commands",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose debug logging")
@click.option("--quiet", "-q", is_flag=True, help="Only print the final result")
def deploy(
    bundle_dir: str,
    subject_name: str | None,
    action: str,
    config_file: str | None,
    work_root: str | None,
    simulate: bool,
    verbose: bool,
    quiet: bool,
) -> None:
    """Deploy the Terraform files in BUNDLE_DIR.

    Example:

        terradeck deploy ./infra

        terradeck deploy ./infra --action plan --name my-app
    """
    setup_logging(verbose=verbose, quiet=not verbose)

    with handle_deployment_errors():
        overrides: dict[str, object] = {"work_root": work_root}
        if simulate:
            overrides["runner"] = "simulated"
        config = load_config(config_file, overrides)

        bundle = read_bundle_directory(bundle_dir)
        name = subject_name or Path(bundle_dir).resolve().name

        job = asyncio.run(
            _run_deployment(config, name, bundle, DeploymentAction(action), quiet)
        )

        _display_result(job, quiet)
        sys.exit(0 if job.status == DeploymentStatus.COMPLETED else 3)


async def _run_deployment(
    config: OrchestratorConfig,
    subject_name: str,
    bundle: ConfigurationBundle,
    action: DeploymentAction,
    quiet: bool,
) -> DeploymentJob:
    """Run one job and echo its updates while polling the registry."""
    registry = DeploymentRegistry(config)
    job_id = registry.create(subject_name, bundle, action)
    printed = 0

    try:
        while True:
            job = registry.get(job_id)
            assert job is not None  # noqa: S101
            if not quiet:
                for update in job.updates[printed:]:
                    _display_update(update)
            printed = len(job.updates)
            if job.is_finished:
                return job
            await asyncio.sleep(POLL_INTERVAL_SECONDS)
    except asyncio.CancelledError:
        registry.cancel(job_id)
        return await registry.wait(job_id)


def _display_update(update: DeploymentUpdate) -> None:
    color = _STATUS_COLORS.get(update.status)
    label = f"[{update.status.value}]"
    click.secho(f"{label:<16} {update.message}", fg=color)
    if update.details:
        for line in update.details.rstrip("\n").splitlines():
            click.echo(f"{'':<16} {line}")


def _display_result(job: DeploymentJob, quiet: bool) -> None:
    if quiet:
        click.echo(job.status.value)
        return

    click.echo()
    if job.status == DeploymentStatus.COMPLETED:
        click.secho("Deployment Successful!", fg="green", bold=True)
    else:
        click.secho("Deployment Failed", fg="red", bold=True)
        if job.error:
            click.echo(f"  Error:     {job.error}")
    click.echo(f"  Job:       {job.id}")
    click.echo(f"  Subject:   {job.subject_name}")
    if job.working_directory:
        click.echo(f"  Directory: {job.working_directory}")
    if job.outputs:
        click.secho("  Outputs:", bold=True)
        for key, value in job.outputs.items():
            click.echo(f"    {key} = {value}")
    click.echo()
