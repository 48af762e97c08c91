"""CLI command for serving the deployment API over HTTP.

Implements the 'terradeck serve' command which exposes the deployment
registry so clients can create deployments and poll their progress.
"""

from __future__ import annotations

import asyncio
import sys

import click

from terradeck.cli.commands.deploy import load_config
from terradeck.lib.errors import ConfigError
from terradeck.lib.logging_config import get_logger, setup_logging
from terradeck.models.config import OrchestratorConfig

logger = get_logger(__name__)


@click.command()
@click.option(
    "--port",
    "-p",
    type=int,
    default=8000,
    help="Port to listen on (default: 8000)",
)
@click.option(
    "--host",
    "-h",
    type=str,
    default="127.0.0.1",
    help="Host to bind to (default: 127.0.0.1 for local-only access)",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Path to terradeck.yaml",
)
@click.option(
    "--bundle-root",
    type=click.Path(file_okay=False),
    default=None,
    help="Directory holding one sub-directory per bundle reference",
)
@click.option(
    "--simulate",
    is_flag=True,
    help="Use the simulated runner instead of executing commands",
)
@click.option(
    "--debug/--no-debug",
    default=False,
    help="Enable debug logging",
)
@click.option(
    "--cors-origins",
    type=str,
    default="http://localhost:3000",
    help="Comma-separated allowed CORS origins (default: http://localhost:3000)",
)
def serve(
    port: int,
    host: str,
    config_file: str | None,
    bundle_root: str | None,
    simulate: bool,
    debug: bool,
    cors_origins: str,
) -> None:
    """Start an HTTP server exposing the deployment API.

    Example:

        terradeck serve

        terradeck serve --port 9000 --bundle-root ./bundles

    Endpoints:

        POST /deployments               Start a deployment
        GET  /deployments/{job_id}      Poll a deployment
        POST /deployments/{job_id}/cancel
    """
    setup_logging(verbose=debug, quiet=not debug)

    logger.info(
        f"Serve command invoked: port={port}, host={host}, "
        f"bundle_root={bundle_root}, simulate={simulate}, debug={debug}"
    )

    try:
        overrides: dict[str, object] = {"bundle_root": bundle_root}
        if simulate:
            overrides["runner"] = "simulated"
        config = load_config(config_file, overrides)

        origins = [o.strip() for o in cors_origins.split(",") if o.strip()]

        asyncio.run(
            _run_server(
                config=config,
                host=host,
                port=port,
                cors_origins=origins,
                debug=debug,
            )
        )

    except ConfigError as e:
        logger.error(f"Configuration error: {e}", exc_info=True)
        click.secho("Error: Failed to load configuration", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(2)
    except KeyboardInterrupt:
        logger.info("Server interrupted by user (Ctrl+C)")
        click.echo()
        click.secho("Server stopped.", fg="yellow")
        sys.exit(130)


async def _run_server(
    config: OrchestratorConfig,
    host: str,
    port: int,
    cors_origins: list[str],
    debug: bool,
) -> None:
    """Run the HTTP server.

    Args:
        config: Resolved orchestrator configuration.
        host: Host to bind to.
        port: Port to listen on.
        cors_origins: List of allowed CORS origins.
        debug: Enable debug mode.
    """
    import uvicorn

    from terradeck.deploy.bundles import DirectoryBundleSource
    from terradeck.deploy.registry import DeploymentRegistry
    from terradeck.serve.server import DeploymentServer

    registry = DeploymentRegistry(config)
    bundle_source = (
        DirectoryBundleSource(config.bundle_root) if config.bundle_root else None
    )

    server = DeploymentServer(
        registry=registry,
        bundle_source=bundle_source,
        host=host,
        port=port,
        cors_origins=cors_origins,
        debug=debug,
    )

    app = server.create_app()
    await server.start()

    _display_startup_info(config, host, port)

    uvicorn_config = uvicorn.Config(
        app=app,
        host=host,
        port=port,
        log_level="debug" if debug else "info",
    )
    server_instance = uvicorn.Server(uvicorn_config)

    try:
        await server_instance.serve()
    finally:
        await server.stop()


def _display_startup_info(config: OrchestratorConfig, host: str, port: int) -> None:
    """Display server startup information."""
    click.echo()
    click.secho("=" * 60, fg="cyan")
    click.secho("  TerraDeck Deployment Server", fg="cyan", bold=True)
    click.secho("=" * 60, fg="cyan")
    click.echo()
    click.echo(f"  URL:       http://{host}:{port}")
    click.echo(f"  Runner:    {config.runner.value}")
    click.echo(f"  Work root: {config.work_root}")
    if config.bundle_root:
        click.echo(f"  Bundles:   {config.bundle_root}")
    click.echo()
    click.secho("  Endpoints:", bold=True)
    click.echo("    POST /deployments                Start a deployment")
    click.echo("    GET  /deployments                List deployments")
    click.echo("    GET  /deployments/{id}           Deployment status and log")
    click.echo("    POST /deployments/{id}/cancel    Cancel a deployment")
    click.echo("    GET  /auth/status                Credential diagnostics")
    click.echo("    GET  /health                     Health check")
    click.echo("    GET  /ready                      Readiness check")
    click.echo()
    click.secho("  Press Ctrl+C to stop", fg="yellow")
    click.secho("=" * 60, fg="cyan")
    click.echo()
