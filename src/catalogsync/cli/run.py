"""
catalogsync run - Run the synchronization service.

Starts one pipeline per entity kind and serves /health and /metrics until
interrupted.
"""

from pathlib import Path

import typer

from catalogsync.exceptions import InitializationError
from catalogsync.initialization import initialize
from catalogsync.service.server import run_service
from catalogsync.utils.logging import get_logger

logger = get_logger("catalogsync.cli.run")


app = typer.Typer(name="run", help="Run the synchronization service", invoke_without_command=True)


@app.callback()
def run(
    ctx: typer.Context,
    env: str | None = typer.Option(None, help="Environment (dev, staging, prod)"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
    entity: list[str] | None = typer.Option(
        None, "--entity", "-e", help="Entity kind to sync (repeatable; default: all configured)"
    ),
    no_metrics: bool = typer.Option(False, "--no-metrics", help="Disable metrics and the HTTP endpoints"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """
    Mirror the catalog collections into the target database until interrupted.

    Each pass re-reads a whole collection; stop with Ctrl+C or SIGTERM.
    """
    if ctx.invoked_subcommand is not None:
        return

    try:
        settings = initialize(
            project_dir,
            env=env,
            verbose=verbose,
            entities=entity or None,
            metrics_enabled=False if no_metrics else None,
        )
    except InitializationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    logger.info("Starting catalogsync...")
    try:
        run_service(settings)
    except InitializationError as e:
        logger.error(f"Startup failed: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    except KeyboardInterrupt:
        typer.echo("Interrupted")
