"""
catalogsync schema - Target schema provisioning.
"""

import asyncio
from pathlib import Path

import typer

from catalogsync.connections.postgres import PostgresTarget
from catalogsync.exceptions import InitializationError, SchemaError
from catalogsync.initialization import initialize
from catalogsync.schema.ddl import create_tables, drop_tables
from catalogsync.utils.logging import get_logger

logger = get_logger("catalogsync.cli.schema")

app = typer.Typer(name="schema", help="Create or drop the target tables")


async def _apply(dsn: str, action) -> list[str]:
    target = PostgresTarget(dsn, max_size=1)
    try:
        return await action(target)
    finally:
        await target.close()


def _settings(project_dir: Path, env: str | None, verbose: bool):
    try:
        return initialize(project_dir, env=env, verbose=verbose)
    except InitializationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e


@app.command("create")
def schema_create(
    env: str | None = typer.Option(None, help="Environment (dev, staging, prod)"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Create all catalog tables that do not exist yet.

    Examples:
        catalogsync schema create --env prod
    """
    settings = _settings(project_dir, env, verbose)
    try:
        tables = asyncio.run(_apply(settings.target.dsn, create_tables))
    except SchemaError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    typer.echo(f"Ensured {len(tables)} tables: {', '.join(tables)}")


@app.command("drop")
def schema_drop(
    env: str | None = typer.Option(None, help="Environment (dev, staging, prod)"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Drop all catalog tables. All synchronized data is lost.
    """
    settings = _settings(project_dir, env, verbose)
    if not yes:
        typer.confirm("Drop all catalog tables? All synchronized data will be lost", abort=True)
    try:
        tables = asyncio.run(_apply(settings.target.dsn, drop_tables))
    except SchemaError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    typer.echo(f"Dropped {len(tables)} tables")
