"""
Main CLI entry point.
"""

import typer

from catalogsync import __version__
from catalogsync.cli import config, run, schema


def version_callback(value: bool):
    """Callback to display version and exit."""
    if value:
        typer.echo(f"catalogsync version {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="catalogsync",
    help="catalogsync - Continuous MongoDB to PostgreSQL catalog synchronization",
    add_completion=True,
)

# Register subcommands
app.add_typer(run.app, name="run")
app.add_typer(schema.app, name="schema")
app.add_typer(config.app, name="config")


@app.callback(invoke_without_command=True)
def entrypoint(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
):
    """
    catalogsync - Continuous MongoDB to PostgreSQL catalog synchronization.

    Run 'catalogsync <command> --help' for help on a specific command.
    """
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
