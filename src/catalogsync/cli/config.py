"""
catalogsync config - Show the resolved configuration.
"""

import re
from pathlib import Path
from typing import Any

import typer
import yaml
from rich.console import Console
from rich.syntax import Syntax

from catalogsync.exceptions import InitializationError
from catalogsync.initialization import load_project_config, resolve_env

app = typer.Typer(name="config", help="Inspect catalogsync configuration")

console = Console()

_SECRET_KEYS = ("password", "secret", "token")
_URL_PASSWORD = re.compile(r"(?P<prefix>://[^:/@]+:)(?P<password>[^@]+)(?P<suffix>@)")


def mask_secrets(value: Any, key: str = "") -> Any:
    """Replace passwords embedded in URLs and secret-named keys with ***."""
    if isinstance(value, dict):
        return {k: mask_secrets(v, str(k)) for k, v in value.items()}
    if isinstance(value, list):
        return [mask_secrets(v, key) for v in value]
    if isinstance(value, str):
        if any(s in key.lower() for s in _SECRET_KEYS):
            return "***"
        return _URL_PASSWORD.sub(r"\g<prefix>***\g<suffix>", value)
    return value


@app.command("show")
def config_show(
    env: str | None = typer.Option(None, help="Environment (dev, staging, prod)"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
):
    """
    Print the merged configuration with secrets masked.
    """
    try:
        cfg = load_project_config(project_dir, env)
    except InitializationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    console.print(f"\n[bold]Configuration ({resolve_env(env)})[/bold]\n")
    content = yaml.safe_dump(mask_secrets(cfg.data), sort_keys=False)
    console.print(Syntax(content, "yaml", theme="monokai", line_numbers=False))
