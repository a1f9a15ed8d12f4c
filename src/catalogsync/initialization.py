"""
catalogsync startup initialization.

Orchestrates initialization in order:
1. Config (defaults, config.yaml, config.{env}.yaml, environment substitution)
2. Command-line overrides
3. Settings validation
4. Logging
"""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path
from typing import Any

from catalogsync.config.loader import Config, load_config
from catalogsync.config.settings import SyncSettings, parse_entities
from catalogsync.exceptions import CatalogSyncError, InitializationError
from catalogsync.utils.logging import get_logger, setup_logging_from_config

logger = get_logger("catalogsync.initialization")


def resolve_env(env: str | None) -> str:
    return env or os.environ.get("CATALOGSYNC_ENV", "dev")


def load_project_config(project_dir: Path, env: str | None = None) -> Config:
    """
    Load configuration for ``project_dir``.

    Raises:
        InitializationError: If a config file is invalid
    """
    try:
        return load_config(Path(project_dir), env=resolve_env(env))
    except CatalogSyncError as e:
        raise InitializationError(f"Config initialization failed: {e}") from e


def initialize(
    project_dir: Path,
    env: str | None = None,
    verbose: bool = False,
    *,
    entities: list[str] | None = None,
    metrics_enabled: bool | None = None,
) -> SyncSettings:
    """
    Load and validate settings, then configure logging.

    Args:
        project_dir: Directory holding config.yaml
        env: Environment name (falls back to CATALOGSYNC_ENV, then dev)
        verbose: Force DEBUG logging
        entities: Restrict the run to these entity kinds
        metrics_enabled: Override metrics.enabled

    Returns:
        Validated SyncSettings

    Raises:
        InitializationError: On invalid or incomplete configuration
    """
    config = load_project_config(project_dir, env)
    try:
        settings = SyncSettings.from_config(config)
        if entities:
            settings = dataclasses.replace(settings, entities=parse_entities(entities))
    except CatalogSyncError as e:
        raise InitializationError(f"Config initialization failed: {e}") from e

    if metrics_enabled is not None:
        settings = dataclasses.replace(
            settings, metrics=dataclasses.replace(settings.metrics, enabled=metrics_enabled)
        )

    logging_config: dict[str, Any] = dict(settings.logging)
    if verbose:
        logging_config["level"] = logging.DEBUG
    setup_logging_from_config(logging_config, project_dir=Path(project_dir))

    logger.debug(
        f"Initialized for env={resolve_env(env)} entities={[k.value for k in settings.entities]} "
        f"metrics={settings.metrics.enabled}"
    )
    return settings
