"""
Configuration file loading.

Loads config.yaml (plus an optional config.{env}.yaml override). Without a
config.yaml the built-in defaults apply, which read the store locations from
the MONGO_URI and DATABASE_URL environment variables.
"""

import copy
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import yaml

from catalogsync.config.resolver import resolve_config
from catalogsync.exceptions import ConfigurationError

DEFAULT_CONFIG: dict[str, Any] = {
    "source": {
        "uri": "${MONGO_URI}",
        "database": "main",
    },
    "target": {
        "dsn": "${DATABASE_URL}",
        "pool": {"max_size": 8, "timeout": 10.0},
    },
    "sync": {
        "entities": ["offer", "product", "shop", "shop_review"],
        "min_pass_interval": 5.0,
    },
    "metrics": {
        "enabled": True,
        "host": "0.0.0.0",
        "port": 9090,
    },
    "logging": {
        "level": "INFO",
        "console_type": "rich",
    },
}


class Config:
    """Configuration container with dict-like access."""

    def __init__(self, data: dict[str, Any]):
        self.data = data

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation."""
        value: Any = self.data
        for k in key.split("."):
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default
        return value

    def __getitem__(self, key: str) -> Any:
        """Dict-like access: config['key'] or config['nested.key']."""
        if "." in key:
            return self.get(key)
        if key in self.data:
            value = self.data[key]
            if isinstance(value, dict):
                return Config(value)
            return value
        raise KeyError(f"Config key '{key}' not found")

    def __contains__(self, key: str) -> bool:
        """Check if key exists in config (dot notation supported)."""
        value: Any = self.data
        for k in key.split("."):
            if not isinstance(value, dict) or k not in value:
                return False
            value = value[k]
        return True

    def __iter__(self) -> "Iterator[str]":
        return iter(self.data)

    def section(self, name: str) -> dict[str, Any]:
        """Return a top-level section as a plain dict (empty when absent)."""
        value = self.data.get(name) or {}
        if not isinstance(value, dict):
            raise ConfigurationError(f"Configuration section '{name}' must be a mapping, got {type(value).__name__}")
        return value


def load_config(project_path: Path | None = None, env: str | None = None) -> Config:
    """
    Load catalogsync configuration.

    Args:
        project_path: Directory holding config.yaml (default: current directory)
        env: Environment name (dev, staging, prod) selecting config.{env}.yaml

    Returns:
        Config with defaults, file values and environment substitutions merged

    Raises:
        ConfigurationError: If a config file cannot be parsed
    """
    if project_path is None:
        project_path = Path.cwd()

    config_data = copy.deepcopy(DEFAULT_CONFIG)

    base_config_path = project_path / "config.yaml"
    if base_config_path.is_file():
        _merge_dict(config_data, _read_yaml(base_config_path))

    if env:
        env_config_path = project_path / f"config.{env}.yaml"
        if env_config_path.is_file():
            _merge_dict(config_data, _read_yaml(env_config_path))

    return Config(resolve_config(config_data, env or "dev"))


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        if hasattr(e, "problem_mark"):
            mark = e.problem_mark
            raise ConfigurationError(
                f"Error parsing {path.name} at line {mark.line + 1}, column {mark.column + 1}:\n"
                f"  {e}\n"
                f"  Suggestion: Check YAML syntax, ensure proper indentation and quotes"
            ) from e
        raise ConfigurationError(f"Error parsing {path.name}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"{path.name} must contain a mapping, got {type(data).__name__}")
    return data


def _merge_dict(base: dict, override: dict):
    """Recursively merge override into base."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _merge_dict(base[key], value)
        else:
            base[key] = value
