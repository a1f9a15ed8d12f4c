"""
Configuration management: YAML loading, environment resolution, typed settings.
"""

from catalogsync.config.loader import DEFAULT_CONFIG, Config, load_config
from catalogsync.config.resolver import resolve_config
from catalogsync.config.settings import MetricsSettings, SourceSettings, SyncSettings, TargetSettings

__all__ = [
    "load_config",
    "Config",
    "DEFAULT_CONFIG",
    "resolve_config",
    "SyncSettings",
    "SourceSettings",
    "TargetSettings",
    "MetricsSettings",
]
