"""
catalogsync - Continuous MongoDB to PostgreSQL catalog synchronization.

Mirrors the offer, product, shop and shop review collections into relational
tables, one perpetual full-resync pipeline per entity kind.
"""

__version__ = "0.1.0"

# Exceptions
from catalogsync.exceptions import (
    CatalogSyncError,
    ConfigurationError,
    InitializationError,
    MalformedField,
    SchemaError,
    StoreError,
    TransientStoreError,
)

# Sync core
from catalogsync.sync import EntityKind, PassResult, SyncPipeline, build_writer

__all__ = [
    "__version__",
    "CatalogSyncError",
    "ConfigurationError",
    "EntityKind",
    "InitializationError",
    "MalformedField",
    "PassResult",
    "SchemaError",
    "StoreError",
    "SyncPipeline",
    "TransientStoreError",
    "build_writer",
]
