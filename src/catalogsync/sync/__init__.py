"""
Synchronization core: transformers, upserts, dimensions and the pipeline runner.
"""

from catalogsync.sync.dimensions import BRANDS, CATEGORIES, CATEGORY_CODES, DimensionResolver
from catalogsync.sync.entities import EntityWriter, ProductWriter, build_writer
from catalogsync.sync.pipeline import SyncPipeline
from catalogsync.sync.types import PAGE_SIZE, EntityKind, PassResult, UpsertOutcome
from catalogsync.sync.upsert import UpsertExecutor

__all__ = [
    "BRANDS",
    "CATEGORIES",
    "CATEGORY_CODES",
    "DimensionResolver",
    "EntityKind",
    "EntityWriter",
    "PAGE_SIZE",
    "PassResult",
    "ProductWriter",
    "SyncPipeline",
    "UpsertExecutor",
    "UpsertOutcome",
    "build_writer",
]
