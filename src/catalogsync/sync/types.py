"""
Type definitions shared by the synchronization pipelines.

The store and metrics collaborators are protocols so pipelines run the same
against MongoDB/PostgreSQL and against in-memory fakes.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

# Fixed page window for source reads
PAGE_SIZE = 1000

MAIN_DATABASE = "main"


class EntityKind(str, Enum):
    """Entity kinds mirrored from the source store, one pipeline each."""

    OFFER = "offer"
    PRODUCT = "product"
    SHOP = "shop"
    SHOP_REVIEW = "shop_review"

    @property
    def collection(self) -> str:
        return _COLLECTIONS[self]


_COLLECTIONS = {
    EntityKind.OFFER: "offers",
    EntityKind.PRODUCT: "products",
    EntityKind.SHOP: "shops",
    EntityKind.SHOP_REVIEW: "shop_reviews",
}

COLLECTIONS = frozenset(_COLLECTIONS.values())


class UpsertOutcome(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"


class SourceStore(Protocol):
    """Read side: count a collection and fetch it by offset/limit pages."""

    async def count(self, collection: str) -> int: ...

    async def fetch_page(self, collection: str, offset: int, limit: int) -> list[dict[str, Any]]: ...


class Transaction(Protocol):
    """One scoped target-store transaction."""

    async def query_row(self, statement: str, params: Sequence[Any] = ()) -> tuple | None: ...

    async def execute(self, statement: str, params: Sequence[Any] = ()) -> int: ...

    def savepoint(self) -> AbstractAsyncContextManager[None]: ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...


class TargetStore(Protocol):
    """Write side: hands out transactions that roll back unless committed."""

    def begin(self) -> AbstractAsyncContextManager[Transaction]: ...


class MetricsSink(Protocol):
    """Receives exactly one outcome per processed record, plus pass statistics."""

    def record_outcome(self, entity: str, outcome: str) -> None: ...

    def record_pass(self, entity: str, status: str, duration: float) -> None: ...

    def record_collection_size(self, entity: str, count: int) -> None: ...


@dataclass(frozen=True)
class TableSpec:
    """A target table keyed by one column."""

    name: str
    key_column: str = "ID"


@dataclass(frozen=True)
class DimensionSpec:
    """A dimension table with a store-assigned ID and a unique natural key."""

    table: str
    natural_key_column: str
    id_column: str = "ID"


@dataclass
class PassResult:
    """Counters for one pass over a collection."""

    entity: str
    total: int = 0
    pages: int = 0
    succeeded: int = 0
    failed: int = 0
    completed: bool = False
    error: str | None = None
    duration: float = 0.0

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed

    @property
    def status(self) -> str:
        if self.error is not None:
            return "failed"
        return "completed" if self.completed else "interrupted"

    def as_dict(self) -> dict[str, Any]:
        return {
            "entity": self.entity,
            "status": self.status,
            "total": self.total,
            "pages": self.pages,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "completed": self.completed,
            "error": self.error,
            "duration_seconds": round(self.duration, 3),
        }


Document = Mapping[str, Any]
