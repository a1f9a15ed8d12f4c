"""
MongoDB source store via pymongo's asyncio client.

Read-only: counts a collection and returns it in offset/limit pages, ordered
by ``_id`` so consecutive pages of an unchanged collection never overlap.
"""

from __future__ import annotations

from typing import Any

from pymongo import ASCENDING, AsyncMongoClient
from pymongo.errors import ConnectionFailure, ExecutionTimeout, PyMongoError

from catalogsync.exceptions import ConfigurationError, StoreError, TransientStoreError
from catalogsync.sync.types import COLLECTIONS, MAIN_DATABASE
from catalogsync.utils.logging import get_logger

logger = get_logger("catalogsync.connections.mongo")


def _store_error(e: PyMongoError, operation: str) -> StoreError:
    if isinstance(e, (ConnectionFailure, ExecutionTimeout)):
        return TransientStoreError(f"MongoDB {operation} failed: {e}", operation=operation, cause=e)
    return StoreError(f"MongoDB {operation} failed: {e}", operation=operation, cause=e)


class MongoSource:
    """
    Paged reader over the catalog collections of the ``main`` database.

    The client connects lazily; constructing a MongoSource never does I/O.
    """

    def __init__(
        self,
        uri: str,
        database: str = MAIN_DATABASE,
        *,
        timeout: float = 10.0,
        client: AsyncMongoClient | None = None,
    ):
        if database != MAIN_DATABASE:
            raise ConfigurationError(
                f"Unknown source database '{database}'; only '{MAIN_DATABASE}' is supported",
                details={"database": database},
            )
        self.uri = uri
        self.database = database
        if client is None:
            client = AsyncMongoClient(uri, serverSelectionTimeoutMS=int(timeout * 1000))
        self._client = client

    def _collection(self, name: str):
        if name not in COLLECTIONS:
            raise ConfigurationError(
                f"Unknown collection '{name}'. Valid collections: {', '.join(sorted(COLLECTIONS))}",
                details={"collection": name},
            )
        return self._client[self.database][name]

    async def count(self, collection: str) -> int:
        """Number of documents currently in ``collection``."""
        coll = self._collection(collection)
        try:
            return await coll.count_documents({})
        except PyMongoError as e:
            raise _store_error(e, "count") from e

    async def fetch_page(self, collection: str, offset: int, limit: int) -> list[dict[str, Any]]:
        """
        Up to ``limit`` documents starting at ``offset`` in ``_id`` order.

        Raises:
            ConfigurationError: If the collection is not a catalog collection
            StoreError: If the query fails
        """
        if offset < 0 or limit <= 0:
            raise ValueError(f"Invalid page window offset={offset} limit={limit}")
        coll = self._collection(collection)
        try:
            cursor = coll.find({}, sort=[("_id", ASCENDING)], skip=offset, limit=limit)
            return await cursor.to_list()
        except PyMongoError as e:
            raise _store_error(e, "fetch") from e

    async def ping(self) -> None:
        try:
            await self._client.admin.command("ping")
        except PyMongoError as e:
            raise _store_error(e, "ping") from e

    async def close(self) -> None:
        await self._client.close()
        logger.debug("Closed MongoDB client")
