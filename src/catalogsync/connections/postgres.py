"""
Postgres target store via psycopg (v3) async connections.

Uses connection limiting and reuse: a semaphore caps concurrent checkouts and
idle connections are kept for the next transaction. Every checkout is one
transaction that rolls back unless the caller commits it.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any

import psycopg

from catalogsync.exceptions import StoreError, TransientStoreError
from catalogsync.utils.logging import get_logger

logger = get_logger("catalogsync.connections.postgres")


def _store_error(e: Exception, operation: str) -> StoreError:
    """Wrap a psycopg error; network-level failures become transient."""
    if isinstance(e, (psycopg.OperationalError, TimeoutError)):
        return TransientStoreError(f"Postgres {operation} failed: {e}", operation=operation, cause=e)
    return StoreError(f"Postgres {operation} failed: {e}", operation=operation, cause=e)


class PostgresTransaction:
    """
    One open transaction on a checked-out connection.

    Statements use ``%s`` placeholders. Nothing is visible to other sessions
    until :meth:`commit`.
    """

    def __init__(self, connection: psycopg.AsyncConnection):
        self._connection = connection
        self._savepoints = 0
        self.committed = False
        self.rolled_back = False

    async def query_row(self, statement: str, params: Sequence[Any] = ()) -> tuple | None:
        try:
            async with self._connection.cursor() as cursor:
                await cursor.execute(statement, params or None)
                return await cursor.fetchone()
        except psycopg.Error as e:
            raise _store_error(e, "query") from e

    async def execute(self, statement: str, params: Sequence[Any] = ()) -> int:
        """Run a statement; returns the affected row count."""
        try:
            async with self._connection.cursor() as cursor:
                await cursor.execute(statement, params or None)
                return cursor.rowcount
        except psycopg.Error as e:
            raise _store_error(e, "execute") from e

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[None]:
        """
        Scope a group of statements that may fail without aborting the transaction.

        On error the transaction is rolled back to the savepoint and the error
        re-raised; the outer transaction stays usable.
        """
        self._savepoints += 1
        name = f"sp_{self._savepoints}"
        await self.execute(f"SAVEPOINT {name}")
        try:
            yield
        except BaseException:
            await self.execute(f"ROLLBACK TO SAVEPOINT {name}")
            raise
        else:
            await self.execute(f"RELEASE SAVEPOINT {name}")

    async def commit(self) -> None:
        try:
            await self._connection.commit()
        except psycopg.Error as e:
            raise _store_error(e, "commit") from e
        self.committed = True

    async def rollback(self) -> None:
        try:
            await self._connection.rollback()
        except psycopg.Error as e:
            raise _store_error(e, "rollback") from e
        self.rolled_back = True


class PostgresTarget:
    """
    Connection pool manager for Postgres using semaphore-based limiting.

    Connections are opened on demand up to ``max_size`` and reused while
    healthy. A broken connection is closed instead of being returned.

    Examples:
        >>> target = PostgresTarget("postgresql://sync@localhost/catalog", max_size=8)
        >>> async with target.begin() as tx:
        ...     await tx.execute("UPDATE SHOPS SET NAME = %s WHERE ID = %s", ("Acme", "s1"))
        ...     await tx.commit()
        >>> await target.close()
    """

    def __init__(self, dsn: str, max_size: int = 8, timeout: float = 10.0):
        """
        Initialize Postgres connection pool.

        Args:
            dsn: libpq connection string or postgresql:// URL
            max_size: Maximum concurrent connections
            timeout: Timeout for acquiring connection from pool
        """
        self.dsn = dsn
        self.max_size = max_size
        self.timeout = timeout

        self._semaphore = asyncio.Semaphore(max_size)
        self._idle: deque[psycopg.AsyncConnection] = deque()
        self._active_connections = 0
        self._closed = False
        self._metrics = {
            "active_connections": 0,
            "idle_connections": 0,
            "max_connections": max_size,
            "connection_errors": 0,
            "pool_exhaustions": 0,
            "total_connections_created": 0,
        }

    async def _connect(self) -> psycopg.AsyncConnection:
        try:
            connection = await psycopg.AsyncConnection.connect(self.dsn, connect_timeout=max(1, int(self.timeout)))
        except psycopg.Error as e:
            self._metrics["connection_errors"] += 1
            logger.error(f"Failed to create Postgres connection: {e}")
            raise _store_error(e, "connect") from e
        self._metrics["total_connections_created"] += 1
        return connection

    async def _acquire(self) -> psycopg.AsyncConnection:
        if self._closed:
            raise StoreError("Postgres pool is closed", operation="connect")
        try:
            # Acquire semaphore (limits concurrent connections)
            await asyncio.wait_for(self._semaphore.acquire(), timeout=self.timeout)
        except asyncio.TimeoutError:
            self._metrics["pool_exhaustions"] += 1
            raise TransientStoreError(
                f"Timeout waiting for Postgres connection from pool "
                f"(timeout={self.timeout}s, max_connections={self.max_size}, "
                f"active={self._active_connections})",
                operation="connect",
            ) from None

        try:
            while self._idle:
                connection = self._idle.popleft()
                if not connection.closed:
                    break
            else:
                connection = await self._connect()
        except BaseException:
            self._semaphore.release()
            raise

        self._active_connections += 1
        self._metrics["active_connections"] = self._active_connections
        self._metrics["idle_connections"] = len(self._idle)
        return connection

    async def _release(self, connection: psycopg.AsyncConnection) -> None:
        try:
            if self._closed or connection.closed or connection.broken:
                await connection.close()
            else:
                self._idle.append(connection)
        finally:
            # Always release semaphore
            self._semaphore.release()
            self._active_connections = max(0, self._active_connections - 1)
            self._metrics["active_connections"] = self._active_connections
            self._metrics["idle_connections"] = len(self._idle)

    @asynccontextmanager
    async def begin(self) -> AsyncIterator[PostgresTransaction]:
        """
        Check out a connection and open a transaction on it.

        Leaving the block without a commit (error, cancellation, or just not
        committing) rolls the transaction back.
        """
        connection = await self._acquire()
        tx = PostgresTransaction(connection)
        try:
            yield tx
        finally:
            if not tx.committed and not connection.closed:
                try:
                    await connection.rollback()
                except psycopg.Error as e:
                    logger.debug(f"Rollback on release failed, discarding connection: {e}")
                    await connection.close()
            await self._release(connection)

    async def ping(self) -> None:
        """
        Run ``SELECT 1`` on a pooled connection.

        Raises:
            StoreError: If the database is unreachable
        """
        async with self.begin() as tx:
            await tx.query_row("SELECT 1")

    def get_metrics(self) -> dict[str, Any]:
        """
        Get pool metrics.

        Returns:
            Dictionary with pool metrics
        """
        return self._metrics.copy()

    async def close(self) -> None:
        """Close idle connections; checked-out ones are closed on release."""
        self._closed = True
        while self._idle:
            connection = self._idle.popleft()
            try:
                await connection.close()
            except psycopg.Error as e:
                logger.debug(f"Error closing Postgres connection: {e}")
        self._metrics["idle_connections"] = 0
        logger.debug("Closed Postgres connection pool")
