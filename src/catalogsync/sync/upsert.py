"""
Upsert executor: probe by external identifier, then insert or update.

Probe-then-branch is not atomic against other writers of the same row; each
entity table has exactly one writer (its pipeline), so that race is accepted.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from catalogsync.sync.types import TableSpec, Transaction, UpsertOutcome
from catalogsync.utils.logging import get_logger
from catalogsync.utils.sql import insert_sql, select_sql, update_sql

logger = get_logger("catalogsync.sync.upsert")

BeforeCommit = Callable[[Transaction], Awaitable[None]]


class UpsertExecutor:
    """
    Writes one entity row per call and commits the caller's transaction.

    Examples:
        >>> executor = UpsertExecutor()
        >>> async with target.begin() as tx:
        ...     outcome = await executor.upsert(tx, TableSpec("SHOPS"), "s1", {"NAME": "Acme"})
    """

    async def exists(self, tx: Transaction, table: TableSpec, key: str) -> bool:
        """Probe for a row; a missing row is an answer, not an error."""
        row = await tx.query_row(select_sql(table.name, table.key_column, table.key_column), (key,))
        return row is not None

    async def upsert(
        self,
        tx: Transaction,
        table: TableSpec,
        key: str,
        fields: Mapping[str, Any],
        *,
        before_commit: BeforeCommit | None = None,
    ) -> UpsertOutcome:
        """
        Insert or update ``table`` row ``key`` with ``fields``, then commit.

        Args:
            tx: Open transaction, committed on success
            table: Target table and its key column
            key: External identifier
            fields: Column -> value for every mutable column
            before_commit: Writes dependent rows after the entity row, before commit

        Returns:
            Which branch ran

        Raises:
            StoreError: From the probe, either statement, dependents or commit
        """
        columns = list(fields)
        values = [fields[c] for c in columns]

        if await self.exists(tx, table, key):
            await tx.execute(update_sql(table.name, columns, table.key_column), (*values, key))
            outcome = UpsertOutcome.UPDATED
        else:
            await tx.execute(insert_sql(table.name, [table.key_column, *columns]), (key, *values))
            outcome = UpsertOutcome.INSERTED

        if before_commit is not None:
            await before_commit(tx)

        await tx.commit()
        logger.debug(f"{outcome.value} {table.name} {key}")
        return outcome
