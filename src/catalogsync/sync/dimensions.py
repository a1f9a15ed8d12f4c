"""
Dimension resolver: lookup-or-create for reference tables.

A natural key (brand name, category name, category code) maps to one
store-assigned surrogate ID forever. Resolution runs inside the caller's
transaction as select, insert-if-missing, select. The insert skips rows that
violate the natural-key unique constraint, so two transactions introducing the
same new key both end up reading the single committed row.
"""

from __future__ import annotations

from catalogsync.exceptions import StoreError
from catalogsync.sync.types import DimensionSpec, Transaction
from catalogsync.utils.logging import get_logger
from catalogsync.utils.sql import insert_sql, select_sql

logger = get_logger("catalogsync.sync.dimensions")

BRANDS = DimensionSpec(table="BRANDS", natural_key_column="NAME")
CATEGORIES = DimensionSpec(table="CATEGORIES", natural_key_column="NAME")
CATEGORY_CODES = DimensionSpec(table="CATEGORY_CODES", natural_key_column="CODE")


class DimensionResolver:
    """Resolves natural keys to surrogate IDs, creating rows on first sight."""

    async def lookup(self, tx: Transaction, dimension: DimensionSpec, natural_key: str) -> int | None:
        row = await tx.query_row(
            select_sql(dimension.table, dimension.id_column, dimension.natural_key_column),
            (natural_key,),
        )
        return None if row is None else int(row[0])

    async def resolve(self, tx: Transaction, dimension: DimensionSpec, natural_key: str) -> int:
        """
        Return the surrogate ID for ``natural_key``, inserting the row if needed.

        Raises:
            StoreError: If a statement fails or the row is still missing after insert
        """
        surrogate_id = await self.lookup(tx, dimension, natural_key)
        if surrogate_id is not None:
            return surrogate_id

        await tx.execute(
            insert_sql(dimension.table, [dimension.natural_key_column], conflict=[dimension.natural_key_column]),
            (natural_key,),
        )
        surrogate_id = await self.lookup(tx, dimension, natural_key)
        if surrogate_id is None:
            raise StoreError(
                f"{dimension.table} row for {dimension.natural_key_column}={natural_key!r} missing after insert",
                operation="resolve",
            )
        logger.debug(f"Created {dimension.table} {natural_key!r} -> {surrogate_id}")
        return surrogate_id
