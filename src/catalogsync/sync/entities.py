"""
Per-entity wiring: which transformer, which table, which dependent rows.

Offers, shops and shop reviews are a single row each. A product also resolves
its brand, categories and category codes, links the product to them, and
writes its monthly installment and promo rows before the commit.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Any

from catalogsync.exceptions import StoreError
from catalogsync.sync.dimensions import BRANDS, CATEGORIES, CATEGORY_CODES, DimensionResolver
from catalogsync.sync.transform import (
    ProductRecord,
    transform_offer,
    transform_product,
    transform_shop,
    transform_shop_review,
)
from catalogsync.sync.types import DimensionSpec, EntityKind, TableSpec, Transaction, UpsertOutcome
from catalogsync.sync.upsert import UpsertExecutor
from catalogsync.utils.logging import get_logger
from catalogsync.utils.sql import insert_sql

logger = get_logger("catalogsync.sync.entities")

OFFERS = TableSpec("OFFERS")
PRODUCTS = TableSpec("PRODUCTS")
SHOPS = TableSpec("SHOPS")
SHOP_REVIEWS = TableSpec("SHOP_REVIEWS")

PRODUCT_CATEGORIES = "PRODUCT_CATEGORIES"
PRODUCT_CATEGORY_CODES = "PRODUCT_CATEGORY_CODES"
PRODUCT_MONTHLY_INSTALLMENTS = "PRODUCT_MONTHLY_INSTALLMENTS"
PRODUCT_PROMOS = "PRODUCT_PROMOS"


class EntityWriter:
    """Transforms a document of one entity kind and writes it as one row."""

    def __init__(
        self,
        kind: EntityKind,
        table: TableSpec,
        transform: Callable[[Mapping[str, Any]], Any],
        executor: UpsertExecutor | None = None,
    ):
        self.kind = kind
        self.table = table
        self._transform = transform
        self.executor = executor or UpsertExecutor()

    def transform(self, doc: Mapping[str, Any]) -> Any:
        """Decode a raw document; raises MalformedField."""
        return self._transform(doc)

    async def write(self, tx: Transaction, record: Any) -> UpsertOutcome:
        """Upsert the record's row and commit ``tx``."""
        return await self.executor.upsert(tx, self.table, record.id, record.columns())


class ProductWriter(EntityWriter):
    def __init__(self, executor: UpsertExecutor | None = None, resolver: DimensionResolver | None = None):
        super().__init__(EntityKind.PRODUCT, PRODUCTS, transform_product, executor)
        self.resolver = resolver or DimensionResolver()

    async def write(self, tx: Transaction, record: ProductRecord) -> UpsertOutcome:
        brand_id = None
        if record.brand is not None:
            brand_id = await self.resolver.resolve(tx, BRANDS, record.brand)

        fields = {"BRAND_ID": brand_id, **record.columns()}

        async def write_dependents(tx: Transaction) -> None:
            await self._link(tx, record.id, CATEGORIES, PRODUCT_CATEGORIES, "CATEGORY_ID", record.categories)
            await self._link(tx, record.id, CATEGORY_CODES, PRODUCT_CATEGORY_CODES, "CATEGORY_CODE_ID", record.category_codes)
            await self._write_installment(tx, record)
            await self._write_promos(tx, record)

        return await self.executor.upsert(tx, self.table, record.id, fields, before_commit=write_dependents)

    async def _link(
        self,
        tx: Transaction,
        product_id: str,
        dimension: DimensionSpec,
        association_table: str,
        association_column: str,
        natural_keys: Iterable[str],
    ) -> None:
        """Resolve each distinct key and link it to the product.

        A failed association insert is rolled back to its savepoint and logged;
        the record carries on.
        """
        columns = ["PRODUCT_ID", association_column]
        statement = insert_sql(association_table, columns, conflict=columns)
        for natural_key in dict.fromkeys(natural_keys):
            surrogate_id = await self.resolver.resolve(tx, dimension, natural_key)
            try:
                async with tx.savepoint():
                    await tx.execute(statement, (product_id, surrogate_id))
            except StoreError as e:
                logger.warning(
                    f"Could not link product {product_id} to {dimension.table} {natural_key!r}: {e}",
                    extra={"event": "association.failed", "entity": self.kind.value, "record_id": product_id},
                )

    async def _write_installment(self, tx: Transaction, record: ProductRecord) -> None:
        installment = record.monthly_installment
        if installment is None:
            return
        await tx.execute(
            insert_sql(
                PRODUCT_MONTHLY_INSTALLMENTS,
                ["PRODUCT_ID", "INSTALLMENT_ID", "INSTALLMENT", "INSTALLMENT_PER_MONTH"],
                conflict=["PRODUCT_ID", "INSTALLMENT_ID"],
                update=["INSTALLMENT", "INSTALLMENT_PER_MONTH"],
            ),
            (record.id, installment.installment_id, installment.installment, installment.formatted_per_month),
        )

    async def _write_promos(self, tx: Transaction, record: ProductRecord) -> None:
        if not record.promos:
            return
        statement = insert_sql(
            PRODUCT_PROMOS,
            ["PRODUCT_ID", "CODE", "COMMENT", "TYPE", "PRIORITY"],
            conflict=["PRODUCT_ID", "CODE"],
            update=["COMMENT", "TYPE", "PRIORITY"],
        )
        for promo in record.promos:
            await tx.execute(statement, (record.id, promo.code, promo.text, promo.type, promo.priority))


def build_writer(kind: EntityKind) -> EntityWriter:
    """Writer for one entity kind, with its own executor and resolver."""
    if kind is EntityKind.PRODUCT:
        return ProductWriter()
    if kind is EntityKind.OFFER:
        return EntityWriter(kind, OFFERS, transform_offer)
    if kind is EntityKind.SHOP:
        return EntityWriter(kind, SHOPS, transform_shop)
    if kind is EntityKind.SHOP_REVIEW:
        return EntityWriter(kind, SHOP_REVIEWS, transform_shop_review)
    raise ValueError(f"Unknown entity kind: {kind!r}")
