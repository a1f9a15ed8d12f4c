"""
Target schema provisioning.

Creates or drops the eleven catalog tables. Entity tables are keyed by the
source ``_id`` as text; dimension tables carry an identity ID and a unique
natural key; product child tables are keyed by (PRODUCT_ID, ...) and cascade
with their product.
"""

from __future__ import annotations

from catalogsync.exceptions import SchemaError, StoreError
from catalogsync.sync.types import TargetStore
from catalogsync.utils.logging import get_logger

logger = get_logger("catalogsync.schema.ddl")

# (table, column definitions) in creation order; parents before children
TABLES: list[tuple[str, str]] = [
    (
        "BRANDS",
        "ID INTEGER GENERATED BY DEFAULT AS IDENTITY PRIMARY KEY, "
        "NAME VARCHAR(255) NOT NULL UNIQUE",
    ),
    (
        "CATEGORIES",
        "ID INTEGER GENERATED BY DEFAULT AS IDENTITY PRIMARY KEY, "
        "NAME VARCHAR(255) NOT NULL UNIQUE",
    ),
    (
        "CATEGORY_CODES",
        "ID INTEGER GENERATED BY DEFAULT AS IDENTITY PRIMARY KEY, "
        "CODE VARCHAR(255) NOT NULL UNIQUE",
    ),
    (
        "PRODUCTS",
        "ID VARCHAR(255) NOT NULL PRIMARY KEY, "
        "ADJUSTED_RATING DOUBLE PRECISION, "
        "BRAND_ID INTEGER REFERENCES BRANDS (ID), "
        "CATEGORY_ID INTEGER, "
        "CREATED_TIME VARCHAR(255), "
        "CREDIT_MONTHLY_PRICE DOUBLE PRECISION, "
        "CURRENCY VARCHAR(255), "
        "DELIVERY_DURATION VARCHAR(255), "
        "DISCOUNT DOUBLE PRECISION, "
        "HAS_VARIANTS BOOLEAN, "
        "LOAN_AVAILABLE BOOLEAN, "
        "RATING DOUBLE PRECISION, "
        "REVIEWS_LINK VARCHAR(255), "
        "REVIEWS_QUANTITY INTEGER, "
        "LINK VARCHAR(255), "
        "TITLE VARCHAR(255), "
        "UNIT_PRICE DOUBLE PRECISION, "
        "UNIT_SALE_PRICE DOUBLE PRECISION, "
        "WEIGHT DOUBLE PRECISION",
    ),
    (
        "PRODUCT_CATEGORIES",
        "PRODUCT_ID VARCHAR(255) NOT NULL REFERENCES PRODUCTS (ID) ON DELETE CASCADE, "
        "CATEGORY_ID INTEGER NOT NULL REFERENCES CATEGORIES (ID), "
        "PRIMARY KEY (PRODUCT_ID, CATEGORY_ID)",
    ),
    (
        "PRODUCT_CATEGORY_CODES",
        "PRODUCT_ID VARCHAR(255) NOT NULL REFERENCES PRODUCTS (ID) ON DELETE CASCADE, "
        "CATEGORY_CODE_ID INTEGER NOT NULL REFERENCES CATEGORY_CODES (ID), "
        "PRIMARY KEY (PRODUCT_ID, CATEGORY_CODE_ID)",
    ),
    (
        "PRODUCT_MONTHLY_INSTALLMENTS",
        "PRODUCT_ID VARCHAR(255) NOT NULL REFERENCES PRODUCTS (ID) ON DELETE CASCADE, "
        "INSTALLMENT_ID INTEGER NOT NULL, "
        "INSTALLMENT BOOLEAN, "
        "INSTALLMENT_PER_MONTH VARCHAR(255), "
        "PRIMARY KEY (PRODUCT_ID, INSTALLMENT_ID)",
    ),
    (
        "PRODUCT_PROMOS",
        "PRODUCT_ID VARCHAR(255) NOT NULL REFERENCES PRODUCTS (ID) ON DELETE CASCADE, "
        "CODE VARCHAR(255) NOT NULL, "
        "COMMENT VARCHAR(255), "
        "TYPE VARCHAR(255), "
        "PRIORITY INTEGER, "
        "PRIMARY KEY (PRODUCT_ID, CODE)",
    ),
    (
        "OFFERS",
        "ID VARCHAR(255) NOT NULL PRIMARY KEY, "
        "PRODUCT_ID VARCHAR(255), "
        "CATEGORY VARCHAR(255), "
        "SHOP_ID VARCHAR(255), "
        "AVAILABILITY_DATE VARCHAR(255), "
        "DELIVERY VARCHAR(255), "
        "DELIVERY_DURATION VARCHAR(255), "
        "KASPI_DELIVERY BOOLEAN, "
        "KD_DESTINATION_CITY VARCHAR(255), "
        "KD_PICKUP_DATE VARCHAR(255), "
        "LOCATED_IN_POINT VARCHAR(255), "
        "SHOP_RATING DOUBLE PRECISION, "
        "SHOP_REVIEWS_QUANTITY INTEGER, "
        "PREORDER BOOLEAN, "
        "PRICE DOUBLE PRECISION",
    ),
    (
        "SHOPS",
        "ID VARCHAR(255) NOT NULL PRIMARY KEY, "
        "NAME VARCHAR(255)",
    ),
    (
        "SHOP_REVIEWS",
        "ID VARCHAR(255) NOT NULL PRIMARY KEY, "
        "SHOP_ID VARCHAR(255) NOT NULL, "
        "RATING DOUBLE PRECISION, "
        "AUTHOR VARCHAR(255), "
        "COMMENT VARCHAR(2000), "
        "DATE VARCHAR(255)",
    ),
]

TABLE_NAMES = [name for name, _ in TABLES]


def create_statements() -> list[str]:
    return [f"CREATE TABLE IF NOT EXISTS {name} ({columns})" for name, columns in TABLES]


def drop_statements() -> list[str]:
    return [f"DROP TABLE IF EXISTS {name}" for name in reversed(TABLE_NAMES)]


async def _apply(target: TargetStore, statements: list[str], action: str) -> None:
    try:
        async with target.begin() as tx:
            for statement in statements:
                logger.debug(statement)
                await tx.execute(statement)
            await tx.commit()
    except StoreError as e:
        raise SchemaError(f"Failed to {action} tables: {e}", details={"action": action}) from e


async def create_tables(target: TargetStore) -> list[str]:
    """
    Create every missing table in one transaction.

    Returns:
        Table names in creation order

    Raises:
        SchemaError: If any statement fails; nothing is created in that case
    """
    await _apply(target, create_statements(), "create")
    logger.info(f"Created {len(TABLE_NAMES)} tables (existing tables left untouched)")
    return list(TABLE_NAMES)


async def drop_tables(target: TargetStore) -> list[str]:
    """Drop every table, children first. Data is lost."""
    await _apply(target, drop_statements(), "drop")
    logger.info(f"Dropped {len(TABLE_NAMES)} tables")
    return list(reversed(TABLE_NAMES))
