"""
Parameterized statement builders.

Table and column names come from code, never from documents; they are still
validated so a typo cannot turn into SQL. Values always travel as ``%s``
parameters.
"""

import re
from collections.abc import Sequence

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def validate_identifier(identifier: str) -> str:
    """
    Return the identifier if it is a plain SQL name, else raise ValueError.

    Example:
        >>> validate_identifier("SHOP_REVIEWS")
        'SHOP_REVIEWS'
    """
    if not identifier or not _IDENTIFIER.fullmatch(identifier):
        raise ValueError(f"Unsafe SQL identifier: {identifier!r}")
    return identifier


def _names(columns: Sequence[str]) -> str:
    return ", ".join(validate_identifier(c) for c in columns)


def select_sql(table: str, column: str, where: str) -> str:
    """SELECT column FROM table WHERE where = %s"""
    return f"SELECT {validate_identifier(column)} FROM {validate_identifier(table)} WHERE {validate_identifier(where)} = %s"


def insert_sql(
    table: str,
    columns: Sequence[str],
    *,
    conflict: Sequence[str] | None = None,
    update: Sequence[str] | None = None,
) -> str:
    """
    INSERT INTO table (columns) VALUES (%s, ...)

    With ``conflict`` the insert ignores rows violating that unique key, or
    overwrites ``update`` columns from the new row when they are given.
    """
    if not columns:
        raise ValueError("insert_sql needs at least one column")
    placeholders = ", ".join(["%s"] * len(columns))
    statement = f"INSERT INTO {validate_identifier(table)} ({_names(columns)}) VALUES ({placeholders})"
    if conflict:
        statement += f" ON CONFLICT ({_names(conflict)})"
        if update:
            assignments = ", ".join(f"{validate_identifier(c)} = EXCLUDED.{c}" for c in update)
            statement += f" DO UPDATE SET {assignments}"
        else:
            statement += " DO NOTHING"
    return statement


def update_sql(table: str, columns: Sequence[str], where: str) -> str:
    """UPDATE table SET c1 = %s, ... WHERE where = %s"""
    if not columns:
        raise ValueError("update_sql needs at least one column")
    assignments = ", ".join(f"{validate_identifier(c)} = %s" for c in columns)
    return f"UPDATE {validate_identifier(table)} SET {assignments} WHERE {validate_identifier(where)} = %s"
