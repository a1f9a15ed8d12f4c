"""
Target schema provisioning.

Creates and drops the catalog tables; no migrations.
"""

from catalogsync.schema.ddl import TABLE_NAMES, create_tables, drop_tables

__all__ = [
    "TABLE_NAMES",
    "create_tables",
    "drop_tables",
]
