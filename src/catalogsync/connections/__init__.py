"""
Store connections: MongoDB source and PostgreSQL target.
"""

from catalogsync.connections.mongo import MongoSource
from catalogsync.connections.postgres import PostgresTarget, PostgresTransaction

__all__ = ["MongoSource", "PostgresTarget", "PostgresTransaction"]
