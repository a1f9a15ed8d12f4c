"""
In-memory source and target stores for pipeline tests.

FakeTarget understands exactly the statement shapes the sync engine emits
(probe SELECT, INSERT with optional ON CONFLICT, UPDATE, DDL) and enforces
primary keys, unique natural keys and NOT NULL columns. Writes apply
immediately and are undone on rollback, so a test only ever sees committed
rows once every transaction has finished.
"""

import asyncio
import logging
import re
from contextlib import asynccontextmanager

import pytest

from catalogsync.exceptions import StoreError, TransientStoreError
from catalogsync.observability.metrics import MetricsRegistry

KEYS = {
    "OFFERS": ("ID",),
    "PRODUCTS": ("ID",),
    "SHOPS": ("ID",),
    "SHOP_REVIEWS": ("ID",),
    "BRANDS": ("ID",),
    "CATEGORIES": ("ID",),
    "CATEGORY_CODES": ("ID",),
    "PRODUCT_CATEGORIES": ("PRODUCT_ID", "CATEGORY_ID"),
    "PRODUCT_CATEGORY_CODES": ("PRODUCT_ID", "CATEGORY_CODE_ID"),
    "PRODUCT_MONTHLY_INSTALLMENTS": ("PRODUCT_ID", "INSTALLMENT_ID"),
    "PRODUCT_PROMOS": ("PRODUCT_ID", "CODE"),
}
UNIQUE = {
    "BRANDS": [("NAME",)],
    "CATEGORIES": [("NAME",)],
    "CATEGORY_CODES": [("CODE",)],
}
IDENTITY = {"BRANDS", "CATEGORIES", "CATEGORY_CODES"}
NOT_NULL = {"SHOP_REVIEWS": ("SHOP_ID",)}

_SELECT = re.compile(r"SELECT (\w+) FROM (\w+) WHERE (\w+) = %s")
_INSERT = re.compile(
    r"INSERT INTO (\w+) \(([^)]*)\) VALUES \([^)]*\)"
    r"(?: ON CONFLICT \(([^)]*)\) (?:(DO NOTHING)|DO UPDATE SET (.+)))?"
)
_UPDATE = re.compile(r"UPDATE (\w+) SET (.+) WHERE (\w+) = %s")
_CREATE = re.compile(r"CREATE TABLE IF NOT EXISTS (\w+) \(")
_DROP = re.compile(r"DROP TABLE IF EXISTS (\w+)")


def _split(names):
    return [n.strip() for n in names.split(",") if n.strip()]


class FakeDatabase:
    """Shared state behind one FakeTarget."""

    def __init__(self):
        self.tables = {name: [] for name in KEYS}
        self.sequences = {name: 0 for name in IDENTITY}
        self.statements = []
        self.ddl = []
        self.commits = 0
        self.rollbacks = 0
        self.open_transactions = 0
        self._failures = []

    def fail_on(self, pattern, error=None, times=None):
        """Raise ``error`` (default StoreError) for statements matching ``pattern``."""
        self._failures.append({"pattern": re.compile(pattern), "error": error, "times": times})

    def check_failure(self, statement):
        for rule in self._failures:
            if rule["times"] == 0 or not rule["pattern"].search(statement):
                continue
            if rule["times"] is not None:
                rule["times"] -= 1
            error = rule["error"] or StoreError(f"injected failure: {statement}", operation="execute")
            raise error

    def rows(self, table):
        return [dict(r) for r in self.tables[table]]

    def row(self, table, key):
        matches = [r for r in self.tables[table] if r["ID"] == key]
        assert len(matches) <= 1, f"duplicate {table} rows for {key}"
        return dict(matches[0]) if matches else None

    def dimension_id(self, table, natural_key):
        column = UNIQUE[table][0][0]
        matches = [r["ID"] for r in self.tables[table] if r[column] == natural_key]
        return matches[0] if matches else None


class FakeTransaction:
    def __init__(self, db):
        self.db = db
        self._undo = []
        self.committed = False
        self.aborted = False
        self.statements = []

    async def query_row(self, statement, params=()):
        await asyncio.sleep(0)
        self._log(statement, params)
        if statement == "SELECT 1":
            return (1,)
        match = _SELECT.fullmatch(statement)
        assert match, f"unexpected query: {statement}"
        column, table, where = match.groups()
        for row in self.db.tables[table]:
            if row.get(where) == params[0]:
                return (row[column],)
        return None

    async def execute(self, statement, params=()):
        await asyncio.sleep(0)
        self._log(statement, params)
        if match := _CREATE.match(statement):
            self.db.ddl.append(statement)
            self.db.tables.setdefault(match.group(1), [])
            return 0
        if match := _DROP.fullmatch(statement):
            self.db.ddl.append(statement)
            self.db.tables.pop(match.group(1), None)
            return 0
        if match := _INSERT.fullmatch(statement):
            return self._insert(match, params)
        if match := _UPDATE.fullmatch(statement):
            return self._update(match, params)
        raise AssertionError(f"unexpected statement: {statement}")

    def _log(self, statement, params):
        if self.aborted:
            raise StoreError("current transaction is aborted", operation="execute")
        self.statements.append((statement, tuple(params)))
        self.db.statements.append((statement, tuple(params)))
        try:
            self.db.check_failure(statement)
        except StoreError:
            self.aborted = True
            raise

    def _violation(self, message):
        self.aborted = True
        return StoreError(message, operation="execute")

    def _insert(self, match, params):
        table, columns, conflict, do_nothing, assignments = match.groups()
        row = dict(zip(_split(columns), params))
        if table in IDENTITY and "ID" not in row:
            self.db.sequences[table] += 1
            row["ID"] = self.db.sequences[table]
        for column in NOT_NULL.get(table, ()):
            if row.get(column) is None:
                raise self._violation(f"null value in column {column} of {table}")

        conflict_cols = tuple(_split(conflict)) if conflict else None
        for key_cols in [KEYS[table], *UNIQUE.get(table, [])]:
            existing = next(
                (r for r in self.db.tables[table] if all(r.get(c) == row.get(c) for c in key_cols)),
                None,
            )
            if existing is None:
                continue
            if conflict_cols != key_cols:
                raise self._violation(f"duplicate key value violates unique constraint on {table} {key_cols}")
            if do_nothing:
                return 0
            old = dict(existing)
            for assignment in _split(assignments):
                column = assignment.split("=")[0].strip()
                existing[column] = row.get(column)
            self._undo.append(lambda r=existing, o=old: (r.clear(), r.update(o)))
            return 1

        self.db.tables[table].append(row)
        self._undo.append(lambda t=self.db.tables[table], r=row: t.remove(r))
        return 1

    def _update(self, match, params):
        table, assignments, where = match.groups()
        columns = [a.split("=")[0].strip() for a in _split(assignments)]
        *values, key = params
        count = 0
        for row in self.db.tables[table]:
            if row.get(where) == key:
                old = dict(row)
                row.update(zip(columns, values))
                self._undo.append(lambda r=row, o=old: (r.clear(), r.update(o)))
                count += 1
        return count

    @asynccontextmanager
    async def savepoint(self):
        mark = len(self._undo)
        try:
            yield
        except BaseException:
            self._undo_to(mark)
            self.aborted = False
            raise

    def _undo_to(self, mark):
        while len(self._undo) > mark:
            self._undo.pop()()

    async def commit(self):
        await asyncio.sleep(0)
        self._log("COMMIT", ())
        self._undo.clear()
        self.committed = True
        self.db.commits += 1

    async def rollback(self):
        self._undo_to(0)
        self.aborted = False
        self.db.rollbacks += 1


class FakeTarget:
    def __init__(self, db=None):
        self.db = db or FakeDatabase()
        self.transactions = []
        self.pings = 0
        self.closed = False
        self.ping_error = None

    @asynccontextmanager
    async def begin(self):
        tx = FakeTransaction(self.db)
        self.transactions.append(tx)
        self.db.open_transactions += 1
        try:
            yield tx
        finally:
            if not tx.committed:
                await tx.rollback()
            self.db.open_transactions -= 1

    async def ping(self):
        self.pings += 1
        if self.ping_error:
            raise self.ping_error

    async def close(self):
        self.closed = True


class FakeSource:
    """Collections are plain lists; pages are slices in list order."""

    def __init__(self, collections=None):
        self.collections = {name: list(docs) for name, docs in (collections or {}).items()}
        self.counts = []
        self.fetches = []
        self.count_errors = []
        self.fetch_errors = {}
        self.after_count = None
        self.ping_error = None
        self.closed = False

    async def count(self, collection):
        await asyncio.sleep(0)
        self.counts.append(collection)
        if self.count_errors:
            raise self.count_errors.pop(0)
        total = len(self.collections.get(collection, []))
        if self.after_count:
            self.after_count(collection)
        return total

    async def fetch_page(self, collection, offset, limit):
        await asyncio.sleep(0)
        self.fetches.append((collection, offset, limit))
        error = self.fetch_errors.pop((collection, offset), None)
        if error is not None:
            raise error
        return [dict(d) for d in self.collections.get(collection, [])[offset : offset + limit]]

    async def ping(self):
        if self.ping_error:
            raise self.ping_error

    async def close(self):
        self.closed = True


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo setup_logging between tests so caplog keeps seeing records."""
    yield
    logger = logging.getLogger("catalogsync")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def target(db):
    return FakeTarget(db)


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def metrics():
    registry = MetricsRegistry()
    registry.enable()
    return registry


@pytest.fixture
def transient_error():
    return TransientStoreError("connection reset", operation="fetch")
