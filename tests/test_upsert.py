"""
Tests for the upsert executor and dimension resolver.
"""

import pytest

from catalogsync.exceptions import StoreError
from catalogsync.sync.dimensions import BRANDS, CATEGORIES, CATEGORY_CODES, DimensionResolver
from catalogsync.sync.types import TableSpec, UpsertOutcome
from catalogsync.sync.upsert import UpsertExecutor
from catalogsync.utils.sql import insert_sql, select_sql, update_sql, validate_identifier

SHOPS = TableSpec("SHOPS")


class TestStatements:
    def test_select(self):
        assert select_sql("SHOPS", "ID", "ID") == "SELECT ID FROM SHOPS WHERE ID = %s"

    def test_insert(self):
        assert insert_sql("SHOPS", ["ID", "NAME"]) == "INSERT INTO SHOPS (ID, NAME) VALUES (%s, %s)"

    def test_insert_do_nothing(self):
        statement = insert_sql("BRANDS", ["NAME"], conflict=["NAME"])
        assert statement == "INSERT INTO BRANDS (NAME) VALUES (%s) ON CONFLICT (NAME) DO NOTHING"

    def test_insert_do_update(self):
        statement = insert_sql("PRODUCT_PROMOS", ["PRODUCT_ID", "CODE", "TYPE"], conflict=["PRODUCT_ID", "CODE"], update=["TYPE"])
        assert statement.endswith("ON CONFLICT (PRODUCT_ID, CODE) DO UPDATE SET TYPE = EXCLUDED.TYPE")

    def test_update(self):
        assert update_sql("SHOPS", ["NAME"], "ID") == "UPDATE SHOPS SET NAME = %s WHERE ID = %s"

    @pytest.mark.parametrize("name", ["", "1ABC", "NAME; DROP TABLE SHOPS", "A-B"])
    def test_unsafe_identifier(self, name):
        with pytest.raises(ValueError):
            validate_identifier(name)


class TestUpsertExecutor:
    @pytest.mark.asyncio
    async def test_insert_branch(self, target, db):
        async with target.begin() as tx:
            outcome = await UpsertExecutor().upsert(tx, SHOPS, "s1", {"NAME": "Acme"})
        assert outcome is UpsertOutcome.INSERTED
        assert db.rows("SHOPS") == [{"ID": "s1", "NAME": "Acme"}]
        assert db.commits == 1

    @pytest.mark.asyncio
    async def test_update_branch(self, target, db):
        executor = UpsertExecutor()
        async with target.begin() as tx:
            await executor.upsert(tx, SHOPS, "s1", {"NAME": "Acme"})
        async with target.begin() as tx:
            outcome = await executor.upsert(tx, SHOPS, "s1", {"NAME": "Acme Corp"})
            inserts = [s for s, _ in tx.statements if s.startswith("INSERT")]
        assert outcome is UpsertOutcome.UPDATED
        assert inserts == []
        assert db.rows("SHOPS") == [{"ID": "s1", "NAME": "Acme Corp"}]

    @pytest.mark.asyncio
    async def test_probe_failure_propagates(self, target, db):
        db.fail_on(r"^SELECT ID FROM SHOPS")
        with pytest.raises(StoreError):
            async with target.begin() as tx:
                await UpsertExecutor().upsert(tx, SHOPS, "s1", {"NAME": "Acme"})
        assert db.rows("SHOPS") == []

    @pytest.mark.asyncio
    async def test_commit_failure_discards_row(self, target, db):
        db.fail_on(r"^COMMIT$")
        with pytest.raises(StoreError):
            async with target.begin() as tx:
                await UpsertExecutor().upsert(tx, SHOPS, "s1", {"NAME": "Acme"})
        assert db.rows("SHOPS") == []
        assert db.rollbacks == 1

    @pytest.mark.asyncio
    async def test_before_commit_runs_after_row_write(self, target, db):
        seen = []

        async def dependents(tx):
            seen.append(db.row("SHOPS", "s1"))

        async with target.begin() as tx:
            await UpsertExecutor().upsert(tx, SHOPS, "s1", {"NAME": "Acme"}, before_commit=dependents)
        assert seen == [{"ID": "s1", "NAME": "Acme"}]

    @pytest.mark.asyncio
    async def test_before_commit_failure_rolls_back_row(self, target, db):
        async def dependents(tx):
            raise StoreError("boom")

        with pytest.raises(StoreError):
            async with target.begin() as tx:
                await UpsertExecutor().upsert(tx, SHOPS, "s1", {"NAME": "Acme"}, before_commit=dependents)
        assert db.rows("SHOPS") == []


class TestDimensionResolver:
    @pytest.mark.asyncio
    async def test_creates_on_first_sight(self, target, db):
        async with target.begin() as tx:
            brand_id = await DimensionResolver().resolve(tx, BRANDS, "Apple")
            await tx.commit()
        assert db.rows("BRANDS") == [{"NAME": "Apple", "ID": brand_id}]

    @pytest.mark.asyncio
    async def test_same_key_same_id(self, target, db):
        resolver = DimensionResolver()
        async with target.begin() as tx:
            first = await resolver.resolve(tx, CATEGORIES, "Phones")
            again = await resolver.resolve(tx, CATEGORIES, "Phones")
            await tx.commit()
        async with target.begin() as tx:
            later = await resolver.resolve(tx, CATEGORIES, "Phones")
            await tx.commit()
        assert first == again == later
        assert len(db.rows("CATEGORIES")) == 1

    @pytest.mark.asyncio
    async def test_distinct_keys_distinct_ids(self, target):
        resolver = DimensionResolver()
        async with target.begin() as tx:
            a = await resolver.resolve(tx, CATEGORY_CODES, "A")
            b = await resolver.resolve(tx, CATEGORY_CODES, "B")
        assert a != b

    @pytest.mark.asyncio
    async def test_lookup_miss_is_none(self, target):
        async with target.begin() as tx:
            assert await DimensionResolver().lookup(tx, BRANDS, "Nokia") is None

    @pytest.mark.asyncio
    async def test_concurrent_insert_reads_existing_row(self, target, db):
        # Another transaction committed the key between our probe and insert
        resolver = DimensionResolver()
        async with target.begin() as tx:
            winner = await resolver.resolve(tx, BRANDS, "Apple")
            await tx.commit()

        class StaleFirstLookup(DimensionResolver):
            calls = 0

            async def lookup(self, tx, dimension, natural_key):
                self.calls += 1
                if self.calls == 1:
                    return None
                return await super().lookup(tx, dimension, natural_key)

        async with target.begin() as tx:
            loser = await StaleFirstLookup().resolve(tx, BRANDS, "Apple")
        assert loser == winner
        assert len(db.rows("BRANDS")) == 1

    @pytest.mark.asyncio
    async def test_missing_after_insert_raises(self, target):
        class AlwaysMissing(DimensionResolver):
            async def lookup(self, tx, dimension, natural_key):
                return None

        async with target.begin() as tx:
            with pytest.raises(StoreError) as exc_info:
                await AlwaysMissing().resolve(tx, BRANDS, "Apple")
        assert exc_info.value.operation == "resolve"
