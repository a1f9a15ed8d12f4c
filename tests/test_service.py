"""
Tests for the long-running sync service and its HTTP endpoints.
"""

import asyncio

import pytest
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from catalogsync.config.settings import MetricsSettings, SourceSettings, SyncSettings, TargetSettings
from catalogsync.exceptions import InitializationError, TransientStoreError
from catalogsync.observability.metrics import MetricsRegistry
from catalogsync.service.server import SyncService
from catalogsync.sync.types import EntityKind

from conftest import FakeSource, FakeTarget


def _settings(entities=(EntityKind.SHOP,), metrics_enabled=True, interval=0.01):
    return SyncSettings(
        source=SourceSettings(uri="mongodb://localhost:27017"),
        target=TargetSettings(dsn="postgresql://localhost/catalog"),
        entities=tuple(entities),
        min_pass_interval=interval,
        metrics=MetricsSettings(enabled=metrics_enabled, host="127.0.0.1", port=9090),
    )


@pytest.fixture
def stores():
    source = FakeSource(
        {
            "shops": [{"_id": "s1", "name": "Acme"}, {"_id": "s2", "name": "Globex"}],
            "shop_reviews": [{"_id": "r1", "merchant_id": "s1", "rating": 4.5}],
        }
    )
    return source, FakeTarget()


def _service(stores, **kwargs):
    source, target = stores
    return SyncService(_settings(**kwargs), source=source, target=target, metrics=MetricsRegistry())


async def _wait_for_passes(svc, passes=1, timeout=2.0):
    async def _poll():
        while not svc.pipelines or not all(p.passes >= passes for p in svc.pipelines):
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout=timeout)


async def _make_client(app: web.Application) -> TestClient:
    server = TestServer(app)
    client = TestClient(server)
    await client.start_server()
    return client


class TestInitialize:
    @pytest.mark.asyncio
    async def test_pings_both_stores(self, stores):
        svc = _service(stores)
        await svc.initialize()
        assert stores[1].pings == 1

    @pytest.mark.asyncio
    async def test_source_unreachable(self, stores):
        stores[0].ping_error = TransientStoreError("no servers", operation="ping")
        svc = _service(stores)
        with pytest.raises(InitializationError, match="MongoDB source unreachable"):
            await svc.initialize()
        assert stores[1].pings == 0

    @pytest.mark.asyncio
    async def test_target_unreachable(self, stores):
        stores[1].ping_error = TransientStoreError("connection refused", operation="connect")
        svc = _service(stores)
        with pytest.raises(InitializationError, match="Postgres target unreachable") as exc_info:
            await svc.initialize()
        assert exc_info.value.details == {"store": "Postgres target"}

    def test_metrics_enabled_from_settings(self, stores):
        assert _service(stores).metrics.enabled is True
        assert _service(stores, metrics_enabled=False).metrics.enabled is False


class TestBackgroundTasks:
    @pytest.mark.asyncio
    async def test_one_pipeline_per_entity(self, stores):
        svc = _service(stores, entities=(EntityKind.SHOP, EntityKind.SHOP_REVIEW))
        svc.start_background_tasks()
        try:
            await _wait_for_passes(svc)
            assert [p.kind for p in svc.pipelines] == [EntityKind.SHOP, EntityKind.SHOP_REVIEW]
            assert svc.get_status()["status"] == "ok"
        finally:
            await svc.stop_background_tasks()

        db = stores[1].db
        assert db.row("SHOPS", "s2")["NAME"] == "Globex"
        assert db.row("SHOP_REVIEWS", "r1")["SHOP_ID"] == "s1"
        assert all(not p.running for p in svc.pipelines)

    @pytest.mark.asyncio
    async def test_repeated_passes(self, stores):
        svc = _service(stores)
        svc.start_background_tasks()
        try:
            await _wait_for_passes(svc, passes=3)
        finally:
            await svc.stop_background_tasks()
        assert svc.metrics.get_metrics()["passes_total"]["shop"]["completed"] >= 3

    @pytest.mark.asyncio
    async def test_stop_wakes_long_pause(self, stores):
        svc = _service(stores, interval=60.0)
        svc.start_background_tasks()
        await _wait_for_passes(svc)
        await asyncio.wait_for(svc.stop_background_tasks(), timeout=1.0)
        assert svc.pipelines[0].passes == 1

    @pytest.mark.asyncio
    async def test_stuck_task_cancelled_after_grace(self, stores):
        svc = _service(stores)
        stuck = asyncio.create_task(asyncio.sleep(30))
        svc._background_tasks.append(stuck)
        await svc.stop_background_tasks(grace=0.01)
        assert stuck.cancelled()
        assert svc._background_tasks == []

    @pytest.mark.asyncio
    async def test_status_stopping(self, stores):
        svc = _service(stores)
        svc.request_stop()
        assert svc.stopping is True
        assert svc.get_status()["status"] == "stopping"


class TestEndpoints:
    @pytest.mark.asyncio
    async def test_health_ok(self, stores):
        svc = _service(stores)
        svc.start_background_tasks()
        client = await _make_client(svc.build_app())
        try:
            await _wait_for_passes(svc)
            resp = await client.get("/health")
            assert resp.status == 200
            body = await resp.json()
            assert body["status"] == "ok"
            assert body["pipelines"][0]["entity"] == "shop"
            assert body["pipelines"][0]["last_pass"]["status"] == "completed"
            assert body["metrics"]["records_total"]["shop"]["success"] >= 2
        finally:
            await client.close()
            await svc.stop_background_tasks()

    @pytest.mark.asyncio
    async def test_health_unavailable_when_stopping(self, stores):
        svc = _service(stores)
        svc.request_stop()
        client = await _make_client(svc.build_app())
        try:
            resp = await client.get("/health")
            assert resp.status == 503
            assert (await resp.json())["status"] == "stopping"
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_metrics_exposition(self, stores):
        svc = _service(stores)
        svc.metrics.record_outcome("shop", "success")
        client = await _make_client(svc.build_app())
        try:
            resp = await client.get("/metrics")
            assert resp.status == 200
            assert resp.headers["Content-Type"].startswith("text/plain")
            text = await resp.text()
            assert 'catalogsync_records_processed_total{entity="shop",outcome="success"} 1.0' in text
        finally:
            await client.close()


class TestServe:
    @pytest.mark.asyncio
    async def test_serve_until_stopped(self, stores):
        source, target = stores
        svc = _service(stores, metrics_enabled=False)
        task = asyncio.create_task(svc.serve())
        await asyncio.sleep(0)
        await _wait_for_passes(svc)

        svc.request_stop()
        await asyncio.wait_for(task, timeout=2.0)

        assert source.closed is True
        assert target.closed is True
        assert target.db.row("SHOPS", "s1")["NAME"] == "Acme"

    @pytest.mark.asyncio
    async def test_serve_fails_fast_on_unreachable_store(self, stores):
        source, target = stores
        target.ping_error = TransientStoreError("connection refused", operation="connect")
        svc = _service(stores, metrics_enabled=False)
        with pytest.raises(InitializationError):
            await svc.serve()
        assert svc.pipelines == []
        assert source.closed is True
