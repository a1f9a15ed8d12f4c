"""
catalogsync long-running service (sync pipelines + HTTP status endpoints).

Provides:
- One background pipeline per configured entity kind, all sharing one stop event
- GET /health - pipeline status and record counters as JSON
- GET /metrics - Prometheus text exposition
- Graceful shutdown on SIGINT/SIGTERM: pipelines finish the record in flight
"""

from __future__ import annotations

import asyncio
import signal
from typing import Any

from aiohttp import web

from catalogsync.config.settings import SyncSettings
from catalogsync.connections.mongo import MongoSource
from catalogsync.connections.postgres import PostgresTarget
from catalogsync.exceptions import CatalogSyncError, InitializationError
from catalogsync.observability.metrics import MetricsRegistry
from catalogsync.sync.entities import build_writer
from catalogsync.sync.pipeline import SyncPipeline
from catalogsync.utils.logging import get_logger

logger = get_logger("catalogsync.service")

# Seconds pipelines get to finish their current record before being cancelled
SHUTDOWN_GRACE = 30.0


class SyncService:
    def __init__(
        self,
        settings: SyncSettings,
        *,
        source: Any = None,
        target: Any = None,
        metrics: MetricsRegistry | None = None,
    ):
        self.settings = settings
        if source is None:
            source = MongoSource(settings.source.uri, settings.source.database)
        if target is None:
            target = PostgresTarget(
                settings.target.dsn,
                max_size=settings.target.pool_max_size,
                timeout=settings.target.pool_timeout,
            )
        self.source = source
        self.target = target
        self.metrics = metrics if metrics is not None else MetricsRegistry()
        if settings.metrics.enabled:
            self.metrics.enable()

        self.pipelines: list[SyncPipeline] = []
        self._stopping = asyncio.Event()
        self._background_tasks: list[asyncio.Task] = []
        self._runner: web.AppRunner | None = None

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    async def initialize(self) -> None:
        """
        Check both stores are reachable.

        Raises:
            InitializationError: If either ping fails
        """
        for name, store in (("MongoDB source", self.source), ("Postgres target", self.target)):
            try:
                await store.ping()
            except CatalogSyncError as e:
                raise InitializationError(f"{name} unreachable: {e}", details={"store": name}) from e
            logger.info(f"Connected to {name}")

    def start_background_tasks(self) -> None:
        """Start one pipeline task per configured entity kind."""
        for kind in self.settings.entities:
            pipeline = SyncPipeline(
                build_writer(kind),
                self.source,
                self.target,
                metrics=self.metrics,
                stop_event=self._stopping,
                min_pass_interval=self.settings.min_pass_interval,
            )
            self.pipelines.append(pipeline)
            self._background_tasks.append(asyncio.create_task(pipeline.run(), name=f"pipeline-{kind.value}"))
        logger.info(f"Started {len(self.pipelines)} pipelines: {', '.join(k.value for k in self.settings.entities)}")

    def request_stop(self) -> None:
        if not self._stopping.is_set():
            logger.info("Stop requested, finishing records in flight")
        self._stopping.set()

    async def stop_background_tasks(self, grace: float = SHUTDOWN_GRACE) -> None:
        self._stopping.set()
        if not self._background_tasks:
            return
        _, pending = await asyncio.wait(self._background_tasks, timeout=grace)
        for t in pending:
            logger.warning(f"{t.get_name()} did not stop within {grace}s, cancelling")
            t.cancel()
        await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()

    async def wait(self) -> None:
        """Block until every pipeline task has returned."""
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)

    def get_status(self) -> dict[str, Any]:
        running = [p for p in self.pipelines if p.running]
        return {
            "status": "stopping" if self.stopping else ("ok" if len(running) == len(self.pipelines) else "degraded"),
            "pipelines": [p.status() for p in self.pipelines],
            "metrics": self.metrics.get_metrics(),
        }

    async def handle_health(self, request: web.Request) -> web.Response:
        status = self.get_status()
        return web.json_response(status, status=200 if status["status"] == "ok" else 503)

    async def handle_metrics(self, request: web.Request) -> web.Response:
        return web.Response(
            body=self.metrics.generate_prometheus_metrics(),
            headers={"Content-Type": self.metrics.get_content_type()},
        )

    def build_app(self) -> web.Application:
        app = web.Application()
        app.add_routes(
            [
                web.get("/health", self.handle_health),
                web.get("/metrics", self.handle_metrics),
            ]
        )
        return app

    async def _start_http(self) -> None:
        cfg = self.settings.metrics
        self._runner = web.AppRunner(self.build_app(), access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, host=cfg.host, port=cfg.port)
        await site.start()
        logger.info(f"Metrics and health available at http://{cfg.host}:{cfg.port}/")

    async def close(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        for store in (self.source, self.target):
            try:
                await store.close()
            except Exception as e:
                logger.debug(f"Error closing {type(store).__name__}: {e}")

    async def serve(self) -> None:
        """Initialize, run until a stop signal, then shut down cleanly."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_stop)
            except (NotImplementedError, RuntimeError):
                # Not available on this platform/thread; KeyboardInterrupt still applies
                pass

        try:
            await self.initialize()
            if self.settings.metrics.enabled:
                await self._start_http()
            self.start_background_tasks()
            await self._stopping.wait()
        finally:
            await self.stop_background_tasks()
            await self.close()
            logger.info("catalogsync service stopped")


def run_service(settings: SyncSettings) -> None:
    """
    Run the catalogsync service (blocking).

    Raises:
        InitializationError: If a store is unreachable at startup
    """

    async def _main() -> None:
        # Store clients bind to the running loop, so build them inside it
        svc = SyncService(settings)
        await svc.serve()

    asyncio.run(_main())
