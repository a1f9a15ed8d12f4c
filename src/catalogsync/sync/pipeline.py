"""
Pipeline runner: one perpetual resynchronization loop per entity kind.

A pass counts the source collection, walks it in fixed pages in ascending
offset order and processes each document in its own transaction. Source
failures (count, page fetch) end the pass and the next pass starts over from
a fresh count; nothing is checkpointed. Record failures are counted and
skipped. Between passes the runner waits ``min_pass_interval`` seconds, or
less if the stop event is set.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping
from typing import Any

from catalogsync.exceptions import CatalogSyncError, MalformedField, StoreError
from catalogsync.observability.metrics import FAILURE, SUCCESS
from catalogsync.observability.structured_logging import add_correlation_id
from catalogsync.sync.entities import EntityWriter
from catalogsync.sync.types import PAGE_SIZE, MetricsSink, PassResult, SourceStore, TargetStore
from catalogsync.utils.logging import get_logger

logger = get_logger("catalogsync.sync.pipeline")


class SyncPipeline:
    """
    Mirrors one source collection into its target tables, forever.

    Only this class decides severity: errors from the source store fail the
    pass, everything raised while handling a single record fails that record.

    Examples:
        >>> stop = asyncio.Event()
        >>> pipeline = SyncPipeline(build_writer(EntityKind.SHOP), source, target,
        ...                         metrics=registry, stop_event=stop)
        >>> task = asyncio.create_task(pipeline.run())
        >>> stop.set()
        >>> await task
    """

    def __init__(
        self,
        writer: EntityWriter,
        source: SourceStore,
        target: TargetStore,
        *,
        metrics: MetricsSink,
        stop_event: asyncio.Event | None = None,
        min_pass_interval: float = 5.0,
        page_size: int = PAGE_SIZE,
    ):
        if page_size <= 0:
            raise ValueError("page_size must be > 0")
        if min_pass_interval < 0:
            raise ValueError("min_pass_interval must be >= 0")

        self.writer = writer
        self.kind = writer.kind
        self.collection = writer.kind.collection
        self.source = source
        self.target = target
        self.metrics = metrics
        self.min_pass_interval = min_pass_interval
        self.page_size = page_size
        self._stop = stop_event or asyncio.Event()

        self.running = False
        self.passes = 0
        self.last_result: PassResult | None = None

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """Ask the pipeline to return at the next record, page or pass boundary."""
        self._stop.set()

    async def run(self) -> None:
        """Run passes until the stop event is set. Never raises for sync errors."""
        self.running = True
        logger.info(f"Starting {self.kind.value} pipeline ({self.collection})")
        try:
            while not self._stop.is_set():
                await self.run_pass()
                if self._stop.is_set():
                    break
                await self._pause(self.min_pass_interval)
        finally:
            self.running = False
            logger.info(f"Stopped {self.kind.value} pipeline")

    async def run_pass(self) -> PassResult:
        """
        Run one pass over the collection.

        Returns:
            PassResult; ``completed`` is False when the pass failed or was stopped
        """
        result = PassResult(entity=self.kind.value)
        started = time.monotonic()

        with add_correlation_id() as pass_id:
            logger.debug(
                f"{self.kind.value} pass {pass_id} started",
                extra={"event": "pass.started", "entity": self.kind.value},
            )
            try:
                await self._traverse(result)
            except CatalogSyncError as e:
                result.error = str(e)
                logger.error(
                    f"{self.kind.value} pass failed, restarting from a fresh count: {e}",
                    extra={"event": "pass.failed", "entity": self.kind.value},
                )
            except Exception as e:
                result.error = f"{type(e).__name__}: {e}"
                logger.exception(
                    f"{self.kind.value} pass failed unexpectedly, restarting from a fresh count",
                    extra={"event": "pass.failed", "entity": self.kind.value},
                )

            result.duration = time.monotonic() - started
            if result.status == "completed":
                logger.info(
                    f"{self.kind.value} pass done: {result.succeeded} succeeded, {result.failed} failed "
                    f"of {result.total} in {result.duration:.1f}s",
                    extra={"event": "pass.completed", **result.as_dict()},
                )
            elif result.status == "interrupted":
                logger.info(f"{self.kind.value} pass interrupted by stop signal", extra={"event": "pass.interrupted"})

        self.metrics.record_pass(self.kind.value, result.status, result.duration)
        self.passes += 1
        self.last_result = result
        return result

    async def _traverse(self, result: PassResult) -> None:
        total = await self.source.count(self.collection)
        result.total = total
        self.metrics.record_collection_size(self.kind.value, total)

        for offset in range(0, total, self.page_size):
            if self._stop.is_set():
                return

            documents = await self.source.fetch_page(self.collection, offset, self.page_size)
            result.pages += 1
            if not documents:
                # Collection shrank since the count; later pages are empty too
                logger.debug(f"{self.kind.value} page at offset {offset} is empty, ending pass early")
                break

            for document in documents:
                if self._stop.is_set():
                    return
                if await self.process_record(document):
                    result.succeeded += 1
                else:
                    result.failed += 1

        result.completed = True

    async def process_record(self, document: Mapping[str, Any]) -> bool:
        """
        Transform and write one document in its own transaction.

        Reports exactly one outcome to the metrics sink.

        Returns:
            True if the record was committed
        """
        record_id = document.get("_id") if isinstance(document, Mapping) else None
        log_extra = {"event": "record.failed", "entity": self.kind.value, "record_id": str(record_id)}
        outcome = FAILURE
        try:
            record = self.writer.transform(document)
            async with self.target.begin() as tx:
                await self.writer.write(tx, record)
        except MalformedField as e:
            logger.warning(f"Skipping {self.kind.value} {record_id}: {e}", extra=log_extra)
        except StoreError as e:
            logger.error(f"Failed to write {self.kind.value} {record_id}: {e}", extra=log_extra)
        except Exception:
            logger.exception(f"Unexpected error processing {self.kind.value} {record_id}", extra=log_extra)
        else:
            outcome = SUCCESS

        self.metrics.record_outcome(self.kind.value, outcome)
        return outcome == SUCCESS

    async def _pause(self, seconds: float) -> None:
        """Sleep between passes, waking early when stopped."""
        if seconds <= 0:
            # Still yield so sibling pipelines get scheduled
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    def status(self) -> dict[str, Any]:
        """Snapshot for the /health endpoint."""
        return {
            "entity": self.kind.value,
            "collection": self.collection,
            "running": self.running,
            "passes": self.passes,
            "last_pass": self.last_result.as_dict() if self.last_result else None,
        }
