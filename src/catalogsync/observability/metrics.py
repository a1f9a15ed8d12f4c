"""
Prometheus metrics for catalogsync.

Every processed record is reported exactly once as a success or a failure,
labelled by entity kind. Passes are counted and timed per entity.

Usage:
    from catalogsync.observability import MetricsRegistry

    registry = MetricsRegistry()
    registry.enable()
    pipeline = SyncPipeline(..., metrics=registry)

    # Prometheus text exposition, served by the service at /metrics
    body = registry.generate_prometheus_metrics()
"""

import threading
from typing import Any

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from catalogsync.utils.logging import get_logger

logger = get_logger("catalogsync.observability.metrics")

SUCCESS = "success"
FAILURE = "failure"
OUTCOMES = (SUCCESS, FAILURE)


class MetricsRegistry:
    """
    Central registry for all catalogsync metrics.

    Tracks counts internally (for /health and tests) and exports them through
    a private prometheus CollectorRegistry, so several registries can coexist
    in one process.
    """

    def __init__(self):
        self._enabled = False
        self._lock = threading.Lock()
        self._internal_metrics: dict[str, Any] = {
            "records_total": {},  # entity -> {success: N, failure: N}
            "passes_total": {},  # entity -> {completed: N, failed: N}
            "collection_documents": {},  # entity -> last counted size
        }
        self._registry = CollectorRegistry()
        self._setup_prometheus_metrics()

    def _setup_prometheus_metrics(self):
        self._records_counter = Counter(
            "catalogsync_records_processed_total",
            "Total records processed, by outcome",
            ["entity", "outcome"],
            registry=self._registry,
        )
        self._passes_counter = Counter(
            "catalogsync_passes_total",
            "Total synchronization passes, by status",
            ["entity", "status"],
            registry=self._registry,
        )
        self._pass_duration_histogram = Histogram(
            "catalogsync_pass_duration_seconds",
            "Duration of a full synchronization pass in seconds",
            ["entity"],
            registry=self._registry,
            buckets=(1.0, 5.0, 15.0, 30.0, 60.0, 300.0, 900.0, 1800.0, 3600.0),
        )
        self._collection_gauge = Gauge(
            "catalogsync_collection_documents",
            "Source collection size observed at the start of the last pass",
            ["entity"],
            registry=self._registry,
        )

    def enable(self):
        """Enable metrics collection."""
        self._enabled = True
        logger.info("Metrics collection enabled")

    def disable(self):
        """Disable metrics collection."""
        self._enabled = False
        logger.info("Metrics collection disabled")

    @property
    def enabled(self) -> bool:
        return self._enabled

    def record_outcome(self, entity: str, outcome: str) -> None:
        """
        Record the outcome of one processed record.

        Args:
            entity: Entity kind (offer, product, shop, shop_review)
            outcome: ``success`` or ``failure``
        """
        if outcome not in OUTCOMES:
            raise ValueError(f"Unknown outcome '{outcome}', expected one of {OUTCOMES}")
        if not self._enabled:
            return

        with self._lock:
            counts = self._internal_metrics["records_total"].setdefault(entity, {})
            counts[outcome] = counts.get(outcome, 0) + 1

        self._records_counter.labels(entity=entity, outcome=outcome).inc()

    def record_pass(self, entity: str, status: str, duration: float) -> None:
        """
        Record a finished pass.

        Args:
            entity: Entity kind
            status: ``completed``, ``failed`` or ``interrupted``
            duration: Pass duration in seconds
        """
        if not self._enabled:
            return

        with self._lock:
            counts = self._internal_metrics["passes_total"].setdefault(entity, {})
            counts[status] = counts.get(status, 0) + 1

        self._passes_counter.labels(entity=entity, status=status).inc()
        self._pass_duration_histogram.labels(entity=entity).observe(duration)

    def record_collection_size(self, entity: str, count: int) -> None:
        """Record the document count seen at the start of a pass."""
        if not self._enabled:
            return

        with self._lock:
            self._internal_metrics["collection_documents"][entity] = count

        self._collection_gauge.labels(entity=entity).set(count)

    def get_metrics(self) -> dict[str, Any]:
        """
        Get all internal metrics.

        Returns:
            Dictionary with copies of the tracked counts
        """
        with self._lock:
            return {
                "records_total": {k: dict(v) for k, v in self._internal_metrics["records_total"].items()},
                "passes_total": {k: dict(v) for k, v in self._internal_metrics["passes_total"].items()},
                "collection_documents": dict(self._internal_metrics["collection_documents"]),
            }

    def generate_prometheus_metrics(self) -> bytes:
        """Generate Prometheus metrics in text format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get Prometheus content type for HTTP response."""
        return CONTENT_TYPE_LATEST
