"""
Observability: Prometheus metrics and structured logging.
"""

from catalogsync.observability.metrics import FAILURE, SUCCESS, MetricsRegistry
from catalogsync.observability.structured_logging import (
    StructuredFormatter,
    add_correlation_id,
    get_correlation_id,
    set_correlation_id,
)

__all__ = [
    # Metrics
    "MetricsRegistry",
    "SUCCESS",
    "FAILURE",
    # Structured Logging
    "StructuredFormatter",
    "add_correlation_id",
    "get_correlation_id",
    "set_correlation_id",
]
