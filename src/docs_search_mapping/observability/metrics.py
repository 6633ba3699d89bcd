"""Prometheus metrics for the mapping layer."""

from __future__ import annotations

from contextlib import contextmanager
import time
from typing import TYPE_CHECKING

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest


if TYPE_CHECKING:
    from collections.abc import Generator


DOCUMENTS_DISPATCHED = Counter(
    "search_mapping_documents_dispatched_total",
    "Documents dispatched into field emissions",
    ["status"],
)

FIELDS_SKIPPED = Counter(
    "search_mapping_fields_skipped_total",
    "Fields skipped under the lenient indexing policy",
    ["error_type"],
)

ANALYZER_FAILURES = Counter(
    "search_mapping_analyzer_failures_total",
    "Analyzer names that could not be resolved",
    ["policy"],
)

QUERY_RESOLUTION_ERRORS = Counter(
    "search_mapping_query_resolution_errors_total",
    "Query nodes that failed to resolve",
    ["node_type"],
)

QUERY_RESOLUTION_LATENCY = Histogram(
    "search_mapping_query_resolution_seconds",
    "Time spent resolving query nodes into executable queries",
    ["node_type"],
    buckets=(0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1),
)

RESULT_ASSEMBLY_LATENCY = Histogram(
    "search_mapping_result_assembly_seconds",
    "Time spent assembling result documents",
    [],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5),
)


@contextmanager
def track_latency(histogram: Histogram, **labels: str) -> Generator[None, None, None]:
    """Context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        if labels:
            histogram.labels(**labels).observe(elapsed)
        else:
            histogram.observe(elapsed)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
