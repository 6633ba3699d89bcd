"""Observability module: structured logging, tracing and metrics."""

from docs_search_mapping.observability.context import bind_index, get_trace_context, set_trace_context, trace_context
from docs_search_mapping.observability.logging import JsonFormatter, configure_logging, configure_logging_from_settings
from docs_search_mapping.observability.metrics import (
    ANALYZER_FAILURES,
    DOCUMENTS_DISPATCHED,
    FIELDS_SKIPPED,
    QUERY_RESOLUTION_ERRORS,
    QUERY_RESOLUTION_LATENCY,
    RESULT_ASSEMBLY_LATENCY,
    get_metrics,
    get_metrics_content_type,
    track_latency,
)
from docs_search_mapping.observability.tracing import create_span, get_tracer, init_tracing


__all__ = [
    "ANALYZER_FAILURES",
    "DOCUMENTS_DISPATCHED",
    "FIELDS_SKIPPED",
    "QUERY_RESOLUTION_ERRORS",
    "QUERY_RESOLUTION_LATENCY",
    "RESULT_ASSEMBLY_LATENCY",
    "JsonFormatter",
    "bind_index",
    "configure_logging",
    "configure_logging_from_settings",
    "create_span",
    "get_metrics",
    "get_metrics_content_type",
    "get_trace_context",
    "get_tracer",
    "init_tracing",
    "set_trace_context",
    "trace_context",
    "track_latency",
]
