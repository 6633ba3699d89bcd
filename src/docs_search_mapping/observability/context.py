"""Request-scoped trace context shared by log records and spans."""

from __future__ import annotations

from contextvars import ContextVar
from uuid import uuid4


# One dict per request/task; never mutated in place
trace_context: ContextVar[dict | None] = ContextVar("search_mapping_trace_context", default=None)


def new_trace_id() -> str:
    return uuid4().hex


def new_span_id() -> str:
    return uuid4().hex[:16]


def get_trace_context() -> dict:
    """Return the current trace context, creating one on first access."""
    ctx = trace_context.get()
    if ctx is None or not ctx.get("trace_id"):
        ctx = {"trace_id": new_trace_id(), "span_id": new_span_id()}
        trace_context.set(ctx)
    return ctx


def set_trace_context(trace_id: str, span_id: str, **extra: object) -> None:
    """Replace the trace context, e.g. with ids propagated by the transport layer."""
    trace_context.set({"trace_id": trace_id, "span_id": span_id, **extra})


def bind_index(index_name: str) -> None:
    """Attach the index being queried or fed so log records can be filtered on it."""
    ctx = get_trace_context()
    trace_context.set({**ctx, "index": index_name})


def update_span_id(span_id: str) -> None:
    ctx = trace_context.get() or {}
    trace_context.set({**ctx, "span_id": span_id})
