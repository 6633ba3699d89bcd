"""Unit tests for observability module."""

import json
import logging
import sys

from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode
from prometheus_client import REGISTRY, Histogram
import pytest

from docs_search_mapping.config import Settings
from docs_search_mapping.mapping.dispatch import SkippedField
from docs_search_mapping.observability import (
    JsonFormatter,
    bind_index,
    configure_logging,
    configure_logging_from_settings,
    create_span,
    get_metrics,
    get_metrics_content_type,
    get_trace_context,
    init_tracing,
    set_trace_context,
    track_latency,
    tracing as tracing_module,
)
from docs_search_mapping.observability.context import trace_context, update_span_id
from docs_search_mapping.query.nodes import parse_query


def _record(msg="test message", level=logging.INFO, name="docs_search_mapping.mapping.dispatch"):
    return logging.LogRecord(name=name, level=level, pathname="test.py", lineno=1, msg=msg, args=(), exc_info=None)


@pytest.fixture(autouse=True)
def fresh_trace_context():
    token = trace_context.set(None)
    yield
    trace_context.reset(token)


@pytest.mark.unit
class TestJsonFormatter:
    """Tests for structured JSON logging."""

    def test_format_includes_trace_context(self):
        set_trace_context("aa" * 16, "bb" * 8)

        data = json.loads(JsonFormatter().format(_record()))

        assert data["message"] == "test message"
        assert data["level"] == "INFO"
        assert data["trace_id"] == "aa" * 16
        assert data["span_id"] == "bb" * 8
        assert data["component"] == "dispatch"
        assert "timestamp" in data

    def test_format_includes_bound_index(self):
        bind_index("articles")

        data = json.loads(JsonFormatter().format(_record()))

        assert data["index"] == "articles"

    def test_format_includes_extra_fields(self):
        record = _record(level=logging.WARNING)
        record.field = "price"
        record.skipped_fields = {"b", "a"}

        data = json.loads(JsonFormatter().format(record))

        assert data["field"] == "price"
        assert data["skipped_fields"] == ["a", "b"]

    def test_format_truncates_and_redacts(self):
        record = _record(msg="x" * 5000)
        record.api_key = "secret"
        record.payload = "y" * 1000

        data = json.loads(JsonFormatter().format(record))

        assert data["message"].endswith("...")
        assert len(data["message"]) == JsonFormatter.MAX_MESSAGE_LEN + 3
        assert data["api_key"] == "[REDACTED]"
        assert len(data["payload"]) == 503

    def test_format_includes_exception(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord("test", logging.ERROR, "test.py", 1, "failed", (), exc_info=sys.exc_info())

        data = json.loads(JsonFormatter().format(record))

        assert "ValueError: boom" in data["exception"]

    def test_json_default_handles_set_bytes_and_enum(self):
        formatter = JsonFormatter()

        assert formatter._json_default({3, 1, 2}) == [1, 2, 3]
        assert formatter._json_default(b"ok") == "ok"
        assert formatter._json_default(StatusCode.ERROR) == StatusCode.ERROR.value
        assert len(formatter._json_default({1, "a"})) == 2

    def test_json_default_handles_query_models_and_reports(self):
        formatter = JsonFormatter()
        node = parse_query({"type": "term", "field": "category", "value": "energy"})

        assert formatter._json_default(node) == {"type": "term", "field": "category", "value": "energy"}
        assert formatter._json_default(SkippedField("price", "UnsupportedValueTypeError", "bad")) == {
            "field": "price",
            "error_type": "UnsupportedValueTypeError",
            "message": "bad",
        }
        assert formatter._json_default(ValueError("boom")) == "ValueError: boom"


@pytest.mark.unit
class TestConfigureLogging:
    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_json_handler(self):
        configure_logging("debug", json_output=True, logger_levels={"noisy.lib": "warning"})

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonFormatter)
        assert logging.getLogger("noisy.lib").level == logging.WARNING

    def test_plain_handler(self):
        configure_logging("info", json_output=False)

        assert not isinstance(logging.getLogger().handlers[0].formatter, JsonFormatter)

    def test_from_settings(self):
        settings = Settings(_env_file=None, log_level="warning", log_json=True)  # type: ignore[call-arg]

        configure_logging_from_settings(settings)

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert isinstance(root.handlers[0].formatter, JsonFormatter)


@pytest.mark.unit
class TestTraceContext:
    """Tests for trace context propagation."""

    def test_get_trace_context_generates_ids(self):
        ctx = get_trace_context()

        assert len(ctx["trace_id"]) == 32
        assert len(ctx["span_id"]) == 16
        assert get_trace_context() is ctx

    def test_update_span_id_preserves_trace_id(self):
        set_trace_context("aa" * 16, "bb" * 8, index="alpha")
        update_span_id("cc" * 8)

        ctx = get_trace_context()
        assert ctx["trace_id"] == "aa" * 16
        assert ctx["span_id"] == "cc" * 8
        assert ctx["index"] == "alpha"

    def test_bind_index_keeps_ids(self):
        set_trace_context("aa" * 16, "bb" * 8)
        bind_index("reviews")

        assert get_trace_context() == {"trace_id": "aa" * 16, "span_id": "bb" * 8, "index": "reviews"}


@pytest.mark.unit
class TestTracing:
    """Tests for OpenTelemetry tracing."""

    @pytest.fixture
    def exporter(self):
        exporter = InMemorySpanExporter()
        init_tracing("test-service", span_processors=[SimpleSpanProcessor(exporter)])
        yield exporter
        tracing_module._tracer_holder["tracer"] = None

    def test_init_tracing_applies_resource_attributes(self):
        provider = init_tracing("test-service", resource_attributes={"service.version": "2.0.0"})

        assert provider.resource.attributes["service.name"] == "test-service"
        assert provider.resource.attributes["service.version"] == "2.0.0"
        tracing_module._tracer_holder["tracer"] = None

    def test_span_attributes_skip_none(self, exporter):
        with create_span("query.resolve", attributes={"query.type": "term", "index": None}):
            pass

        (span,) = exporter.get_finished_spans()
        assert span.name == "query.resolve"
        assert dict(span.attributes) == {"query.type": "term"}

    def test_span_updates_trace_context(self, exporter):
        with create_span("results.assemble") as span:
            span_id = format(span.get_span_context().span_id, "016x")
            assert get_trace_context()["span_id"] == span_id

    def test_failed_body_marks_span(self, exporter):
        with pytest.raises(RuntimeError):
            with create_span("mapping.dispatch_document"):
                raise RuntimeError("broken")

        (span,) = exporter.get_finished_spans()
        assert span.status.status_code is StatusCode.ERROR
        assert span.status.description == "broken"
        assert span.events[0].name == "exception"

    def test_get_tracer_initializes_when_missing(self):
        tracing_module._tracer_holder["tracer"] = None

        assert tracing_module.get_tracer() is not None


@pytest.mark.unit
class TestMetrics:
    def test_track_latency_with_labels(self):
        histogram = Histogram("test_labelled_latency_seconds", "test", ["step"])

        with track_latency(histogram, step="a"):
            pass

        assert REGISTRY.get_sample_value("test_labelled_latency_seconds_count", {"step": "a"}) == 1.0

    def test_track_latency_records_on_error(self):
        histogram = Histogram("test_plain_latency_seconds", "test")

        with pytest.raises(ValueError):
            with track_latency(histogram):
                raise ValueError

        assert REGISTRY.get_sample_value("test_plain_latency_seconds_count") == 1.0

    def test_exposition(self):
        assert b"search_mapping_documents_dispatched_total" in get_metrics()
        assert get_metrics_content_type().startswith("text/plain")
