"""Value dispatch: input documents to field emissions.

``FieldDispatcher`` dispatches one top-level value through one field type and
its copy-to graph. Emissions are buffered and only handed to the consumer once
the whole value (copies included) succeeded, so a failure never emits a partial
set of fields.

``DocumentDispatcher`` applies the indexing error policy over a whole document.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
import logging
from typing import Any

from docs_search_mapping.config import IndexingErrorPolicy
from docs_search_mapping.errors import FieldNotFoundError, SchemaError, UnsupportedValueTypeError
from docs_search_mapping.mapping.definition import ValueKind
from docs_search_mapping.mapping.field_types import EmissionBuffer, FieldConsumer, FieldEmission, FieldType, Sink
from docs_search_mapping.mapping.registry import FieldRegistry
from docs_search_mapping.mapping.values import MappingValue, SequenceValue, Value, to_value
from docs_search_mapping.observability.metrics import DOCUMENTS_DISPATCHED, FIELDS_SKIPPED
from docs_search_mapping.observability.tracing import create_span


logger = logging.getLogger(__name__)

DispatchListener = Callable[[str, FieldType], None]


class FieldDispatcher:
    """Dispatch values through field types and their copy destinations.

    Args:
        registry: Field registry owning the types and copy edges
        listener: Optional callback invoked once per dispatch invocation
            (the original value and every copy), with the field name and type
    """

    def __init__(self, registry: FieldRegistry, listener: DispatchListener | None = None) -> None:
        self.registry = registry
        self._listener = listener

    def dispatch(self, field_type: FieldType, field_name: str, value: Any, consumer: FieldConsumer) -> None:
        normalized = to_value(value, field=field_name)
        if normalized is None:
            return
        pending: list[FieldEmission] = []
        self._dispatch_one(field_type.handle, field_name, normalized, pending.append, frozenset(), None)
        for emission in pending:
            consumer.accept(emission)

    def _dispatch_one(
        self,
        handle: int,
        field_name: str,
        value: Value,
        sink: Sink,
        visiting: frozenset[int],
        copied_from: str | None,
    ) -> None:
        if handle in visiting:
            raise SchemaError(f"Cyclic copy-to fan-out at the field: {field_name}", field=field_name)
        field_type = self.registry.get(handle)
        if self._listener is not None:
            self._listener(field_name, field_type)

        template = field_type.facet_template
        facet_index_field = self.registry.facet_index_field_for(template) if template is not None else None

        if isinstance(value, MappingValue) and self._dispatches_per_key(field_type, value):
            fanned: list[Value] = []
            for key, item in value.entries:
                field_type.fill(key, item, sink, facet_index_field=facet_index_field, copied_from=copied_from)
                fanned.append(item)
            copy_value: Value = SequenceValue(tuple(fanned))
            by_name = dict(value.entries)
        else:
            field_type.fill(field_name, value, sink, facet_index_field=facet_index_field, copied_from=copied_from)
            copy_value = value
            by_name = {field_name: value}

        for target in self.registry.copy_targets(handle):
            if target.source is None:
                source_value = copy_value
            elif target.source in by_name:
                source_value = by_name[target.source]
            else:
                continue
            self._dispatch_one(
                target.handle,
                target.field_name,
                source_value,
                sink,
                visiting | {handle},
                copied_from=field_name,
            )

    @staticmethod
    def _dispatches_per_key(field_type: FieldType, value: MappingValue) -> bool:
        """Nested mappings are only legal under wildcard types; every key must match the pattern."""
        matcher = field_type.matcher
        if matcher is None:
            return False
        mismatched = [key for key in value.keys() if not matcher.match(key)]
        if field_type.kind is ValueKind.GEO_POINT and len(mismatched) == len(value.entries):
            return False
        if mismatched:
            raise SchemaError(
                f"The field name does not match the field pattern: {mismatched[0]} / {matcher.pattern}",
                field=mismatched[0],
            )
        return True


@dataclass(frozen=True)
class SkippedField:
    field: str
    error_type: str
    message: str


@dataclass
class DispatchReport:
    """Outcome of one document dispatch."""

    emissions: int = 0
    fields: list[str] = field(default_factory=list)
    skipped: list[SkippedField] = field(default_factory=list)


class DocumentDispatcher:
    """Dispatch whole documents under an indexing error policy.

    Under ``fail`` the first field error aborts the document and nothing is
    emitted. Under ``lenient`` the failing field is skipped and logged.
    ``SchemaError`` always propagates.
    """

    def __init__(
        self,
        registry: FieldRegistry,
        *,
        policy: IndexingErrorPolicy = IndexingErrorPolicy.FAIL,
        field_dispatcher: FieldDispatcher | None = None,
    ) -> None:
        self.registry = registry
        self.policy = policy
        self.field_dispatcher = field_dispatcher or FieldDispatcher(registry)

    def dispatch(self, document: Mapping[str, Any], consumer: FieldConsumer) -> DispatchReport:
        report = DispatchReport()
        buffer = EmissionBuffer()
        try:
            with create_span(
                "mapping.dispatch_document",
                attributes={"document.fields": len(document), "indexing.policy": self.policy.value},
            ):
                for name, raw in document.items():
                    if self._dispatch_or_skip(name, raw, buffer, report):
                        report.fields.append(name)
        except Exception:
            DOCUMENTS_DISPATCHED.labels(status="failed").inc()
            raise

        for emission in buffer:
            consumer.accept(emission)
        report.emissions = len(buffer)
        DOCUMENTS_DISPATCHED.labels(status="partial" if report.skipped else "ok").inc()
        return report

    def _dispatch_or_skip(self, name: str, raw: Any, buffer: EmissionBuffer, report: DispatchReport) -> bool:
        """Dispatch one field; under ``lenient`` a field error is recorded and the field skipped."""
        try:
            self._dispatch_field(name, raw, buffer)
        except (FieldNotFoundError, UnsupportedValueTypeError) as exc:
            if self.policy is IndexingErrorPolicy.FAIL:
                raise
            FIELDS_SKIPPED.labels(error_type=type(exc).__name__).inc()
            logger.warning(
                "Skipping field %s: %s",
                name,
                exc,
                extra={"field": name, "error_type": type(exc).__name__},
            )
            report.skipped.append(SkippedField(name, type(exc).__name__, str(exc)))
            return False
        return True

    def _dispatch_field(self, name: str, raw: Any, buffer: EmissionBuffer) -> None:
        known = self.registry.find(None, name)
        # opaque payloads (the record field) are neither normalized nor emitted
        if known is not None and not known.emits and not self.registry.copy_targets(known.handle):
            return
        value = to_value(raw, field=name)
        if value is None:
            return
        if isinstance(value, MappingValue) and value.entries:
            field_type = self.registry.resolve(name, value.keys()[0], value)
        else:
            field_type = self.registry.resolve(None, name, value)
        staged = EmissionBuffer()
        self.field_dispatcher.dispatch(field_type, name, value, staged)
        buffer.extend(staged.emissions)
