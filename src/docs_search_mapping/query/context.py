"""Resolution context for query nodes."""

from __future__ import annotations

from dataclasses import dataclass, replace

from docs_search_mapping.analysis.context import AnalyzerContext
from docs_search_mapping.engine import ForeignIndex, IndexLookup
from docs_search_mapping.errors import FieldNotFoundError, QueryResolutionError, SchemaError
from docs_search_mapping.mapping.field_types import FieldType
from docs_search_mapping.mapping.registry import FieldRegistry


@dataclass(frozen=True)
class QueryContext:
    """Field registry and analyzers of the queried index, plus cross-index lookup.

    Args:
        registry: Field registry of the index being queried
        analyzers: Analyzer context of the same schema
        indexes: Lookup for joined indexes, None when joins are not available
        index_name: Name of the queried index, used in error messages
    """

    registry: FieldRegistry
    analyzers: AnalyzerContext
    indexes: IndexLookup | None = None
    index_name: str | None = None

    def resolve_field(self, generic_field: str | None, field: str | None) -> tuple[FieldType, str]:
        """Resolve a field reference; returns the field type and the concrete name to query."""
        if generic_field is None and field is None:
            raise QueryResolutionError("The query node does not name a field")
        try:
            field_type = self.registry.find(generic_field, field)
        except SchemaError as exc:
            raise QueryResolutionError(str(exc), field=field or generic_field) from exc
        if field_type is None:
            name = field or generic_field
            cause = FieldNotFoundError(f"Field not found: {name}", field=name)
            where = f" in index {self.index_name}" if self.index_name else ""
            raise QueryResolutionError(f"Unknown field{where}: {name}", field=name) from cause
        return field_type, field or generic_field  # type: ignore[return-value]

    def get_index(self, name: str) -> ForeignIndex:
        index = self.indexes.get_index(name) if self.indexes is not None else None
        if index is None:
            raise QueryResolutionError(f"Index not found: {name}")
        return index

    def for_index(self, name: str, index: ForeignIndex) -> QueryContext:
        return replace(self, registry=index.registry, analyzers=index.analyzers, index_name=name)
