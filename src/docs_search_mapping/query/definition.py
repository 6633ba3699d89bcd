"""Request-level query descriptor."""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from docs_search_mapping.engine import SCORE_FIELD, SortField
from docs_search_mapping.errors import QueryResolutionError
from docs_search_mapping.observability.metrics import (
    QUERY_RESOLUTION_ERRORS,
    QUERY_RESOLUTION_LATENCY,
    track_latency,
)
from docs_search_mapping.observability.tracing import create_span
from docs_search_mapping.query.context import QueryContext
from docs_search_mapping.query.executable import EngineQuery, MatchAllDocsQuery
from docs_search_mapping.query.nodes import QueryNode


logger = logging.getLogger(__name__)


class SortSpec(BaseModel):
    """One sort key: a field name or ``score``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    field: str = Field(min_length=1)
    direction: Literal["asc", "desc"] | None = None

    @property
    def descending(self) -> bool:
        """Score sorts descending unless told otherwise, fields ascending."""
        if self.direction is None:
            return self.is_score
        return self.direction == "desc"

    @property
    def is_score(self) -> bool:
        return self.field == SCORE_FIELD


class FacetRequest(BaseModel):
    """Requested facet dimension: top-N labels, optionally under a taxonomy path."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    top: int = Field(default=10, ge=1)
    path: tuple[str, ...] = ()


class QueryDefinition(BaseModel):
    """
    Search request: query tree, result window, sort, facets, returned fields and highlighting.

    Example:
        definition = QueryDefinition.from_dict(
            {
                "query": {"type": "term", "field": "status", "value": "published"},
                "rows": 20,
                "sort": [{"field": "date", "direction": "desc"}, {"field": "score"}],
                "facets": {"category": {"top": 5}},
                "returned_fields": ["title", "date"],
                "highlighting": {"content": 200},
            }
        )
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    query: QueryNode | None = None
    start: int = Field(default=0, ge=0)
    rows: int | None = Field(default=None, ge=0)
    sort: tuple[SortSpec, ...] = ()
    facets: dict[str, FacetRequest] = Field(default_factory=dict)
    returned_fields: tuple[str, ...] = ()
    highlighting: dict[str, int] = Field(default_factory=dict)
    query_debug: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> QueryDefinition:
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise QueryResolutionError(f"Invalid query definition: {exc}") from exc

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)

    @property
    def sorts_by_score(self) -> bool:
        return any(spec.is_score for spec in self.sort)

    def resolve_query(self, context: QueryContext) -> EngineQuery:
        """Executable form of the query tree; an absent query is an explicit match-all."""
        if self.query is None:
            return MatchAllDocsQuery()
        node_type = self.query.type
        with create_span("query.resolve", attributes={"query.type": node_type, "index": context.index_name}):
            try:
                with track_latency(QUERY_RESOLUTION_LATENCY, node_type=node_type):
                    return self.query.to_executable_query(context)
            except QueryResolutionError as exc:
                QUERY_RESOLUTION_ERRORS.labels(node_type=node_type).inc()
                logger.info("Query resolution failed: %s", exc, extra={"field": exc.field, "query_type": node_type})
                raise

    def resolve_sort(self, context: QueryContext) -> tuple[SortField, ...] | None:
        """Engine sort keys, or None for relevance order."""
        if not self.sort:
            return None
        keys: list[SortField] = []
        for spec in self.sort:
            if spec.is_score:
                keys.append(SortField.score(descending=spec.descending))
                continue
            field_type, name = context.resolve_field(None, spec.field)
            keys.append(field_type.sort_field(name, spec.descending))
        return tuple(keys)
