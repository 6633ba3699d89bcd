"""
Query node tree.

Query nodes are immutable pydantic models discriminated by ``type``, so a JSON
query descriptor validates straight into a tree and dumps back out unchanged.
Field names are symbolic: they are resolved against the registry of the index
being queried only when ``to_executable_query`` runs, never at construction.

Variants:
- match_all
- term: exact term on a text/string field, exact point on a numeric field
- numeric_exact / numeric_range: over indexed points or doc-values
- phrase: ordered terms with slop, analyzed with the field's query analyzer
- geo_bbox: latitude/longitude bounding box
- bool: boolean composition of child nodes
- join: sub-query on another index, correlated through from/to fields
"""

from __future__ import annotations

from collections.abc import Mapping
import math
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from docs_search_mapping.errors import QueryResolutionError, UnsupportedValueTypeError
from docs_search_mapping.mapping import codecs
from docs_search_mapping.mapping.definition import ValueKind
from docs_search_mapping.mapping.field_types import FieldType
from docs_search_mapping.mapping.values import ScalarValue
from docs_search_mapping.query.context import QueryContext
from docs_search_mapping.query.executable import (
    BooleanClause,
    BooleanQuery,
    DocValuesExactQuery,
    DocValuesRangeQuery,
    EngineQuery,
    JoinTermsQuery,
    LatLonBoxQuery,
    MatchAllDocsQuery,
    Occur,
    PhraseQuery,
    PointExactQuery,
    PointRangeQuery,
    ScoreMode,
    TermQuery,
)


class QueryNodeBase(BaseModel):
    """Common behavior of every query node."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    def to_executable_query(self, context: QueryContext) -> EngineQuery:  # pragma: no cover - overridden
        raise NotImplementedError

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class FieldNode(QueryNodeBase):
    """Node referencing one field, by generic (declared) name, concrete name, or both."""

    generic_field: str | None = None
    field: str | None = None

    @model_validator(mode="after")
    def _check_field(self) -> FieldNode:
        if self.generic_field is None and self.field is None:
            raise ValueError(f"'{getattr(self, 'type', 'field')}' query requires a field")
        return self

    def _convert(self, field_type: FieldType, name: str, value: Any) -> Any:
        try:
            return field_type.convert(name, ScalarValue(value))
        except UnsupportedValueTypeError as exc:
            raise QueryResolutionError(str(exc), field=name) from exc

    def _numeric(self, context: QueryContext) -> tuple[FieldType, str, ValueKind]:
        field_type, name = context.resolve_field(self.generic_field, self.field)
        kind = field_type.kind
        if kind is None or not kind.is_numeric:
            raise QueryResolutionError(f"The field is not numeric: {name}", field=name)
        return field_type, name, kind


def _check_doc_values(field_type: FieldType, name: str, doc_values: bool) -> None:
    if doc_values and not field_type.doc_values:
        raise QueryResolutionError(f"The field has no doc-values: {name}", field=name)
    if not doc_values and not field_type.indexed:
        raise QueryResolutionError(f"The field is not indexed: {name}", field=name)


class MatchAllQueryNode(QueryNodeBase):
    type: Literal["match_all"] = "match_all"

    def to_executable_query(self, context: QueryContext) -> EngineQuery:
        return MatchAllDocsQuery()


class TermQueryNode(FieldNode):
    type: Literal["term"] = "term"
    value: str | int | float

    def to_executable_query(self, context: QueryContext) -> EngineQuery:
        field_type, name = context.resolve_field(self.generic_field, self.field)
        kind = field_type.kind
        if kind is None or kind is ValueKind.GEO_POINT:
            raise QueryResolutionError(f"The field does not support term queries: {name}", field=name)
        if kind.is_numeric:
            return PointExactQuery(name, kind, self._convert(field_type, name, self.value))
        try:
            return TermQuery(field_type.index_term(name, self.value))
        except UnsupportedValueTypeError as exc:
            raise QueryResolutionError(str(exc), field=name) from exc


class NumericExactQueryNode(FieldNode):
    """Exact numeric match; an absent value matches zero."""

    type: Literal["numeric_exact"] = "numeric_exact"
    value: int | float | None = None
    doc_values: bool = False

    def to_executable_query(self, context: QueryContext) -> EngineQuery:
        field_type, name, kind = self._numeric(context)
        _check_doc_values(field_type, name, self.doc_values)
        value = self._convert(field_type, name, 0 if self.value is None else self.value)
        if self.doc_values:
            return DocValuesExactQuery(name, kind, value)
        return PointExactQuery(name, kind, value)


class NumericRangeQueryNode(FieldNode):
    """Numeric range; an absent bound is replaced by the kind's minimum or maximum."""

    type: Literal["numeric_range"] = "numeric_range"
    lower: int | float | None = None
    upper: int | float | None = None
    lower_inclusive: bool = True
    upper_inclusive: bool = True
    doc_values: bool = False

    def to_executable_query(self, context: QueryContext) -> EngineQuery:
        field_type, name, kind = self._numeric(context)
        _check_doc_values(field_type, name, self.doc_values)
        minimum, maximum = codecs.numeric_bounds(kind)
        if self.lower is None:
            lower = minimum
        else:
            lower = self._convert(field_type, name, self.lower)
            if not self.lower_inclusive:
                lower = adjacent_value(kind, lower, up=True)
        if self.upper is None:
            upper = maximum
        else:
            upper = self._convert(field_type, name, self.upper)
            if not self.upper_inclusive:
                upper = adjacent_value(kind, upper, up=False)
        if self.doc_values:
            return DocValuesRangeQuery(name, kind, lower, upper)
        return PointRangeQuery(name, kind, lower, upper)


def adjacent_value(kind: ValueKind, value: int | float, *, up: bool) -> int | float:
    """Next representable value of ``kind`` above (or below) ``value``."""
    step = 1 if up else -1
    if kind in (ValueKind.INTEGER, ValueKind.LONG):
        return int(value) + step
    if kind is ValueKind.FLOAT:
        return codecs.sortable_int_to_float(codecs.float_to_sortable_int(value) + step)
    return math.nextafter(value, math.inf if up else -math.inf)


class PhraseQueryNode(QueryNodeBase):
    """Ordered terms; ``field`` is required."""

    type: Literal["phrase"] = "phrase"
    field: str
    generic_field: str | None = None
    terms: tuple[str, ...] = Field(min_length=1)
    slop: int = Field(default=0, ge=0)

    def to_executable_query(self, context: QueryContext) -> EngineQuery:
        field_type, name = context.resolve_field(self.generic_field, self.field)
        kind = field_type.kind
        if kind is ValueKind.STRING:
            return PhraseQuery(name, self.terms, tuple(range(len(self.terms))), self.slop)
        if kind is not ValueKind.TEXT:
            raise QueryResolutionError(f"Phrase queries need a text field: {name}", field=name)
        terms: list[str] = []
        positions: list[int] = []
        base = 0
        for text in self.terms:
            content = context.analyzers.analyze(name, text, query=True)
            position = base - 1
            for term, increment in zip(content.terms, content.increments):
                position += increment
                terms.append(term)
                positions.append(position)
            base = position + 1
        if not terms:
            raise QueryResolutionError(f"The phrase has no terms after analysis: {name}", field=name)
        return PhraseQuery(name, tuple(terms), tuple(positions), self.slop)


class GeoBoundingBoxQueryNode(FieldNode):
    type: Literal["geo_bbox"] = "geo_bbox"
    top: float = Field(ge=-90.0, le=90.0)
    bottom: float = Field(ge=-90.0, le=90.0)
    left: float = Field(ge=-180.0, le=180.0)
    right: float = Field(ge=-180.0, le=180.0)

    @model_validator(mode="after")
    def _check_box(self) -> GeoBoundingBoxQueryNode:
        if self.bottom > self.top:
            raise ValueError("The bottom latitude is above the top latitude")
        return self

    def to_executable_query(self, context: QueryContext) -> EngineQuery:
        field_type, name = context.resolve_field(self.generic_field, self.field)
        if field_type.kind is not ValueKind.GEO_POINT:
            raise QueryResolutionError(f"The field is not a geo point: {name}", field=name)
        return LatLonBoxQuery(name, self.bottom, self.top, self.left, self.right)


class BoolClause(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    occur: Occur = Occur.MUST
    query: QueryNode


class BoolQueryNode(QueryNodeBase):
    type: Literal["bool"] = "bool"
    clauses: tuple[BoolClause, ...] = Field(min_length=1)
    minimum_should_match: int = Field(default=0, ge=0)

    def to_executable_query(self, context: QueryContext) -> EngineQuery:
        return BooleanQuery(
            tuple(BooleanClause(clause.occur, clause.query.to_executable_query(context)) for clause in self.clauses),
            self.minimum_should_match,
        )


class JoinQueryNode(QueryNodeBase):
    """Local documents whose ``to_field`` holds a ``from_field`` value of the foreign matches.

    With ``multiple_values_per_document`` false, only the first ``from_field``
    value of each foreign document is used and foreign matches sharing a value
    coalesce into one correlation scored with ``score_mode``. With it true,
    every value of every foreign match is kept as its own correlation.
    """

    type: Literal["join"] = "join"
    from_index: str = Field(min_length=1)
    from_field: str = Field(min_length=1)
    to_field: str = Field(min_length=1)
    from_query: QueryNode
    multiple_values_per_document: bool = False
    score_mode: ScoreMode = ScoreMode.NONE

    def to_executable_query(self, context: QueryContext) -> EngineQuery:
        foreign = context.get_index(self.from_index)
        foreign_context = context.for_index(self.from_index, foreign)
        from_type, from_name = foreign_context.resolve_field(None, self.from_field)
        to_type, to_name = context.resolve_field(None, self.to_field)
        if not from_type.stored:
            raise QueryResolutionError(f"The join field is not stored: {from_name}", field=from_name)
        sub_query = self.from_query.to_executable_query(foreign_context)

        correlations: list[tuple[Any, float]] = []
        scores_by_value: dict[Any, list[float]] = {}
        for hit in foreign.collect(sub_query):
            values = list(foreign.stored_values(hit.doc, from_name))
            if not self.multiple_values_per_document:
                values = values[:1]
            for raw in values:
                value = self._to_local(to_type, to_name, raw)
                if self.multiple_values_per_document:
                    correlations.append((value, hit.score))
                else:
                    scores_by_value.setdefault(value, []).append(hit.score)
        if not self.multiple_values_per_document:
            correlations = [(value, self.score_mode.combine(scores)) for value, scores in scores_by_value.items()]
        return JoinTermsQuery(to_name, to_type.kind, tuple(correlations), self.score_mode, self.from_index)

    @staticmethod
    def _to_local(to_type: FieldType, to_name: str, raw: Any) -> Any:
        try:
            return to_type.convert(to_name, ScalarValue(raw))
        except UnsupportedValueTypeError as exc:
            raise QueryResolutionError(
                f"Joined value {raw!r} does not fit the field: {to_name}", field=to_name
            ) from exc


QueryNode = Annotated[
    Union[
        MatchAllQueryNode,
        TermQueryNode,
        NumericExactQueryNode,
        NumericRangeQueryNode,
        PhraseQueryNode,
        GeoBoundingBoxQueryNode,
        BoolQueryNode,
        JoinQueryNode,
    ],
    Field(discriminator="type"),
]

BoolClause.model_rebuild()
BoolQueryNode.model_rebuild()
JoinQueryNode.model_rebuild()

_QUERY_ADAPTER: TypeAdapter[Any] = TypeAdapter(QueryNode)


def parse_query(data: Mapping[str, Any]) -> QueryNodeBase:
    """Validate a JSON-shaped query node, reporting problems as ``QueryResolutionError``."""
    try:
        return _QUERY_ADAPTER.validate_python(data)
    except ValidationError as exc:
        raise QueryResolutionError(f"Invalid query: {exc}") from exc
