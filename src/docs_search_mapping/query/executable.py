"""Engine-level executable queries.

These are the values handed to the index engine after resolution: every field
reference has been resolved through the registry and every value converted to
the field's kind. They are immutable and compare structurally; ``str()`` gives
the debug form reported when a request sets ``query_debug``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from docs_search_mapping.engine import Term
from docs_search_mapping.mapping.definition import ValueKind


class Occur(str, Enum):
    MUST = "must"
    SHOULD = "should"
    MUST_NOT = "must_not"
    FILTER = "filter"

    @property
    def symbol(self) -> str:
        return {"must": "+", "should": "", "must_not": "-", "filter": "#"}[self.value]


class ScoreMode(str, Enum):
    """How the scores of several foreign matches of one join value combine."""

    NONE = "none"
    AVG = "avg"
    MAX = "max"
    MIN = "min"
    TOTAL = "total"

    def combine(self, scores: Sequence[float]) -> float:
        if self is ScoreMode.NONE or not scores:
            return 1.0
        if self is ScoreMode.AVG:
            return sum(scores) / len(scores)
        if self is ScoreMode.MAX:
            return max(scores)
        if self is ScoreMode.MIN:
            return min(scores)
        return sum(scores)


@dataclass(frozen=True)
class MatchAllDocsQuery:
    def __str__(self) -> str:
        return "*:*"


@dataclass(frozen=True)
class TermQuery:
    term: Term

    def __str__(self) -> str:
        return f"{self.term.field}:{self.term.text()}"


@dataclass(frozen=True)
class PointExactQuery:
    field: str
    kind: ValueKind
    value: int | float

    def __str__(self) -> str:
        return f"{self.field}:[{self.value} TO {self.value}]"


@dataclass(frozen=True)
class PointRangeQuery:
    """Closed range over indexed points; open bounds are already replaced by sentinels."""

    field: str
    kind: ValueKind
    lower: int | float
    upper: int | float

    def __str__(self) -> str:
        return f"{self.field}:[{self.lower} TO {self.upper}]"


@dataclass(frozen=True)
class DocValuesExactQuery:
    field: str
    kind: ValueKind
    value: int | float

    def __str__(self) -> str:
        return f"{self.field}:dv[{self.value} TO {self.value}]"


@dataclass(frozen=True)
class DocValuesRangeQuery:
    field: str
    kind: ValueKind
    lower: int | float
    upper: int | float

    def __str__(self) -> str:
        return f"{self.field}:dv[{self.lower} TO {self.upper}]"


@dataclass(frozen=True)
class PhraseQuery:
    """Ordered terms at relative positions, matched within ``slop`` moves."""

    field: str
    terms: tuple[str, ...]
    positions: tuple[int, ...]
    slop: int = 0

    def __str__(self) -> str:
        phrase = f'{self.field}:"{" ".join(self.terms)}"'
        return f"{phrase}~{self.slop}" if self.slop else phrase


@dataclass(frozen=True)
class LatLonBoxQuery:
    field: str
    min_latitude: float
    max_latitude: float
    min_longitude: float
    max_longitude: float

    def __str__(self) -> str:
        return (
            f"{self.field}:[{self.min_latitude},{self.min_longitude} TO {self.max_latitude},{self.max_longitude}]"
        )


@dataclass(frozen=True)
class BooleanClause:
    occur: Occur
    query: EngineQuery

    def __str__(self) -> str:
        inner = str(self.query)
        if isinstance(self.query, BooleanQuery):
            inner = f"({inner})"
        return f"{self.occur.symbol}{inner}"


@dataclass(frozen=True)
class BooleanQuery:
    clauses: tuple[BooleanClause, ...]
    minimum_should_match: int = 0

    def __str__(self) -> str:
        body = " ".join(str(clause) for clause in self.clauses)
        return f"{body}~{self.minimum_should_match}" if self.minimum_should_match else body


@dataclass(frozen=True)
class JoinTermsQuery:
    """Local documents whose ``field`` holds one of the correlated foreign values.

    ``correlations`` pairs each value with the score it carries from the foreign
    side; a value appears several times when foreign matches were not coalesced.
    """

    field: str
    kind: ValueKind | None
    correlations: tuple[tuple[Any, float], ...]
    score_mode: ScoreMode
    from_index: str

    @property
    def values(self) -> tuple[Any, ...]:
        seen: dict[Any, None] = {}
        for value, _ in self.correlations:
            seen.setdefault(value, None)
        return tuple(seen)

    def __str__(self) -> str:
        return f"join({self.from_index} -> {self.field}: {len(self.correlations)} values, {self.score_mode.value})"


EngineQuery = Union[
    MatchAllDocsQuery,
    TermQuery,
    PointExactQuery,
    PointRangeQuery,
    DocValuesExactQuery,
    DocValuesRangeQuery,
    PhraseQuery,
    LatLonBoxQuery,
    BooleanQuery,
    JoinTermsQuery,
]
