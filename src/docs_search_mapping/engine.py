"""Index-engine boundary.

The index engine that stores postings, scores and merges segments is an
external collaborator. This module defines the values exchanged with it and
the protocols it is expected to implement:
- field emissions flow towards the engine through ``IndexEngine.write_document``
- executable queries and sort keys flow towards the engine through ``search``
- ranked hits, stored fields, doc-values and facet counts flow back
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from docs_search_mapping.mapping.definition import ValueKind


if TYPE_CHECKING:
    from docs_search_mapping.analysis.context import AnalyzerContext
    from docs_search_mapping.mapping.field_types import FieldEmission
    from docs_search_mapping.mapping.registry import FacetDimConfig, FieldRegistry
    from docs_search_mapping.query.definition import FacetRequest
    from docs_search_mapping.query.executable import EngineQuery


SCORE_FIELD = "score"


@dataclass(frozen=True)
class Term:
    """An indexed term: engine field name plus encoded bytes."""

    field: str
    bytes: bytes

    def text(self) -> str:
        return self.bytes.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class SortField:
    """Engine sort key. ``kind`` is None for the relevance score pseudo-field."""

    field: str
    kind: ValueKind | None
    descending: bool = False
    multivalued: bool = False

    @property
    def is_score(self) -> bool:
        return self.kind is None and self.field == SCORE_FIELD

    @classmethod
    def score(cls, *, descending: bool = True) -> SortField:
        return cls(SCORE_FIELD, None, descending=descending)

    def __str__(self) -> str:
        return f"<{self.field}>{'!' if self.descending else ''}"


@dataclass(frozen=True)
class ScoredDoc:
    """One ranked hit: opaque document handle, relevance score, sort tuple when sorted by fields."""

    doc: Any
    score: float
    sort_values: tuple[Any, ...] | None = None


@dataclass(frozen=True)
class TopHits:
    total_hits: int
    hits: tuple[ScoredDoc, ...]


class DocumentReader(Protocol):
    """Raw stored-field and doc-value accessors for materialized hits."""

    def stored_values(self, doc: Any, field: str) -> Sequence[Any]:  # pragma: no cover - interface definition
        ...

    def doc_values(self, doc: Any, field: str) -> Sequence[Any]:  # pragma: no cover - interface definition
        """Sortable longs for numeric fields, encoded bytes otherwise."""
        ...


class IndexEngine(DocumentReader, Protocol):
    """Operations the mapping layer needs from the index engine."""

    def write_document(self, emissions: Sequence[FieldEmission]) -> None:  # pragma: no cover - interface definition
        ...

    def search(
        self,
        query: EngineQuery,
        *,
        sort: Sequence[SortField] | None,
        num_hits: int,
    ) -> TopHits:  # pragma: no cover - interface definition
        ...

    def facet_counts(
        self,
        query: EngineQuery,
        config: FacetDimConfig,
        request: FacetRequest,
    ) -> Sequence[tuple[str, int | float]]:  # pragma: no cover - interface definition
        ...


class ForeignIndex(DocumentReader, Protocol):
    """Another named index reachable from a join query."""

    @property
    def registry(self) -> FieldRegistry:  # pragma: no cover - interface definition
        ...

    @property
    def analyzers(self) -> AnalyzerContext:  # pragma: no cover - interface definition
        ...

    def collect(self, query: EngineQuery) -> Iterable[ScoredDoc]:  # pragma: no cover - interface definition
        ...


class IndexLookup(Protocol):
    """Cross-index lookup used by join resolution."""

    def get_index(self, name: str) -> ForeignIndex | None:  # pragma: no cover - interface definition
        ...


class Highlighter(Protocol):
    """Produces one snippet (or None) per document for a field."""

    def highlight(
        self,
        field: str,
        query: EngineQuery,
        docs: Sequence[Any],
        max_length: int,
    ) -> Sequence[str | None]:  # pragma: no cover - interface definition
        ...
