"""
Result assembly.

Turns ranked hits delivered by the index engine into the produced result
descriptor. Steps, each closing a time checkpoint:
1. documents: materialize the requested window, in engine order, decoding
   stored values and doc-values of the returned fields
2. highlighting: one snippet per requested field, over the window only
3. facets: counts per requested dimension, merged in request order

When the engine sorted on fields, a hit's relevance score is only known if
``score`` was one of the sort keys; it is then read back from the hit's sort
tuple. Otherwise the score is None.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
import logging
from typing import Any

from docs_search_mapping.engine import DocumentReader, Highlighter, ScoredDoc, SortField, TopHits
from docs_search_mapping.errors import QueryResolutionError
from docs_search_mapping.mapping import codecs
from docs_search_mapping.mapping.field_types import FieldType
from docs_search_mapping.mapping.registry import FacetDimConfig, FieldRegistry
from docs_search_mapping.observability.metrics import RESULT_ASSEMBLY_LATENCY, track_latency
from docs_search_mapping.observability.tracing import create_span
from docs_search_mapping.query.definition import FacetRequest, QueryDefinition
from docs_search_mapping.query.executable import EngineQuery
from docs_search_mapping.results.models import FacetEntry, ResultDefinition, ResultDocument
from docs_search_mapping.results.records import RecordMapper
from docs_search_mapping.results.timing import TimeTracker


logger = logging.getLogger(__name__)

FacetCounter = Callable[[FacetDimConfig, FacetRequest], Sequence[tuple[str, int | float]]]


def score_index(sort: Sequence[SortField] | None) -> int | None:
    """Position of the relevance score in the sort tuple, None when it is not a sort key."""
    for index, sort_field in enumerate(sort or ()):
        if sort_field.is_score:
            return index
    return None


def hit_score(hit: ScoredDoc, sort: Sequence[SortField] | None) -> float | None:
    if not sort:
        return hit.score
    index = score_index(sort)
    if index is None or hit.sort_values is None or index >= len(hit.sort_values):
        return None
    value = hit.sort_values[index]
    return float(value) if value is not None else None


def order_facet_counts(counts: Sequence[tuple[str, int | float]], top: int) -> tuple[FacetEntry, ...]:
    """Count descending, then label ascending, truncated to ``top``."""
    ordered = sorted(counts, key=lambda item: (-item[1], item[0]))
    return tuple(FacetEntry(label=label, count=count) for label, count in ordered[:top])


class ResultAssembler:
    """Assembles ``ResultDefinition`` objects for one index.

    Args:
        registry: Field registry of the queried index
        reader: Stored-field and doc-value accessors
        highlighter: Snippet producer, required only when highlighting is requested
        default_snippet_length: Snippet length used when a request gives 0
    """

    def __init__(
        self,
        registry: FieldRegistry,
        reader: DocumentReader,
        *,
        highlighter: Highlighter | None = None,
        default_snippet_length: int = 300,
    ) -> None:
        self.registry = registry
        self.reader = reader
        self.highlighter = highlighter
        self.default_snippet_length = default_snippet_length

    def assemble(
        self,
        definition: QueryDefinition,
        query: EngineQuery,
        top_hits: TopHits,
        *,
        rows: int,
        sort: Sequence[SortField] | None = None,
        timer: TimeTracker | None = None,
        facet_counter: FacetCounter | None = None,
        record_type: type | None = None,
    ) -> ResultDefinition:
        timer = timer or TimeTracker()
        with create_span("results.assemble", attributes={"hits.total": top_hits.total_hits, "rows": rows}):
            with track_latency(RESULT_ASSEMBLY_LATENCY):
                window = top_hits.hits[definition.start : definition.start + rows]
                mapper = RecordMapper(record_type, definition.returned_fields) if record_type is not None else None
                documents = self._documents(definition, window, sort, mapper)
                timer.next("documents")

                if definition.highlighting:
                    documents = self._highlight(definition, query, window, documents)
                timer.next("highlighting")

                facets: dict[str, tuple[FacetEntry, ...]] = {}
                if definition.facets:
                    facets = self._facets(definition.facets, facet_counter)
                timer.next("facets")

        logger.debug("Assembled %d of %d hits", len(documents), top_hits.total_hits)
        return ResultDefinition(
            total_hits=top_hits.total_hits,
            documents=tuple(documents),
            facets=facets,
            timings=timer.to_dict(),
            debug_query=str(query) if definition.query_debug else None,
        )

    def _documents(
        self,
        definition: QueryDefinition,
        window: Sequence[ScoredDoc],
        sort: Sequence[SortField] | None,
        mapper: RecordMapper | None,
    ) -> list[ResultDocument]:
        names = mapper.fields if mapper is not None and not definition.returned_fields else definition.returned_fields
        field_types = {name: self.registry.find(None, name) for name in names}
        documents: list[ResultDocument] = []
        for offset, hit in enumerate(window):
            values = {name: self._field_values(hit.doc, name, field_types[name]) for name in names}
            documents.append(
                ResultDocument(
                    rank=definition.start + offset,
                    score=hit_score(hit, sort),
                    fields={name: _shape(found, field_types[name]) for name, found in values.items() if found},
                    record=mapper.map(values) if mapper is not None else None,
                )
            )
        return documents

    def _field_values(self, doc: Any, name: str, field_type: FieldType | None) -> list[Any]:
        stored = list(self.reader.stored_values(doc, name))
        if stored or field_type is None or not field_type.doc_values or field_type.kind is None:
            return stored
        kind = field_type.kind
        decoded: list[Any] = []
        for raw in self.reader.doc_values(doc, name):
            if kind.is_numeric:
                decoded.append(codecs.from_sortable_long(kind, raw))
            else:
                value = field_type.to_term(raw)
                if value is not None:
                    decoded.append(value)
        return decoded

    def _highlight(
        self,
        definition: QueryDefinition,
        query: EngineQuery,
        window: Sequence[ScoredDoc],
        documents: list[ResultDocument],
    ) -> list[ResultDocument]:
        if self.highlighter is None:
            raise QueryResolutionError("Highlighting was requested but no highlighter is configured")
        docs = [hit.doc for hit in window]
        highlights: list[dict[str, str]] = [{} for _ in documents]
        for field, max_length in definition.highlighting.items():
            snippets = self.highlighter.highlight(field, query, docs, max_length or self.default_snippet_length)
            for row, snippet in zip(highlights, snippets):
                if snippet is not None:
                    row[field] = snippet
        return [
            document.model_copy(update={"highlights": row}) if row else document
            for document, row in zip(documents, highlights)
        ]

    def _facets(
        self,
        requests: Mapping[str, FacetRequest],
        facet_counter: FacetCounter | None,
    ) -> dict[str, tuple[FacetEntry, ...]]:
        if facet_counter is None:
            raise QueryResolutionError("Facets were requested but no facet counter is configured")
        facets: dict[str, tuple[FacetEntry, ...]] = {}
        for dimension, request in requests.items():
            config = self.registry.get_facet_config(None, dimension)
            if config is None:
                raise QueryResolutionError(f"The field is not a facet: {dimension}", field=dimension)
            facets[dimension] = order_facet_counts(facet_counter(config, request), request.top)
        return facets


def _shape(values: list[Any], field_type: FieldType | None) -> Any:
    if len(values) == 1 and (field_type is None or not field_type.multivalued):
        return values[0]
    return values
