"""Search service orchestration layer.

Wires the indexing flow (document -> registry -> field types -> emissions ->
engine) and the query flow (query descriptor -> executable query -> engine ->
result assembly) for one index. Registry and analyzer context are built once
and shared read-only; everything else is request-local.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import logging
from typing import Any

from docs_search_mapping.analysis.analyzers import AnalyzerFactory
from docs_search_mapping.analysis.context import AnalyzerContext, AnalyzerMemo
from docs_search_mapping.config import Settings, get_settings
from docs_search_mapping.engine import Highlighter, IndexEngine, IndexLookup, Term
from docs_search_mapping.errors import QueryResolutionError
from docs_search_mapping.mapping.definition import SchemaDescriptor
from docs_search_mapping.mapping.dispatch import DispatchReport, DocumentDispatcher
from docs_search_mapping.mapping.field_types import EmissionBuffer
from docs_search_mapping.mapping.registry import FacetConfigMemo, FieldRegistry, build_registry_from_descriptor
from docs_search_mapping.observability.context import bind_index
from docs_search_mapping.query.context import QueryContext
from docs_search_mapping.query.definition import QueryDefinition
from docs_search_mapping.results.assembler import ResultAssembler
from docs_search_mapping.results.highlight import SnippetHighlighter
from docs_search_mapping.results.models import ResultDefinition
from docs_search_mapping.results.timing import TimeTracker


logger = logging.getLogger(__name__)


class SearchService:
    """Indexing and search orchestration for one index.

    Args:
        engine: Index engine storing emissions and executing queries
        registry: Field registry of the index schema
        analyzers: Analyzer context of the index schema
        indexes: Lookup of other indexes, for join queries
        index_name: Name of this index
        settings: Runtime settings, defaults to the process-wide instance
        highlighter: Snippet producer, defaults to ``SnippetHighlighter``
    """

    def __init__(
        self,
        engine: IndexEngine,
        registry: FieldRegistry,
        analyzers: AnalyzerContext,
        *,
        indexes: IndexLookup | None = None,
        index_name: str = "default",
        settings: Settings | None = None,
        highlighter: Highlighter | None = None,
    ) -> None:
        self.engine = engine
        self.registry = registry
        self.analyzers = analyzers
        self.index_name = index_name
        self.settings = settings or get_settings()
        self.context = QueryContext(registry, analyzers, indexes, index_name)
        self.dispatcher = DocumentDispatcher(registry, policy=self.settings.indexing_error_policy)
        self.assembler = ResultAssembler(
            registry,
            engine,
            highlighter=highlighter or SnippetHighlighter(engine, analyzers),
            default_snippet_length=self.settings.default_snippet_length,
        )

    @classmethod
    def from_descriptor(
        cls,
        engine: IndexEngine,
        descriptor: SchemaDescriptor,
        *,
        factory_sources: Sequence[Mapping[str, AnalyzerFactory]] = (),
        facet_memo: FacetConfigMemo | None = None,
        analyzer_memo: AnalyzerMemo | None = None,
        settings: Settings | None = None,
        **kwargs: Any,
    ) -> SearchService:
        """Build registry and analyzer context from a schema descriptor."""
        settings = settings or get_settings()
        registry = build_registry_from_descriptor(
            descriptor,
            facet_memo=facet_memo,
            smart_fallback_on_incompatible=settings.smart_fallback_on_incompatible,
        )
        analyzers = AnalyzerContext(
            descriptor.fields,
            *factory_sources,
            policy=settings.analyzer_error_policy,
            memo=analyzer_memo,
        )
        return cls(engine, registry, analyzers, index_name=descriptor.name, settings=settings, **kwargs)

    def index_document(self, document: Mapping[str, Any]) -> DispatchReport:
        """Dispatch one document and hand its emissions to the engine."""
        bind_index(self.index_name)
        buffer = EmissionBuffer()
        report = self.dispatcher.dispatch(document, buffer)
        self.engine.write_document(buffer.emissions)
        logger.debug(
            "Indexed document with %d emissions",
            report.emissions,
            extra={"skipped_fields": [skipped.field for skipped in report.skipped]},
        )
        return report

    def primary_term(self, value: Any) -> Term:
        """Engine term identifying the document whose primary key is ``value``."""
        return self.registry.primary_key_type.primary_term(self.registry.primary_key, value)

    def search(
        self,
        definition: QueryDefinition | Mapping[str, Any],
        *,
        record_type: type | None = None,
    ) -> ResultDefinition:
        """Resolve, execute and assemble one search request."""
        if not isinstance(definition, QueryDefinition):
            definition = QueryDefinition.from_dict(definition)
        bind_index(self.index_name)
        rows = definition.rows if definition.rows is not None else self.settings.default_rows
        if definition.start + rows > self.settings.max_rows:
            raise QueryResolutionError(
                f"start + rows exceeds the maximum window of {self.settings.max_rows}: {definition.start + rows}"
            )

        timer = TimeTracker()
        query = definition.resolve_query(self.context)
        sort = definition.resolve_sort(self.context)
        top_hits = self.engine.search(query, sort=sort, num_hits=definition.start + rows)
        timer.next("search_query")

        def count_facets(config, request):
            return self.engine.facet_counts(query, config, request)

        return self.assembler.assemble(
            definition,
            query,
            top_hits,
            rows=rows,
            sort=sort,
            timer=timer,
            facet_counter=count_facets,
            record_type=record_type,
        )
