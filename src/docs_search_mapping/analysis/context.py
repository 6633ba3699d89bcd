"""
Per-field analyzer resolution.

An ``AnalyzerContext`` is built once per schema generation. It maps every text
field declaring an analyzer to its index-time analyzer and to its query-time
analyzer (the index-time one unless a distinct query analyzer is declared).

Each analyzer name is resolved, in order, through:
1. the analyzer memo (names already resolved, possibly by another context)
2. each factory source in the order given, then ``BUILTIN_ANALYZERS``
3. construction by class name, under ``CLASS_PREFIXES``

Failures follow ``AnalyzerErrorPolicy``: ``fail_fast`` aborts construction with
``AnalyzerResolutionError``; ``best_effort`` logs, omits the field, and lookups
for it return the default analyzer.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
import importlib
import logging
from types import MappingProxyType

from docs_search_mapping.analysis.analyzers import BUILTIN_ANALYZERS, Analyzer, AnalyzerFactory, StandardAnalyzer
from docs_search_mapping.config import AnalyzerErrorPolicy
from docs_search_mapping.errors import AnalyzerResolutionError
from docs_search_mapping.mapping.definition import FieldDefinition
from docs_search_mapping.mapping.wildcard import WildcardMatcher
from docs_search_mapping.observability.metrics import ANALYZER_FAILURES


logger = logging.getLogger(__name__)

CLASS_PREFIXES: tuple[str, ...] = ("", "docs_search_mapping.analysis.analyzers.")


class AnalyzerMemo:
    """Resolved analyzers by name, owned by the caller and shareable across contexts."""

    def __init__(self) -> None:
        self._analyzers: dict[str, Analyzer] = {}

    def get(self, name: str) -> Analyzer | None:
        return self._analyzers.get(name)

    def put(self, name: str, analyzer: Analyzer) -> Analyzer:
        return self._analyzers.setdefault(name, analyzer)

    def __contains__(self, name: object) -> bool:
        return name in self._analyzers

    def __len__(self) -> int:
        return len(self._analyzers)


@dataclass(frozen=True)
class FieldContent:
    """Analysis output of one value: terms with positions and offsets."""

    field: str
    terms: tuple[str, ...]
    increments: tuple[int, ...]
    start_offsets: tuple[int, ...]
    end_offsets: tuple[int, ...]


class AnalyzerContext:
    """Immutable field -> analyzer mappings for one schema."""

    def __init__(
        self,
        definitions: Iterable[FieldDefinition],
        *factory_sources: Mapping[str, AnalyzerFactory],
        policy: AnalyzerErrorPolicy = AnalyzerErrorPolicy.FAIL_FAST,
        memo: AnalyzerMemo | None = None,
        default_analyzer: Analyzer | None = None,
    ) -> None:
        self.policy = policy
        self.default_analyzer: Analyzer = default_analyzer or StandardAnalyzer()
        self._sources = (*factory_sources, BUILTIN_ANALYZERS)
        self._memo = memo if memo is not None else AnalyzerMemo()
        self._patterns: list[tuple[WildcardMatcher, str]] = []

        index_analyzers: dict[str, Analyzer] = {}
        query_analyzers: dict[str, Analyzer] = {}
        definitions = tuple(definitions)
        for definition in definitions:
            if not definition.analyzer and not definition.query_analyzer:
                continue
            try:
                index_analyzer = (
                    self._resolve(definition.analyzer, definition.name) if definition.analyzer else None
                )
                query_analyzer = (
                    self._resolve(definition.query_analyzer, definition.name)
                    if definition.query_analyzer
                    else index_analyzer
                )
            except AnalyzerResolutionError as exc:
                ANALYZER_FAILURES.labels(policy=policy.value).inc()
                if policy is AnalyzerErrorPolicy.FAIL_FAST:
                    raise
                logger.warning(
                    "Analyzer %s omitted for field %s: %s",
                    exc.analyzer,
                    definition.name,
                    exc,
                    extra={"field": definition.name, "analyzer": exc.analyzer},
                )
                continue
            if index_analyzer is not None:
                index_analyzers[definition.name] = index_analyzer
            if query_analyzer is not None:
                query_analyzers[definition.name] = query_analyzer
            if definition.is_wildcard:
                self._patterns.append((WildcardMatcher(definition.name), definition.name))

        self.index_analyzers: Mapping[str, Analyzer] = MappingProxyType(index_analyzers)
        self.query_analyzers: Mapping[str, Analyzer] = MappingProxyType(query_analyzers)

    def _resolve(self, name: str, field: str) -> Analyzer:
        analyzer = self._memo.get(name)
        if analyzer is not None:
            return analyzer
        for source in self._sources:
            factory = source.get(name)
            if factory is not None:
                return self._memo.put(name, factory())
        for prefix in CLASS_PREFIXES:
            try:
                analyzer = _construct_by_class_name(prefix + name)
            except Exception as exc:
                raise AnalyzerResolutionError(
                    f"Analyzer {name} could not be constructed: {exc}", analyzer=name, field=field
                ) from exc
            if analyzer is not None:
                return self._memo.put(name, analyzer)
        raise AnalyzerResolutionError(f"Analyzer not found: {name}", analyzer=name, field=field)

    def _lookup(self, analyzers: Mapping[str, Analyzer], field: str) -> Analyzer:
        found = analyzers.get(field)
        if found is not None:
            return found
        for matcher, pattern in self._patterns:
            if matcher.match(field) and pattern in analyzers:
                return analyzers[pattern]
        return self.default_analyzer

    def index_analyzer(self, field: str) -> Analyzer:
        return self._lookup(self.index_analyzers, field)

    def query_analyzer(self, field: str) -> Analyzer:
        return self._lookup(self.query_analyzers, field)

    def analyze(self, field: str, text: str, *, query: bool = False) -> FieldContent:
        analyzer = self.query_analyzer(field) if query else self.index_analyzer(field)
        tokens = analyzer(text)
        increments: list[int] = []
        previous = -1
        for token in tokens:
            increments.append(token.position - previous)
            previous = token.position
        return FieldContent(
            field=field,
            terms=tuple(token.text for token in tokens),
            increments=tuple(increments),
            start_offsets=tuple(token.start_offset for token in tokens),
            end_offsets=tuple(token.end_offset for token in tokens),
        )


def _construct_by_class_name(qualified: str) -> Analyzer | None:
    module_name, _, class_name = qualified.rpartition(".")
    if not module_name or not class_name:
        return None
    try:
        module = importlib.import_module(module_name)
    except ImportError:
        return None
    candidate = getattr(module, class_name, None)
    if not isinstance(candidate, type):
        return None
    instance = candidate()
    # instances that cannot be called on text are not analyzers
    return instance if callable(instance) else None
