"""
Field registry: schema lookup, copy-to wiring and lazy facet configuration.

The registry is built once per schema generation and then shared read-only:
- every field type gets a stable integer handle
- copy edges are kept as ``handle -> ordered copy targets``
- the only mutable part is the facet-configuration memo, which is an
  explicitly owned map passed in at construction

Lookup order (``resolve``):
1. exact match on the generic name
2. exact match on the concrete name
3. reserved record field (no-op sink)
4. reserved primary-key field (identity type)
5. first wildcard pattern, in declaration order, matching the concrete or generic name
6. smart inference from the value's runtime shape
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
import logging
from types import MappingProxyType
from typing import Any

from docs_search_mapping.errors import FieldNotFoundError, SchemaError, UnsupportedValueTypeError
from docs_search_mapping.mapping.definition import (
    DEFAULT_SORTEDSET_FACET_FIELD,
    ID_FIELD,
    TAXONOMY_FACET_FIELD,
    TAXONOMY_FLOAT_ASSOC_FACET_FIELD,
    TAXONOMY_INT_ASSOC_FACET_FIELD,
    FacetTemplate,
    FieldDefinition,
    SchemaDescriptor,
    ValueKind,
    is_wildcard_name,
)
from docs_search_mapping.mapping.field_types import FieldRole, FieldType
from docs_search_mapping.mapping.values import MappingValue, first_scalar, to_value
from docs_search_mapping.mapping.wildcard import WildcardMatcher


logger = logging.getLogger(__name__)

_NO_VALUE: Any = object()


@dataclass(frozen=True)
class CopyTarget:
    """Copy destination: target field type handle and the field name to dispatch under.

    ``source`` restricts the copy to one concrete name when the source handle is a pattern.
    """

    handle: int
    field_name: str
    source: str | None = None


@dataclass(frozen=True)
class FacetDimConfig:
    """Facet configuration of one dimension."""

    dimension: str
    index_field_name: str
    template: FacetTemplate
    multivalued: bool


class FacetConfigMemo:
    """Facet configurations keyed by (generic, concrete) field-name pair.

    Concurrent first-writers may both compute a configuration; ``dict.setdefault``
    keeps a single stored value and every caller observes that one.
    """

    def __init__(self) -> None:
        self._configs: dict[tuple[str | None, str | None], FacetDimConfig] = {}

    def get_or_create(
        self,
        key: tuple[str | None, str | None],
        factory: Callable[[], FacetDimConfig],
    ) -> FacetDimConfig:
        existing = self._configs.get(key)
        if existing is not None:
            return existing
        return self._configs.setdefault(key, factory())

    def __contains__(self, key: object) -> bool:
        return key in self._configs

    def __len__(self) -> int:
        return len(self._configs)


_SMART_DEFINITIONS = {
    ValueKind.TEXT: FieldDefinition(name="$smart$text", value_type=ValueKind.TEXT, stored=True, multivalued=True),
    ValueKind.LONG: FieldDefinition(
        name="$smart$long", value_type=ValueKind.LONG, stored=True, doc_values=True, multivalued=True
    ),
    ValueKind.DOUBLE: FieldDefinition(
        name="$smart$double", value_type=ValueKind.DOUBLE, stored=True, doc_values=True, multivalued=True
    ),
}


class FieldRegistry:
    """Immutable field-type lookup for one schema generation."""

    def __init__(
        self,
        *,
        types: tuple[FieldType, ...],
        exact: Mapping[str, int],
        patterns: tuple[int, ...],
        copy_edges: Mapping[int, tuple[CopyTarget, ...]],
        primary_key: str,
        record_field: str | None,
        facet_index_field: str | None,
        primary_key_handle: int,
        record_handle: int | None,
        smart_handles: Mapping[ValueKind, int],
        facet_memo: FacetConfigMemo,
        smart_fallback_on_incompatible: bool = False,
    ) -> None:
        self._types = types
        self._exact = MappingProxyType(dict(exact))
        self._patterns = patterns
        self.copy_edges = MappingProxyType(dict(copy_edges))
        self.primary_key = primary_key
        self.record_field = record_field
        self.facet_index_field = facet_index_field
        self._primary_key_handle = primary_key_handle
        self._record_handle = record_handle
        self._smart_handles = MappingProxyType(dict(smart_handles))
        self._facet_memo = facet_memo
        self.smart_fallback_on_incompatible = smart_fallback_on_incompatible

    # Introspection ---------------------------------------------------------

    def get(self, handle: int) -> FieldType:
        return self._types[handle]

    def copy_targets(self, handle: int) -> tuple[CopyTarget, ...]:
        return self.copy_edges.get(handle, ())

    @property
    def primary_key_type(self) -> FieldType:
        return self._types[self._primary_key_handle]

    @property
    def declared(self) -> tuple[FieldType, ...]:
        return tuple(t for t in self._types if t.role is FieldRole.DECLARED)

    def smart_type(self, kind: ValueKind) -> FieldType:
        return self._types[self._smart_handles[kind]]

    def __iter__(self) -> Iterator[FieldType]:
        return iter(self._types)

    def __len__(self) -> int:
        return len(self._types)

    # Lookup ----------------------------------------------------------------

    def find(self, generic: str | None, concrete: str | None) -> FieldType | None:
        """Registry steps 1-5; None when nothing matches."""
        if generic is None and concrete is None:
            raise SchemaError("Missing field name")
        for name in (generic, concrete):
            if name is not None and name in self._exact:
                return self._types[self._exact[name]]
        if self._record_handle is not None and self.record_field in (generic, concrete):
            return self._types[self._record_handle]
        if self.primary_key in (generic, concrete):
            return self._types[self._primary_key_handle]
        for handle in self._patterns:
            matcher = self._types[handle].matcher
            if matcher is not None and (matcher.match(concrete) or matcher.match(generic)):
                return self._types[handle]
        return None

    def resolve(self, generic: str | None = None, concrete: str | None = None, value: Any = _NO_VALUE) -> FieldType:
        """Resolve a field type; with a value, smart inference makes this total."""
        field_type = self.find(generic, concrete)
        if field_type is not None:
            if (
                value is not _NO_VALUE
                and self.smart_fallback_on_incompatible
                and field_type.role is FieldRole.DECLARED
                and not field_type.accepts(value)
            ):
                inferred = self._infer(value, concrete or generic)
                logger.debug(
                    "Declared type of %s does not accept the value, falling back to %s",
                    concrete or generic,
                    inferred.name,
                )
                return inferred
            return field_type
        if value is _NO_VALUE:
            raise FieldNotFoundError(f"Field not found: {concrete or generic}", field=concrete or generic)
        return self._infer(value, concrete or generic)

    def _infer(self, value: Any, field_name: str | None) -> FieldType:
        normalized = to_value(value, field=field_name)
        if isinstance(normalized, MappingValue):
            raise UnsupportedValueTypeError(
                f"Cannot infer a field type from a mapping for the field: {field_name}", field=field_name
            )
        leaf = first_scalar(normalized) if normalized is not None else None
        if leaf is None or isinstance(leaf.value, str):
            return self.smart_type(ValueKind.TEXT)
        raw = leaf.value
        if isinstance(raw, bool) or isinstance(raw, bytes):
            raise UnsupportedValueTypeError(
                f"Cannot infer a field type from {type(raw).__name__} for the field: {field_name}", field=field_name
            )
        if isinstance(raw, int):
            return self.smart_type(ValueKind.LONG)
        return self.smart_type(ValueKind.DOUBLE)

    def resolve_field_names(self, names: Iterable[str] | Mapping[str, str]) -> dict[str, FieldType]:
        return resolve_field_names(names, self.resolve)

    # Facets ----------------------------------------------------------------

    def facet_index_field_for(self, template: FacetTemplate) -> str:
        if template is FacetTemplate.SORTED_SET:
            return self.facet_index_field or DEFAULT_SORTEDSET_FACET_FIELD
        if template is FacetTemplate.TAXONOMY:
            return TAXONOMY_FACET_FIELD
        if template is FacetTemplate.INT_ASSOCIATION:
            return TAXONOMY_INT_ASSOC_FACET_FIELD
        return TAXONOMY_FLOAT_ASSOC_FACET_FIELD

    def get_facet_config(self, generic: str | None, concrete: str | None) -> FacetDimConfig | None:
        """Facet configuration of a field, built on first request then memoized."""
        field_type = self.find(generic, concrete)
        if field_type is None or field_type.facet_template is None:
            return None
        template = field_type.facet_template
        dimension = concrete or generic or field_type.name

        def build() -> FacetDimConfig:
            return FacetDimConfig(
                dimension=dimension,
                index_field_name=self.facet_index_field_for(template),
                template=template,
                multivalued=field_type.multivalued,
            )

        return self._facet_memo.get_or_create((generic, concrete), build)

    def get_facets_config(self, field_names: Iterable[str]) -> dict[str, FacetDimConfig]:
        """Facet configurations of every faceted field among ``field_names``."""
        configs: dict[str, FacetDimConfig] = {}
        for name in field_names:
            config = self.get_facet_config(None, name)
            if config is not None:
                configs[name] = config
        return configs


def resolve_field_names(
    names: Iterable[str] | Mapping[str, str],
    resolver: Callable[[str | None, str | None], FieldType],
) -> dict[str, FieldType]:
    """Resolve concrete field names; a mapping gives the generic name of each concrete name."""
    if isinstance(names, Mapping):
        return {concrete: resolver(generic, concrete) for concrete, generic in names.items()}
    return {name: resolver(None, name) for name in names}


def build_registry(
    primary_key: str | None,
    field_definitions: Iterable[FieldDefinition],
    facet_index_field: str | None = None,
    record_field: str | None = None,
    *,
    facet_memo: FacetConfigMemo | None = None,
    smart_fallback_on_incompatible: bool = False,
) -> FieldRegistry:
    """Build a registry from field declarations.

    Raises:
        SchemaError: Colliding names or a cyclic copy-from graph
    """
    definitions = tuple(field_definitions)
    types: list[FieldType] = []
    exact: dict[str, int] = {}
    patterns: list[int] = []

    def register(name: str, role: FieldRole, definition: FieldDefinition | None) -> int:
        handle = len(types)
        matcher = WildcardMatcher(name) if is_wildcard_name(name) else None
        types.append(FieldType(handle, name, role, definition, matcher))
        if matcher is not None:
            patterns.append(handle)
        else:
            exact[name] = handle
        return handle

    seen: set[str] = set()
    for definition in definitions:
        if definition.name in seen:
            raise SchemaError(f"Duplicate field declaration: {definition.name}", field=definition.name)
        seen.add(definition.name)
        register(definition.name, FieldRole.DECLARED, definition)

    pk_name = primary_key.strip() if primary_key and primary_key.strip() else ID_FIELD
    pk_handle = len(types)
    types.append(FieldType(pk_handle, pk_name, FieldRole.PRIMARY_KEY))
    record_handle = None
    if record_field:
        record_handle = len(types)
        types.append(FieldType(record_handle, record_field, FieldRole.RECORD))

    by_name = {t.name: t.handle for t in types if t.role is FieldRole.DECLARED}
    reserved = {pk_name: pk_handle}
    if record_handle is not None:
        reserved[record_field] = record_handle

    def source_edge(source: str) -> tuple[int, str | None]:
        """Handle a copy source already resolves to, and the concrete name to copy from under a pattern."""
        if source in by_name:
            return by_name[source], None
        if source in reserved:
            return reserved[source], None
        if not is_wildcard_name(source):
            for handle in patterns:
                matcher = types[handle].matcher
                if matcher is not None and matcher.match(source):
                    return handle, source
        handle = register(source, FieldRole.COPY_SINK, None)
        by_name[source] = handle
        return handle, None

    edges: dict[int, list[CopyTarget]] = {}
    for definition in definitions:
        for source in definition.copy_from:
            source_handle, source_name = source_edge(source)
            target = CopyTarget(by_name[definition.name], definition.name, source_name)
            edges.setdefault(source_handle, []).append(target)

    copy_edges = {handle: tuple(targets) for handle, targets in edges.items()}
    _check_copy_cycles(copy_edges, types)

    smart_handles: dict[ValueKind, int] = {}
    for kind, definition in _SMART_DEFINITIONS.items():
        smart_handles[kind] = len(types)
        types.append(FieldType(len(types), definition.name, FieldRole.SMART, definition))

    logger.debug("Built field registry with %d declared fields and %d copy sources", len(definitions), len(copy_edges))
    return FieldRegistry(
        types=tuple(types),
        exact=exact,
        patterns=tuple(patterns),
        copy_edges=copy_edges,
        primary_key=pk_name,
        record_field=record_field,
        facet_index_field=facet_index_field,
        primary_key_handle=pk_handle,
        record_handle=record_handle,
        smart_handles=smart_handles,
        facet_memo=facet_memo if facet_memo is not None else FacetConfigMemo(),
        smart_fallback_on_incompatible=smart_fallback_on_incompatible,
    )


def build_registry_from_descriptor(descriptor: SchemaDescriptor, **options: Any) -> FieldRegistry:
    return build_registry(
        descriptor.primary_key,
        descriptor.fields,
        descriptor.facet_index_field,
        descriptor.record_field,
        **options,
    )


def _check_copy_cycles(copy_edges: Mapping[int, tuple[CopyTarget, ...]], types: list[FieldType]) -> None:
    visiting: list[int] = []
    done: set[int] = set()

    def visit(handle: int) -> None:
        if handle in done:
            return
        if handle in visiting:
            cycle = visiting[visiting.index(handle) :] + [handle]
            names = " -> ".join(types[h].name for h in cycle)
            raise SchemaError(f"Cyclic copy-from declaration: {names}", field=types[handle].name)
        visiting.append(handle)
        for target in copy_edges.get(handle, ()):
            visit(target.handle)
        visiting.pop()
        done.add(handle)

    for handle in copy_edges:
        visit(handle)
