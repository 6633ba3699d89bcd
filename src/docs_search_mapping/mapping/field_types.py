"""
Field types: the runtime unit bound to one field declaration.

A ``FieldType`` knows how to:
- decompose a normalized value into leaf values
- convert each leaf to its typed representation and emit it once per storage
  family enabled by the declaration (stored value, indexed term or point,
  doc-value entry, facet entry)
- build terms and sort keys for queries
- decode a previously encoded primitive back into its logical value

Field types carry a stable integer ``handle`` assigned by the registry; copy
fan-out edges are kept by the registry, keyed by handle.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum
import math
import struct
from typing import Any, Protocol

from docs_search_mapping.engine import SortField, Term
from docs_search_mapping.errors import QueryResolutionError, UnsupportedValueTypeError
from docs_search_mapping.mapping import codecs
from docs_search_mapping.mapping.definition import FacetTemplate, FieldDefinition, ValueKind
from docs_search_mapping.mapping.values import MappingValue, ScalarValue, SequenceValue, Value, describe, to_value
from docs_search_mapping.mapping.wildcard import WildcardMatcher


class StorageFamily(str, Enum):
    """Underlying storage representation of one emission."""

    STORED = "stored"
    STRING = "string"
    TEXT = "text"
    POINT = "point"
    DOC_VALUES = "doc_values"
    SORTED_DOC_VALUES = "sorted_doc_values"
    SORTED_SET_DOC_VALUES = "sorted_set_doc_values"
    FACET = "facet"


class FieldRole(str, Enum):
    """Why a field type exists in the registry."""

    DECLARED = "declared"
    PRIMARY_KEY = "primary_key"
    RECORD = "record"
    COPY_SINK = "copy_sink"
    SMART = "smart"


@dataclass(frozen=True)
class FacetValue:
    """Facet entry: dimension, label path, target index field and optional association weight."""

    dimension: str
    path: tuple[str, ...]
    index_field: str
    weight: int | float | None = None


@dataclass(frozen=True)
class FieldEmission:
    """One typed value handed to the index engine."""

    field: str
    family: StorageFamily
    value: Any
    generic_field: str | None = None
    copied_from: str | None = None


class FieldConsumer(Protocol):
    """Receives field emissions."""

    def accept(self, emission: FieldEmission) -> None:  # pragma: no cover - interface definition
        ...


class EmissionBuffer:
    """Field consumer that keeps emissions in arrival order."""

    def __init__(self) -> None:
        self.emissions: list[FieldEmission] = []

    def accept(self, emission: FieldEmission) -> None:
        self.emissions.append(emission)

    def extend(self, emissions: list[FieldEmission]) -> None:
        self.emissions.extend(emissions)

    def values(self, field: str, family: StorageFamily | None = None) -> list[Any]:
        return [e.value for e in self.emissions if e.field == field and (family is None or e.family is family)]

    def fields(self) -> list[str]:
        seen: dict[str, None] = {}
        for emission in self.emissions:
            seen.setdefault(emission.field, None)
        return list(seen)

    def __iter__(self) -> Iterator[FieldEmission]:
        return iter(self.emissions)

    def __len__(self) -> int:
        return len(self.emissions)


Sink = Callable[[FieldEmission], None]

_GEO_KEYS = (("lat", "lon"), ("latitude", "longitude"))


@dataclass(frozen=True, eq=False)
class FieldType:
    """Runtime field type bound to one declaration, one pattern, or a reserved role."""

    handle: int
    name: str
    role: FieldRole
    definition: FieldDefinition | None = None
    matcher: WildcardMatcher | None = None

    @property
    def kind(self) -> ValueKind | None:
        if self.definition is not None:
            return self.definition.value_type
        if self.role is FieldRole.PRIMARY_KEY:
            return ValueKind.STRING
        return None

    @property
    def is_wildcard(self) -> bool:
        return self.matcher is not None

    @property
    def emits(self) -> bool:
        return self.role in (FieldRole.DECLARED, FieldRole.SMART, FieldRole.PRIMARY_KEY)

    @property
    def stored(self) -> bool:
        return self.role is FieldRole.PRIMARY_KEY or (self.definition is not None and self.definition.stored)

    @property
    def indexed(self) -> bool:
        return self.role is FieldRole.PRIMARY_KEY or (self.definition is not None and self.definition.indexed)

    @property
    def doc_values(self) -> bool:
        return self.definition is not None and self.definition.doc_values

    @property
    def multivalued(self) -> bool:
        return self.definition is not None and self.definition.multivalued

    @property
    def facet_template(self) -> FacetTemplate | None:
        return self.definition.facet_template if self.definition is not None else None

    def __repr__(self) -> str:
        return f"FieldType(handle={self.handle}, name={self.name!r}, role={self.role.value})"

    # Decomposition ---------------------------------------------------------

    def leaves(self, value: Value, field_name: str) -> list[Value]:
        """Flatten sequences into leaves; composite leaves (geo points, associations) stay whole."""
        collected: list[Value] = []
        self._collect(value, field_name, collected)
        return collected

    def _collect(self, value: Value, field_name: str, collected: list[Value]) -> None:
        if isinstance(value, ScalarValue) or self._is_composite_leaf(value):
            collected.append(value)
            return
        if isinstance(value, SequenceValue):
            for item in value.items:
                self._collect(item, field_name, collected)
            return
        raise UnsupportedValueTypeError(f"Map is not a supported type for the field: {field_name}", field=field_name)

    def _is_composite_leaf(self, value: Value) -> bool:
        if self.kind is ValueKind.GEO_POINT:
            if isinstance(value, MappingValue):
                return True
            return (
                isinstance(value, SequenceValue)
                and len(value) == 2
                and all(isinstance(item, ScalarValue) for item in value.items)
            )
        if self.facet_template is not None and self.facet_template.is_association:
            return isinstance(value, SequenceValue) and all(isinstance(item, ScalarValue) for item in value.items)
        return False

    # Emission --------------------------------------------------------------

    def fill(
        self,
        field_name: str,
        value: Value,
        sink: Sink,
        *,
        facet_index_field: str | None = None,
        copied_from: str | None = None,
    ) -> None:
        """Emit every leaf of ``value`` under ``field_name``. Sinks emit nothing."""
        if not self.emits:
            return
        leaves = self.leaves(value, field_name)
        if len(leaves) > 1 and not self.multivalued and self.role is FieldRole.DECLARED:
            if self.doc_values or self.facet_template is not None:
                raise UnsupportedValueTypeError(
                    f"Multiple values given for the single-valued field: {field_name}", field=field_name
                )
        for leaf in leaves:
            self.emit(field_name, leaf, sink, facet_index_field=facet_index_field, copied_from=copied_from)

    def emit(
        self,
        field_name: str,
        leaf: Value,
        sink: Sink,
        *,
        facet_index_field: str | None = None,
        copied_from: str | None = None,
    ) -> None:
        """Convert one leaf and emit it for every enabled storage family."""

        def out(family: StorageFamily, converted: Any) -> None:
            sink(FieldEmission(field_name, family, converted, generic_field=self.name, copied_from=copied_from))

        if self.role is FieldRole.PRIMARY_KEY:
            text = _to_text(leaf, field_name)
            out(StorageFamily.STRING, text)
            out(StorageFamily.STORED, text)
            return

        kind = self.kind
        if kind is ValueKind.TEXT or kind is ValueKind.STRING:
            template = self.facet_template
            if template is not None and template.is_association:
                out(StorageFamily.FACET, self._association(field_name, leaf, template, facet_index_field))
                return
            text = _to_text(leaf, field_name)
            if template is not None:
                out(StorageFamily.FACET, FacetValue(field_name, (text,), facet_index_field or ""))
            if self.indexed:
                out(StorageFamily.TEXT if kind is ValueKind.TEXT else StorageFamily.STRING, text)
            if self.stored:
                out(StorageFamily.STORED, text)
            if self.doc_values:
                family = StorageFamily.SORTED_SET_DOC_VALUES if self.multivalued else StorageFamily.SORTED_DOC_VALUES
                out(family, codecs.encode_text(text))
            return

        if kind is ValueKind.GEO_POINT:
            point = _to_geo(leaf, field_name)
            if self.indexed:
                out(StorageFamily.POINT, point)
            if self.stored:
                out(StorageFamily.STORED, point)
            if self.doc_values:
                out(StorageFamily.DOC_VALUES, codecs.encode_geo(point))
            return

        number = self.convert(field_name, leaf)
        if self.indexed:
            out(StorageFamily.POINT, number)
        if self.stored:
            out(StorageFamily.STORED, number)
        if self.doc_values:
            out(StorageFamily.DOC_VALUES, codecs.sortable_long(kind, number))

    def _association(
        self,
        field_name: str,
        leaf: Value,
        template: FacetTemplate,
        facet_index_field: str | None,
    ) -> FacetValue:
        if not isinstance(leaf, SequenceValue) or len(leaf) < 2:
            raise UnsupportedValueTypeError(f"Expected at least 2 values - Field: {field_name}", field=field_name)
        weight_leaf, *path_leaves = leaf.items
        if template is FacetTemplate.INT_ASSOCIATION:
            weight: int | float = _to_integral(weight_leaf, field_name, codecs.INT_MIN, codecs.INT_MAX)
        else:
            weight = _to_floating(weight_leaf, field_name, single=True)
        path = tuple(_to_text(item, field_name) for item in path_leaves)
        return FacetValue(field_name, path, facet_index_field or "", weight)

    def convert(self, field_name: str, leaf: Value) -> Any:
        """Convert one leaf to the typed value of this field's kind."""
        kind = self.kind
        if kind is ValueKind.INTEGER:
            return _to_integral(leaf, field_name, codecs.INT_MIN, codecs.INT_MAX)
        if kind is ValueKind.LONG:
            return _to_integral(leaf, field_name, codecs.LONG_MIN, codecs.LONG_MAX)
        if kind is ValueKind.FLOAT:
            return _to_floating(leaf, field_name, single=True)
        if kind is ValueKind.DOUBLE:
            return _to_floating(leaf, field_name, single=False)
        if kind is ValueKind.GEO_POINT:
            return _to_geo(leaf, field_name)
        if kind is None:
            raise UnsupportedValueTypeError(f"The field does not hold values: {field_name}", field=field_name)
        return _to_text(leaf, field_name)

    def accepts(self, value: Any) -> bool:
        """True when dispatching ``value`` into this type would not raise."""
        normalized = to_value(value)
        if normalized is None or not self.emits:
            return True
        try:
            self.fill(self.name, normalized, lambda _emission: None)
        except UnsupportedValueTypeError:
            if isinstance(normalized, MappingValue) and self.is_wildcard:
                return all(self.accepts(item) for _, item in normalized.entries)
            return False
        return True

    # Terms, sort keys and decoding ----------------------------------------

    def encode(self, typed_value: Any) -> bytes:
        kind = self.kind
        if kind is None:
            raise UnsupportedValueTypeError(f"The field has no term encoding: {self.name}", field=self.name)
        return codecs.encode(kind, typed_value)

    def index_term(self, field_name: str, value: Any) -> Term:
        """Term matching what this type indexes for ``value``."""
        leaf = to_value(value, field=field_name)
        if leaf is None:
            raise UnsupportedValueTypeError(f"A term needs a value for the field: {field_name}", field=field_name)
        return Term(field_name, self.encode(self.convert(field_name, leaf)))

    def primary_term(self, field_name: str, value: Any) -> Term:
        """Term identifying a document by primary key, used for updates and deletes."""
        if self.kind not in (ValueKind.STRING, ValueKind.TEXT):
            raise UnsupportedValueTypeError(f"Primary key terms must be strings: {field_name}", field=field_name)
        return Term(field_name, codecs.encode_text(_to_text(ScalarValue(value), field_name)))

    def sort_field(self, field_name: str, descending: bool = False) -> SortField:
        if not self.doc_values or self.kind is ValueKind.GEO_POINT:
            raise QueryResolutionError(f"The field is not sortable (no doc-values): {field_name}", field=field_name)
        return SortField(field_name, self.kind, descending=descending, multivalued=self.multivalued)

    def to_term(self, raw: bytes | None) -> Any:
        """Decode a previously encoded primitive; None when absent or not convertible."""
        kind = self.kind
        if raw is None or kind is None:
            return None
        return codecs.decode(kind, raw)


# Conversions -------------------------------------------------------------


def _scalar(leaf: Value, field_name: str) -> Any:
    if not isinstance(leaf, ScalarValue):
        raise UnsupportedValueTypeError(
            f"Not supported type for the field: {field_name}: {describe(leaf)}", field=field_name
        )
    return leaf.value


def _to_text(leaf: Value, field_name: str) -> str:
    raw = _scalar(leaf, field_name)
    if isinstance(raw, str):
        return raw
    if isinstance(raw, bool):
        return "true" if raw else "false"
    if isinstance(raw, (int, float)):
        return str(raw)
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        message = f"Bytes are not valid UTF-8 for the field: {field_name}"
        raise UnsupportedValueTypeError(message, field=field_name) from exc


def _to_integral(leaf: Value, field_name: str, lower: int, upper: int) -> int:
    raw = _scalar(leaf, field_name)
    number: int
    if isinstance(raw, bool) or isinstance(raw, bytes):
        raise UnsupportedValueTypeError(
            f"Not supported type for the field: {field_name}: {type(raw).__name__}", field=field_name
        )
    if isinstance(raw, int):
        number = raw
    elif isinstance(raw, float):
        if not raw.is_integer():
            message = f"Not an integral number for the field: {field_name}: {raw}"
            raise UnsupportedValueTypeError(message, field=field_name)
        number = int(raw)
    else:
        try:
            number = int(raw.strip())
        except ValueError as exc:
            message = f"Not a number for the field: {field_name}: {raw!r}"
            raise UnsupportedValueTypeError(message, field=field_name) from exc
    if not lower <= number <= upper:
        raise UnsupportedValueTypeError(f"Number out of range for the field: {field_name}: {number}", field=field_name)
    return number


def _to_floating(leaf: Value, field_name: str, *, single: bool) -> float:
    raw = _scalar(leaf, field_name)
    if isinstance(raw, bool) or isinstance(raw, bytes):
        raise UnsupportedValueTypeError(
            f"Not supported type for the field: {field_name}: {type(raw).__name__}", field=field_name
        )
    try:
        number = float(raw.strip()) if isinstance(raw, str) else float(raw)
    except (ValueError, OverflowError) as exc:
        raise UnsupportedValueTypeError(f"Not a number for the field: {field_name}: {raw!r}", field=field_name) from exc
    if single:
        if math.isfinite(number) and abs(number) > codecs.FLOAT_MAX:
            message = f"Number out of range for the field: {field_name}: {number}"
            raise UnsupportedValueTypeError(message, field=field_name)
        number = struct.unpack(">f", struct.pack(">f", number))[0]
    return number


def _to_geo(leaf: Value, field_name: str) -> tuple[float, float]:
    if isinstance(leaf, MappingValue):
        entries = leaf.as_dict()
        for lat_key, lon_key in _GEO_KEYS:
            if lat_key in entries and lon_key in entries and len(entries) == 2:
                latitude, longitude = entries[lat_key], entries[lon_key]
                break
        else:
            raise UnsupportedValueTypeError(
                f"A geo point needs exactly 'lat' and 'lon' for the field: {field_name}", field=field_name
            )
    elif isinstance(leaf, SequenceValue) and len(leaf) == 2:
        latitude, longitude = leaf.items
    else:
        raise UnsupportedValueTypeError(
            f"Not supported type for the geo field: {field_name}: {describe(leaf)}", field=field_name
        )
    lat = _to_floating(latitude, field_name, single=False)
    lon = _to_floating(longitude, field_name, single=False)
    if not -90.0 <= lat <= 90.0:
        raise UnsupportedValueTypeError(f"Latitude out of range for the field: {field_name}: {lat}", field=field_name)
    if not -180.0 <= lon <= 180.0:
        raise UnsupportedValueTypeError(f"Longitude out of range for the field: {field_name}: {lon}", field=field_name)
    return lat, lon
