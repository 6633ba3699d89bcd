"""Closed value model for dispatch.

Input documents carry arbitrary Python values. They are normalized once, at the
ingress boundary, into three shapes: a scalar, a sequence of values, or a
mapping of string keys to values. Dispatch only ever matches over this closed
set; anything that cannot be normalized is rejected here.
"""

from __future__ import annotations

from array import array
from collections.abc import Iterator, Mapping, Set
from dataclasses import dataclass
import numbers
from typing import Any, Union

from docs_search_mapping.errors import UnsupportedValueTypeError


@dataclass(frozen=True)
class ScalarValue:
    """A single leaf value: str, bytes, bool, int or float."""

    value: str | bytes | bool | int | float


@dataclass(frozen=True)
class SequenceValue:
    """An array or collection; ``None`` elements are dropped at ingress."""

    items: tuple[Value, ...]
    ordered: bool = True

    def __iter__(self) -> Iterator[Value]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class MappingValue:
    """A nested mapping, in the key order it was given."""

    entries: tuple[tuple[str, Value], ...]

    def keys(self) -> tuple[str, ...]:
        return tuple(key for key, _ in self.entries)

    def as_dict(self) -> dict[str, Value]:
        return dict(self.entries)


Value = Union[ScalarValue, SequenceValue, MappingValue]


def to_value(raw: Any, *, field: str | None = None) -> Value | None:
    """Normalize a raw input value; returns None for absent values."""

    if raw is None:
        return None
    if isinstance(raw, (ScalarValue, SequenceValue, MappingValue)):
        return raw
    if isinstance(raw, (str, bytes, bool, int, float)):
        return ScalarValue(raw)
    if isinstance(raw, (bytearray, memoryview)):
        return ScalarValue(bytes(raw))
    if isinstance(raw, numbers.Integral):
        return ScalarValue(int(raw))
    if isinstance(raw, numbers.Real):
        return ScalarValue(float(raw))
    if isinstance(raw, Mapping):
        entries: list[tuple[str, Value]] = []
        for key, item in raw.items():
            if not isinstance(key, str):
                raise UnsupportedValueTypeError(
                    f"Mapping keys must be strings, got {type(key).__name__} for the field: {field}",
                    field=field,
                )
            normalized = to_value(item, field=key)
            if normalized is not None:
                entries.append((key, normalized))
        return MappingValue(tuple(entries))
    if isinstance(raw, (list, tuple, array, range)):
        return SequenceValue(_normalize_items(raw, field), ordered=True)
    if isinstance(raw, Set):
        return SequenceValue(_normalize_items(raw, field), ordered=False)
    raise UnsupportedValueTypeError(f"Not supported type for the field: {field}: {type(raw).__name__}", field=field)


def _normalize_items(items: Any, field: str | None) -> tuple[Value, ...]:
    normalized = (to_value(item, field=field) for item in items)
    return tuple(item for item in normalized if item is not None)


def describe(value: Value) -> str:
    """Short shape description used in error messages."""
    if isinstance(value, ScalarValue):
        return type(value.value).__name__
    if isinstance(value, SequenceValue):
        return "sequence" if value.ordered else "collection"
    return "mapping"


def first_scalar(value: Value) -> ScalarValue | None:
    """Return the first leaf scalar in iteration order, if any."""
    if isinstance(value, ScalarValue):
        return value
    if isinstance(value, SequenceValue):
        for item in value.items:
            found = first_scalar(item)
            if found is not None:
                return found
    return None
