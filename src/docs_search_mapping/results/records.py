"""Typed record materialization.

Maps the decoded field values of one hit onto a caller-supplied record class:
a pydantic model or a dataclass. A field annotated with a collection type
receives every value; any other annotation receives the first value.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping, Sequence
from collections.abc import Set as AbstractSet
import dataclasses
import types
import typing
from typing import Any, Union, get_args, get_origin

from pydantic import BaseModel

from docs_search_mapping.errors import QueryResolutionError


_CONTAINERS: dict[Any, type] = {
    list: list,
    tuple: tuple,
    set: set,
    frozenset: frozenset,
    Sequence: list,
    Collection: list,
    AbstractSet: frozenset,
}


def _container_for(annotation: Any) -> type | None:
    """Container type to build for a collection annotation, None for a single-value one."""
    if annotation in _CONTAINERS:
        return _CONTAINERS[annotation]
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        for arg in get_args(annotation):
            if arg is not type(None):
                container = _container_for(arg)
                if container is not None:
                    return container
        return None
    if origin in _CONTAINERS:
        return _CONTAINERS[origin]
    return None


def _record_annotations(record_type: type) -> dict[str, Any]:
    if isinstance(record_type, type) and issubclass(record_type, BaseModel):
        return {name: info.annotation for name, info in record_type.model_fields.items()}
    if dataclasses.is_dataclass(record_type):
        hints = typing.get_type_hints(record_type)
        return {f.name: hints.get(f.name, Any) for f in dataclasses.fields(record_type)}
    raise QueryResolutionError(f"Record class must be a pydantic model or a dataclass: {record_type!r}")


class RecordMapper:
    """Builds records of ``record_type`` from per-field value lists."""

    def __init__(self, record_type: type, returned_fields: Sequence[str] = ()) -> None:
        annotations = _record_annotations(record_type)
        names = tuple(returned_fields) or tuple(annotations)
        for name in names:
            if name not in annotations:
                raise QueryResolutionError(
                    f"Unknown field for the record {record_type.__name__}: {name}", field=name
                )
        self.record_type = record_type
        self.fields = names
        self._containers = {name: _container_for(annotations[name]) for name in names}

    def map(self, values: Mapping[str, Sequence[Any]]) -> Any:
        kwargs: dict[str, Any] = {}
        for name in self.fields:
            found = values.get(name)
            if not found:
                continue
            container = self._containers[name]
            kwargs[name] = container(found) if container is not None else found[0]
        return self.record_type(**kwargs)
