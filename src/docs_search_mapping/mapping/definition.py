"""
Schema descriptors for the field registry.

A schema is a named list of field declarations plus a handful of reserved
field names. Declarations are immutable once loaded. Supported value kinds:
- text: analyzed full-text values
- string: exact-match keyword values (required by every facet template)
- integer / long / float / double: numeric values with point and doc-value storage
- geo_point: latitude/longitude pairs

A declaration whose name contains ``*`` or ``?`` is a wildcard field: it is
bound to every concrete field name matching the pattern.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from docs_search_mapping.errors import SchemaError


ID_FIELD = "$id$"
DEFAULT_SORTEDSET_FACET_FIELD = "$facets$sdv"
TAXONOMY_FACET_FIELD = "$facets$taxonomy"
TAXONOMY_INT_ASSOC_FACET_FIELD = "$facets$taxonomy$int"
TAXONOMY_FLOAT_ASSOC_FACET_FIELD = "$facets$taxonomy$float"


class ValueKind(str, Enum):
    """Logical value kinds a field can hold."""

    TEXT = "text"
    STRING = "string"
    INTEGER = "integer"
    LONG = "long"
    FLOAT = "float"
    DOUBLE = "double"
    GEO_POINT = "geo_point"

    @property
    def is_numeric(self) -> bool:
        return self in _NUMERIC_KINDS


_NUMERIC_KINDS = frozenset({ValueKind.INTEGER, ValueKind.LONG, ValueKind.FLOAT, ValueKind.DOUBLE})


class FacetTemplate(str, Enum):
    """Facet storage templates."""

    SORTED_SET = "sorted_set"
    TAXONOMY = "taxonomy"
    INT_ASSOCIATION = "int_association"
    FLOAT_ASSOCIATION = "float_association"

    @property
    def is_association(self) -> bool:
        return self in (FacetTemplate.INT_ASSOCIATION, FacetTemplate.FLOAT_ASSOCIATION)


def is_wildcard_name(name: str) -> bool:
    return "*" in name or "?" in name


class FieldDefinition(BaseModel):
    """
    Declared schema entry for one field or one wildcard pattern.

    Args:
        name: Field name, or a pattern using ``*`` and ``?``
        value_type: Logical value kind
        stored: Keep the raw value for retrieval
        indexed: Make the value searchable
        doc_values: Keep a columnar per-document value for sorting and faceting
        multivalued: Accept more than one value per document
        facet_template: Facet storage template (string fields only)
        copy_from: Fields whose values are also dispatched into this field
        analyzer: Index-time analyzer name (text fields)
        query_analyzer: Query-time analyzer name, defaults to ``analyzer``
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1)
    value_type: ValueKind
    stored: bool = False
    indexed: bool = True
    doc_values: bool = False
    multivalued: bool = False
    facet_template: FacetTemplate | None = None
    copy_from: tuple[str, ...] = ()
    analyzer: str | None = None
    query_analyzer: str | None = None

    @model_validator(mode="after")
    def _check_consistency(self) -> FieldDefinition:
        if self.facet_template is not None and self.value_type is not ValueKind.STRING:
            raise ValueError(f"Facet template '{self.facet_template.value}' requires a string field: {self.name}")
        if (self.analyzer or self.query_analyzer) and self.value_type is not ValueKind.TEXT:
            raise ValueError(f"Analyzers can only be declared on text fields: {self.name}")
        if self.name in self.copy_from:
            raise ValueError(f"Field cannot copy from itself: {self.name}")
        return self

    @property
    def is_wildcard(self) -> bool:
        return is_wildcard_name(self.name)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the declaration, omitting unset optional attributes."""
        return self.model_dump(mode="json", exclude_defaults=True)


class SchemaDescriptor(BaseModel):
    """
    Consumed schema descriptor: field declarations plus reserved field names.

    Example:
        descriptor = SchemaDescriptor.from_dict(
            {
                "primary_key": "id",
                "fields": [
                    {"name": "title", "value_type": "text", "stored": True},
                    {"name": "tags.*", "value_type": "string", "multivalued": True},
                ],
            }
        )
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = "default"
    primary_key: str | None = None
    record_field: str | None = None
    facet_index_field: str | None = None
    fields: tuple[FieldDefinition, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SchemaDescriptor:
        """Validate a JSON-shaped descriptor, reporting problems as ``SchemaError``."""
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise SchemaError(f"Invalid schema descriptor: {exc}") from exc
