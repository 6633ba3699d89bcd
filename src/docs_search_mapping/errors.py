"""Error taxonomy for schema mapping, query resolution and result assembly.

None of these errors are retried inside the library. Schema errors are fatal at
schema-load time; field-level indexing errors are policy-gated by the caller
(see ``IndexingErrorPolicy``); query resolution errors always surface to the
caller as request errors.
"""

from __future__ import annotations


class SearchMappingError(Exception):
    """Base class for every error raised by the mapping layer."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field

    def __str__(self) -> str:
        return self.message


class SchemaError(SearchMappingError):
    """Malformed or colliding field declarations, or a wildcard pattern violation."""


class FieldNotFoundError(SearchMappingError):
    """No registry step resolved the field and no value was available for inference."""


class UnsupportedValueTypeError(SearchMappingError):
    """The runtime shape of a value has no dispatch rule for the receiving field."""


class AnalyzerResolutionError(SearchMappingError):
    """A named analyzer could not be found by any resolution step."""

    def __init__(self, message: str, *, analyzer: str, field: str | None = None) -> None:
        super().__init__(message, field=field)
        self.analyzer = analyzer


class QueryResolutionError(SearchMappingError):
    """A query references an unknown field, an unusable field, or an unreachable index."""
