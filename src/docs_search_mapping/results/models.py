"""Result value objects.

Immutable models for the produced result descriptor:
``{total_hits, documents, facets, timings, debug_query}``.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ResultDocument(BaseModel):
    """One output row per ranked hit.

    ``score`` is None when the hits were sorted on fields and the relevance
    score was not one of the sort keys; it is never silently reported as zero.
    """

    model_config = ConfigDict(frozen=True)

    rank: int
    score: float | None = None
    fields: dict[str, Any] = Field(default_factory=dict)
    highlights: dict[str, str] = Field(default_factory=dict)
    record: Any = Field(default=None, exclude=True)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"rank": self.rank, "score": self.score, "fields": self.fields}
        if self.highlights:
            data["highlights"] = self.highlights
        return data


class FacetEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    count: int | float


class ResultDefinition(BaseModel):
    """Search result: window of documents, facet table, timings and optional debug query."""

    model_config = ConfigDict(frozen=True)

    total_hits: int
    documents: tuple[ResultDocument, ...] = ()
    facets: dict[str, tuple[FacetEntry, ...]] = Field(default_factory=dict)
    timings: dict[str, float] = Field(default_factory=dict)
    debug_query: str | None = None

    @property
    def records(self) -> list[Any]:
        return [document.record for document in self.documents]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "total_hits": self.total_hits,
            "documents": [document.to_dict() for document in self.documents],
            "timings": self.timings,
        }
        if self.facets:
            data["facets"] = {
                dimension: [entry.model_dump() for entry in entries] for dimension, entries in self.facets.items()
            }
        if self.debug_query is not None:
            data["debug_query"] = self.debug_query
        return data
