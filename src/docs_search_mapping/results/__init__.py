"""Result assembly: ranked hits to typed result documents, highlights and facets."""

from docs_search_mapping.results.assembler import ResultAssembler
from docs_search_mapping.results.highlight import SnippetHighlighter
from docs_search_mapping.results.models import FacetEntry, ResultDefinition, ResultDocument
from docs_search_mapping.results.records import RecordMapper
from docs_search_mapping.results.timing import TimeTracker


__all__ = [
    "FacetEntry",
    "RecordMapper",
    "ResultAssembler",
    "ResultDefinition",
    "ResultDocument",
    "SnippetHighlighter",
    "TimeTracker",
]
