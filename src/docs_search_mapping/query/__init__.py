"""Query nodes, request descriptors and their resolution into engine queries."""

from docs_search_mapping.query.context import QueryContext
from docs_search_mapping.query.definition import FacetRequest, QueryDefinition, SortSpec
from docs_search_mapping.query.nodes import QueryNode, QueryNodeBase, parse_query


__all__ = [
    "FacetRequest",
    "QueryContext",
    "QueryDefinition",
    "QueryNode",
    "QueryNodeBase",
    "SortSpec",
    "parse_query",
]
