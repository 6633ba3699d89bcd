"""Service layer - indexing and search orchestration over the index-engine boundary."""

from .search_service import SearchService


__all__ = ["SearchService"]
