"""Shared test fixtures and configuration."""

import os
from pathlib import Path
import sys

import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


# Test environment overriding every settings value that has a default
TEST_ENV = {
    "SEARCH_MAPPING_INDEXING_ERROR_POLICY": "fail",
    "SEARCH_MAPPING_ANALYZER_ERROR_POLICY": "fail_fast",
    "SEARCH_MAPPING_SMART_FALLBACK_ON_INCOMPATIBLE": "false",
    "SEARCH_MAPPING_DEFAULT_ROWS": "10",
    "SEARCH_MAPPING_MAX_ROWS": "10000",
    "SEARCH_MAPPING_DEFAULT_SNIPPET_LENGTH": "300",
    "SEARCH_MAPPING_LOG_LEVEL": "info",
    "SEARCH_MAPPING_LOG_JSON": "false",
    "SEARCH_MAPPING_SERVICE_NAME": "docs-search-mapping-tests",
}

for key, value in TEST_ENV.items():
    os.environ[key] = value

from docs_search_mapping.analysis.context import AnalyzerContext
from docs_search_mapping.config import Settings, get_settings
from docs_search_mapping.mapping.definition import SchemaDescriptor
from docs_search_mapping.mapping.registry import FieldRegistry, build_registry_from_descriptor
from docs_search_mapping.query.context import QueryContext
from tests.fixtures.articles import ARTICLE_SCHEMA, ARTICLES, REVIEW_SCHEMA, REVIEWS
from tests.fixtures.memory_engine import MemoryIndex, index_documents


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Reset settings env vars and the settings cache around every test."""
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)  # type: ignore[call-arg]


@pytest.fixture
def article_descriptor() -> SchemaDescriptor:
    return SchemaDescriptor.from_dict(ARTICLE_SCHEMA)


@pytest.fixture
def registry(article_descriptor: SchemaDescriptor) -> FieldRegistry:
    return build_registry_from_descriptor(article_descriptor)


@pytest.fixture
def analyzers(article_descriptor: SchemaDescriptor) -> AnalyzerContext:
    return AnalyzerContext(article_descriptor.fields)


@pytest.fixture
def memory_index(registry: FieldRegistry, analyzers: AnalyzerContext) -> MemoryIndex:
    return MemoryIndex(registry, analyzers)


@pytest.fixture
def article_index(memory_index: MemoryIndex) -> MemoryIndex:
    """Memory index holding ``ARTICLES``; document handles are list positions."""
    return index_documents(memory_index, ARTICLES)


@pytest.fixture
def query_context(registry: FieldRegistry, analyzers: AnalyzerContext) -> QueryContext:
    return QueryContext(registry, analyzers, index_name="articles")


@pytest.fixture
def review_index() -> MemoryIndex:
    descriptor = SchemaDescriptor.from_dict(REVIEW_SCHEMA)
    index = MemoryIndex(build_registry_from_descriptor(descriptor), AnalyzerContext(descriptor.fields))
    return index_documents(index, REVIEWS)
