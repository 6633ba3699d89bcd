"""Unit tests for result assembly."""

import math

from pydantic import BaseModel
import pytest

from docs_search_mapping.analysis.context import AnalyzerContext
from docs_search_mapping.engine import ScoredDoc, SortField, Term, TopHits
from docs_search_mapping.errors import QueryResolutionError
from docs_search_mapping.mapping.definition import FieldDefinition, ValueKind
from docs_search_mapping.mapping.registry import build_registry
from docs_search_mapping.query.definition import FacetRequest, QueryDefinition
from docs_search_mapping.query.executable import MatchAllDocsQuery, TermQuery
from docs_search_mapping.results.assembler import ResultAssembler, hit_score, order_facet_counts, score_index
from docs_search_mapping.results.highlight import SnippetHighlighter
from docs_search_mapping.results.models import FacetEntry
from tests.fixtures.memory_engine import MemoryIndex, index_documents


pytestmark = pytest.mark.unit

SOLAR = TermQuery(Term("content", b"solar"))
PRICE_ASC = SortField("price", ValueKind.DOUBLE)


class RecordingHighlighter:
    def __init__(self):
        self.calls = []

    def highlight(self, field, query, docs, max_length):
        self.calls.append((field, list(docs), max_length))
        return [f"{field}:{doc}" for doc in docs]


@pytest.fixture
def assembler(registry, analyzers, article_index):
    return ResultAssembler(registry, article_index, highlighter=SnippetHighlighter(article_index, analyzers))


def _definition(**data):
    return QueryDefinition.from_dict(data)


class TestScoreRecovery:
    """Scores under field sorts are recovered only from a score sort key."""

    def test_relevance_order_keeps_scores(self, assembler, article_index):
        top_hits = article_index.search(SOLAR, sort=None, num_hits=10)

        result = assembler.assemble(_definition(returned_fields=["title"]), SOLAR, top_hits, rows=10)

        assert [doc.score for doc in result.documents] == [3.0, 1.0, 1.0]
        assert result.documents[0].fields == {"title": "Solar gardening lights"}

    def test_field_sort_without_score_key(self, assembler, article_index):
        sort = (PRICE_ASC,)
        top_hits = article_index.search(SOLAR, sort=sort, num_hits=10)

        result = assembler.assemble(_definition(returned_fields=["price"]), SOLAR, top_hits, rows=10, sort=sort)

        assert [doc.fields["price"] for doc in result.documents] == [8.0, 12.5, 30.0]
        assert all(doc.score is None for doc in result.documents)
        assert result.to_dict()["documents"][0]["score"] is None

    def test_field_sort_with_score_key(self, assembler, article_index):
        sort = (PRICE_ASC, SortField.score())
        top_hits = article_index.search(SOLAR, sort=sort, num_hits=10)

        result = assembler.assemble(_definition(), SOLAR, top_hits, rows=10, sort=sort)

        assert [doc.score for doc in result.documents] == [3.0, 1.0, 1.0]

    def test_helpers(self):
        sort = (PRICE_ASC, SortField.score())

        assert score_index(sort) == 1
        assert score_index((PRICE_ASC,)) is None
        assert score_index(None) is None
        assert hit_score(ScoredDoc(0, 2.5), None) == 2.5
        assert hit_score(ScoredDoc(0, math.nan, (1.0, 4.0)), sort) == 4.0
        assert hit_score(ScoredDoc(0, math.nan, None), sort) is None


class TestWindow:
    """Test the requested result window."""

    def test_start_and_rows(self, assembler, article_index):
        top_hits = article_index.search(MatchAllDocsQuery(), sort=(PRICE_ASC,), num_hits=3)

        result = assembler.assemble(
            _definition(start=1, rows=2, returned_fields=["id"]), MatchAllDocsQuery(), top_hits, rows=2
        )

        assert result.total_hits == 4
        assert [(doc.rank, doc.fields["id"]) for doc in result.documents] == [(1, "a-4"), (2, "a-1")]

    def test_window_past_the_hits(self, assembler, article_index):
        top_hits = article_index.search(SOLAR, sort=None, num_hits=10)

        result = assembler.assemble(_definition(start=5), SOLAR, top_hits, rows=10)

        assert result.documents == ()
        assert result.total_hits == 3

    def test_multivalued_and_missing_fields(self, assembler, article_index):
        top_hits = article_index.search(MatchAllDocsQuery(), sort=None, num_hits=10)

        result = assembler.assemble(
            _definition(returned_fields=["tags.topic", "location", "all_text"]), MatchAllDocsQuery(), top_hits, rows=10
        )

        assert result.documents[0].fields == {"tags.topic": ["solar", "roof"], "location": (52.5, 13.4)}
        assert result.documents[3].fields == {}

    def test_doc_values_only_fields_are_decoded(self):
        definitions = [
            FieldDefinition(name="rank", value_type="long", doc_values=True),
            FieldDefinition(name="code", value_type="string", doc_values=True),
        ]
        registry = build_registry("id", definitions)
        index = index_documents(MemoryIndex(registry, AnalyzerContext(definitions)), [{"rank": 7, "code": "X1"}])
        top_hits = index.search(MatchAllDocsQuery(), sort=None, num_hits=1)

        result = ResultAssembler(registry, index).assemble(
            _definition(returned_fields=["rank", "code"]), MatchAllDocsQuery(), top_hits, rows=1
        )

        assert result.documents[0].fields == {"rank": 7, "code": "X1"}


class TestHighlighting:
    """Test snippet production during assembly."""

    def test_only_the_window_is_highlighted(self, registry, article_index):
        highlighter = RecordingHighlighter()
        assembler = ResultAssembler(registry, article_index, highlighter=highlighter, default_snippet_length=80)
        top_hits = article_index.search(SOLAR, sort=None, num_hits=3)

        result = assembler.assemble(
            _definition(start=1, rows=1, highlighting={"content": 0}), SOLAR, top_hits, rows=1
        )

        assert highlighter.calls == [("content", [0], 80)]
        assert result.documents[0].highlights == {"content": "content:0"}

    def test_stored_text_is_highlighted(self, assembler, article_index):
        top_hits = article_index.search(SOLAR, sort=None, num_hits=1)

        result = assembler.assemble(_definition(highlighting={"content": 200}), SOLAR, top_hits, rows=1)

        assert result.documents[0].highlights == {
            "content": "<em>Solar</em> lights for the garden. <em>Solar</em> <em>solar</em>."
        }

    def test_highlighting_needs_a_highlighter(self, registry, article_index):
        top_hits = article_index.search(SOLAR, sort=None, num_hits=1)

        with pytest.raises(QueryResolutionError, match="no highlighter"):
            ResultAssembler(registry, article_index).assemble(
                _definition(highlighting={"content": 100}), SOLAR, top_hits, rows=1
            )


class TestFacets:
    def test_facet_counts_are_ordered(self, assembler, article_index):
        query = MatchAllDocsQuery()
        top_hits = article_index.search(query, sort=None, num_hits=0)

        def counter(config, request):
            return article_index.facet_counts(query, config, request)

        result = assembler.assemble(
            _definition(rows=0, facets={"category": {"top": 5}}), query, top_hits, rows=0, facet_counter=counter
        )

        assert result.facets == {"category": (FacetEntry(label="energy", count=2), FacetEntry(label="garden", count=2))}

    def test_order_facet_counts(self):
        ordered = order_facet_counts([("b", 1), ("c", 5), ("a", 1), ("d", 2)], top=3)

        assert [entry.label for entry in ordered] == ["c", "d", "a"]

    def test_non_facet_dimension(self, assembler):
        with pytest.raises(QueryResolutionError, match="not a facet: title"):
            assembler.assemble(
                _definition(facets={"title": FacetRequest()}),
                MatchAllDocsQuery(),
                TopHits(0, ()),
                rows=0,
                facet_counter=lambda config, request: [],
            )

    def test_facets_need_a_counter(self, assembler):
        with pytest.raises(QueryResolutionError, match="no facet counter"):
            assembler.assemble(_definition(facets={"category": {}}), MatchAllDocsQuery(), TopHits(0, ()), rows=0)


class TestOutputs:
    def test_timings_and_debug_query(self, assembler, article_index):
        top_hits = article_index.search(SOLAR, sort=None, num_hits=1)

        result = assembler.assemble(_definition(query_debug=True), SOLAR, top_hits, rows=1)

        assert list(result.timings) == ["documents", "highlighting", "facets", "total"]
        assert result.debug_query == "content:solar"
        assert result.to_dict()["debug_query"] == "content:solar"

    def test_no_debug_query_by_default(self, assembler):
        result = assembler.assemble(_definition(), MatchAllDocsQuery(), TopHits(0, ()), rows=10)

        assert result.debug_query is None
        assert "debug_query" not in result.to_dict()

    def test_typed_records(self, assembler, article_index):
        class Article(BaseModel):
            id: str
            price: float | None = None
            tags: list[str] = []

        top_hits = article_index.search(MatchAllDocsQuery(), sort=None, num_hits=1)

        result = assembler.assemble(
            _definition(returned_fields=["id", "price"]), MatchAllDocsQuery(), top_hits, rows=1, record_type=Article
        )

        assert result.records == [Article(id="a-1", price=12.5)]
        assert "record" not in result.documents[0].to_dict()
