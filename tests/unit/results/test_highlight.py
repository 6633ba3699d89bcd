"""Unit tests for snippet highlighting."""

import pytest

from docs_search_mapping.engine import Term
from docs_search_mapping.query.executable import (
    BooleanClause,
    BooleanQuery,
    MatchAllDocsQuery,
    Occur,
    PhraseQuery,
    TermQuery,
)
from docs_search_mapping.results.highlight import (
    SnippetHighlighter,
    build_snippet,
    query_terms,
    snippet_end,
    snippet_start,
)


pytestmark = pytest.mark.unit

SENTENCES = "First sentence here. Second one has the match word."


class TestSnippetBoundaries:
    def test_start_of_text(self):
        assert snippet_start(SENTENCES, 0, 10) == 0

    def test_prefers_sentence_start(self):
        assert snippet_start(SENTENCES, 40, 37) == 21

    def test_falls_back_to_word_boundary(self):
        assert snippet_start(SENTENCES, 40, 17) == 28

    def test_end_at_word_boundary(self):
        assert snippet_end("abc def ghi", 0, 5) == 3

    def test_end_without_space(self):
        assert snippet_end("abcdefgh", 0, 4) == 4

    def test_end_past_text(self):
        assert snippet_end("abc", 0, 10) == 3


class TestBuildSnippet:
    """Test snippet cutting and tagging."""

    def test_wraps_match(self):
        assert build_snippet("The quick brown fox", [(10, 15)], 100) == "The quick <em>brown</em> fox"

    def test_starts_at_sentence(self):
        snippet = build_snippet(SENTENCES, [(40, 45)], 80)

        assert snippet == "Second one has the <em>match</em> word."

    def test_short_window_cuts_at_words(self):
        snippet = build_snippet(SENTENCES, [(40, 45)], 40)

        assert snippet == "one has the <em>match</em> word."

    def test_custom_tags(self):
        assert build_snippet("a b", [(2, 3)], 10, pre_tag="[", post_tag="]") == "a [b]"

    def test_no_spans(self):
        assert build_snippet("abc def", [], 4) == "abc"

    def test_empty_text(self):
        assert build_snippet("", [(0, 1)], 10) == ""


class TestQueryTerms:
    def test_term_and_phrase(self):
        assert query_terms(TermQuery(Term("body", b"x")), "body") == {"x"}
        assert query_terms(TermQuery(Term("body", b"x")), "title") == set()
        assert query_terms(PhraseQuery("body", ("a", "b"), (0, 1)), "body") == {"a", "b"}

    def test_prohibited_clauses_are_ignored(self):
        query = BooleanQuery(
            (
                BooleanClause(Occur.MUST, TermQuery(Term("body", b"keep"))),
                BooleanClause(Occur.MUST_NOT, TermQuery(Term("body", b"drop"))),
                BooleanClause(
                    Occur.SHOULD,
                    BooleanQuery((BooleanClause(Occur.FILTER, TermQuery(Term("body", b"deep"))),)),
                ),
            )
        )

        assert query_terms(query, "body") == {"keep", "deep"}

    def test_other_queries_have_no_terms(self):
        assert query_terms(MatchAllDocsQuery(), "body") == set()


class TestSnippetHighlighter:
    """Test highlighting over stored values."""

    def test_uses_index_analyzer(self, article_index, analyzers):
        highlighter = SnippetHighlighter(article_index, analyzers)

        snippets = highlighter.highlight("title", TermQuery(Term("title", b"panel")), [0, 1], 100)

        assert snippets == ["Solar <em>panels</em> on roofs", None]

    def test_field_without_stored_text(self, article_index, analyzers):
        highlighter = SnippetHighlighter(article_index, analyzers)

        assert highlighter.highlight("all_text", TermQuery(Term("all_text", b"solar")), [0], 100) == [None]

    def test_query_without_terms(self, article_index, analyzers):
        highlighter = SnippetHighlighter(article_index, analyzers)

        assert highlighter.highlight("content", MatchAllDocsQuery(), [0], 100) == [None]
