"""Unit tests for analyzer pipelines."""

import pytest

from docs_search_mapping.analysis.analyzers import (
    BUILTIN_ANALYZERS,
    AsciiFoldingFilter,
    EnglishAnalyzer,
    EnglishStemFilter,
    KeywordAnalyzer,
    LowercaseFilter,
    RegexTokenizer,
    SimpleAnalyzer,
    StandardAnalyzer,
    StopFilter,
    Token,
    WhitespaceAnalyzer,
)


pytestmark = pytest.mark.unit


def _texts(tokens):
    return [token.text for token in tokens]


class TestTokenizers:
    def test_regex_tokenizer_offsets_and_positions(self):
        tokens = list(RegexTokenizer()("Hello, world"))

        assert tokens == [Token("Hello", 0, 0, 5), Token("world", 1, 7, 12)]

    def test_regex_tokenizer_keeps_inner_apostrophes_and_dots(self):
        assert _texts(RegexTokenizer()("don't use v1.2")) == ["don't", "use", "v1.2"]

    def test_whitespace_analyzer_keeps_punctuation(self):
        assert _texts(WhitespaceAnalyzer()("Hello, World!")) == ["Hello,", "World!"]


class TestFilters:
    def test_lowercase_and_folding(self):
        tokens = AsciiFoldingFilter()(LowercaseFilter()([Token("Café", 0, 0, 4)]))

        assert _texts(tokens) == ["cafe"]

    def test_stop_filter_keeps_position_gaps(self):
        tokens = list(StopFilter()(RegexTokenizer()("the quick fox")))

        assert [(t.text, t.position) for t in tokens] == [("quick", 1), ("fox", 2)]

    def test_custom_stopwords(self):
        assert _texts(StopFilter(["Fox"])(RegexTokenizer()("the fox"))) == ["the"]

    @pytest.mark.parametrize(
        ("word", "stem"),
        [
            ("running", "runn"),
            ("parties", "party"),
            ("connected", "connect"),
            ("relational", "relate"),
            ("glass", "glass"),
            ("is", "is"),
            ("uses", "uses"),
        ],
    )
    def test_stemming(self, word, stem):
        assert EnglishStemFilter().stem(word) == stem


class TestAnalyzers:
    def test_standard_analyzer(self):
        assert _texts(StandardAnalyzer()("The Café is OPEN")) == ["cafe", "open"]

    def test_english_analyzer_stems(self):
        assert _texts(EnglishAnalyzer()("Connected panels")) == ["connect", "panel"]

    def test_simple_analyzer_keeps_stopwords(self):
        assert _texts(SimpleAnalyzer()("The End")) == ["the", "end"]

    def test_keyword_analyzer(self):
        assert KeywordAnalyzer()("New York") == [Token("New York", 0, 0, 8)]
        assert KeywordAnalyzer()("") == []

    def test_builtin_names(self):
        assert set(BUILTIN_ANALYZERS) == {"standard", "english", "simple", "whitespace", "keyword"}
        assert isinstance(BUILTIN_ANALYZERS["english"](), EnglishAnalyzer)
