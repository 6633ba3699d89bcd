"""Text analysis pipelines.

An analyzer turns a text value into a list of tokens. Analyzers are built from
a tokenizer followed by token filters. Positions are assigned by the tokenizer
and kept by the filters, so removing a token (stopwords) leaves a position gap
that phrase queries with slop can account for.

Analyzers are plain callables; anything with ``__call__(text) -> list[Token]``
can be registered in an analyzer factory source.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, replace
import re
from typing import Protocol
import unicodedata


@dataclass(frozen=True)
class Token:
    """Token emitted by an analyzer."""

    text: str
    position: int
    start_offset: int
    end_offset: int


class Analyzer(Protocol):
    def __call__(self, text: str) -> list[Token]:  # pragma: no cover - interface definition
        ...


class Tokenizer(Protocol):
    def __call__(self, text: str) -> Iterator[Token]:  # pragma: no cover - interface definition
        ...


class TokenFilter(Protocol):
    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:  # pragma: no cover - interface definition
        ...


AnalyzerFactory = Callable[[], Analyzer]


class RegexTokenizer:
    """Yields one token per regex match."""

    def __init__(self, pattern: str = r"\w+(?:['.]\w+)*") -> None:
        self._pattern = re.compile(pattern, re.UNICODE)

    def __call__(self, text: str) -> Iterator[Token]:
        for position, match in enumerate(self._pattern.finditer(text)):
            yield Token(match.group(0), position, match.start(), match.end())


class WhitespaceTokenizer(RegexTokenizer):
    def __init__(self) -> None:
        super().__init__(r"\S+")


class LowercaseFilter:
    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            lowered = token.text.lower()
            yield token if lowered == token.text else replace(token, text=lowered)


class AsciiFoldingFilter:
    """Strips diacritics (``café`` -> ``cafe``)."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            decomposed = unicodedata.normalize("NFKD", token.text)
            folded = "".join(char for char in decomposed if not unicodedata.combining(char))
            yield token if folded == token.text else replace(token, text=folded)


ENGLISH_STOPWORDS = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "but", "by", "for", "if", "in", "into", "is", "it",
        "no", "not", "of", "on", "or", "such", "that", "the", "their", "then", "there", "these",
        "they", "this", "to", "was", "will", "with",
    }
)  # fmt: skip


class StopFilter:
    """Drops stopwords; positions of the remaining tokens are unchanged."""

    def __init__(self, stopwords: Iterable[str] | None = None) -> None:
        self.stopwords = frozenset(word.lower() for word in (stopwords or ENGLISH_STOPWORDS))

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        return (token for token in tokens if token.text.lower() not in self.stopwords)


# Longest suffixes first; a rule only applies when at least three characters remain.
_STEM_RULES: tuple[tuple[str, str], ...] = (
    ("ational", "ate"),
    ("ization", "ize"),
    ("fulness", "ful"),
    ("iveness", "ive"),
    ("ousness", "ous"),
    ("ations", "ate"),
    ("ation", "ate"),
    ("ments", ""),
    ("ment", ""),
    ("ness", ""),
    ("ies", "y"),
    ("ing", ""),
    ("ed", ""),
    ("es", ""),
    ("s", ""),
)


class EnglishStemFilter:
    """Light suffix-stripping stemmer for English."""

    def __init__(self, min_stem_length: int = 3) -> None:
        self.min_stem_length = min_stem_length

    def stem(self, word: str) -> str:
        if word.endswith("ss"):
            return word
        for suffix, replacement in _STEM_RULES:
            if word.endswith(suffix):
                candidate = word[: -len(suffix)] + replacement
                if len(candidate) >= self.min_stem_length:
                    return candidate
                break
        return word

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            stemmed = self.stem(token.text)
            yield token if stemmed == token.text else replace(token, text=stemmed)


class AnalyzerPipeline:
    """Tokenizer plus an ordered list of filters."""

    def __init__(self, tokenizer: Tokenizer, filters: Sequence[TokenFilter] = ()) -> None:
        self.tokenizer = tokenizer
        self.filters = tuple(filters)

    def __call__(self, text: str) -> list[Token]:
        stream: Iterable[Token] = self.tokenizer(text)
        for token_filter in self.filters:
            stream = token_filter(stream)
        return list(stream)


class StandardAnalyzer(AnalyzerPipeline):
    """Word tokens, lowercased and folded, English stopwords removed."""

    def __init__(self, stopwords: Iterable[str] | None = None) -> None:
        super().__init__(RegexTokenizer(), [LowercaseFilter(), AsciiFoldingFilter(), StopFilter(stopwords)])


class EnglishAnalyzer(AnalyzerPipeline):
    """Standard analysis followed by light stemming."""

    def __init__(self) -> None:
        super().__init__(
            RegexTokenizer(),
            [LowercaseFilter(), AsciiFoldingFilter(), StopFilter(), EnglishStemFilter()],
        )


class SimpleAnalyzer(AnalyzerPipeline):
    def __init__(self) -> None:
        super().__init__(RegexTokenizer(), [LowercaseFilter()])


class WhitespaceAnalyzer(AnalyzerPipeline):
    def __init__(self) -> None:
        super().__init__(WhitespaceTokenizer())


class KeywordAnalyzer:
    """Emits the whole input as one token."""

    def __call__(self, text: str) -> list[Token]:
        if not text:
            return []
        return [Token(text, 0, 0, len(text))]


BUILTIN_ANALYZERS: Mapping[str, AnalyzerFactory] = {
    "standard": StandardAnalyzer,
    "english": EnglishAnalyzer,
    "simple": SimpleAnalyzer,
    "whitespace": WhitespaceAnalyzer,
    "keyword": KeywordAnalyzer,
}
