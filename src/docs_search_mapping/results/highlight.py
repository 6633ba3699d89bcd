"""Snippet highlighting over stored text fields.

Matches are found by running the stored text through the field's index-time
analyzer and keeping the tokens whose term appears in the query for that
field. The snippet is then cut around the first match, preferring to start at
a sentence boundary, and every match inside it is wrapped in the highlight tags.
"""

from __future__ import annotations

from collections.abc import Sequence
import re
from typing import Any

from docs_search_mapping.analysis.context import AnalyzerContext
from docs_search_mapping.engine import DocumentReader
from docs_search_mapping.query.executable import BooleanQuery, EngineQuery, Occur, PhraseQuery, TermQuery


SENTENCE_END_PATTERN = re.compile(r"[.!?]\s+")
WHITESPACE_PATTERN = re.compile(r"\s+")


def snippet_start(text: str, position: int, max_lookback: int) -> int:
    """Start of the sentence holding ``position``, else a word boundary, within ``max_lookback``."""
    if position <= 0:
        return 0
    window_start = max(0, position - max_lookback)
    window = text[window_start:position]
    sentence_ends = list(SENTENCE_END_PATTERN.finditer(window))
    if sentence_ends:
        return window_start + sentence_ends[-1].end()
    if window_start == 0:
        return 0
    space = WHITESPACE_PATTERN.search(window)
    return window_start + space.end() if space else window_start


def snippet_end(text: str, position: int, limit: int) -> int:
    """Last word boundary at or before ``limit``, not before ``position``."""
    if limit >= len(text):
        return len(text)
    cut = text.rfind(" ", position, limit + 1)
    return cut if cut > position else limit


def build_snippet(
    text: str,
    spans: Sequence[tuple[int, int]],
    max_length: int,
    *,
    pre_tag: str = "<em>",
    post_tag: str = "</em>",
) -> str:
    """Cut ``text`` around the first span and wrap every span that fits in the tags."""
    if not text:
        return ""
    if not spans:
        return text[: snippet_end(text, 0, max_length)].strip()
    first_start, first_end = spans[0]
    context = max(0, (max_length - (first_end - first_start)) // 2)
    start = snippet_start(text, first_start, context)
    end = snippet_end(text, first_end, start + max_length)

    pieces: list[str] = []
    cursor = start
    for span_start, span_end in spans:
        if span_start < cursor or span_end > end:
            continue
        pieces.extend((text[cursor:span_start], pre_tag, text[span_start:span_end], post_tag))
        cursor = span_end
    pieces.append(text[cursor:end])
    return "".join(pieces).strip()


def query_terms(query: EngineQuery, field: str) -> set[str]:
    """Terms the query looks for in ``field``; prohibited clauses are ignored."""
    if isinstance(query, TermQuery):
        return {query.term.text()} if query.term.field == field else set()
    if isinstance(query, PhraseQuery):
        return set(query.terms) if query.field == field else set()
    if isinstance(query, BooleanQuery):
        terms: set[str] = set()
        for clause in query.clauses:
            if clause.occur is not Occur.MUST_NOT:
                terms |= query_terms(clause.query, field)
        return terms
    return set()


class SnippetHighlighter:
    """Highlighter over the stored values of text fields."""

    def __init__(
        self,
        reader: DocumentReader,
        analyzers: AnalyzerContext,
        *,
        pre_tag: str = "<em>",
        post_tag: str = "</em>",
    ) -> None:
        self.reader = reader
        self.analyzers = analyzers
        self.pre_tag = pre_tag
        self.post_tag = post_tag

    def highlight(self, field: str, query: EngineQuery, docs: Sequence[Any], max_length: int) -> list[str | None]:
        terms = query_terms(query, field)
        analyzer = self.analyzers.index_analyzer(field)
        snippets: list[str | None] = []
        for doc in docs:
            values = [value for value in self.reader.stored_values(doc, field) if isinstance(value, str)]
            if not values or not terms:
                snippets.append(None)
                continue
            text = " ".join(values)
            spans = [(token.start_offset, token.end_offset) for token in analyzer(text) if token.text in terms]
            if not spans:
                snippets.append(None)
                continue
            snippets.append(build_snippet(text, spans, max_length, pre_tag=self.pre_tag, post_tag=self.post_tag))
        return snippets
