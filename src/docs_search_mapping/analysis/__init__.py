"""Text analysis: analyzer pipelines and per-field analyzer resolution."""

from docs_search_mapping.analysis.analyzers import BUILTIN_ANALYZERS, Analyzer, StandardAnalyzer, Token
from docs_search_mapping.analysis.context import AnalyzerContext, AnalyzerMemo, FieldContent


__all__ = [
    "BUILTIN_ANALYZERS",
    "Analyzer",
    "AnalyzerContext",
    "AnalyzerMemo",
    "FieldContent",
    "StandardAnalyzer",
    "Token",
]
