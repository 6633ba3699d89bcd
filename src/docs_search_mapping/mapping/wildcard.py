"""Wildcard field-name patterns (``*`` matches any run of characters, ``?`` exactly one)."""

from __future__ import annotations

import re


class WildcardMatcher:
    """Compiled field-name pattern."""

    def __init__(self, pattern: str) -> None:
        self.pattern = pattern
        parts: list[str] = []
        for char in pattern:
            if char == "*":
                parts.append(".*")
            elif char == "?":
                parts.append(".")
            else:
                parts.append(re.escape(char))
        self._regex = re.compile("".join(parts), re.DOTALL)

    def match(self, name: str | None) -> bool:
        if name is None:
            return False
        return self._regex.fullmatch(name) is not None

    def __eq__(self, other: object) -> bool:
        return isinstance(other, WildcardMatcher) and other.pattern == self.pattern

    def __hash__(self) -> int:
        return hash(self.pattern)

    def __repr__(self) -> str:
        return f"WildcardMatcher({self.pattern!r})"
