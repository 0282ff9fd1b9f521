from __future__ import annotations

import unicodedata
from typing import Iterable, List

MAX_PATTERN_LENGTH = 2000


def normalize_text(text: object) -> str:
    """Canonical comparison form: lower-case, no diacritics or punctuation, single spaces.

    Total and idempotent. Anything that is not a ``str`` normalizes to ``""``.
    """
    if not isinstance(text, str) or not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", unicodedata.normalize("NFKD", text).lower())
    kept = []
    for ch in decomposed:
        if ch.isspace():
            kept.append(" ")
            continue
        category = unicodedata.category(ch)
        if category[0] in ("L", "N"):
            kept.append(ch)
    return " ".join("".join(kept).split())


def bounded_levenshtein(a: str, b: str, max_distance: int) -> int:
    """Levenshtein distance restricted to a diagonal band of half-width ``max_distance``.

    Returns ``max_distance + 1`` as soon as the distance is known to exceed the budget.
    """
    limit = max(int(max_distance), 0)
    over = limit + 1
    if limit == 0:
        return 0 if a == b else over
    len_a, len_b = len(a), len(b)
    if abs(len_a - len_b) > limit:
        return over

    prev = [j if j <= limit else over for j in range(len_b + 1)]
    curr = [over] * (len_b + 1)

    for i in range(1, len_a + 1):
        lo = max(1, i - limit)
        hi = min(len_b, i + limit)
        curr[0] = i if i <= limit else over
        for j in range(1, lo):
            curr[j] = over
        row_min = curr[0]
        ch = a[i - 1]
        for j in range(lo, hi + 1):
            cost = 0 if ch == b[j - 1] else 1
            val = min(prev[j] + 1, curr[j - 1] + 1, prev[j - 1] + cost, over)
            curr[j] = val
            if val < row_min:
                row_min = val
        for j in range(hi + 1, len_b + 1):
            curr[j] = over
        if row_min > limit:
            return over
        prev, curr = curr, prev

    return min(prev[len_b], over)


def approx_contains(text: str, pattern: str, max_distance: int) -> bool:
    """True when some window of ``text`` is within ``max_distance`` edits of ``pattern``."""
    width = len(pattern)
    if not width:
        return False
    if len(text) < width:
        return bounded_levenshtein(text, pattern, max_distance) <= max_distance
    if abs(len(text) - width) <= max_distance:
        if bounded_levenshtein(text, pattern, max_distance) <= max_distance:
            return True
    for start in range(len(text) - width + 1):
        if bounded_levenshtein(text[start : start + width], pattern, max_distance) <= max_distance:
            return True
    return False


def is_text_blacklisted(raw_text: object, patterns: Iterable[str], max_distance: int) -> bool:
    text = normalize_text(raw_text)
    if not text:
        return False
    budget = max(int(max_distance or 0), 0)
    for pattern in patterns:
        if not pattern:
            continue
        if pattern in text:
            return True
        if budget and approx_contains(text, pattern, budget):
            return True
    return False


class PatternMatcher:
    def __init__(self, patterns: Iterable[str] | None = None, threshold: int = 0) -> None:
        self.patterns: List[str] = [p for p in (patterns or []) if p]
        self.threshold = max(int(threshold), 0)

    def matches(self, text: object) -> bool:
        return is_text_blacklisted(text, self.patterns, self.threshold)


__all__ = [
    "MAX_PATTERN_LENGTH",
    "normalize_text",
    "bounded_levenshtein",
    "approx_contains",
    "is_text_blacklisted",
    "PatternMatcher",
]
