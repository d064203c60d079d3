"""Fuzzy matching for typed answers.

A typed answer is accepted when its edit-distance similarity to the expected
answer reaches a threshold. The threshold is policy, not a derived value, so
it lives in settings (SIMILARITY_THRESHOLD) and can be overridden per call.

Distance is Levenshtein over a full DP table with one extension: swapping two
adjacent characters costs 1 (optimal string alignment), so "Farnce" is one
edit away from "France" rather than two.
"""

from typing import Optional

from geoquiz.core.config import settings


def normalize(text: Optional[str]) -> str:
    return (text or "").strip().lower()


def edit_distance(a: str, b: str) -> int:
    """Unit-cost insert/delete/substitute/adjacent-swap distance."""
    rows = len(a) + 1
    cols = len(b) + 1
    table = [[0] * cols for _ in range(rows)]

    for i in range(rows):
        table[i][0] = i
    for j in range(cols):
        table[0][j] = j

    for i in range(1, rows):
        for j in range(1, cols):
            cost = 0 if a[i - 1] == b[j - 1] else 1
            best = min(
                table[i - 1][j] + 1,
                table[i][j - 1] + 1,
                table[i - 1][j - 1] + cost,
            )
            if i > 1 and j > 1 and a[i - 1] == b[j - 2] and a[i - 2] == b[j - 1]:
                best = min(best, table[i - 2][j - 2] + 1)
            table[i][j] = best

    return table[-1][-1]


def similarity(typed: Optional[str], expected: Optional[str]) -> float:
    """1.0 for identical normalized strings, down to 0.0 for nothing in common."""
    a = normalize(typed)
    b = normalize(expected)
    if a == b:
        return 1.0
    return 1.0 - edit_distance(a, b) / max(len(a), len(b))


def is_match(typed: Optional[str], expected: str, threshold: Optional[float] = None) -> bool:
    if threshold is None:
        threshold = settings.SIMILARITY_THRESHOLD
    if normalize(typed) == normalize(expected):
        return True
    return similarity(typed, expected) >= threshold
