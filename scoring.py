"""Text similarity strategies used for line placement and duplicate checks.

Each scorer maps a pair of already-normalised strings to a score in
``[0.0, 1.0]``; 0.0 means "not comparable / no evidence". Acceptance
thresholds live with the callers (see ``config``), not here.
"""

import re
from typing import Protocol


class SimilarityScorer(Protocol):
    """Anything that can score how alike two strings are."""

    def score(self, a: str, b: str) -> float: ...


class ContainmentScorer:
    """Ratio of the shorter string to the longer when one contains the other."""

    def __init__(self, min_length: int = 15):
        self.min_length = min_length

    def score(self, a: str, b: str) -> float:
        shorter, longer = (a, b) if len(a) <= len(b) else (b, a)
        if len(shorter) < self.min_length or shorter not in longer:
            return 0.0
        return len(shorter) / len(longer)


class PositionalOverlapScorer:
    """Share of characters that match at the same index.

    Only meaningful for reasonably long strings; overlaps at or below
    ``min_score`` are reported as 0.0.
    """

    def __init__(self, min_length: int = 20, min_score: float = 0.6):
        self.min_length = min_length
        self.min_score = min_score

    def score(self, a: str, b: str) -> float:
        if len(a) < self.min_length or len(b) < self.min_length:
            return 0.0
        matching = sum(1 for x, y in zip(a, b) if x == y)
        similarity = matching / max(len(a), len(b))
        return similarity if similarity > self.min_score else 0.0


class JaccardScorer:
    """Word-set Jaccard similarity for free-text comment bodies."""

    _PUNCTUATION = re.compile(r"[^\w\s]")

    def __init__(self, min_word_length: int = 4):
        self.min_word_length = min_word_length

    def words(self, text: str) -> set[str]:
        """Lower-cased words of at least ``min_word_length`` characters."""
        cleaned = self._PUNCTUATION.sub(" ", text.lower())
        return {w for w in cleaned.split() if len(w) >= self.min_word_length}

    def score(self, a: str, b: str) -> float:
        words_a = self.words(a)
        words_b = self.words(b)
        if not words_a and not words_b:
            return 1.0
        if not words_a or not words_b:
            return 0.0
        return len(words_a & words_b) / len(words_a | words_b)


# Code-snippet scorers consulted by the line resolver, in order
DEFAULT_SNIPPET_SCORERS: tuple[SimilarityScorer, ...] = (
    ContainmentScorer(),
    PositionalOverlapScorer(),
)
