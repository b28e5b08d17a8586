"""
Similarity Scoring

Bounded-cost edit-distance similarity between two strings. Pairs whose
lengths differ too much are pruned before any edit distance is computed.
"""

import jellyfish


class SimilarityScorer:
    """
    Levenshtein similarity with an early-exit length filter.

    ``similarity(a, b) = 1 - distance / len(longer)``, or 0.0 when the
    length difference exceeds ``max(min_length_gap, max_length_gap_ratio *
    len(longer))``.
    """

    def __init__(self, min_length_gap: int = 3, max_length_gap_ratio: float = 0.3):
        """Initialize the scorer with its pruning bound."""
        self.min_length_gap = min_length_gap
        self.max_length_gap_ratio = max_length_gap_ratio

    def similarity(self, a: str, b: str) -> float:
        """Return a similarity in [0, 1] for two strings."""
        if a == b:
            return 1.0
        if not a or not b:
            return 0.0

        longer, shorter = (a, b) if len(a) > len(b) else (b, a)

        if len(longer) - len(shorter) > max(
            self.min_length_gap, self.max_length_gap_ratio * len(longer)
        ):
            return 0.0

        distance = jellyfish.levenshtein_distance(longer, shorter)
        return 1.0 - distance / len(longer)


_default_scorer = SimilarityScorer()


def similarity(a: str, b: str) -> float:
    """Similarity using the default pruning bound."""
    return _default_scorer.similarity(a, b)
