"""
Match Classification

Decides whether two names denote the same entity, with a confidence and a
reason code. Rules are applied in a fixed order and the first that fires
wins, so reasons are mutually exclusive.
"""

from enum import Enum
from typing import NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models import EntityType
from .normalizer import normalize, partition
from .similarity_scoring import SimilarityScorer


class MatchReason(str, Enum):
    """Why two names were (or were not) matched."""

    EXACT_MATCH = "exact_match"
    REVERSED_NAME = "reversed_name"
    CONTAINS_VARIATION = "contains_variation"
    FUZZY_MATCH = "fuzzy_match"
    FUZZY_REVERSED = "fuzzy_reversed"
    HIGH_SIMILARITY = "high_similarity"
    NO_MATCH = "no_match"


class MatchResult(NamedTuple):
    """Outcome of classifying a pair of names."""

    is_match: bool
    confidence: float
    reason: MatchReason


class MatchThresholds(BaseModel):
    """Tunable constants for match classification.

    The first/last asymmetry is deliberate: last-name typos are rarer and
    more diagnostic of identity than first-name variants and nicknames.
    None of these values were fitted against labelled data.
    """

    model_config = ConfigDict(frozen=True)

    first_name: float = Field(default=0.80, ge=0.0, le=1.0)
    last_name: float = Field(default=0.90, ge=0.0, le=1.0)
    high_similarity: float = Field(default=0.85, ge=0.0, le=1.0)
    containment_max_length_gap: int = Field(default=5, ge=0)
    reversed_confidence: float = Field(default=0.95, ge=0.0, le=1.0)
    containment_confidence: float = Field(default=0.90, ge=0.0, le=1.0)
    fuzzy_reversed_penalty: float = Field(default=0.95, ge=0.0, le=1.0)
    merge_acceptance: float = Field(default=0.80, ge=0.0, le=1.0)
    min_length_gap: int = Field(default=3, ge=0)
    max_length_gap_ratio: float = Field(default=0.3, ge=0.0, le=1.0)


# Organizations and dates only get exact and substring matching
FUZZY_TYPES = frozenset({EntityType.PERSON, EntityType.LOCATION})


class MatchClassifier:
    """Ordered-rule same-entity classifier for name pairs."""

    def __init__(self, thresholds: Optional[MatchThresholds] = None):
        self.thresholds = thresholds or MatchThresholds()
        self.scorer = SimilarityScorer(
            min_length_gap=self.thresholds.min_length_gap,
            max_length_gap_ratio=self.thresholds.max_length_gap_ratio,
        )

    def classify(
        self,
        name_a: str,
        name_b: str,
        entity_type: EntityType = EntityType.PERSON,
    ) -> MatchResult:
        """Classify two raw names.

        Args:
            name_a: First raw name
            name_b: Second raw name
            entity_type: Shared type of both names; organizations and dates
                are limited to exact and containment rules

        Returns:
            MatchResult with is_match, confidence and reason. A non-match
            still reports the whole-string similarity for diagnostics.
        """
        t = self.thresholds
        key_a = normalize(name_a)
        key_b = normalize(name_b)

        if key_a == key_b:
            return MatchResult(True, 1.0, MatchReason.EXACT_MATCH)

        # An empty key only equals another empty key
        if not key_a or not key_b:
            return MatchResult(False, 0.0, MatchReason.NO_MATCH)

        parts_a = partition(key_a)
        parts_b = partition(key_b)
        fuzzy = EntityType(entity_type) in FUZZY_TYPES

        if fuzzy:
            reversed_a = f"{parts_a.last} {parts_a.first}".strip()
            reversed_b = f"{parts_b.last} {parts_b.first}".strip()
            if key_a == reversed_b or key_b == reversed_a:
                return MatchResult(True, t.reversed_confidence, MatchReason.REVERSED_NAME)

        if key_a in key_b or key_b in key_a:
            if abs(len(key_a) - len(key_b)) <= t.containment_max_length_gap:
                return MatchResult(
                    True, t.containment_confidence, MatchReason.CONTAINS_VARIATION
                )

        overall = self.scorer.similarity(key_a, key_b)
        if not fuzzy:
            return MatchResult(False, overall, MatchReason.NO_MATCH)

        if parts_a.first and parts_a.last and parts_b.first and parts_b.last:
            first_sim = self.scorer.similarity(parts_a.first, parts_b.first)
            last_sim = self.scorer.similarity(parts_a.last, parts_b.last)
            if first_sim >= t.first_name and last_sim >= t.last_name:
                return MatchResult(
                    True, min(first_sim, last_sim), MatchReason.FUZZY_MATCH
                )

            first_to_last = self.scorer.similarity(parts_a.first, parts_b.last)
            last_to_first = self.scorer.similarity(parts_a.last, parts_b.first)
            if first_to_last >= t.first_name and last_to_first >= t.last_name:
                return MatchResult(
                    True,
                    min(first_to_last, last_to_first) * t.fuzzy_reversed_penalty,
                    MatchReason.FUZZY_REVERSED,
                )

        if overall >= t.high_similarity:
            return MatchResult(True, overall, MatchReason.HIGH_SIMILARITY)

        return MatchResult(False, overall, MatchReason.NO_MATCH)

    def accepts(self, result: MatchResult) -> bool:
        """Whether a classification is strong enough to merge on."""
        return result.is_match and result.confidence >= self.thresholds.merge_acceptance


_default_classifier = MatchClassifier()


def classify(
    name_a: str, name_b: str, entity_type: EntityType = EntityType.PERSON
) -> MatchResult:
    """Classify with the default thresholds."""
    return _default_classifier.classify(name_a, name_b, entity_type)
