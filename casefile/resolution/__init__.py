"""
Entity Resolution

Name normalization, bounded edit-distance similarity, ordered-rule match
classification and single-pass clustering of same-source mentions.

Usage:
    from casefile.resolution import ClusterMergeEngine, classify

    classify("Maxwell Ghislaine", "Ghislaine Maxwell").reason  # reversed_name
    merged = ClusterMergeEngine().merge(mentions)
"""

from .normalizer import (
    HONORIFIC_TITLES,
    NamePartition,
    normalize,
    partition,
    split_name,
    clean_ocr_name,
    is_plausible_person_name,
)
from .similarity_scoring import SimilarityScorer, similarity
from .match_classifier import (
    MatchClassifier,
    MatchReason,
    MatchResult,
    MatchThresholds,
    classify,
)
from .core_engine import (
    ClusterMergeEngine,
    ClusterMode,
    DisjointSet,
    MergeReport,
    blocking_keys,
    lookup_keys,
)

__all__ = [
    # Normalizer
    "HONORIFIC_TITLES",
    "NamePartition",
    "normalize",
    "partition",
    "split_name",
    "clean_ocr_name",
    "is_plausible_person_name",
    # Similarity scoring
    "SimilarityScorer",
    "similarity",
    # Match classification
    "MatchClassifier",
    "MatchReason",
    "MatchResult",
    "MatchThresholds",
    "classify",
    # Clustering
    "ClusterMergeEngine",
    "ClusterMode",
    "DisjointSet",
    "MergeReport",
    "blocking_keys",
    "lookup_keys",
]
