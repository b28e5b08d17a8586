"""
Cluster/Merge Engine

Groups a flat list of same-source mentions into merged entities using the
match classifier.

The default mode is greedy seed-only clustering: a cluster is exactly the
set of unprocessed mentions that directly match the seed, so results depend
on input order (A~B and B~C does not pull C into A's cluster unless A~C).
The transitive mode links every accepted pair with a disjoint-set forest
and is order independent.
"""

import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from ..models import EntityType, MergedEntity, RawMention
from .match_classifier import FUZZY_TYPES, MatchClassifier, MatchResult, MatchThresholds
from .normalizer import normalize, partition

logger = logging.getLogger(__name__)


class ClusterMode(str, Enum):
    """Clustering strategy."""

    GREEDY = "greedy"
    TRANSITIVE = "transitive"


@dataclass
class MergeReport:
    """Bookkeeping for one merge run."""

    total_mentions: int = 0
    clusters: int = 0
    comparisons: int = 0
    accepted_matches: int = 0
    excluded_empty_keys: List[str] = field(default_factory=list)
    processing_time: float = 0.0


class DisjointSet:
    """Union-find over integer indices with path halving and union by rank."""

    def __init__(self):
        self._parent: Dict[int, int] = {}
        self._rank: Dict[int, int] = {}

    def find(self, x: int) -> int:
        if x not in self._parent:
            self._parent[x] = x
            self._rank[x] = 0
        while self._parent[x] != x:
            self._parent[x] = self._parent[self._parent[x]]
            x = self._parent[x]
        return x

    def union(self, a: int, b: int) -> None:
        ra, rb = self.find(a), self.find(b)
        if ra == rb:
            return
        if self._rank[ra] < self._rank[rb]:
            ra, rb = rb, ra
        self._parent[rb] = ra
        if self._rank[ra] == self._rank[rb]:
            self._rank[ra] += 1


def _radius(length: int, threshold: float) -> int:
    """Largest edit distance a string of ``length`` can have to any string it
    is at least ``threshold`` similar to.

    With ``sim = 1 - d / L`` and ``L <= length + d`` this is
    ``floor((1 - t) / t * length)``.
    """
    if threshold <= 0:
        return length
    return int((1 - threshold) * length / threshold + 1e-9)


def _segments(text: str, radius: int) -> Optional[List[str]]:
    """Split ``text`` into ``radius + 1`` contiguous pieces.

    Any string within ``radius`` edits of ``text`` contains at least one
    piece unchanged. None when there are more pieces than characters.
    """
    count = radius + 1
    if count > len(text):
        return None
    size, extra = divmod(len(text), count)
    pieces, start = [], 0
    for n in range(count):
        end = start + size + (1 if n < extra else 0)
        pieces.append(text[start:end])
        start = end
    return pieces


def _substrings(text: str) -> Set[str]:
    return {text[i:j] for i in range(len(text)) for j in range(i + 1, len(text) + 1)}


def blocking_keys(
    key: str, fuzzy: bool, thresholds: MatchThresholds
) -> Optional[Set[Tuple[str, str]]]:
    """Keys a normalized name is indexed under for blocking.

    The whole key and its reversed form cover exact, reversed and containment
    matches. Pieces of the whole key cover high-similarity matches and pieces
    of the last token cover part-wise fuzzy matches, each cut finely enough
    for the corresponding threshold. Returns None when the name has to be
    compared with everything.
    """
    keys = {("key", key)}
    if not fuzzy:
        return keys

    pieces = _segments(key, _radius(len(key), thresholds.high_similarity))
    if pieces is None:
        return None
    keys.update(("key", piece) for piece in pieces)

    parts = partition(key)
    if parts.first and parts.last:
        keys.add(("key", f"{parts.last} {parts.first}"))
        pieces = _segments(parts.last, _radius(len(parts.last), thresholds.last_name))
        if pieces is None:
            return None
        keys.update(("token", piece) for piece in pieces)
    return keys


def lookup_keys(key: str, fuzzy: bool) -> Set[Tuple[str, str]]:
    """Keys a normalized name looks up: every substring of the key and, for
    two-part names, of its first and last tokens."""
    keys = {("key", sub) for sub in _substrings(key)}
    if fuzzy:
        parts = partition(key)
        if parts.first and parts.last:
            for token in (parts.first, parts.last):
                keys.update(("token", sub) for sub in _substrings(token))
    return keys


class ClusterMergeEngine:
    """
    Deduplicates mentions into merged entities.

    Only mentions of the same entity type are compared. Mentions whose
    normalized key is empty are excluded from candidacy and reported.
    """

    def __init__(
        self,
        classifier: Optional[MatchClassifier] = None,
        mode: ClusterMode = ClusterMode.GREEDY,
        blocking: bool = False,
        acceptance: Optional[float] = None,
        audit=None,
    ):
        """Initialize the engine.

        Args:
            classifier: Pairwise classifier; anything with a compatible
                ``classify(name_a, name_b, entity_type)`` method
            mode: Greedy seed-only or transitive clustering
            blocking: Skip pairs that no classifier rule could accept
            acceptance: Minimum confidence to merge on; defaults to the
                classifier's merge_acceptance threshold (0.80)
            audit: Optional BuildAuditLogger receiving merge decisions
        """
        self.classifier = classifier or MatchClassifier()
        self.mode = ClusterMode(mode)
        self.blocking = blocking
        if acceptance is None:
            thresholds = getattr(self.classifier, "thresholds", None)
            acceptance = getattr(thresholds, "merge_acceptance", 0.80)
        self.acceptance = acceptance
        self.audit = audit
        self.last_report = MergeReport()

    def merge(self, mentions: Iterable[RawMention]) -> List[MergedEntity]:
        """Cluster mentions into merged entities.

        Returns:
            Merged entities sorted by total mentions, descending. Ties keep
            the order in which clusters were opened.
        """
        start_time = time.time()
        mentions = list(mentions)
        report = MergeReport(total_mentions=len(mentions))

        keys = [normalize(m.raw_name) for m in mentions]
        eligible = []
        for index, key in enumerate(keys):
            if key:
                eligible.append(index)
                continue
            report.excluded_empty_keys.append(mentions[index].raw_name)
            logger.warning(
                f"Excluding mention with empty normalized key: {mentions[index].raw_name!r}"
            )
            if self.audit:
                self.audit.log_excluded(mentions[index])

        candidates = self._candidate_index(mentions, keys, eligible)

        if self.mode == ClusterMode.TRANSITIVE:
            clusters = self._transitive(mentions, eligible, candidates, report)
        else:
            clusters = self._greedy(mentions, eligible, candidates, report)

        merged = [
            MergedEntity.from_mentions([mentions[i] for i in members], confidence)
            for members, confidence in clusters
        ]
        merged.sort(key=lambda entity: entity.total_mentions, reverse=True)

        report.clusters = len(merged)
        report.processing_time = time.time() - start_time
        self.last_report = report

        logger.info(
            f"Merged {report.total_mentions} mentions into {report.clusters} entities "
            f"({report.comparisons} comparisons, {report.accepted_matches} accepted, "
            f"{len(report.excluded_empty_keys)} excluded) in {report.processing_time:.2f}s"
        )
        return merged

    def _candidate_index(
        self, mentions: Sequence[RawMention], keys: Sequence[str], eligible: Sequence[int]
    ) -> Optional[Dict[int, List[int]]]:
        """Later-index comparison candidates per mention, when blocking.

        A pair is a candidate when a key one name is indexed under occurs
        among the keys the other looks up, so every pair the classifier
        could accept is still compared.
        """
        if not self.blocking:
            return None

        thresholds = getattr(self.classifier, "thresholds", None)
        if not isinstance(thresholds, MatchThresholds):
            logger.warning("Blocking needs MatchThresholds on the classifier; comparing all pairs")
            return None

        index: Dict[tuple, Set[int]] = defaultdict(set)
        wildcards: Dict[EntityType, Set[int]] = defaultdict(set)
        for i in eligible:
            entity_type = mentions[i].entity_type
            indexed = blocking_keys(keys[i], entity_type in FUZZY_TYPES, thresholds)
            if indexed is None:
                wildcards[entity_type].add(i)
                continue
            for k in indexed:
                index[(entity_type, k)].add(i)

        linked: Dict[int, Set[int]] = defaultdict(set)
        for j in eligible:
            entity_type = mentions[j].entity_type
            found = set(wildcards[entity_type])
            for k in lookup_keys(keys[j], entity_type in FUZZY_TYPES):
                found |= index.get((entity_type, k), set())
            for i in found:
                linked[i].add(j)
                linked[j].add(i)

        return {i: sorted(j for j in linked[i] if j > i) for i in eligible}

    def _later(
        self,
        i: int,
        mentions: Sequence[RawMention],
        eligible: Sequence[int],
        candidates: Optional[Dict[int, List[int]]],
    ) -> Iterable[int]:
        if candidates is not None:
            return candidates[i]
        entity_type = mentions[i].entity_type
        return (j for j in eligible if j > i and mentions[j].entity_type == entity_type)

    def _compare(
        self, seed: RawMention, other: RawMention, report: MergeReport
    ) -> Optional[MatchResult]:
        """Classify a pair and return the result when it is accepted."""
        report.comparisons += 1
        result = self.classifier.classify(seed.raw_name, other.raw_name, seed.entity_type)
        if result.is_match and result.confidence >= self.acceptance:
            report.accepted_matches += 1
            if self.audit:
                self.audit.log_match(seed, other, result)
            return result
        return None

    def _greedy(self, mentions, eligible, candidates, report):
        processed: Set[int] = set()
        clusters = []

        for i in eligible:
            if i in processed:
                continue

            members = [i]
            confidence = 1.0
            for j in self._later(i, mentions, eligible, candidates):
                if j in processed:
                    continue
                result = self._compare(mentions[i], mentions[j], report)
                if result is not None:
                    members.append(j)
                    processed.add(j)
                    confidence = min(confidence, result.confidence)

            processed.add(i)
            clusters.append((members, confidence))

        return clusters

    def _transitive(self, mentions, eligible, candidates, report):
        forest = DisjointSet()
        edges = []

        for i in eligible:
            forest.find(i)
            for j in self._later(i, mentions, eligible, candidates):
                result = self._compare(mentions[i], mentions[j], report)
                if result is not None:
                    forest.union(i, j)
                    edges.append((i, result.confidence))

        members_by_root: Dict[int, List[int]] = defaultdict(list)
        for i in eligible:
            members_by_root[forest.find(i)].append(i)

        confidence_by_root: Dict[int, float] = {}
        for i, confidence in edges:
            root = forest.find(i)
            confidence_by_root[root] = min(confidence_by_root.get(root, 1.0), confidence)

        # Dict insertion order follows each cluster's first member
        return [
            (members, confidence_by_root.get(root, 1.0))
            for root, members in members_by_root.items()
        ]
