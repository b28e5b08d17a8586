"""
Unified Index

The read-only artifact handed to downstream consumers, plus the handle that
publishes a freshly built index in one step.
"""

import json
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict

from ..errors import CasefileError, ErrorCategory, SourceDataError
from ..models import SOURCE_ORDER, EntityType, UnifiedEntity
from ..resolution.normalizer import normalize

logger = logging.getLogger(__name__)

INDEX_FILENAME = "unified-entity-index.json"
LOOKUP_FILENAME = "unified-entity-lookup.json"
STATS_FILENAME = "unified-stats.json"


class IndexStats(BaseModel):
    """Summary counts over a unified index."""

    model_config = ConfigDict(frozen=True)

    total_entities: int = 0
    contact_list_only: int = 0
    flight_manifest_only: int = 0
    structured_extraction_only: int = 0
    ocr_corpus_only: int = 0
    multi_source: int = 0
    all_sources: int = 0
    circled_contacts: int = 0
    frequent_flyers: int = 0

    @classmethod
    def compute(
        cls, entities: Iterable[UnifiedEntity], frequent_flyer_threshold: int = 10
    ) -> "IndexStats":
        counts: Dict[str, int] = {name: 0 for name in cls.model_fields}
        for entity in entities:
            counts["total_entities"] += 1
            present = [s for s in SOURCE_ORDER if entity.sources.has(s)]
            if len(present) == 1:
                counts[f"{present[0].value.replace('-', '_')}_only"] += 1
            if len(present) >= 2:
                counts["multi_source"] += 1
            if len(present) == len(SOURCE_ORDER):
                counts["all_sources"] += 1
            if entity.circled:
                counts["circled_contacts"] += 1
            if entity.flight_count >= frequent_flyer_threshold:
                counts["frequent_flyers"] += 1
        return cls(**counts)


class UnifiedIndex:
    """
    Immutable collection of unified entities ranked by significance.

    Entities keep the order they are given in after a stable sort by score,
    so ties stay in creation order.
    """

    def __init__(
        self,
        entities: Union[Mapping[str, UnifiedEntity], Iterable[UnifiedEntity]],
        frequent_flyer_threshold: int = 10,
        built_at: Optional[datetime] = None,
    ):
        if isinstance(entities, Mapping):
            entities = entities.values()
        ranked = sorted(entities, key=lambda e: e.significance_score, reverse=True)

        self._entities = tuple(ranked)
        self._by_key = MappingProxyType({e.normalized_name: e for e in ranked})
        self._lookup = MappingProxyType({e.normalized_name: e.entity_id for e in ranked})
        self.built_at = built_at or datetime.now(timezone.utc)
        self.stats = IndexStats.compute(ranked, frequent_flyer_threshold)

    @property
    def entities(self) -> tuple:
        return self._entities

    @property
    def lookup(self) -> Mapping[str, str]:
        """Normalized name -> stable entity id."""
        return self._lookup

    def __len__(self) -> int:
        return len(self._entities)

    def __iter__(self) -> Iterator[UnifiedEntity]:
        return iter(self._entities)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and normalize(name) in self._by_key

    def get(self, name: str) -> Optional[UnifiedEntity]:
        """Look an entity up by any spelling that normalizes to its key."""
        return self._by_key.get(normalize(name))

    def high_value_targets(self) -> List[UnifiedEntity]:
        """Entities present in two or more sources, by score."""
        return [e for e in self._entities if e.is_high_value_target]

    def by_type(self, entity_type: EntityType) -> List[UnifiedEntity]:
        entity_type = EntityType(entity_type)
        return [e for e in self._entities if e.entity_type == entity_type]

    def top(self, n: int = 20) -> List[UnifiedEntity]:
        return list(self._entities[:max(n, 0)])

    def to_json_dict(self) -> Dict[str, Any]:
        return {
            "built_at": self.built_at.isoformat(),
            "entities": [e.model_dump(mode="json") for e in self._entities],
        }

    def write(self, out_dir: Union[str, Path]) -> Dict[str, Path]:
        """Write the index, lookup and stats files.

        Each file is written to a temporary name first and then renamed, so
        a reader never sees a partially written file.

        Returns:
            Mapping of artifact name to the path written
        """
        out_dir = Path(out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)

        artifacts = {
            "index": (INDEX_FILENAME, self.to_json_dict()),
            "lookup": (LOOKUP_FILENAME, dict(self._lookup)),
            "stats": (STATS_FILENAME, self.stats.model_dump()),
        }
        written = {}
        for name, (filename, payload) in artifacts.items():
            path = out_dir / filename
            tmp_path = path.with_suffix(path.suffix + ".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, path)
            written[name] = path

        logger.info(f"Wrote unified index with {len(self)} entities to {out_dir}")
        return written

    @classmethod
    def load(cls, out_dir: Union[str, Path], frequent_flyer_threshold: int = 10) -> "UnifiedIndex":
        """Read back an index written by ``write``."""
        path = Path(out_dir) / INDEX_FILENAME
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise SourceDataError(f"Cannot read index: {e}", path=str(path), cause=e) from e

        entities = [UnifiedEntity.model_validate(item) for item in data.get("entities", [])]
        built_at = data.get("built_at")
        return cls(
            entities,
            frequent_flyer_threshold=frequent_flyer_threshold,
            built_at=datetime.fromisoformat(built_at) if built_at else None,
        )


class IndexHandle:
    """
    Holds the currently published index.

    A rebuild constructs a complete new index first and only then swaps it
    in, so readers see either the old index or the new one, never a mix.
    A failed rebuild leaves the published index untouched.
    """

    def __init__(self, index: Optional[UnifiedIndex] = None):
        self._lock = threading.Lock()
        self._index = index
        self._version = 0 if index is None else 1

    @property
    def version(self) -> int:
        """Number of indexes published so far."""
        with self._lock:
            return self._version

    @property
    def is_published(self) -> bool:
        with self._lock:
            return self._index is not None

    @property
    def current(self) -> UnifiedIndex:
        with self._lock:
            index = self._index
        if index is None:
            raise CasefileError("No index has been published yet", category=ErrorCategory.BUILD)
        return index

    def publish(self, index: UnifiedIndex) -> int:
        """Swap in a fully built index and return its version."""
        with self._lock:
            self._index = index
            self._version += 1
            version = self._version
        logger.info(f"Published index version {version} ({len(index)} entities)")
        return version

    def rebuild(self, build: Callable[[], UnifiedIndex]) -> UnifiedIndex:
        """Build a new index outside the lock, then publish it."""
        index = build()
        self.publish(index)
        return index
