"""
casefile: entity resolution and cross-source unification.

Folds a contact list, flight manifests, structured case-document
extractions and an OCR corpus into one deduplicated, ranked entity index.
"""

__version__ = "0.1.0"

from .models import (
    EntityType,
    SourceId,
    RawMention,
    MergedEntity,
    UnifiedEntity,
)
from .config import ConfigManager, EngineConfig
from .pipeline import BuildReport, IndexBuilder, build_index
from .unification.index import IndexHandle, UnifiedIndex

__all__ = [
    "__version__",
    "EntityType",
    "SourceId",
    "RawMention",
    "MergedEntity",
    "UnifiedEntity",
    "ConfigManager",
    "EngineConfig",
    "BuildReport",
    "IndexBuilder",
    "build_index",
    "IndexHandle",
    "UnifiedIndex",
]
