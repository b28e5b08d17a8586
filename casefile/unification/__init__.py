"""
Cross-Source Unification

Typed per-source records, the fold of per-source merge results into
unified entities, and the published read-only index.
"""

from .sources import (
    ContactRecord,
    FlightManifestRecord,
    ExtractionRecord,
    OcrRecord,
    SourceRecord,
    RECORD_TYPES,
    to_iso_date,
    parse_records,
    parse_source_records,
    mentions_by_source,
)
from .unifier import (
    CrossSourceUnifier,
    SignificanceWeights,
    UnifyReport,
    contact_stats,
    flight_stats,
    document_stats,
)
from .index import IndexHandle, IndexStats, UnifiedIndex

__all__ = [
    # Source records
    "ContactRecord",
    "FlightManifestRecord",
    "ExtractionRecord",
    "OcrRecord",
    "SourceRecord",
    "RECORD_TYPES",
    "to_iso_date",
    "parse_records",
    "parse_source_records",
    "mentions_by_source",
    # Unifier
    "CrossSourceUnifier",
    "SignificanceWeights",
    "UnifyReport",
    "contact_stats",
    "flight_stats",
    "document_stats",
    # Index
    "IndexHandle",
    "IndexStats",
    "UnifiedIndex",
]
