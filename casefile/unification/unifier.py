"""
Cross-Source Unifier

Folds per-source merge results into one record per normalized name,
accumulating provenance flags, per-source statistics and an additive
significance score. Sources are folded one at a time in a fixed order.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Set, Union

from pydantic import BaseModel, ConfigDict, Field

from ..models import (
    SOURCE_ORDER,
    ContactPayload,
    ContactStats,
    CoPassenger,
    DocumentStats,
    EntityType,
    FlightPayload,
    FlightStats,
    MergedEntity,
    RawMention,
    SourceFlags,
    SourceId,
    UnifiedEntity,
    entity_id_for,
)
from ..resolution.normalizer import normalize
from ..logging_config import log_event

logger = logging.getLogger(__name__)

SourceInput = Union[MergedEntity, RawMention]

# Sources that only report document mentions
DOCUMENT_SOURCES = frozenset({SourceId.STRUCTURED_EXTRACTION, SourceId.OCR_CORPUS})


class SignificanceWeights(BaseModel):
    """Per-source contributions to the significance score.

    Every weight is non-negative, so folding in a source never lowers a score.
    """

    model_config = ConfigDict(frozen=True)

    contact_circled: int = Field(default=50, ge=0)
    contact: int = Field(default=10, ge=0)
    per_flight: int = Field(default=5, ge=0)
    per_case_mention: int = Field(default=3, ge=0)
    per_ocr_mention: int = Field(default=2, ge=0)


def contact_stats(entity: MergedEntity) -> ContactStats:
    """Union the contact details of every variation, keeping first-seen order."""
    phones: Dict[str, None] = {}
    emails: Dict[str, None] = {}
    addresses: Dict[str, None] = {}
    circled = False

    for variation in entity.variations:
        payload = variation.payload
        if not isinstance(payload, ContactPayload):
            continue
        circled = circled or payload.circled
        for phone in payload.phones:
            phones.setdefault(phone, None)
        for email in payload.emails:
            emails.setdefault(email, None)
        for address in payload.addresses:
            addresses.setdefault(address, None)

    return ContactStats(
        circled=circled,
        phones=tuple(phones),
        emails=tuple(emails),
        addresses=tuple(addresses),
    )


def flight_stats(entity: MergedEntity, top_co_passengers: int = 10) -> FlightStats:
    """Summarize the flights of one passenger.

    Each distinct flight id counts once, even when two spellings of the
    passenger appear on it. Mentions without a flight payload count their
    mention_count as flights. Co-passengers are keyed by normalized name and
    counted once per shared flight; the passenger's own names are excluded.
    """
    flight_ids: Dict[str, None] = {}
    unattributed = 0
    destinations: Dict[str, None] = {}
    dates: List[str] = []
    co_passenger_counts: Dict[str, int] = {}
    own_keys = {normalize(v.raw_name) for v in entity.variations}

    for variation in entity.variations:
        payload = variation.payload
        if not isinstance(payload, FlightPayload):
            unattributed += variation.mention_count
            continue
        if payload.flight_id in flight_ids:
            continue
        flight_ids.setdefault(payload.flight_id, None)

        if payload.destination:
            destinations.setdefault(payload.destination, None)
        if payload.date:
            dates.append(payload.date)

        seen_on_flight: Set[str] = set()
        for name in payload.co_passengers:
            key = normalize(name)
            if not key or key in own_keys or key in seen_on_flight:
                continue
            seen_on_flight.add(key)
            co_passenger_counts[key] = co_passenger_counts.get(key, 0) + 1

    # sorted() is stable, so ties keep first-seen order
    ranked = sorted(co_passenger_counts.items(), key=lambda item: item[1], reverse=True)

    return FlightStats(
        flight_count=len(flight_ids) + unattributed,
        destinations=tuple(destinations),
        first_flight=min(dates) if dates else None,
        last_flight=max(dates) if dates else None,
        top_co_passengers=tuple(
            CoPassenger(name=name, count=count) for name, count in ranked[:top_co_passengers]
        ),
    )


def document_stats(entity: MergedEntity) -> DocumentStats:
    """Mention and document counts of a structured-extraction or OCR entity."""
    return DocumentStats(
        mention_count=entity.total_mentions,
        document_count=entity.total_documents,
        document_ids=entity.all_document_ids,
    )


@dataclass
class _Accumulator:
    """Mutable record for one key while a build is in progress."""

    key: str
    name: str
    entity_type: EntityType
    sources: List[SourceId] = field(default_factory=list)
    contact: Optional[ContactStats] = None
    flights: Optional[FlightStats] = None
    case_documents: Optional[DocumentStats] = None
    ocr_documents: Optional[DocumentStats] = None
    score: int = 0

    def freeze(self) -> UnifiedEntity:
        return UnifiedEntity(
            entity_id=entity_id_for(self.key),
            name=self.name,
            normalized_name=self.key,
            entity_type=self.entity_type,
            sources=SourceFlags.from_sources(self.sources),
            contact=self.contact,
            flights=self.flights,
            case_documents=self.case_documents,
            ocr_documents=self.ocr_documents,
            significance_score=self.score,
        )


@dataclass
class UnifyReport:
    """Bookkeeping for one unification run."""

    folded: Dict[str, int] = field(default_factory=dict)
    skipped_empty_keys: List[str] = field(default_factory=list)
    skipped_below_threshold: int = 0
    same_source_collisions: List[str] = field(default_factory=list)


class CrossSourceUnifier:
    """Folds per-source merged entities into unified records keyed by normalized name."""

    def __init__(
        self,
        weights: Optional[SignificanceWeights] = None,
        min_standalone_mentions: int = 1,
        top_co_passengers: int = 10,
    ):
        """Initialize the unifier.

        Args:
            weights: Significance contribution per source
            min_standalone_mentions: Entities first seen in a document source
                need at least this many mentions to be created
            top_co_passengers: How many co-passengers to keep per entity
        """
        if min_standalone_mentions < 1:
            raise ValueError("min_standalone_mentions must be at least 1")
        self.weights = weights or SignificanceWeights()
        self.min_standalone_mentions = min_standalone_mentions
        self.top_co_passengers = top_co_passengers
        self.last_report = UnifyReport()

    def unify(
        self, source_records: Mapping[SourceId, Sequence[SourceInput]]
    ) -> Dict[str, UnifiedEntity]:
        """Fold every source into a key -> UnifiedEntity map.

        Args:
            source_records: Merged entities (or bare raw mentions) per source.
                Missing sources are skipped.

        Returns:
            Dict ordered by significance score, descending. Ties keep the
            order in which keys were first created.
        """
        report = UnifyReport()
        entities: Dict[str, _Accumulator] = {}

        for source_id in SOURCE_ORDER:
            records = source_records.get(source_id)
            if not records:
                continue
            folded = 0
            for record in records:
                if isinstance(record, MergedEntity):
                    entity = record
                else:
                    entity = MergedEntity.from_mention(record)
                if self._fold(entities, source_id, entity, report):
                    folded += 1
            report.folded[source_id.value] = folded
            log_event(
                __name__,
                f"Folded {folded} of {len(records)} {source_id.value} records",
                source=source_id.value,
                folded=folded,
                unified_so_far=len(entities),
            )

        ranked = sorted(entities.values(), key=lambda acc: acc.score, reverse=True)
        self.last_report = report

        logger.info(
            f"Unified {len(ranked)} entities from {len(report.folded)} sources "
            f"({len(report.skipped_empty_keys)} empty keys, "
            f"{report.skipped_below_threshold} below standalone threshold)"
        )
        return {acc.key: acc.freeze() for acc in ranked}

    def _fold(
        self,
        entities: Dict[str, _Accumulator],
        source_id: SourceId,
        entity: MergedEntity,
        report: UnifyReport,
    ) -> bool:
        key = normalize(entity.canonical_name)
        if not key:
            report.skipped_empty_keys.append(entity.canonical_name)
            logger.warning(
                f"Skipping {source_id.value} entity with empty normalized key: "
                f"{entity.canonical_name!r}"
            )
            return False

        acc = entities.get(key)
        if acc is None:
            if (
                source_id in DOCUMENT_SOURCES
                and entity.total_mentions < self.min_standalone_mentions
            ):
                report.skipped_below_threshold += 1
                return False
            acc = _Accumulator(key=key, name=entity.canonical_name, entity_type=entity.entity_type)
            entities[key] = acc

        if source_id in acc.sources:
            # Two clusters of one source share a key: the later stats win
            report.same_source_collisions.append(key)
            logger.warning(f"Second {source_id.value} entity for key {key!r}; replacing its stats")
        else:
            acc.sources.append(source_id)

        acc.score += self._attach(acc, source_id, entity)
        return True

    def _attach(self, acc: _Accumulator, source_id: SourceId, entity: MergedEntity) -> int:
        """Attach one source's statistics and return its score contribution."""
        w = self.weights
        if source_id == SourceId.CONTACT_LIST:
            acc.contact = contact_stats(entity)
            return w.contact_circled if acc.contact.circled else w.contact
        if source_id == SourceId.FLIGHT_MANIFEST:
            acc.flights = flight_stats(entity, self.top_co_passengers)
            return acc.flights.flight_count * w.per_flight
        if source_id == SourceId.STRUCTURED_EXTRACTION:
            acc.case_documents = document_stats(entity)
            return acc.case_documents.mention_count * w.per_case_mention
        acc.ocr_documents = document_stats(entity)
        return acc.ocr_documents.mention_count * w.per_ocr_mention
