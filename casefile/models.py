"""Data models for the entity resolution and unification engine."""

from typing import Dict, List, Optional, Tuple, Union, Literal, Annotated
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


class EntityType(str, Enum):
    """Types of entities tracked in the index."""

    PERSON = "person"
    ORGANIZATION = "organization"
    LOCATION = "location"
    DATE = "date"


class SourceId(str, Enum):
    """The independent sources folded into the unified index."""

    CONTACT_LIST = "contact-list"
    FLIGHT_MANIFEST = "flight-manifest"
    STRUCTURED_EXTRACTION = "structured-extraction"
    OCR_CORPUS = "ocr-corpus"


# Fixed fold order for cross-source unification
SOURCE_ORDER: Tuple[SourceId, ...] = (
    SourceId.CONTACT_LIST,
    SourceId.FLIGHT_MANIFEST,
    SourceId.STRUCTURED_EXTRACTION,
    SourceId.OCR_CORPUS,
)


class ContactPayload(BaseModel):
    """Contact-list details attached to a mention."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["contact"] = "contact"
    phones: Tuple[str, ...] = ()
    emails: Tuple[str, ...] = ()
    addresses: Tuple[str, ...] = ()
    notes: str = ""
    circled: bool = False
    page_number: Optional[int] = None


class FlightPayload(BaseModel):
    """One flight leg a passenger appeared on."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["flight"] = "flight"
    flight_id: str
    date: Optional[str] = Field(default=None, description="ISO YYYY-MM-DD date, if parseable")
    origin: str = ""
    destination: str = ""
    co_passengers: Tuple[str, ...] = ()


MentionPayload = Annotated[Union[ContactPayload, FlightPayload], Field(discriminator="kind")]


class RawMention(BaseModel):
    """One appearance of a name from one source."""

    model_config = ConfigDict(frozen=True)

    source_id: SourceId
    raw_name: str
    entity_type: EntityType = EntityType.PERSON
    mention_count: int = Field(default=1, ge=1)
    document_ids: Tuple[str, ...] = ()
    payload: Optional[MentionPayload] = None

    @model_validator(mode="after")
    def check_payload_matches_source(self) -> "RawMention":
        """Contact payloads belong to the contact list, flight payloads to manifests."""
        if isinstance(self.payload, ContactPayload) and self.source_id != SourceId.CONTACT_LIST:
            raise ValueError(f"contact payload on a {self.source_id.value} mention")
        if isinstance(self.payload, FlightPayload) and self.source_id != SourceId.FLIGHT_MANIFEST:
            raise ValueError(f"flight payload on a {self.source_id.value} mention")
        return self


class MergedEntity(BaseModel):
    """A per-source cluster of mentions judged to denote the same entity."""

    model_config = ConfigDict(frozen=True)

    canonical_name: str
    entity_type: EntityType
    source_id: SourceId
    variations: Tuple[RawMention, ...]
    total_mentions: int
    total_documents: int
    all_document_ids: Tuple[str, ...] = ()
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)

    @classmethod
    def from_mentions(
        cls, variations: List[RawMention], confidence: float = 1.0
    ) -> "MergedEntity":
        """Build a cluster result from its variations (seed first)."""
        if not variations:
            raise ValueError("a merged entity needs at least one variation")

        # max() keeps the first of equal counts
        canonical = max(variations, key=lambda v: v.mention_count)

        document_ids: Dict[str, None] = {}
        for variation in variations:
            for doc_id in variation.document_ids:
                document_ids.setdefault(doc_id, None)

        seed = variations[0]
        return cls(
            canonical_name=canonical.raw_name,
            entity_type=seed.entity_type,
            source_id=seed.source_id,
            variations=tuple(variations),
            total_mentions=sum(v.mention_count for v in variations),
            total_documents=len(document_ids),
            all_document_ids=tuple(document_ids),
            confidence=confidence,
        )

    @classmethod
    def from_mention(cls, mention: RawMention) -> "MergedEntity":
        """Wrap a single mention as a one-member cluster."""
        return cls.from_mentions([mention])


class SourceFlags(BaseModel):
    """Per-source presence flags."""

    model_config = ConfigDict(frozen=True)

    contact_list: bool = False
    flight_manifest: bool = False
    structured_extraction: bool = False
    ocr_corpus: bool = False

    @classmethod
    def from_sources(cls, sources) -> "SourceFlags":
        return cls(**{_FLAG_FIELDS[SourceId(s)]: True for s in sources})

    def has(self, source_id: SourceId) -> bool:
        return getattr(self, _FLAG_FIELDS[source_id])

    def count(self) -> int:
        return sum(1 for source_id in SOURCE_ORDER if self.has(source_id))


_FLAG_FIELDS: Dict[SourceId, str] = {
    SourceId.CONTACT_LIST: "contact_list",
    SourceId.FLIGHT_MANIFEST: "flight_manifest",
    SourceId.STRUCTURED_EXTRACTION: "structured_extraction",
    SourceId.OCR_CORPUS: "ocr_corpus",
}


class ContactStats(BaseModel):
    """Contact-list statistics for a unified entity."""

    model_config = ConfigDict(frozen=True)

    circled: bool = False
    phones: Tuple[str, ...] = ()
    emails: Tuple[str, ...] = ()
    addresses: Tuple[str, ...] = ()


class CoPassenger(BaseModel):
    """A co-passenger and the number of flights shared."""

    model_config = ConfigDict(frozen=True)

    name: str
    count: int


class FlightStats(BaseModel):
    """Flight-manifest statistics for a unified entity."""

    model_config = ConfigDict(frozen=True)

    flight_count: int = 0
    destinations: Tuple[str, ...] = ()
    first_flight: Optional[str] = None
    last_flight: Optional[str] = None
    top_co_passengers: Tuple[CoPassenger, ...] = ()


class DocumentStats(BaseModel):
    """Document statistics for a unified entity from a document source."""

    model_config = ConfigDict(frozen=True)

    mention_count: int = 0
    document_count: int = 0
    document_ids: Tuple[str, ...] = ()


class UnifiedEntity(BaseModel):
    """The final cross-source record, keyed by normalized name."""

    model_config = ConfigDict(frozen=True)

    entity_id: str
    name: str
    normalized_name: str
    entity_type: EntityType
    sources: SourceFlags
    contact: Optional[ContactStats] = None
    flights: Optional[FlightStats] = None
    case_documents: Optional[DocumentStats] = None
    ocr_documents: Optional[DocumentStats] = None
    significance_score: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def source_count(self) -> int:
        """Number of sources this entity was found in."""
        return self.sources.count()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_high_value_target(self) -> bool:
        """Present in two or more independent sources."""
        return self.source_count >= 2

    @property
    def circled(self) -> bool:
        return bool(self.contact and self.contact.circled)

    @property
    def flight_count(self) -> int:
        return self.flights.flight_count if self.flights else 0


def entity_id_for(key: str) -> str:
    """Stable entity identifier for a normalized key."""
    return "entity_" + "_".join(key.split())
