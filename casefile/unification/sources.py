"""
Source Record Variants

Each source's already-parsed record is one variant of a closed, tagged
union, validated when it is loaded. Variants know how to turn themselves
into raw mentions for the merge engine.
"""

import re
import logging
from datetime import datetime
from typing import Annotated, Any, ClassVar, Dict, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from ..errors import RecordValidationError, ErrorContext
from ..models import (
    ContactPayload,
    EntityType,
    FlightPayload,
    RawMention,
    SourceId,
)
from ..resolution.normalizer import clean_ocr_name, is_plausible_person_name, normalize

logger = logging.getLogger(__name__)


def _strip_all(values: Iterable[Any]) -> List[str]:
    return [str(v).strip() for v in values if v is not None and str(v).strip()]


class ContactRecord(BaseModel):
    """One entry of the contact list."""

    model_config = ConfigDict(frozen=True)

    source: Literal["contact-list"] = "contact-list"
    name: str = Field(min_length=2)
    phones: List[str] = Field(default_factory=list)
    emails: List[str] = Field(default_factory=list)
    addresses: List[str] = Field(default_factory=list)
    notes: str = ""
    circled: bool = False
    page: Optional[int] = None

    @field_validator("circled", mode="before")
    @classmethod
    def parse_circled(cls, v):
        if isinstance(v, str):
            return v.strip().lower() in ("yes", "true")
        return bool(v)

    @field_validator("phones", "addresses")
    @classmethod
    def strip_values(cls, v):
        return _strip_all(v)

    @field_validator("emails")
    @classmethod
    def keep_real_emails(cls, v):
        return [e.lower() for e in _strip_all(v) if "@" in e]

    def to_mentions(self) -> List[RawMention]:
        return [
            RawMention(
                source_id=SourceId.CONTACT_LIST,
                raw_name=self.name,
                entity_type=EntityType.PERSON,
                payload=ContactPayload(
                    phones=tuple(self.phones),
                    emails=tuple(self.emails),
                    addresses=tuple(self.addresses),
                    notes=self.notes,
                    circled=self.circled,
                    page_number=self.page or None,
                ),
            )
        ]


_SLASH_DATE = re.compile(r"^\s*(\d{1,2})/(\d{1,2})/(\d{2}|\d{4})\s*$")
_ISO_DATE = re.compile(r"^\s*(\d{4})-(\d{2})-(\d{2})")


def to_iso_date(raw: Optional[str]) -> Optional[str]:
    """Convert M/D/YY, M/D/YYYY or YYYY-MM-DD to ISO, else None."""
    if not raw:
        return None

    match = _SLASH_DATE.match(raw)
    if match:
        month, day, year = match.groups()
        fmt = "%m/%d/%Y" if len(year) == 4 else "%m/%d/%y"
        try:
            return datetime.strptime(f"{month}/{day}/{year}", fmt).date().isoformat()
        except ValueError:
            return None

    match = _ISO_DATE.match(raw)
    if match:
        try:
            return datetime.strptime("-".join(match.groups()), "%Y-%m-%d").date().isoformat()
        except ValueError:
            return None

    return None


class FlightManifestRecord(BaseModel):
    """One flight with its passenger list."""

    model_config = ConfigDict(frozen=True)

    source: Literal["flight-manifest"] = "flight-manifest"
    flight_id: str = Field(min_length=1)
    date: str = ""
    origin: str = ""
    destination: str = ""
    aircraft: str = ""
    tail_number: str = ""
    passengers: List[str] = Field(default_factory=list)

    @field_validator("passengers")
    @classmethod
    def drop_noise(cls, v):
        # Single characters and seat/row numbers are not passengers
        return [p for p in _strip_all(v) if len(p) > 1 and not p.isdigit()]

    @property
    def iso_date(self) -> Optional[str]:
        return to_iso_date(self.date)

    def to_mentions(self) -> List[RawMention]:
        """One mention per passenger, naming everyone else aboard."""
        iso_date = self.iso_date
        mentions = []
        for index, passenger in enumerate(self.passengers):
            others = tuple(
                other
                for position, other in enumerate(self.passengers)
                if position != index and normalize(other) != normalize(passenger)
            )
            mentions.append(
                RawMention(
                    source_id=SourceId.FLIGHT_MANIFEST,
                    raw_name=passenger,
                    entity_type=EntityType.PERSON,
                    payload=FlightPayload(
                        flight_id=self.flight_id,
                        date=iso_date,
                        origin=self.origin.strip(),
                        destination=self.destination.strip(),
                        co_passengers=others,
                    ),
                )
            )
        return mentions


class _DocumentRecord(BaseModel):
    """Names found in one document, grouped by entity type."""

    model_config = ConfigDict(frozen=True)

    document_id: str = Field(min_length=1)
    people: List[str] = Field(default_factory=list)
    organizations: List[str] = Field(default_factory=list)
    locations: List[str] = Field(default_factory=list)
    dates: List[str] = Field(default_factory=list)

    SOURCE_ID: ClassVar[SourceId]

    def _typed_names(self):
        yield from ((EntityType.PERSON, n) for n in self.people)
        yield from ((EntityType.ORGANIZATION, n) for n in self.organizations)
        yield from ((EntityType.LOCATION, n) for n in self.locations)
        yield from ((EntityType.DATE, n) for n in self.dates)

    def _clean(self, entity_type: EntityType, name: str) -> Optional[str]:
        name = name.strip()
        return name if len(name) >= 2 else None

    def to_mentions(self) -> List[RawMention]:
        mentions = []
        for entity_type, raw in self._typed_names():
            name = self._clean(entity_type, raw or "")
            if name is None:
                continue
            mentions.append(
                RawMention(
                    source_id=self.SOURCE_ID,
                    raw_name=name,
                    entity_type=entity_type,
                    document_ids=(self.document_id,),
                )
            )
        return mentions


class ExtractionRecord(_DocumentRecord):
    """Structured entity extraction for one case document."""

    source: Literal["structured-extraction"] = "structured-extraction"

    SOURCE_ID: ClassVar[SourceId] = SourceId.STRUCTURED_EXTRACTION


class OcrRecord(_DocumentRecord):
    """OCR-derived names for one document of the separate corpus."""

    source: Literal["ocr-corpus"] = "ocr-corpus"

    SOURCE_ID: ClassVar[SourceId] = SourceId.OCR_CORPUS

    def _clean(self, entity_type: EntityType, name: str) -> Optional[str]:
        if entity_type == EntityType.PERSON:
            if not is_plausible_person_name(name):
                logger.debug(f"Dropping implausible OCR person name: {name!r}")
                return None
            return clean_ocr_name(name)

        cleaned = clean_ocr_name(name)
        if entity_type == EntityType.LOCATION and not 3 <= len(cleaned) <= 50:
            return None
        return cleaned if len(cleaned) >= 2 else None


SourceRecord = Annotated[
    Union[ContactRecord, FlightManifestRecord, ExtractionRecord, OcrRecord],
    Field(discriminator="source"),
]

RECORD_TYPES: Dict[SourceId, type] = {
    SourceId.CONTACT_LIST: ContactRecord,
    SourceId.FLIGHT_MANIFEST: FlightManifestRecord,
    SourceId.STRUCTURED_EXTRACTION: ExtractionRecord,
    SourceId.OCR_CORPUS: OcrRecord,
}

_source_record_adapter = TypeAdapter(SourceRecord)


def _raise_invalid(source: str, position: int, error: ValidationError):
    raise RecordValidationError(
        f"Invalid {source} record at position {position}: {error.errors()[0]['msg']}",
        field=".".join(str(loc) for loc in error.errors()[0]["loc"]),
        context=ErrorContext(
            operation="parse_records",
            resource_type=source,
            resource_id=str(position),
        ),
    ) from error


def parse_source_records(source_id: SourceId, items: Iterable[Dict[str, Any]]) -> List[Any]:
    """Validate a list of raw dicts as records of one known source."""
    source_id = SourceId(source_id)
    record_type = RECORD_TYPES[source_id]
    records = []
    for position, item in enumerate(items):
        try:
            records.append(record_type.model_validate(item))
        except ValidationError as e:
            _raise_invalid(source_id.value, position, e)
    return records


def parse_records(items: Iterable[Dict[str, Any]]) -> List[Any]:
    """Validate a mixed list of records tagged with a ``source`` field."""
    records = []
    for position, item in enumerate(items):
        try:
            records.append(_source_record_adapter.validate_python(item))
        except ValidationError as e:
            source = item.get("source", "unknown") if isinstance(item, dict) else "unknown"
            _raise_invalid(str(source), position, e)
    return records


def mentions_by_source(records: Iterable[Any]) -> Dict[SourceId, List[RawMention]]:
    """Convert typed records to raw mentions grouped by source."""
    grouped: Dict[SourceId, List[RawMention]] = {}
    for record in records:
        for mention in record.to_mentions():
            grouped.setdefault(mention.source_id, []).append(mention)
    return grouped
