"""Shared fixtures for resolution and unification tests."""

import pytest

from casefile.models import (
    ContactPayload,
    EntityType,
    FlightPayload,
    RawMention,
    SourceId,
)


@pytest.fixture
def make_mention():
    """Factory for raw mentions with sensible defaults."""

    def _make(
        name,
        source=SourceId.STRUCTURED_EXTRACTION,
        entity_type=EntityType.PERSON,
        count=1,
        docs=(),
        payload=None,
    ):
        return RawMention(
            source_id=source,
            raw_name=name,
            entity_type=entity_type,
            mention_count=count,
            document_ids=tuple(docs),
            payload=payload,
        )

    return _make


@pytest.fixture
def contact_mention():
    def _make(name, circled=False, phones=(), emails=()):
        return RawMention(
            source_id=SourceId.CONTACT_LIST,
            raw_name=name,
            payload=ContactPayload(circled=circled, phones=tuple(phones), emails=tuple(emails)),
        )

    return _make


@pytest.fixture
def flight_mention():
    def _make(name, flight_id, date=None, destination="", co_passengers=()):
        return RawMention(
            source_id=SourceId.FLIGHT_MANIFEST,
            raw_name=name,
            payload=FlightPayload(
                flight_id=flight_id,
                date=date,
                destination=destination,
                co_passengers=tuple(co_passengers),
            ),
        )

    return _make


@pytest.fixture
def sample_records():
    """One record of every source, naming overlapping people."""
    return [
        {
            "source": "contact-list",
            "name": "Ghislaine Maxwell",
            "phones": ["212-555-0100", " "],
            "emails": ["GM@Example.com", "not-an-email"],
            "circled": "yes",
        },
        {
            "source": "contact-list",
            "name": "Les Wexner",
            "phones": ["614-555-0199"],
        },
        {
            "source": "flight-manifest",
            "flight_id": "F-001",
            "date": "3/14/1997",
            "origin": "PBI",
            "destination": "TEB",
            "passengers": ["Jeffrey Epstein", "Ghislaine Maxwell", "7"],
        },
        {
            "source": "flight-manifest",
            "flight_id": "F-002",
            "date": "1997-05-02",
            "origin": "TEB",
            "destination": "STT",
            "passengers": ["Jeffrey Epstein", "Ghislaine Maxwell"],
        },
        {
            "source": "structured-extraction",
            "document_id": "doc-1",
            "people": ["Jeffrey Epstein", "Ghislaine Maxwell"],
            "organizations": ["Southern Trust Company"],
            "locations": ["Palm Beach"],
        },
        {
            "source": "structured-extraction",
            "document_id": "doc-2",
            "people": ["Jeffrey Epstein"],
        },
        {
            "source": "ocr-corpus",
            "document_id": "ocr-9",
            "people": ["Jeffrey Epstein\n", "Flight Log Page 3", "AB CD"],
            "locations": ["Little St. James"],
        },
    ]
