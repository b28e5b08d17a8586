"""Tests for typed source records and their conversion to mentions."""

import pytest
from pydantic import ValidationError

from casefile.errors import RecordValidationError
from casefile.models import ContactPayload, EntityType, FlightPayload, SourceId
from casefile.unification.sources import (
    ContactRecord,
    ExtractionRecord,
    FlightManifestRecord,
    OcrRecord,
    mentions_by_source,
    parse_records,
    parse_source_records,
    to_iso_date,
)


class TestContactRecord:
    """Test contact-list records."""

    def test_emails_filtered_and_lowercased(self):
        record = ContactRecord(name="Ghislaine Maxwell", emails=["GM@Example.com", "nope", " "])
        assert record.emails == ["gm@example.com"]

    @pytest.mark.parametrize(
        "value,expected",
        [("yes", True), ("TRUE", True), ("no", False), ("", False), (True, True), (None, False)],
    )
    def test_circled_values(self, value, expected):
        assert ContactRecord(name="Les Wexner", circled=value).circled is expected

    def test_to_mentions(self):
        record = ContactRecord(
            name="Les Wexner", phones=["614-555-0199", ""], circled=True, page=12
        )
        [mention] = record.to_mentions()

        assert mention.source_id == SourceId.CONTACT_LIST
        assert mention.entity_type == EntityType.PERSON
        assert isinstance(mention.payload, ContactPayload)
        assert mention.payload.phones == ("614-555-0199",)
        assert mention.payload.circled is True
        assert mention.payload.page_number == 12

    def test_name_required(self):
        with pytest.raises(ValidationError):
            ContactRecord(name="X")


class TestFlightManifestRecord:
    """Test flight manifests."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("3/14/1997", "1997-03-14"),
            ("3/14/97", "1997-03-14"),
            ("1997-05-02", "1997-05-02"),
            ("1997-05-02T10:00:00", "1997-05-02"),
            ("13/45/1997", None),
            ("March 1997", None),
            ("", None),
            (None, None),
        ],
    )
    def test_iso_dates(self, raw, expected):
        assert to_iso_date(raw) == expected

    def test_noise_passengers_dropped(self):
        record = FlightManifestRecord(flight_id="F-1", passengers=["JE", "7", "x", " ", "GM"])
        assert record.passengers == ["JE", "GM"]

    def test_one_mention_per_passenger(self):
        record = FlightManifestRecord(
            flight_id="F-1",
            date="3/14/1997",
            origin="PBI",
            destination=" TEB ",
            passengers=["Jeffrey Epstein", "Ghislaine Maxwell", "Sarah Kellen"],
        )
        mentions = record.to_mentions()

        assert [m.raw_name for m in mentions] == [
            "Jeffrey Epstein",
            "Ghislaine Maxwell",
            "Sarah Kellen",
        ]
        payload = mentions[1].payload
        assert isinstance(payload, FlightPayload)
        assert payload.flight_id == "F-1"
        assert payload.date == "1997-03-14"
        assert payload.destination == "TEB"
        assert payload.co_passengers == ("Jeffrey Epstein", "Sarah Kellen")

    def test_self_not_a_co_passenger(self):
        record = FlightManifestRecord(
            flight_id="F-1", passengers=["Jeffrey Epstein", "JEFFREY EPSTEIN.", "Nadia Marcinkova"]
        )
        payload = record.to_mentions()[0].payload
        assert payload.co_passengers == ("Nadia Marcinkova",)


class TestDocumentRecords:
    """Test structured extraction and OCR records."""

    def test_extraction_mentions(self):
        record = ExtractionRecord(
            document_id="doc-1",
            people=["Jeffrey Epstein", " ", "J"],
            organizations=["Southern Trust Company"],
            locations=["Palm Beach"],
            dates=["2005-03-01"],
        )
        mentions = record.to_mentions()

        assert [(m.entity_type, m.raw_name) for m in mentions] == [
            (EntityType.PERSON, "Jeffrey Epstein"),
            (EntityType.ORGANIZATION, "Southern Trust Company"),
            (EntityType.LOCATION, "Palm Beach"),
            (EntityType.DATE, "2005-03-01"),
        ]
        assert all(m.source_id == SourceId.STRUCTURED_EXTRACTION for m in mentions)
        assert all(m.document_ids == ("doc-1",) for m in mentions)

    def test_ocr_cleans_and_filters_people(self):
        record = OcrRecord(
            document_id="ocr-1",
            people=["Jeffrey\nEpstein", "Flight Log Page 3", "AB CD", "**Sarah Kellen"],
            locations=["NY", "Little St. James"],
        )
        mentions = record.to_mentions()

        assert [m.raw_name for m in mentions] == [
            "Jeffrey Epstein",
            "Sarah Kellen",
            "Little St. James",
        ]
        assert all(m.source_id == SourceId.OCR_CORPUS for m in mentions)

    def test_document_id_required(self):
        with pytest.raises(ValidationError):
            ExtractionRecord(document_id="")


class TestParsing:
    """Test validation of raw dicts into typed records."""

    def test_parse_mixed_records(self, sample_records):
        records = parse_records(sample_records)
        assert [type(r).__name__ for r in records] == [
            "ContactRecord",
            "ContactRecord",
            "FlightManifestRecord",
            "FlightManifestRecord",
            "ExtractionRecord",
            "ExtractionRecord",
            "OcrRecord",
        ]

    def test_unknown_source_rejected(self):
        with pytest.raises(RecordValidationError) as exc_info:
            parse_records([{"source": "fax-machine", "name": "X"}])
        assert exc_info.value.context.resource_type == "fax-machine"
        assert exc_info.value.context.resource_id == "0"

    def test_parse_source_records_without_tag(self):
        records = parse_source_records(
            SourceId.FLIGHT_MANIFEST, [{"flight_id": "F-9", "passengers": ["Jeffrey Epstein"]}]
        )
        assert isinstance(records[0], FlightManifestRecord)

    def test_invalid_record_reports_field(self):
        with pytest.raises(RecordValidationError) as exc_info:
            parse_source_records(SourceId.CONTACT_LIST, [{"name": "Les Wexner"}, {"phones": []}])
        error = exc_info.value
        assert error.field == "name"
        assert error.context.resource_id == "1"
        assert "contact-list" in error.message

    def test_mentions_grouped_by_source(self, sample_records):
        grouped = mentions_by_source(parse_records(sample_records))

        assert set(grouped) == set(SourceId)
        assert len(grouped[SourceId.CONTACT_LIST]) == 2
        assert len(grouped[SourceId.FLIGHT_MANIFEST]) == 4
        assert len(grouped[SourceId.STRUCTURED_EXTRACTION]) == 5
        assert [m.raw_name for m in grouped[SourceId.OCR_CORPUS]] == [
            "Jeffrey Epstein",
            "Little St. James",
        ]
