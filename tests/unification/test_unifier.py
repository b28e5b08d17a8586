"""Tests for the cross-source unifier."""

import logging

import pytest

from casefile.models import (
    EntityType,
    MergedEntity,
    RawMention,
    SourceId,
)
from casefile.unification.unifier import (
    CrossSourceUnifier,
    SignificanceWeights,
    contact_stats,
    flight_stats,
)


@pytest.fixture
def unifier():
    return CrossSourceUnifier()


class TestSignificance:
    """Test the additive significance score."""

    def test_circled_contact_then_flights(self, unifier, contact_mention):
        contact = contact_mention("Jeffrey Epstein", circled=True)
        alone = unifier.unify({SourceId.CONTACT_LIST: [contact]})
        assert alone["jeffrey epstein"].significance_score == 50

        flights = RawMention(
            source_id=SourceId.FLIGHT_MANIFEST, raw_name="Jeffrey Epstein", mention_count=4
        )
        both = unifier.unify(
            {SourceId.CONTACT_LIST: [contact], SourceId.FLIGHT_MANIFEST: [flights]}
        )
        assert both["jeffrey epstein"].flight_count == 4
        assert both["jeffrey epstein"].significance_score == 70

    def test_plain_contact(self, unifier, contact_mention):
        result = unifier.unify({SourceId.CONTACT_LIST: [contact_mention("Les Wexner")]})
        assert result["les wexner"].significance_score == 10

    def test_document_sources(self, unifier, make_mention):
        case = MergedEntity.from_mention(make_mention("Sarah Kellen", count=3, docs=["d1"]))
        ocr = MergedEntity.from_mention(
            make_mention("Sarah Kellen", source=SourceId.OCR_CORPUS, count=2, docs=["o1", "o2"])
        )
        entity = unifier.unify(
            {SourceId.STRUCTURED_EXTRACTION: [case], SourceId.OCR_CORPUS: [ocr]}
        )["sarah kellen"]

        assert entity.significance_score == 3 * 3 + 2 * 2
        assert entity.case_documents.mention_count == 3
        assert entity.case_documents.document_count == 1
        assert entity.ocr_documents.document_ids == ("o1", "o2")

    def test_monotonic_across_sources(self, unifier, contact_mention, flight_mention, make_mention):
        inputs = {
            SourceId.CONTACT_LIST: [contact_mention("Ghislaine Maxwell")],
            SourceId.FLIGHT_MANIFEST: [flight_mention("Ghislaine Maxwell", "F-1")],
            SourceId.STRUCTURED_EXTRACTION: [make_mention("Ghislaine Maxwell", count=2)],
            SourceId.OCR_CORPUS: [
                make_mention("Ghislaine Maxwell", source=SourceId.OCR_CORPUS, count=5)
            ],
        }
        scores = []
        folded = {}
        for source_id, records in inputs.items():
            folded[source_id] = records
            scores.append(unifier.unify(folded)["ghislaine maxwell"].significance_score)

        assert scores == sorted(scores)
        assert scores == [10, 15, 21, 31]

    def test_zero_weights_allowed(self, contact_mention):
        unifier = CrossSourceUnifier(weights=SignificanceWeights(contact=0))
        result = unifier.unify({SourceId.CONTACT_LIST: [contact_mention("Les Wexner")]})
        assert result["les wexner"].significance_score == 0

    def test_negative_weights_rejected(self):
        with pytest.raises(ValueError):
            SignificanceWeights(per_flight=-1)


class TestHighValueTargets:
    """Test the two-or-more-sources predicate."""

    def test_single_source_is_never_a_target(self, unifier, make_mention):
        result = unifier.unify(
            {SourceId.STRUCTURED_EXTRACTION: [make_mention("Jeffrey Epstein", count=500)]}
        )
        assert not result["jeffrey epstein"].is_high_value_target

    def test_two_sources_always_a_target(self, make_mention, contact_mention):
        unifier = CrossSourceUnifier(weights=SignificanceWeights(contact=0, per_ocr_mention=0))
        result = unifier.unify({
            SourceId.CONTACT_LIST: [contact_mention("Nadia Marcinkova")],
            SourceId.OCR_CORPUS: [make_mention("Nadia Marcinkova", source=SourceId.OCR_CORPUS)],
        })
        entity = result["nadia marcinkova"]
        assert entity.significance_score == 0
        assert entity.source_count == 2
        assert entity.is_high_value_target


class TestFold:
    """Test how records are keyed and folded."""

    def test_first_source_names_the_entity(self, unifier, contact_mention, make_mention):
        result = unifier.unify({
            SourceId.STRUCTURED_EXTRACTION: [make_mention("GHISLAINE MAXWELL")],
            SourceId.CONTACT_LIST: [contact_mention("Ghislaine Maxwell")],
        })
        entity = result["ghislaine maxwell"]
        assert entity.name == "Ghislaine Maxwell"
        assert entity.entity_id == "entity_ghislaine_maxwell"
        assert entity.sources.contact_list and entity.sources.structured_extraction
        assert not entity.sources.flight_manifest

    def test_sorted_by_score(self, unifier, contact_mention):
        result = unifier.unify({
            SourceId.CONTACT_LIST: [
                contact_mention("Les Wexner"),
                contact_mention("Ghislaine Maxwell", circled=True),
                contact_mention("Jean Luc Brunel"),
            ]
        })
        assert list(result) == ["ghislaine maxwell", "les wexner", "jean luc brunel"]

    def test_missing_sources_skipped(self, unifier):
        assert unifier.unify({}) == {}
        assert unifier.unify({SourceId.OCR_CORPUS: []}) == {}

    def test_fold_counts_logged(self, unifier, contact_mention, make_mention, caplog):
        with caplog.at_level(logging.INFO, logger="casefile.unification.unifier"):
            unifier.unify({
                SourceId.CONTACT_LIST: [contact_mention("Les Wexner")],
                SourceId.OCR_CORPUS: [make_mention("Les Wexner", source=SourceId.OCR_CORPUS)],
            })
        folded = [r for r in caplog.records if hasattr(r, "folded")]
        assert [(r.source, r.folded, r.unified_so_far) for r in folded] == [
            ("contact-list", 1, 1),
            ("ocr-corpus", 1, 1),
        ]

    def test_empty_keys_skipped(self, unifier, contact_mention):
        result = unifier.unify({SourceId.CONTACT_LIST: [contact_mention("Dr.")]})
        assert result == {}
        assert unifier.last_report.skipped_empty_keys == ["Dr."]

    def test_standalone_threshold(self, contact_mention, make_mention):
        unifier = CrossSourceUnifier(min_standalone_mentions=3)
        ocr = SourceId.OCR_CORPUS
        result = unifier.unify({
            SourceId.CONTACT_LIST: [contact_mention("Les Wexner")],
            ocr: [
                make_mention("Les Wexner", source=ocr, count=1),
                make_mention("Rare Name", source=ocr, count=2),
                make_mention("Common Name", source=ocr, count=3),
            ],
        })
        assert set(result) == {"les wexner", "common name"}
        assert result["les wexner"].sources.ocr_corpus
        assert unifier.last_report.skipped_below_threshold == 1

    def test_standalone_threshold_must_be_positive(self):
        with pytest.raises(ValueError):
            CrossSourceUnifier(min_standalone_mentions=0)

    def test_same_source_collision(self, unifier, contact_mention):
        result = unifier.unify({
            SourceId.CONTACT_LIST: [
                contact_mention("Les Wexner", phones=["1"]),
                contact_mention("LES WEXNER", circled=True, phones=["2"]),
            ]
        })
        entity = result["les wexner"]
        assert entity.contact.phones == ("2",)
        assert entity.significance_score == 60
        assert unifier.last_report.same_source_collisions == ["les wexner"]

    def test_entity_type_from_first_source(self, unifier, make_mention):
        result = unifier.unify({
            SourceId.STRUCTURED_EXTRACTION: [
                make_mention("Palm Beach", entity_type=EntityType.LOCATION)
            ],
        })
        assert result["palm beach"].entity_type == EntityType.LOCATION


class TestSourceStats:
    """Test the per-source statistics blocks."""

    def test_contact_stats_union(self, contact_mention):
        entity = MergedEntity.from_mentions([
            contact_mention("Les Wexner", phones=["1", "2"], emails=["a@x.com"]),
            contact_mention("Leslie Wexner", circled=True, phones=["2", "3"]),
        ])
        stats = contact_stats(entity)
        assert stats.circled
        assert stats.phones == ("1", "2", "3")
        assert stats.emails == ("a@x.com",)

    def test_flight_stats(self, flight_mention):
        entity = MergedEntity.from_mentions([
            flight_mention(
                "Jeffrey Epstein", "F-1", "1997-03-14", "TEB",
                ["Ghislaine Maxwell", "Sarah Kellen"],
            ),
            flight_mention("Jeffrey Epstein", "F-2", "1996-01-02", "PBI", ["Ghislaine Maxwell"]),
            flight_mention("Jeff Epstein", "F-3", None, "TEB", ["Sarah Kellen", "Jeff Epstein"]),
            flight_mention("Jeffrey E. Epstein", "F-1", "1997-03-14", "TEB", ["Ghislaine Maxwell"]),
        ])
        stats = flight_stats(entity)

        assert stats.flight_count == 3
        assert stats.destinations == ("TEB", "PBI")
        assert stats.first_flight == "1996-01-02"
        assert stats.last_flight == "1997-03-14"
        assert [(c.name, c.count) for c in stats.top_co_passengers] == [
            ("ghislaine maxwell", 2),
            ("sarah kellen", 2),
        ]

    def test_flight_stats_top_n(self, flight_mention):
        entity = MergedEntity.from_mentions([
            flight_mention("Jeffrey Epstein", f"F-{i}", co_passengers=[f"Passenger {i}"])
            for i in range(15)
        ])
        stats = flight_stats(entity, top_co_passengers=10)
        assert len(stats.top_co_passengers) == 10
        assert stats.top_co_passengers[0].name == "passenger 0"

    def test_flight_stats_without_payload(self):
        entity = MergedEntity.from_mention(
            RawMention(source_id=SourceId.FLIGHT_MANIFEST, raw_name="Bill Clinton", mention_count=26)
        )
        stats = flight_stats(entity)
        assert stats.flight_count == 26
        assert stats.first_flight is None
        assert stats.top_co_passengers == ()
