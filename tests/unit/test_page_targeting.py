"""
Tests for page sampling, classification and per-field page mapping.
"""

import asyncio
import json

import pytest

from claim_extraction.client import AdapterUnavailableError
from claim_extraction.extraction import (
    FieldType,
    PageContentType,
    PageTargeter,
    classify_field_type,
)
from claim_extraction.schemas import ExpectedType, FieldRequest


SIGNATURE = FieldRequest("insured_signature", "Is the application signed by the insured?", ExpectedType.BOOLEAN)
EFFECTIVE = FieldRequest("effective_date", "What is the policy effective date?", ExpectedType.DATE)
EXCLUSION = FieldRequest("flood_exclusion", "Is flood listed as an exclusion?", ExpectedType.BOOLEAN)
GENERAL = FieldRequest("agent_remarks", "What remarks did the agent add?")
COMPREHENSIVE = FieldRequest("comprehensive_review", "Go through the document and list endorsements")


# -----------------------------------------------------------------------------
# Field Types
# -----------------------------------------------------------------------------


class TestClassifyFieldType:
    """Tests for keyword field typing."""

    @pytest.mark.parametrize(
        "field,expected",
        [
            (SIGNATURE, FieldType.SIGNATURES),
            (EFFECTIVE, FieldType.DATES),
            (EXCLUSION, FieldType.EXCLUSIONS),
            (FieldRequest("coverage_limit", "Dwelling limit?"), FieldType.COVERAGE),
            (FieldRequest("insured_name", "Named insured?"), FieldType.INSURED_INFO),
            (FieldRequest("policy_number", "Policy number?"), FieldType.POLICY_IDENTIFIERS),
            (COMPREHENSIVE, FieldType.COMPREHENSIVE),
            (GENERAL, FieldType.GENERAL),
        ],
    )
    def test_field_type(self, field, expected) -> None:
        assert classify_field_type(field) == expected


# -----------------------------------------------------------------------------
# Sampling
# -----------------------------------------------------------------------------


class TestSamplePages:
    """Tests for representative page sampling."""

    def test_short_document_sampled_exhaustively(self) -> None:
        assert PageTargeter().sample_pages(8) == [1, 2, 3, 4, 5, 6, 7, 8]

    def test_long_document_sampled_at_quartiles(self) -> None:
        assert PageTargeter().sample_pages(20) == [1, 2, 3, 6, 11, 16, 19, 20]

    def test_empty_document(self) -> None:
        assert PageTargeter().sample_pages(0) == []


# -----------------------------------------------------------------------------
# Heuristic Mapping
# -----------------------------------------------------------------------------


class TestHeuristicMapping:
    """Tests for mapping without a classification model."""

    @pytest.fixture
    def mappings(self, make_document, text_pages):
        targeter = PageTargeter()
        fields = [SIGNATURE, EFFECTIVE, GENERAL, COMPREHENSIVE]
        return asyncio.run(targeter.map_fields(make_document(text_pages), fields))

    def test_signature_field_targets_last_pages(self, mappings) -> None:
        assert mappings["insured_signature"].target_pages == (18, 19, 20)

    def test_date_field_targets_front_matter(self, mappings) -> None:
        assert mappings["effective_date"].target_pages == (1, 2, 3, 4)

    def test_general_field_targets_first_middle_last(self, mappings) -> None:
        assert mappings["agent_remarks"].target_pages == (1, 10, 20)

    def test_comprehensive_field_includes_specialized_pages(self, mappings) -> None:
        assert mappings["comprehensive_review"].target_pages == (1, 2, 3, 20)

    def test_reasoning_names_field_type(self, mappings) -> None:
        assert mappings["insured_signature"].reasoning.startswith("signatures field")

    @pytest.mark.parametrize("total_pages", [1, 2, 3, 7, 50])
    def test_pages_within_document(self, total_pages) -> None:
        targeter = PageTargeter()
        analyses = targeter.heuristic_analysis(total_pages)

        for field in (SIGNATURE, EFFECTIVE, EXCLUSION, GENERAL, COMPREHENSIVE):
            mapping = targeter.map_field(field, analyses, total_pages)
            assert mapping.target_pages
            assert all(1 <= page <= total_pages for page in mapping.target_pages)
            assert len(mapping.target_pages) <= targeter.max_pages_per_field
            assert 0.0 <= mapping.confidence <= 1.0

    def test_fallback_mapping(self) -> None:
        mappings = PageTargeter().fallback_mapping([SIGNATURE, EFFECTIVE, GENERAL], 20)

        assert mappings["insured_signature"].target_pages == (19, 20)
        assert mappings["effective_date"].target_pages == (1, 2, 3)
        assert mappings["agent_remarks"].target_pages == (1, 20)
        assert mappings["agent_remarks"].confidence == 0.3


# -----------------------------------------------------------------------------
# Model Classification
# -----------------------------------------------------------------------------


CLASSIFICATION = json.dumps(
    [
        {"page": 1, "contentType": "declarations", "hasDates": True, "hasPolicyNumbers": True},
        {"page": 11, "contentType": "exclusions", "keyPhrases": ["Flood", "Earth Movement"]},
        {"page": 19, "contentType": "signatures", "hasSignatures": True},
        {"page": 99, "contentType": "general"},
        {"contentType": "general"},
    ]
)


class TestModelClassification:
    """Tests for sampled classification and interpolation."""

    def test_classification_sends_sampled_pages(self, make_adapter, make_document, text_pages) -> None:
        adapter = make_adapter(CLASSIFICATION)
        document = make_document(text_pages)

        asyncio.run(PageTargeter(adapter=adapter).map_fields(document, [SIGNATURE]))

        assert adapter.call_count == 1
        assert document.rendered == [1, 2, 3, 6, 11, 16, 19, 20]
        assert adapter.requests[0].expected_type == ExpectedType.JSON

    def test_unknown_and_incomplete_entries_skipped(self) -> None:
        analyses = PageTargeter().parse_classification(CLASSIFICATION, [1, 11, 19])

        assert [a.page_number for a in analyses] == [1, 11, 19]
        assert analyses[1].content_type == PageContentType.EXCLUSIONS
        assert analyses[1].key_phrases == ("flood", "earth movement")
        assert analyses[1].confidence == 0.8

    def test_interpolation_copies_nearest_sampled_page(self) -> None:
        targeter = PageTargeter()
        sampled = targeter.parse_classification(CLASSIFICATION, [1, 11, 19])

        expanded = targeter.expand(sampled, 20)

        assert len(expanded) == 20
        assert expanded[17].has_signatures  # page 18 copies page 19
        assert expanded[17].confidence == 0.3
        # Page 6 is equidistant from 1 and 11; the earlier page wins
        assert expanded[5].content_type == PageContentType.DECLARATIONS

    def test_signature_mapping_uses_classification(self, make_adapter, make_document, text_pages) -> None:
        targeter = PageTargeter(adapter=make_adapter(CLASSIFICATION))

        mappings = asyncio.run(targeter.map_fields(make_document(text_pages), [SIGNATURE, EXCLUSION]))

        assert 19 in mappings["insured_signature"].target_pages
        assert mappings["insured_signature"].confidence == 1.0
        assert 11 in mappings["flood_exclusion"].target_pages

    def test_unparseable_classification_uses_heuristics(self, make_adapter, make_document, text_pages) -> None:
        targeter = PageTargeter(adapter=make_adapter("These pages look like a policy."))

        mappings = asyncio.run(targeter.map_fields(make_document(text_pages), [SIGNATURE]))

        assert mappings["insured_signature"].target_pages == (18, 19, 20)

    def test_adapter_failure_uses_heuristics(self, make_adapter, make_document, text_pages) -> None:
        targeter = PageTargeter(adapter=make_adapter(AdapterUnavailableError("down")))

        analyses = asyncio.run(targeter.analyze_pages(make_document(text_pages)))

        assert all(a.confidence == 0.4 for a in analyses)
        assert analyses[0].content_type == PageContentType.DECLARATIONS

    def test_classification_content_is_visual(self, make_adapter, make_document, text_pages) -> None:
        adapter = make_adapter(CLASSIFICATION)

        asyncio.run(PageTargeter(adapter=adapter).classify_pages(make_document(text_pages), [1, 2]))

        assert adapter.requests[0].content.images == (
            "data:image/png;base64,page1",
            "data:image/png;base64,page2",
        )
