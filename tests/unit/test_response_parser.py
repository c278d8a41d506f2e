"""
Tests for model response parsing and cleanup.
"""

import json

import pytest

from claim_extraction.client import (
    DEFAULT_CONFIDENCE,
    clean_answer,
    extract_json,
    parse_confidence,
    parse_consolidated,
    parse_response,
    split_consolidated,
)
from claim_extraction.schemas import NOT_FOUND, ExpectedType, FieldRequest


# -----------------------------------------------------------------------------
# Answer Cleanup
# -----------------------------------------------------------------------------


class TestCleanAnswer:
    """Tests for clean_answer."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("YES", "YES"),
            ("**Yes** - the form is signed", "YES"),
            ("true", "YES"),
            ("No signature present", "NO"),
            ("The page is blank", NOT_FOUND),
            ("NOT_FOUND", NOT_FOUND),
        ],
    )
    def test_boolean(self, raw, expected) -> None:
        assert clean_answer(raw, ExpectedType.BOOLEAN) == expected

    def test_date_normalized(self) -> None:
        assert clean_answer("Effective 4/11/2025 (confidence: 0.9)", ExpectedType.DATE) == "04-11-25"

    def test_unparseable_date_kept(self) -> None:
        assert clean_answer("Upon binding", ExpectedType.DATE) == "Upon binding"

    def test_number_reduced_to_canonical(self) -> None:
        assert clean_answer("Total: $1,500.00", ExpectedType.NUMBER) == "1500"

    def test_text_skips_explanatory_lines(self) -> None:
        raw = "Based on the declarations page:\nAcme Roofing   LLC"

        assert clean_answer(raw, ExpectedType.TEXT) == "Acme Roofing LLC"

    def test_short_not_found_phrase(self) -> None:
        assert clean_answer("not found", ExpectedType.TEXT) == NOT_FOUND

    def test_json_extracted_from_code_block(self) -> None:
        raw = '```json\n{"limit": 1000000}\n```'

        assert json.loads(clean_answer(raw, ExpectedType.JSON)) == {"limit": 1000000}

    def test_json_failure_wrapped(self) -> None:
        cleaned = clean_answer("Limits vary by location", ExpectedType.JSON)

        assert json.loads(cleaned) == {"response": "Limits vary by location"}


# -----------------------------------------------------------------------------
# Confidence and JSON
# -----------------------------------------------------------------------------


class TestConfidence:
    """Tests for parse_confidence and parse_response."""

    def test_stated_confidence(self) -> None:
        assert parse_confidence("YES\nConfidence: 0.92") == 0.92

    def test_percent_confidence_scaled(self) -> None:
        assert parse_confidence("confidence: 85") == 0.85

    def test_default_confidence(self) -> None:
        assert parse_confidence("YES") == DEFAULT_CONFIDENCE

    def test_parse_response(self) -> None:
        parsed = parse_response("Yes (confidence: 0.7)", ExpectedType.BOOLEAN)

        assert parsed.answer == "YES"
        assert parsed.confidence == 0.7

    def test_extract_json_embedded(self) -> None:
        assert extract_json('The verdict is {"decision": "A"} as shown') == {"decision": "A"}

    def test_extract_json_none(self) -> None:
        assert extract_json("no json here") is None


# -----------------------------------------------------------------------------
# Consolidated Responses
# -----------------------------------------------------------------------------


class TestConsolidated:
    """Tests for consolidated response splitting."""

    def test_padded_to_expected_count(self) -> None:
        assert split_consolidated("YES;04-11-25", 3) == ["YES", "04-11-25", NOT_FOUND]

    def test_truncated_to_expected_count(self) -> None:
        assert split_consolidated("YES;NO;YES;NO", 2) == ["YES", "NO"]

    def test_empty_positions_become_not_found(self) -> None:
        assert split_consolidated("YES;;NO", 3) == ["YES", NOT_FOUND, "NO"]

    def test_answer_line_selected(self) -> None:
        raw = "Here are the values:\nYES;04-11-25;Acme\nNote: page 3 was unreadable"

        assert split_consolidated(raw, 3) == ["YES", "04-11-25", "Acme"]

    def test_zero_expected(self) -> None:
        assert split_consolidated("YES", 0) == []

    def test_parse_consolidated_cleans_per_type(self) -> None:
        fields = [
            FieldRequest("signed", "Signed?", ExpectedType.BOOLEAN),
            FieldRequest("effective_date", "Effective date?", ExpectedType.DATE),
            FieldRequest("premium_amount", "Premium?", ExpectedType.NUMBER),
        ]

        assert parse_consolidated("yes; 4/11/2025; $1,200.50", fields) == [
            "YES",
            "04-11-25",
            "1200.5",
        ]
