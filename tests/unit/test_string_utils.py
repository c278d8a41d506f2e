"""
Tests for claim_extraction/utils - string, number and date helpers.
"""

from datetime import date, datetime

import pytest

from claim_extraction.utils import (
    canonical_number,
    extract_numbers,
    find_date,
    format_date,
    jaccard_similarity,
    normalize_date,
    normalize_whitespace,
    parse_date,
    parse_number,
    strip_markdown,
    tokenize,
    truncate_text,
)


# ---------------------------------------------------------------------------
# normalize_whitespace
# ---------------------------------------------------------------------------


class TestNormalizeWhitespace:

    def test_collapses_tabs_and_newlines(self):
        assert normalize_whitespace("Acme\t\tRoofing\n\nLLC") == "Acme Roofing LLC"

    def test_strips_leading_trailing(self):
        assert normalize_whitespace("  hi  ") == "hi"

    def test_empty_string(self):
        assert normalize_whitespace("") == ""


# ---------------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------------


class TestNumbers:

    def test_extract_numbers_ignores_thousands_separator(self):
        assert extract_numbers("Deductible $1,000 of 3 claims") == ["1000", "3"]

    def test_extract_numbers_empty(self):
        assert extract_numbers("") == []

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("$1,500.00", 1500.0),
            ("12%", 12.0),
            ("(250)", -250.0),
            ("about 12", None),
            ("", None),
        ],
    )
    def test_parse_number(self, text, expected):
        assert parse_number(text) == expected

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Total: $1,500.00", "1500"),
            ("1500", "1500"),
            ("0.50", "0.5"),
            ("no digits", None),
        ],
    )
    def test_canonical_number(self, text, expected):
        assert canonical_number(text) == expected


# ---------------------------------------------------------------------------
# Tokens and similarity
# ---------------------------------------------------------------------------


class TestSimilarity:

    def test_tokenize_lowercases(self):
        assert tokenize("Flood  EXCLUSION flood") == {"flood", "exclusion"}

    def test_jaccard_identical(self):
        assert jaccard_similarity("acme roofing", "Acme Roofing") == 1.0

    def test_jaccard_partial(self):
        assert jaccard_similarity("acme roofing llc", "acme roofing inc") == pytest.approx(0.5)

    def test_jaccard_both_empty(self):
        assert jaccard_similarity("", "") == 1.0


# ---------------------------------------------------------------------------
# Markdown and truncation
# ---------------------------------------------------------------------------


class TestStripMarkdown:

    def test_bold_and_heading(self):
        assert strip_markdown("## Answer\n**YES**") == "Answer\nYES"

    def test_code_fence(self):
        assert strip_markdown("```json\n{}\n```") == "{}"

    def test_list_marker(self):
        assert strip_markdown("- 04-11-25") == "04-11-25"


class TestTruncateText:

    def test_short_text_unchanged(self):
        assert truncate_text("short", 10) == "short"

    def test_word_boundary(self):
        assert truncate_text("flood damage exclusion applies", 20) == "flood damage..."

    def test_hard_cut(self):
        assert truncate_text("abcdefghij", 6, word_boundary=False) == "abc..."

    def test_tiny_budget(self):
        assert truncate_text("abcdefghij", 2) == ".."


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------


class TestDates:

    @pytest.mark.parametrize(
        "text",
        ["04/11/2025", "2025-04-11", "April 11, 2025", "Apr 11, 2025", "4-11-25"],
    )
    def test_parse_date_formats(self, text):
        assert parse_date(text) == date(2025, 4, 11)

    def test_parse_date_default(self):
        assert parse_date("upon binding", default=date(2000, 1, 1)) == date(2000, 1, 1)

    def test_find_date_in_sentence(self):
        assert find_date("Policy expires on 04/11/2025.") == date(2025, 4, 11)

    def test_find_date_absent(self):
        assert find_date("No date here") is None

    def test_format_date_accepts_datetime(self):
        assert format_date(datetime(2025, 4, 11, 9, 30)) == "04-11-25"

    def test_normalize_date(self):
        assert normalize_date("Effective 4/11/2025") == "04-11-25"
        assert normalize_date("04-11-25") == "04-11-25"
        assert normalize_date("Upon binding") is None
