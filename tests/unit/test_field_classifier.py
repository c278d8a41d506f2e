"""
Tests for field grouping and processing modes.
"""

import pytest

from claim_extraction.extraction import (
    FieldClassifier,
    FieldGroup,
    is_comprehensive_field,
    is_signature_field,
)
from claim_extraction.schemas import (
    ConsolidatedRequest,
    ExpectedType,
    FieldRequest,
    ProcessingMode,
)


SIGNED = FieldRequest("insured_signed", "Is the application signed?", ExpectedType.BOOLEAN)
SIGNATURE_NAME = FieldRequest("signature_name", "Whose signature appears on the form?")
DATE = FieldRequest("effective_date", "Policy effective date?", ExpectedType.DATE)
REVIEW = FieldRequest("comprehensive_review", "Go through the document and list endorsements")
ANALYSIS = FieldRequest("roof_condition", "Determine whether the roof inspection passed", ExpectedType.BOOLEAN)


# -----------------------------------------------------------------------------
# Grouping
# -----------------------------------------------------------------------------


class TestGrouping:
    """Tests for FieldClassifier.classify and partition."""

    def test_predicates(self) -> None:
        assert is_signature_field(SIGNED)
        assert not is_signature_field(DATE)
        assert is_comprehensive_field(REVIEW)
        assert is_comprehensive_field(
            ConsolidatedRequest("summary", "Summarize", expected_fields=(DATE,))
        )

    def test_classify(self) -> None:
        classifier = FieldClassifier()

        assert classifier.classify(REVIEW) == FieldGroup.COMPREHENSIVE
        assert classifier.classify(SIGNED) == FieldGroup.SIGNATURE
        assert classifier.classify(DATE, target_page_count=5) == FieldGroup.COMPLEX
        assert classifier.classify(DATE, target_page_count=3) == FieldGroup.SIMPLE

    def test_partition_preserves_order_and_groups(self) -> None:
        other_date = FieldRequest("expiration_date", "Expiration date?", ExpectedType.DATE)

        groups = FieldClassifier().partition([DATE, SIGNED, other_date, REVIEW])

        assert set(groups) == set(FieldGroup)
        assert groups[FieldGroup.SIMPLE] == [DATE, other_date]
        assert groups[FieldGroup.SIGNATURE] == [SIGNED]
        assert groups[FieldGroup.COMPLEX] == []

    def test_partition_uses_page_counts(self) -> None:
        groups = FieldClassifier().partition([DATE], {"effective_date": 4})

        assert groups[FieldGroup.COMPLEX] == [DATE]


# -----------------------------------------------------------------------------
# Policies
# -----------------------------------------------------------------------------


class TestPolicy:
    """Tests for group policies."""

    def test_comprehensive_is_serial_without_early_exit(self) -> None:
        policy = FieldClassifier().policy(FieldGroup.COMPREHENSIVE)

        assert policy.concurrency == 1
        assert policy.max_pages == 10
        assert not policy.early_exit

    def test_signature_allows_early_exit(self) -> None:
        policy = FieldClassifier().policy(FieldGroup.SIGNATURE)

        assert policy.early_exit
        assert policy.concurrency == 3
        assert policy.max_pages == 5

    def test_strict_backend_lowers_concurrency(self) -> None:
        policy = FieldClassifier(strict_backend=True).policy(FieldGroup.SIMPLE)

        assert policy.concurrency == 2

    def test_strict_backend_from_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("MODEL_STRICT_BACKEND", "true")
        from claim_extraction.config import get_settings

        get_settings.cache_clear()

        assert FieldClassifier().strict_backend is True


# -----------------------------------------------------------------------------
# Processing Mode and Early Exit
# -----------------------------------------------------------------------------


class TestProcessingMode:
    """Tests for processing mode and early-exit rules."""

    @pytest.mark.parametrize(
        "field,expected",
        [
            (ANALYSIS, ProcessingMode.DUAL),
            (SIGNED, ProcessingMode.VISUAL),
            (FieldRequest("agency_stamp", "Is the agency stamp present?"), ProcessingMode.VISUAL),
            (DATE, ProcessingMode.TEXT),
        ],
    )
    def test_processing_mode(self, field, expected) -> None:
        assert FieldClassifier().processing_mode(field) == expected

    def test_dual_wins_over_visual(self) -> None:
        field = FieldRequest("insured_signed", "Verify the insured signature is present")

        assert FieldClassifier().processing_mode(field) == ProcessingMode.DUAL

    def test_only_boolean_signature_fields_exit_early(self) -> None:
        classifier = FieldClassifier()

        assert classifier.allows_early_exit(SIGNED)
        assert not classifier.allows_early_exit(SIGNATURE_NAME)
        assert not classifier.allows_early_exit(DATE)

    def test_early_exit_thresholds(self) -> None:
        classifier = FieldClassifier()
        dual_signature = FieldRequest(
            "insured_signed", "Verify the application is signed", ExpectedType.BOOLEAN
        )

        assert classifier.early_exit_threshold(SIGNED) == 0.6
        assert classifier.early_exit_threshold(dual_signature) == 0.7
