"""
Tests for progressive combination of consolidated passes.
"""

import pytest

from claim_extraction.schemas import (
    NOT_FOUND,
    ConsolidatedAnswer,
    ConsolidatedRequest,
    ExpectedType,
    FieldRequest,
)
from claim_extraction.validation import ProgressiveCombiner, RankedPass, combine_passes


@pytest.fixture
def request_() -> ConsolidatedRequest:
    return ConsolidatedRequest(
        field_id="policy_summary",
        question="Go through the document and report signature, effective date and insured",
        expected_fields=(
            FieldRequest("insured_signed", "Is the application signed?", ExpectedType.BOOLEAN),
            FieldRequest("effective_date", "Policy effective date?", ExpectedType.DATE),
            FieldRequest("insured_name", "Named insured?", ExpectedType.TEXT),
        ),
    )


@pytest.fixture
def combiner() -> ProgressiveCombiner:
    return ProgressiveCombiner()


def ranked(name: str, rank: int, values: tuple[str, ...], confidence: float) -> RankedPass:
    return RankedPass(name, rank, values, tuple(confidence for _ in values))


# -----------------------------------------------------------------------------
# Ranked Passes
# -----------------------------------------------------------------------------


class TestRankedPass:
    """Tests for RankedPass construction."""

    def test_from_response_cleans_and_pads(self, request_) -> None:
        ranked_pass = RankedPass.from_response("original", 0, "yes; 4/11/2025", request_, 0.8)

        assert ranked_pass.values == ("YES", "04-11-25", NOT_FOUND)
        assert ranked_pass.confidences == (0.8, 0.8, 0.8)

    def test_mismatched_lengths_rejected(self) -> None:
        with pytest.raises(ValueError):
            RankedPass("broken", 0, ("YES", "NO"), (0.9,))


# -----------------------------------------------------------------------------
# Combination
# -----------------------------------------------------------------------------


class TestCombine:
    """Tests for ProgressiveCombiner.combine."""

    def test_later_pass_fills_gaps(self, combiner, request_) -> None:
        answer = combiner.combine(
            request_,
            [
                ranked("original", 0, ("YES", NOT_FOUND, "Acme"), 0.8),
                ranked("enhanced", 1, ("NO", "04-11-25", "Acme Roofing LLC"), 0.85),
            ],
        )

        assert answer.values == ("YES", "04-11-25", "Acme")
        assert answer.sources == ("original", "enhanced", "original")

    def test_yes_always_overwrites_no(self, combiner, request_) -> None:
        answer = combiner.combine(
            request_,
            [
                ranked("original", 0, ("NO", NOT_FOUND, NOT_FOUND), 0.9),
                ranked("subset", 1, ("YES", NOT_FOUND, NOT_FOUND), 0.5),
            ],
        )

        assert answer.values[0] == "YES"
        assert answer.confidences[0] == 0.5

    def test_no_never_overwrites_yes(self, combiner, request_) -> None:
        answer = combiner.combine(
            request_,
            [
                ranked("original", 0, ("YES", NOT_FOUND, NOT_FOUND), 0.5),
                ranked("subset", 1, ("NO", NOT_FOUND, NOT_FOUND), 0.99),
            ],
        )

        assert answer.values[0] == "YES"

    def test_plausible_value_needs_large_margin(self, combiner, request_) -> None:
        answer = combiner.combine(
            request_,
            [
                ranked("original", 0, (NOT_FOUND, NOT_FOUND, "Acme Roofing"), 0.7),
                ranked("enhanced", 1, (NOT_FOUND, NOT_FOUND, "Beta Builders"), 0.8),
                ranked("subset", 2, (NOT_FOUND, NOT_FOUND, "Gamma Homes"), 0.9),
            ],
        )

        assert answer.values[2] == "Gamma Homes"
        assert answer.sources[2] == "subset"

    def test_placeholder_value_uses_small_margin(self, combiner, request_) -> None:
        answer = combiner.combine(
            request_,
            [
                ranked("original", 0, (NOT_FOUND, NOT_FOUND, "NA"), 0.8),
                ranked("enhanced", 1, (NOT_FOUND, NOT_FOUND, "Acme"), 0.85),
            ],
        )

        assert answer.values[2] == "Acme"

    def test_not_found_never_replaces_value(self, combiner, request_) -> None:
        answer = combiner.combine(
            request_,
            [
                ranked("original", 0, ("YES", "04-11-25", "Acme"), 0.6),
                ranked("enhanced", 1, (NOT_FOUND, NOT_FOUND, NOT_FOUND), 0.99),
            ],
        )

        assert answer.values == ("YES", "04-11-25", "Acme")

    def test_combination_is_idempotent(self, combiner, request_) -> None:
        original = ranked("original", 0, ("YES", "04-11-25", "Acme Roofing"), 0.8)

        once = combiner.combine(request_, [original])
        twice = combiner.combine(request_, [original, original])

        assert once.values == twice.values
        assert once.confidences == twice.confidences

    def test_passes_applied_by_rank(self, combiner, request_) -> None:
        passes = [
            ranked("subset", 2, (NOT_FOUND, NOT_FOUND, "Gamma Homes"), 0.95),
            ranked("original", 0, (NOT_FOUND, NOT_FOUND, "Acme Roofing"), 0.6),
        ]

        assert combiner.combine(request_, passes).values == combiner.combine(
            request_, list(reversed(passes))
        ).values

    def test_short_pass_leaves_remaining_slots(self, combiner, request_) -> None:
        answer = combiner.combine(
            request_,
            [
                ranked("original", 0, ("YES", "04-11-25", "Acme"), 0.8),
                RankedPass("partial", 1, ("NO",), (0.9,)),
            ],
        )

        assert answer.values == ("YES", "04-11-25", "Acme")

    def test_retained_values_seeded_with_bonus(self, combiner, request_) -> None:
        answer = combiner.combine(
            request_,
            [ranked("reanalysis", 4, (NOT_FOUND, "04-11-25", "Beta Builders"), 0.7)],
            retained=[("YES", 0.9), (NOT_FOUND, 0.0), ("Acme Roofing", 0.6)],
        )

        assert answer.values == ("YES", "04-11-25", "Acme Roofing")
        assert answer.confidences[0] == pytest.approx(0.95)
        assert answer.sources[0] == "retained"

    def test_always_one_value_per_field(self, combiner, request_) -> None:
        answer = combiner.combine(request_, [])

        assert len(answer.values) == request_.field_count
        assert answer.values == (NOT_FOUND, NOT_FOUND, NOT_FOUND)
        assert answer.confidence == 0.0

    def test_overall_confidence_has_floor(self, combiner, request_) -> None:
        answer = combiner.combine(
            request_, [ranked("original", 0, ("YES", "04-11-25", "Acme"), 0.5)]
        )

        assert answer.confidence == 0.7

    def test_wire_format(self, request_) -> None:
        answer = combine_passes(
            request_, [ranked("original", 0, ("YES", NOT_FOUND, "Acme"), 0.8)]
        )

        assert answer.to_wire() == "YES;NOT_FOUND;Acme"


# -----------------------------------------------------------------------------
# Reanalysis Trigger
# -----------------------------------------------------------------------------


class TestNeedsReanalysis:
    """Tests for the NOT_FOUND rate trigger."""

    def test_triggered_above_threshold(self, combiner, request_) -> None:
        answer = combiner.combine(
            request_, [ranked("original", 0, ("YES", NOT_FOUND, NOT_FOUND), 0.8)]
        )

        assert answer.not_found_rate == pytest.approx(2 / 3)
        assert combiner.needs_reanalysis(answer)

    def test_not_triggered_below_threshold(self, combiner, request_) -> None:
        answer = combiner.combine(
            request_, [ranked("original", 0, ("YES", "04-11-25", NOT_FOUND), 0.8)]
        )

        assert not combiner.needs_reanalysis(answer)


# -----------------------------------------------------------------------------
# Split Consolidation
# -----------------------------------------------------------------------------


class TestConsolidateSplits:
    """Tests for merging page-split answers."""

    def split(self, request_, values, confidence) -> ConsolidatedAnswer:
        return ConsolidatedAnswer(
            field_id=request_.field_id,
            field_ids=request_.field_ids,
            values=values,
            confidences=tuple(confidence for _ in values),
            confidence=confidence,
        )

    def test_priority_real_data_then_yes_then_no(self, combiner, request_) -> None:
        merged = combiner.consolidate_splits(
            request_,
            [
                self.split(request_, ("NO", NOT_FOUND, "Acme"), 0.6),
                self.split(request_, ("YES", "04-11-25", NOT_FOUND), 0.9),
            ],
        )

        assert merged.values == ("YES", "04-11-25", "Acme")
        assert merged.sources == ("split_2", "split_2", "split_1")
        assert merged.confidences[0] == pytest.approx(0.75)

    def test_confidence_capped(self, combiner, request_) -> None:
        merged = combiner.consolidate_splits(
            request_, [self.split(request_, ("YES", "04-11-25", "Acme"), 1.0)]
        )

        assert merged.confidence == 0.95

    def test_no_splits_yield_not_found(self, combiner, request_) -> None:
        merged = combiner.consolidate_splits(request_, [])

        assert merged.values == (NOT_FOUND, NOT_FOUND, NOT_FOUND)
