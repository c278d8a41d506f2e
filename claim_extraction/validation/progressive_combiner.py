"""
Progressive combination of consolidated extraction passes.

Several passes answer the same consolidated request: the original
dual-model pass, an enhanced-prompt pass, and a field-subset pass. The
combiner folds them, in priority order, into one ConsolidatedAnswer:

- values retained from an earlier run seed the fold at a confidence bonus;
- for boolean fields a YES always wins, a NO only fills an empty slot;
- for other fields a new value replaces an existing one only when its
  confidence exceeds the old by a stability margin (larger for plausible
  values, smaller for placeholders).

Split results from page-split processing are merged separately by value
priority.
"""

from dataclasses import dataclass
from functools import reduce
from typing import Sequence

from claim_extraction.client.response_parser import parse_consolidated
from claim_extraction.config import get_logger, get_settings
from claim_extraction.schemas import (
    NOT_FOUND,
    ConsolidatedAnswer,
    ConsolidatedRequest,
    ExpectedType,
    is_not_found,
)


logger = get_logger(__name__)


RETAINED_SOURCE = "retained"


@dataclass(frozen=True, slots=True)
class RankedPass:
    """
    One extraction pass over a consolidated request.

    Attributes:
        name: Pass name (e.g. "original", "enhanced", "subset").
        rank: Priority rank; lower ranks are applied first.
        values: One cleaned value per expected field.
        confidences: One confidence per expected field.
    """

    name: str
    rank: int
    values: tuple[str, ...]
    confidences: tuple[float, ...]

    def __post_init__(self) -> None:
        if len(self.values) != len(self.confidences):
            raise ValueError(
                f"Pass {self.name} has {len(self.values)} values but "
                f"{len(self.confidences)} confidences"
            )

    @classmethod
    def from_response(
        cls,
        name: str,
        rank: int,
        raw_response: str,
        request: ConsolidatedRequest,
        confidence: float,
    ) -> "RankedPass":
        """Build a pass from a raw semicolon-delimited response."""
        values = parse_consolidated(raw_response, request.expected_fields)
        return cls(
            name=name,
            rank=rank,
            values=tuple(values),
            confidences=tuple(confidence for _ in values),
        )

    @classmethod
    def from_answer(cls, name: str, rank: int, answer: ConsolidatedAnswer) -> "RankedPass":
        return cls(name=name, rank=rank, values=answer.values, confidences=answer.confidences)


@dataclass(frozen=True, slots=True)
class FieldSlot:
    """Current value of one field during the fold."""

    value: str = NOT_FOUND
    confidence: float = 0.0
    source: str = ""

    @property
    def is_empty(self) -> bool:
        return is_not_found(self.value)


class ProgressiveCombiner:
    """
    Folds ranked passes into one consolidated answer.

    Example:
        combiner = ProgressiveCombiner()
        answer = combiner.combine(request, [original_pass, enhanced_pass])
        if combiner.needs_reanalysis(answer):
            ...
    """

    PLAUSIBLE_MARGIN: float = 0.15
    PLACEHOLDER_MARGIN: float = 0.05
    CONFIDENCE_FLOOR: float = 0.7
    RETENTION_BONUS: float = 0.05
    PLAUSIBLE_MIN_LENGTH: int = 2
    NOT_FOUND_RATE_THRESHOLD: float = 0.4

    # Cross-split value priorities
    PRIORITY_REAL_DATA: int = 100
    PRIORITY_YES: int = 80
    PRIORITY_NO: int = 60
    PRIORITY_NOT_FOUND: int = 10
    SPLIT_CONFIDENCE_CAP: float = 0.95

    def __init__(
        self,
        plausible_margin: float | None = None,
        placeholder_margin: float | None = None,
        confidence_floor: float | None = None,
        retention_bonus: float | None = None,
        not_found_rate_threshold: float | None = None,
    ) -> None:
        """
        Initialize the combiner.

        Args:
            plausible_margin: Margin needed to replace a plausible value.
            placeholder_margin: Margin needed to replace a placeholder.
            confidence_floor: Minimum overall confidence of a combination.
            retention_bonus: Bonus applied to retained values.
            not_found_rate_threshold: NOT_FOUND rate that triggers reanalysis.
        """
        settings = get_settings().combiner

        def pick(value: float | None, default: float) -> float:
            return default if value is None else value

        self.plausible_margin = pick(plausible_margin, settings.plausible_margin)
        self.placeholder_margin = pick(placeholder_margin, settings.placeholder_margin)
        self.confidence_floor = pick(confidence_floor, settings.confidence_floor)
        self.retention_bonus = pick(retention_bonus, settings.retention_bonus)
        self.not_found_rate_threshold = pick(
            not_found_rate_threshold, settings.not_found_rate_threshold
        )
        self.plausible_min_length = settings.plausible_min_length

    def is_plausible(self, value: str) -> bool:
        """A value is plausible when it is present and longer than the minimum."""
        return not is_not_found(value) and len(value.strip()) > self.plausible_min_length

    def _merge_field(
        self,
        slot: FieldSlot,
        value: str,
        confidence: float,
        source: str,
        expected_type: ExpectedType,
    ) -> FieldSlot:
        if is_not_found(value):
            return slot

        if expected_type == ExpectedType.BOOLEAN:
            normalized = value.strip().upper()
            if normalized == "YES":
                if slot.value == "YES":
                    return slot if slot.confidence >= confidence else FieldSlot("YES", confidence, source)
                return FieldSlot("YES", confidence, source)
            if slot.is_empty:
                return FieldSlot(normalized, confidence, source)
            return slot

        if slot.is_empty:
            return FieldSlot(value, confidence, source)

        margin = (
            self.plausible_margin if self.is_plausible(slot.value) else self.placeholder_margin
        )
        if round(confidence - slot.confidence, 6) >= margin:
            return FieldSlot(value, confidence, source)
        return slot

    def _apply_pass(
        self,
        slots: tuple[FieldSlot, ...],
        ranked_pass: RankedPass,
        expected_types: Sequence[ExpectedType],
    ) -> tuple[FieldSlot, ...]:
        values = list(ranked_pass.values[: len(slots)])
        confidences = list(ranked_pass.confidences[: len(slots)])
        # Short passes leave the remaining slots untouched
        values.extend([NOT_FOUND] * (len(slots) - len(values)))
        confidences.extend([0.0] * (len(slots) - len(confidences)))

        return tuple(
            self._merge_field(slot, value, confidence, ranked_pass.name, expected_type)
            for slot, value, confidence, expected_type in zip(
                slots, values, confidences, expected_types
            )
        )

    def _seed(
        self,
        size: int,
        retained: Sequence[tuple[str, float]] | None,
    ) -> tuple[FieldSlot, ...]:
        slots = [FieldSlot() for _ in range(size)]
        for index, (value, confidence) in enumerate((retained or [])[:size]):
            if not is_not_found(value):
                slots[index] = FieldSlot(
                    value,
                    min(1.0, confidence + self.retention_bonus),
                    RETAINED_SOURCE,
                )
        return tuple(slots)

    def combine(
        self,
        request: ConsolidatedRequest,
        passes: Sequence[RankedPass],
        retained: Sequence[tuple[str, float]] | None = None,
    ) -> ConsolidatedAnswer:
        """
        Fold passes into one consolidated answer.

        Args:
            request: Consolidated request being answered.
            passes: Passes in any order; applied by (rank, name).
            retained: Optional (value, confidence) per field from an
                earlier run, seeded before any pass.

        Returns:
            ConsolidatedAnswer with exactly one value per expected field.
        """
        expected_types = [field.expected_type for field in request.expected_fields]
        ordered = sorted(passes, key=lambda p: (p.rank, p.name))

        slots = reduce(
            lambda state, ranked: self._apply_pass(state, ranked, expected_types),
            ordered,
            self._seed(request.field_count, retained),
        )

        answer = ConsolidatedAnswer(
            field_id=request.field_id,
            field_ids=request.field_ids,
            values=tuple(slot.value for slot in slots),
            confidences=tuple(round(slot.confidence, 6) for slot in slots),
            confidence=self._overall_confidence(slots),
            sources=tuple(slot.source for slot in slots),
        )

        logger.info(
            "passes_combined",
            field_id=request.field_id,
            passes=[p.name for p in ordered],
            retained=sum(1 for slot in slots if slot.source == RETAINED_SOURCE),
            not_found_rate=round(answer.not_found_rate, 3),
            confidence=answer.confidence,
        )
        return answer

    def _overall_confidence(self, slots: Sequence[FieldSlot]) -> float:
        if not slots or all(slot.is_empty for slot in slots):
            return 0.0
        mean = sum(slot.confidence for slot in slots) / len(slots)
        return round(max(self.confidence_floor, mean), 6)

    def needs_reanalysis(self, answer: ConsolidatedAnswer) -> bool:
        """Whether too many values are still NOT_FOUND."""
        return answer.not_found_rate > self.not_found_rate_threshold

    def value_priority(self, value: str) -> int:
        """Priority of a value when merging page-split results."""
        if is_not_found(value):
            return self.PRIORITY_NOT_FOUND
        normalized = value.strip().upper()
        if normalized == "YES":
            return self.PRIORITY_YES
        if normalized == "NO":
            return self.PRIORITY_NO
        return self.PRIORITY_REAL_DATA

    def consolidate_splits(
        self,
        request: ConsolidatedRequest,
        split_answers: Sequence[ConsolidatedAnswer],
    ) -> ConsolidatedAnswer:
        """
        Merge answers produced by independent page splits.

        Per field the value with the highest priority wins (real data, then
        YES, then NO, then NOT_FOUND), ties broken by confidence and then
        by split order. Confidence is the mean over splits, capped.
        """
        size = request.field_count
        if not split_answers:
            return ConsolidatedAnswer(
                field_id=request.field_id,
                field_ids=request.field_ids,
                values=tuple(NOT_FOUND for _ in range(size)),
                confidences=tuple(0.0 for _ in range(size)),
                confidence=0.0,
            )

        values: list[str] = []
        confidences: list[float] = []
        sources: list[str] = []
        for index in range(size):
            candidates = [
                (answer.values[index], answer.confidences[index], split)
                for split, answer in enumerate(split_answers)
            ]
            best_value, _, best_split = max(
                candidates,
                key=lambda c: (self.value_priority(c[0]), c[1], -c[2]),
            )
            mean = sum(c[1] for c in candidates) / len(candidates)
            values.append(best_value)
            confidences.append(round(min(mean, self.SPLIT_CONFIDENCE_CAP), 6))
            sources.append(f"split_{best_split + 1}")

        overall = round(min(sum(confidences) / size, self.SPLIT_CONFIDENCE_CAP), 6) if size else 0.0

        logger.info(
            "splits_consolidated",
            field_id=request.field_id,
            splits=len(split_answers),
            confidence=overall,
        )
        return ConsolidatedAnswer(
            field_id=request.field_id,
            field_ids=request.field_ids,
            values=tuple(values),
            confidences=tuple(confidences),
            confidence=overall,
            sources=tuple(sources),
        )


def combine_passes(
    request: ConsolidatedRequest,
    passes: Sequence[RankedPass],
    retained: Sequence[tuple[str, float]] | None = None,
) -> ConsolidatedAnswer:
    """
    Fold passes into one consolidated answer with default settings.

    Example:
        answer = combine_passes(request, [
            RankedPass.from_response("original", 0, "YES;NOT_FOUND", request, 0.8),
            RankedPass.from_response("enhanced", 1, "YES;04-11-25", request, 0.85),
        ])
    """
    return ProgressiveCombiner().combine(request, passes, retained)

