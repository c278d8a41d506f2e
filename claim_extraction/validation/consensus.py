"""
Consensus scoring between two independent model answers.

Both answers are normalized for their expected type, then scored in
order: exact match, boolean polarity, numeric closeness, and finally
token-set (Jaccard) similarity. Scoring is a pure function of its inputs.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from claim_extraction.client.response_parser import clean_answer
from claim_extraction.config import get_logger, get_settings
from claim_extraction.schemas import NOT_FOUND, ExpectedType, ModelResult, is_not_found
from claim_extraction.utils import (
    canonical_number,
    jaccard_similarity,
    normalize_date,
    normalize_whitespace,
    parse_number,
)


logger = get_logger(__name__)


_POSITIVE = frozenset({"YES", "TRUE", "Y"})
_NEGATIVE = frozenset({"NO", "FALSE", "N"})


class AgreementMethod(str, Enum):
    """Rule that produced the agreement score."""

    EXACT = "exact"
    BOOLEAN = "boolean"
    NUMERIC = "numeric"
    SIMILARITY = "similarity"
    EMPTY = "empty"


@dataclass(frozen=True, slots=True)
class ConsensusDecision:
    """
    Agreement between two answers for the same field.

    Attributes:
        agreement: Agreement score 0.0-1.0.
        final_answer: Answer carried forward (the first input's unless it is missing).
        method: Rule that produced the score.
        normalized_a: First answer after type normalization.
        normalized_b: Second answer after type normalization.
    """

    agreement: float
    final_answer: str
    method: AgreementMethod
    normalized_a: str = ""
    normalized_b: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "agreement": self.agreement,
            "final_answer": self.final_answer,
            "method": self.method.value,
            "normalized_a": self.normalized_a,
            "normalized_b": self.normalized_b,
        }


class ConsensusEngine:
    """
    Scores agreement between two model answers.

    Rules, in order:
        1. Normalize per expected type (YES/NO, MM-DD-YY, numeric substring).
        2. Identical after normalization: 1.0
        3. Both boolean-like: 1.0 for the same polarity, 0.0 otherwise
        4. Both numeric: 0.9 when the relative difference is under 10%
        5. Otherwise: token-set similarity

    Example:
        engine = ConsensusEngine()
        decision = engine.evaluate("04-11-25", "4/11/2025", ExpectedType.DATE)
        assert decision.agreement == 1.0
    """

    AGREEMENT_THRESHOLD: float = 0.8
    NUMERIC_TOLERANCE: float = 0.1
    NUMERIC_AGREEMENT: float = 0.9
    CONSENSUS_BONUS: float = 0.15
    CONSENSUS_CAP: float = 0.99
    DISAGREEMENT_PENALTY: float = 0.85

    def __init__(
        self,
        agreement_threshold: float | None = None,
        numeric_tolerance: float | None = None,
        numeric_agreement: float | None = None,
        consensus_bonus: float | None = None,
        consensus_cap: float | None = None,
    ) -> None:
        """
        Initialize the engine.

        Args:
            agreement_threshold: Minimum agreement treated as consensus.
            numeric_tolerance: Relative difference under which numbers agree.
            numeric_agreement: Score given to numbers within tolerance.
            consensus_bonus: Confidence bonus when both answers agree.
            consensus_cap: Upper bound on consensus confidence.
        """
        settings = get_settings().consensus

        def pick(value: float | None, default: float) -> float:
            return default if value is None else value

        self.agreement_threshold = pick(agreement_threshold, settings.agreement_threshold)
        self.numeric_tolerance = pick(numeric_tolerance, settings.numeric_tolerance)
        self.numeric_agreement = pick(numeric_agreement, settings.numeric_agreement)
        self.consensus_bonus = pick(consensus_bonus, settings.consensus_bonus)
        self.consensus_cap = pick(consensus_cap, settings.consensus_cap)

    def normalize(self, answer: str | None, expected_type: ExpectedType) -> str:
        """
        Normalize an answer for comparison.

        Returns:
            YES/NO for booleans, MM-DD-YY for dates, the canonical numeric
            substring for numbers, lowercased text otherwise. NOT_FOUND for
            missing answers.
        """
        if is_not_found(answer):
            return NOT_FOUND

        text = normalize_whitespace(answer or "")

        if expected_type == ExpectedType.BOOLEAN:
            return clean_answer(text, ExpectedType.BOOLEAN)
        if expected_type == ExpectedType.DATE:
            return normalize_date(text) or text.lower()
        if expected_type == ExpectedType.NUMBER:
            return canonical_number(text) or text.lower()
        return text.lower()

    def _polarity(self, normalized: str) -> bool | None:
        token = normalized.strip().strip(".!").upper()
        if token in _POSITIVE:
            return True
        if token in _NEGATIVE:
            return False
        return None

    def _numeric_agreement(self, a: str, b: str) -> float | None:
        num_a = parse_number(a)
        num_b = parse_number(b)
        if num_a is None or num_b is None:
            return None

        scale = max(abs(num_a), abs(num_b))
        if scale == 0:
            return 1.0
        if abs(num_a - num_b) / scale < self.numeric_tolerance:
            return self.numeric_agreement
        return None

    def agreement(
        self,
        answer_a: str | None,
        answer_b: str | None,
        expected_type: ExpectedType = ExpectedType.TEXT,
    ) -> float:
        """Agreement score between two answers."""
        return self.evaluate(answer_a, answer_b, expected_type).agreement

    def evaluate(
        self,
        answer_a: str | None,
        answer_b: str | None,
        expected_type: ExpectedType = ExpectedType.TEXT,
    ) -> ConsensusDecision:
        """
        Score agreement between two answers.

        Empty inputs never agree. Two explicit NOT_FOUND answers agree
        (both models report the value absent); NOT_FOUND against a value
        scores 0.0 and carries the value forward.

        Args:
            answer_a: First answer.
            answer_b: Second answer.
            expected_type: Expected answer type.

        Returns:
            ConsensusDecision with the agreement score and carried answer.
        """
        empty_a = not (answer_a or "").strip()
        empty_b = not (answer_b or "").strip()
        if empty_a or empty_b:
            carried = (answer_b if empty_a else answer_a) or ""
            return ConsensusDecision(
                agreement=0.0,
                final_answer=carried.strip() or NOT_FOUND,
                method=AgreementMethod.EMPTY,
            )

        norm_a = self.normalize(answer_a, expected_type)
        norm_b = self.normalize(answer_b, expected_type)

        if norm_a == norm_b:
            return ConsensusDecision(1.0, answer_a, AgreementMethod.EXACT, norm_a, norm_b)

        if norm_a == NOT_FOUND or norm_b == NOT_FOUND:
            carried = answer_b if norm_a == NOT_FOUND else answer_a
            return ConsensusDecision(0.0, carried, AgreementMethod.EMPTY, norm_a, norm_b)

        polarity_a = self._polarity(norm_a)
        polarity_b = self._polarity(norm_b)
        if polarity_a is not None and polarity_b is not None:
            score = 1.0 if polarity_a == polarity_b else 0.0
            return ConsensusDecision(score, answer_a, AgreementMethod.BOOLEAN, norm_a, norm_b)

        numeric = self._numeric_agreement(norm_a, norm_b)
        if numeric is not None:
            return ConsensusDecision(numeric, answer_a, AgreementMethod.NUMERIC, norm_a, norm_b)

        similarity = jaccard_similarity(norm_a, norm_b)
        return ConsensusDecision(
            round(similarity, 6), answer_a, AgreementMethod.SIMILARITY, norm_a, norm_b
        )

    def is_consensus(self, agreement: float) -> bool:
        return agreement >= self.agreement_threshold

    def consensus_confidence(self, confidence_a: float, confidence_b: float) -> float:
        """Confidence of an agreed answer: mean plus bonus, capped."""
        average = (confidence_a + confidence_b) / 2
        return min(self.consensus_cap, average + self.consensus_bonus)

    def disagreement_confidence(self, confidence_a: float, confidence_b: float) -> float:
        """Confidence carried by an unresolved disagreement."""
        return max(confidence_a, confidence_b) * self.DISAGREEMENT_PENALTY

    def compare_results(
        self,
        result_a: ModelResult,
        result_b: ModelResult,
        expected_type: ExpectedType,
    ) -> ConsensusDecision:
        """Score agreement between two model results for the same field."""
        decision = self.evaluate(result_a.raw_response, result_b.raw_response, expected_type)

        logger.debug(
            "consensus_evaluated",
            field_id=result_a.field_id,
            page=result_a.page,
            agreement=decision.agreement,
            method=decision.method.value,
            model_a=result_a.model_id,
            model_b=result_b.model_id,
        )
        return decision


def evaluate_consensus(
    answer_a: str | None,
    answer_b: str | None,
    expected_type: ExpectedType = ExpectedType.TEXT,
) -> ConsensusDecision:
    """
    Score agreement between two answers.

    Convenience function for one-off comparisons without creating an
    engine instance.

    Example:
        decision = evaluate_consensus("YES", "yes", ExpectedType.BOOLEAN)
        print(f"Agreement: {decision.agreement:.0%}")
    """
    return ConsensusEngine().evaluate(answer_a, answer_b, expected_type)
