"""
Judge arbitration for low-agreement answers.

When two models disagree, a third, more capable model sees both answers,
the question and a bounded document excerpt, and picks A, B or a
synthesized answer. Any judge failure degrades deterministically to the
higher-confidence original answer at a discounted confidence.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence

from claim_extraction.client.errors import ModelAdapterError
from claim_extraction.client.model_adapter import AdapterRequest, ModelAdapter
from claim_extraction.client.response_parser import clean_answer, extract_json
from claim_extraction.config import get_logger, get_settings
from claim_extraction.prompts import (
    build_judge_prompt,
    build_judge_system_prompt,
    build_reanalysis_prompt,
)
from claim_extraction.schemas import (
    ConsolidatedAnswer,
    ConsolidatedRequest,
    DocumentContent,
    ExpectedType,
    ModelResult,
)
from claim_extraction.utils import truncate_text
from claim_extraction.validation.consensus import ConsensusEngine
from claim_extraction.validation.progressive_combiner import RankedPass


logger = get_logger(__name__)


class JudgeSelection(str, Enum):
    """Which answer the arbitration kept."""

    A = "A"
    B = "B"
    SYNTHESIZED = "synthesized"
    CONSENSUS = "consensus"
    FALLBACK = "fallback"


@dataclass(frozen=True, slots=True)
class JudgeDecision:
    """
    Outcome of one arbitration.

    Attributes:
        final_answer: Answer that becomes final.
        confidence: Confidence of the final answer.
        reasoning: Judge's explanation (or the fallback reason).
        selection: Which answer was kept.
        discrepancy_analysis: Judge's account of why the models disagreed.
    """

    final_answer: str
    confidence: float
    reasoning: str
    selection: JudgeSelection
    discrepancy_analysis: str = ""

    @property
    def is_fallback(self) -> bool:
        return self.selection == JudgeSelection.FALLBACK

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "final_answer": self.final_answer,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "selection": self.selection.value,
            "discrepancy_analysis": self.discrepancy_analysis,
        }


@dataclass(frozen=True, slots=True)
class Discrepancy:
    """A disagreement that reached the judge."""

    field_id: str
    answer_a: str
    answer_b: str
    decision: str


@dataclass(slots=True)
class ErrorPatternReport:
    """Discrepancy counts by field kind, with flagged patterns."""

    counts: dict[str, int] = field(default_factory=dict)
    patterns: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "counts": self.counts,
            "patterns": self.patterns,
            "recommendations": self.recommendations,
        }


def field_kind(field_id: str) -> str:
    """Coarse kind of a field, used to group discrepancies."""
    lowered = field_id.lower()
    if "sign" in lowered:
        return "signature"
    if "date" in lowered:
        return "date"
    if "amount" in lowered or "number" in lowered:
        return "numeric"
    if "address" in lowered or "street" in lowered:
        return "address"
    return "other"


class JudgeArbitrator:
    """
    Third-model arbitration between two disagreeing answers.

    Example:
        judge = JudgeArbitrator(judge_adapter)
        if judge.should_arbitrate(decision.agreement):
            verdict = await judge.arbitrate(field, result_a, result_b, context)
    """

    CONTEXT_CHARS: int = 3000
    DEFAULT_CONFIDENCE: float = 0.85
    FALLBACK_DISCOUNT: float = 0.8
    ERROR_PATTERN_THRESHOLD: int = 2

    def __init__(
        self,
        adapter: ModelAdapter,
        consensus: ConsensusEngine | None = None,
        context_chars: int | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        default_confidence: float | None = None,
        fallback_discount: float | None = None,
        error_pattern_threshold: int | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        """
        Initialize the arbitrator.

        Args:
            adapter: Judge model adapter.
            consensus: Engine used for the agreement threshold and shortcut.
            context_chars: Maximum document excerpt length.
            temperature: Judge sampling temperature.
            max_tokens: Judge response token cap.
            default_confidence: Confidence used when the judge states none.
            fallback_discount: Multiplier applied to the fallback answer.
            error_pattern_threshold: Discrepancies per kind before flagging.
            timeout_seconds: Budget for one judge call.
        """
        settings = get_settings()
        judge = settings.judge

        self.adapter = adapter
        self.consensus = consensus or ConsensusEngine()
        self.context_chars = context_chars if context_chars is not None else judge.context_chars
        self.temperature = temperature if temperature is not None else judge.temperature
        self.max_tokens = max_tokens or judge.max_tokens
        self.default_confidence = (
            default_confidence if default_confidence is not None else judge.default_confidence
        )
        self.fallback_discount = (
            fallback_discount if fallback_discount is not None else judge.fallback_discount
        )
        self.error_pattern_threshold = (
            error_pattern_threshold
            if error_pattern_threshold is not None
            else judge.error_pattern_threshold
        )
        self.timeout_seconds = timeout_seconds or float(settings.model.timeout)

    def should_arbitrate(self, agreement: float) -> bool:
        return not self.consensus.is_consensus(agreement)

    async def _call(self, request: AdapterRequest) -> str:
        response = await asyncio.wait_for(
            self.adapter.analyze(request), timeout=self.timeout_seconds
        )
        return response.response

    async def arbitrate(
        self,
        question: str,
        field_id: str,
        expected_type: ExpectedType,
        result_a: ModelResult,
        result_b: ModelResult,
        context: str = "",
    ) -> JudgeDecision:
        """
        Resolve a disagreement between two results.

        Never raises for judge failures; those produce a fallback decision.

        Args:
            question: Original question.
            field_id: Field being evaluated.
            expected_type: Expected answer type.
            result_a: First model's result.
            result_b: Second model's result.
            context: Document text; truncated to the context budget.

        Returns:
            JudgeDecision that becomes the final answer.
        """
        norm_a = self.consensus.normalize(result_a.raw_response, expected_type)
        norm_b = self.consensus.normalize(result_b.raw_response, expected_type)
        if norm_a == norm_b:
            return JudgeDecision(
                final_answer=result_a.raw_response,
                confidence=self.consensus.consensus_confidence(
                    result_a.confidence, result_b.confidence
                ),
                reasoning="Both models reached the same conclusion independently",
                selection=JudgeSelection.CONSENSUS,
            )

        logger.warning(
            "judge_invoked",
            field_id=field_id,
            model_a=result_a.model_id,
            model_b=result_b.model_id,
        )

        prompt = build_judge_prompt(
            context=truncate_text(context or "", self.context_chars, word_boundary=False),
            question=question,
            field_id=field_id,
            expected_type=expected_type,
            answer_a=result_a.raw_response,
            confidence_a=result_a.confidence,
            model_a=result_a.model_id,
            answer_b=result_b.raw_response,
            confidence_b=result_b.confidence,
            model_b=result_b.model_id,
        )
        request = AdapterRequest(
            prompt=prompt,
            content=DocumentContent(),
            expected_type=ExpectedType.JSON,
            field_id=field_id,
            system_prompt=build_judge_system_prompt(expected_type),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )

        try:
            raw = await self._call(request)
        except (ModelAdapterError, asyncio.TimeoutError) as e:
            logger.error(
                "judge_call_failed",
                field_id=field_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return self.fallback(result_a, result_b)

        decision = self._parse_decision(raw, result_a, result_b, expected_type)
        if decision is None:
            logger.warning("judge_output_unparseable", field_id=field_id, preview=raw[:200])
            return self.fallback(result_a, result_b)

        logger.info(
            "judge_decided",
            field_id=field_id,
            selection=decision.selection.value,
            confidence=decision.confidence,
        )
        return decision

    def _parse_decision(
        self,
        raw: str,
        result_a: ModelResult,
        result_b: ModelResult,
        expected_type: ExpectedType,
    ) -> JudgeDecision | None:
        payload = extract_json(raw)
        if not isinstance(payload, dict):
            return None

        verdict = str(payload.get("decision", "")).strip().upper()
        if verdict == "A":
            final_answer, selection = result_a.raw_response, JudgeSelection.A
        elif verdict == "B":
            final_answer, selection = result_b.raw_response, JudgeSelection.B
        elif verdict == "SYNTHESIZE":
            synthesized = str(payload.get("correct_answer") or "")
            final_answer = clean_answer(synthesized, expected_type)
            selection = JudgeSelection.SYNTHESIZED
        else:
            return None

        stated = payload.get("confidence")
        try:
            confidence = self.default_confidence if stated is None else float(stated)
        except (TypeError, ValueError):
            confidence = self.default_confidence

        return JudgeDecision(
            final_answer=final_answer,
            confidence=max(0.0, min(1.0, confidence)),
            reasoning=str(payload.get("reasoning") or ""),
            selection=selection,
            discrepancy_analysis=str(payload.get("discrepancy_analysis") or ""),
        )

    def fallback(self, result_a: ModelResult, result_b: ModelResult) -> JudgeDecision:
        """Keep the higher-confidence answer at a discounted confidence."""
        use_b = result_b.confidence > result_a.confidence
        chosen = result_b if use_b else result_a
        return JudgeDecision(
            final_answer=chosen.raw_response,
            confidence=round(chosen.confidence * self.fallback_discount, 6),
            reasoning="Fallback: selected answer with higher confidence",
            selection=JudgeSelection.FALLBACK,
            discrepancy_analysis="Judge unavailable - used confidence-based selection",
        )

    async def reanalyze_consolidated(
        self,
        request: ConsolidatedRequest,
        current: ConsolidatedAnswer,
        content: DocumentContent,
        rank: int,
    ) -> RankedPass | None:
        """
        Force a reanalysis of a consolidated answer with too many gaps.

        Args:
            request: Consolidated request.
            current: Current combined answer.
            content: Document content to re-examine.
            rank: Rank assigned to the resulting pass.

        Returns:
            RankedPass from the judge model, or None if the call failed.
        """
        logger.info(
            "forced_reanalysis_started",
            field_id=request.field_id,
            not_found_rate=round(current.not_found_rate, 3),
        )

        adapter_request = AdapterRequest(
            prompt=build_reanalysis_prompt(request, current.values),
            content=content,
            expected_type=ExpectedType.TEXT,
            field_id=request.field_id,
            system_prompt=build_judge_system_prompt(ExpectedType.TEXT),
            max_tokens=max(self.max_tokens, 100 + 40 * request.field_count),
            temperature=self.temperature,
        )

        try:
            response = await asyncio.wait_for(
                self.adapter.analyze(adapter_request), timeout=self.timeout_seconds
            )
        except (ModelAdapterError, asyncio.TimeoutError) as e:
            logger.error(
                "forced_reanalysis_failed",
                field_id=request.field_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        return RankedPass.from_response(
            name="reanalysis",
            rank=rank,
            raw_response=response.response,
            request=request,
            confidence=response.confidence,
        )

    def analyze_error_patterns(self, discrepancies: Sequence[Discrepancy]) -> ErrorPatternReport:
        """
        Group discrepancies by field kind and flag frequent kinds.

        A kind is flagged when it has more discrepancies than the threshold.
        """
        report = ErrorPatternReport()
        for discrepancy in discrepancies:
            kind = field_kind(discrepancy.field_id)
            report.counts[kind] = report.counts.get(kind, 0) + 1

        for kind, count in sorted(report.counts.items()):
            if count > self.error_pattern_threshold:
                report.patterns.append(f"High discrepancy rate in {kind} fields ({count} cases)")

        if "signature" in {k for k, c in report.counts.items() if c > self.error_pattern_threshold}:
            report.recommendations.append("Consider always using visual analysis for signature fields")
        if "date" in {k for k, c in report.counts.items() if c > self.error_pattern_threshold}:
            report.recommendations.append("Review date extraction prompts for clarity")

        if report.patterns:
            logger.warning("error_patterns_detected", patterns=report.patterns)
        return report
