"""
Extraction orchestrator for claim documents.

Sequences one document run:
- Profile the document and select a strategy plan
- Walk the strategy fallback chain until every field is resolved
- Run two independent models per page or pass and score their agreement
- Escalate disagreements to the judge and gappy consolidated answers to
  progressive reanalysis
- Resolve anything still unanswered to NOT_FOUND with minimal confidence

The orchestrator never raises for a field: the returned report always
holds one answer per requested field id.
"""

import asyncio
import time
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Awaitable, Callable, Sequence, TypeVar

from claim_extraction.client import (
    AdapterRequest,
    AdapterResponse,
    AdapterTimeoutError,
    EmbeddingClient,
    ModelAdapter,
    ModelAdapterError,
    OpenAIModelAdapter,
    parse_consolidated,
    parse_response,
)
from claim_extraction.config import get_logger, get_settings
from claim_extraction.extraction.field_classifier import (
    FieldClassifier,
    FieldGroup,
    GroupPolicy,
    is_comprehensive_field,
)
from claim_extraction.extraction.page_targeting import PageTargeter
from claim_extraction.extraction.strategy import Strategy, StrategyPlan, StrategySelector
from claim_extraction.preprocessing import PDFDocument
from claim_extraction.prompts import (
    EXTRACTION_SYSTEM_PROMPT,
    build_consolidated_prompt,
    build_field_prompt,
    build_subset_prompt,
)
from claim_extraction.retrieval import RetrievalError, RetrievalPipeline
from claim_extraction.schemas import (
    NOT_FOUND,
    ConsolidatedAnswer,
    ConsolidatedRequest,
    DocumentContent,
    DocumentProfile,
    DocumentSource,
    ExpectedType,
    ExtractionMethod,
    ExtractionReport,
    FieldAnswer,
    FieldRequest,
    ModelResult,
    PageMapping,
    ProcessingMode,
    is_not_found,
)
from claim_extraction.validation import (
    ConsensusEngine,
    Discrepancy,
    JudgeArbitrator,
    ProgressiveCombiner,
    RankedPass,
)


logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")

# Runner output: resolved field answers and consolidated answers
RunnerResult = tuple[dict[str, FieldAnswer], dict[str, ConsolidatedAnswer]]


@dataclass(slots=True)
class _RunState:
    """Mutable bookkeeping for one document run."""

    source: DocumentSource
    profile: DocumentProfile
    plan: StrategyPlan
    discrepancies: list[Discrepancy] = field(default_factory=list)
    reanalysis_triggered: bool = False


class ExtractionOrchestrator:
    """
    Runs field extraction for one document at a time.

    Two models answer every question independently. Agreeing answers get a
    consensus confidence; disagreeing answers go to the judge. Consolidated
    requests are folded pass by pass through the progressive combiner and
    reanalyzed while too many values are missing.

    Example:
        orchestrator = ExtractionOrchestrator(primary, secondary, judge=judge)
        report = await orchestrator.extract(document, fields, consolidated)
        for field_id, answer in report.answers.items():
            print(field_id, answer.value, answer.confidence)
    """

    def __init__(
        self,
        primary: ModelAdapter,
        secondary: ModelAdapter,
        judge: ModelAdapter | None = None,
        retrieval: RetrievalPipeline | None = None,
        selector: StrategySelector | None = None,
        targeter: PageTargeter | None = None,
        classifier: FieldClassifier | None = None,
        consensus: ConsensusEngine | None = None,
        combiner: ProgressiveCombiner | None = None,
        arbitrator: JudgeArbitrator | None = None,
        batch_delay_seconds: float | None = None,
        split_delay_seconds: float | None = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            primary: First extraction model.
            secondary: Second, independent extraction model.
            judge: Arbitration model. The primary model judges if omitted.
            retrieval: Pipeline for the retrieval-augmented strategy. That
                strategy fails over to the next one when omitted.
            selector: Strategy selector.
            targeter: Page targeter. Uses the primary model for page
                classification if omitted.
            classifier: Field classifier.
            consensus: Agreement scorer.
            combiner: Progressive combiner for consolidated requests.
            arbitrator: Judge arbitrator. Built on the judge model if omitted.
            batch_delay_seconds: Pause between field batches.
            split_delay_seconds: Pause between groups of page splits.
        """
        settings = get_settings()

        self.primary = primary
        self.secondary = secondary
        self.retrieval = retrieval
        self.selector = selector or StrategySelector()
        self.targeter = targeter or PageTargeter(adapter=primary)
        self.classifier = classifier or FieldClassifier()
        self.consensus = consensus or ConsensusEngine()
        self.combiner = combiner or ProgressiveCombiner()
        self.arbitrator = arbitrator or JudgeArbitrator(judge or primary, consensus=self.consensus)
        self.batch_delay = (
            batch_delay_seconds
            if batch_delay_seconds is not None
            else settings.extraction.batch_delay_seconds
        )
        self.split_delay = (
            split_delay_seconds
            if split_delay_seconds is not None
            else settings.strategy.split_delay_seconds
        )
        self.max_parallel_splits = settings.strategy.max_parallel_splits
        self.total_failure_confidence = settings.extraction.total_failure_confidence
        self.not_located_confidence = settings.extraction.not_located_confidence

        self._runners: dict[
            Strategy,
            Callable[
                [_RunState, list[FieldRequest], list[ConsolidatedRequest]],
                Awaitable[RunnerResult],
            ],
        ] = {
            Strategy.DIRECT: self._run_direct,
            Strategy.TARGETED_VISION: self._run_targeted_vision,
            Strategy.PAGE_SPLIT: self._run_page_split,
            Strategy.RETRIEVAL_AUGMENTED: self._run_retrieval,
        }

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def extract(
        self,
        source: DocumentSource,
        fields: Sequence[FieldRequest],
        consolidated: Sequence[ConsolidatedRequest] = (),
    ) -> ExtractionReport:
        """
        Extract every requested field from a document.

        Args:
            source: Document to process.
            fields: Individual field requests.
            consolidated: Multi-field requests answered as one delimited string.

        Returns:
            ExtractionReport with one answer per requested field id.
        """
        start_time = time.perf_counter()
        profile = source.profile()
        plan = self.selector.select(profile)
        run = _RunState(source=source, profile=profile, plan=plan)

        logger.info(
            "extraction_started",
            file_name=profile.file_name,
            fields=len(fields),
            consolidated=len(consolidated),
            strategy=plan.strategy.value,
        )

        answers: dict[str, FieldAnswer] = {}
        combined: dict[str, ConsolidatedAnswer] = {}
        pending_fields = list(fields)
        pending_requests = list(consolidated)
        attempted: list[str] = []
        resolved_by = ""

        for strategy in self.selector.fallback_chain(plan.strategy):
            if not pending_fields and not pending_requests:
                break
            attempted.append(strategy.value)

            try:
                new_answers, new_combined = await self._runners[strategy](
                    run, pending_fields, pending_requests
                )
            except Exception as e:
                logger.error(
                    "strategy_failed",
                    strategy=strategy.value,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            answers.update(new_answers)
            combined.update(new_combined)
            if (new_answers or new_combined) and not resolved_by:
                resolved_by = strategy.value

            pending_fields = [f for f in pending_fields if f.field_id not in answers]
            pending_requests = [r for r in pending_requests if r.field_id not in combined]
            logger.info(
                "strategy_completed",
                strategy=strategy.value,
                resolved=len(new_answers) + len(new_combined),
                pending=len(pending_fields) + len(pending_requests),
            )

        if pending_fields or pending_requests:
            logger.warning(
                "fields_unresolved",
                fields=[f.field_id for f in pending_fields],
                consolidated=[r.field_id for r in pending_requests],
            )
        for pending in pending_fields:
            answers[pending.field_id] = self._heuristic_answer(pending)
        for request in pending_requests:
            combined[request.field_id] = self._heuristic_consolidated(request)

        report = ExtractionReport(
            strategy=resolved_by or ExtractionMethod.HEURISTIC.value,
            attempted_strategies=attempted,
            reanalysis_triggered=run.reanalysis_triggered,
            profile=profile,
            plan=plan.to_dict(),
            error_patterns=self.arbitrator.analyze_error_patterns(run.discrepancies).to_dict(),
        )
        for request_field in fields:
            report.answers[request_field.field_id] = answers[request_field.field_id]
        for request in consolidated:
            answer = combined[request.field_id]
            report.consolidated[request.field_id] = answer
            report.answers[request.field_id] = FieldAnswer(
                field_id=request.field_id,
                value=answer.to_wire(),
                confidence=answer.confidence,
                method=ExtractionMethod.COMBINED,
                notes=f"{len(answer.values)} values",
            )
        report.processing_time_ms = int((time.perf_counter() - start_time) * 1000)

        logger.info(
            "extraction_completed",
            file_name=profile.file_name,
            strategy=report.strategy,
            attempted=attempted,
            overall_confidence=round(report.overall_confidence, 3),
            reanalysis_triggered=report.reanalysis_triggered,
            duration_ms=report.processing_time_ms,
        )
        return report

    # ------------------------------------------------------------------
    # Model calls
    # ------------------------------------------------------------------

    async def _analyze(
        self,
        adapter: ModelAdapter,
        request: AdapterRequest,
        timeout: float,
    ) -> AdapterResponse | None:
        """One adapter call under a caller-side timeout; None on any adapter failure."""
        try:
            try:
                return await asyncio.wait_for(adapter.analyze(request), timeout=timeout)
            except asyncio.TimeoutError as e:
                raise AdapterTimeoutError(
                    f"Call exceeded {timeout:.0f}s", model_id=adapter.model_id
                ) from e
        except ModelAdapterError as e:
            logger.warning(
                "model_call_failed",
                model=adapter.model_id,
                field_id=request.field_id,
                page=request.page_number,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    async def _call_model(
        self,
        adapter: ModelAdapter,
        request: AdapterRequest,
        timeout: float,
    ) -> ModelResult | None:
        response = await self._analyze(adapter, request, timeout)
        if response is None:
            return None

        method = (
            ExtractionMethod.VISION
            if request.content.has_images
            else ExtractionMethod.TEXT
            if request.content.text
            else ExtractionMethod.DOCUMENT
        )
        parsed = parse_response(response.response, request.expected_type)
        return ModelResult(
            field_id=request.field_id,
            page=request.page_number,
            raw_response=parsed.answer,
            confidence=response.confidence,
            model_id=response.model_id,
            method=method,
            tokens_used=response.tokens_used,
            elapsed_ms=response.elapsed_ms,
        )

    async def _dual_extract(
        self,
        run: _RunState,
        request_field: FieldRequest,
        content: DocumentContent,
        page: int | None,
        timeout: float,
    ) -> FieldAnswer | None:
        """
        Ask both models the same question and reconcile their answers.

        Returns:
            FieldAnswer for this content, or None when both calls failed.
        """
        request = AdapterRequest(
            prompt=build_field_prompt(
                request_field,
                page_number=page,
                total_pages=run.profile.page_count,
                visual=content.has_images,
            ),
            content=content,
            expected_type=request_field.expected_type,
            field_id=request_field.field_id,
            page_number=page,
            system_prompt=EXTRACTION_SYSTEM_PROMPT,
        )
        result_a, result_b = await asyncio.gather(
            self._call_model(self.primary, request, timeout),
            self._call_model(self.secondary, request, timeout),
        )
        pages = (page,) if page is not None else content.pages

        if result_a is None and result_b is None:
            return None
        if result_a is None or result_b is None:
            single = result_a or result_b
            return FieldAnswer(
                field_id=request_field.field_id,
                value=single.raw_response,
                confidence=single.confidence,
                method=single.method,
                pages=pages,
                notes=f"single model ({single.model_id})",
            )

        decision = self.consensus.compare_results(result_a, result_b, request_field.expected_type)
        if self.consensus.is_consensus(decision.agreement):
            return FieldAnswer(
                field_id=request_field.field_id,
                value=decision.final_answer,
                confidence=self.consensus.consensus_confidence(
                    result_a.confidence, result_b.confidence
                ),
                method=ExtractionMethod.CONSENSUS,
                pages=pages,
                agreement=decision.agreement,
            )

        verdict = await self.arbitrator.arbitrate(
            request_field.question,
            request_field.field_id,
            request_field.expected_type,
            result_a,
            result_b,
            context=content.text or "",
        )
        run.discrepancies.append(
            Discrepancy(
                field_id=request_field.field_id,
                answer_a=result_a.raw_response,
                answer_b=result_b.raw_response,
                decision=verdict.final_answer,
            )
        )
        return FieldAnswer(
            field_id=request_field.field_id,
            value=verdict.final_answer,
            confidence=verdict.confidence,
            method=ExtractionMethod.JUDGE,
            pages=pages,
            agreement=decision.agreement,
            judged=True,
            notes=f"judge: {verdict.selection.value}",
        )

    def _is_yes(self, value: str) -> bool:
        return self.consensus.normalize(value, ExpectedType.BOOLEAN) == "YES"

    def best_answer(
        self,
        request_field: FieldRequest,
        outcomes: Sequence[FieldAnswer],
        pages_examined: Sequence[int] = (),
    ) -> FieldAnswer:
        """
        Pick the final answer among per-page (or per-split) answers.

        A YES beats NO for booleans; otherwise the most confident located
        value wins, earlier pages first on ties. When every page answered
        NOT_FOUND the field is not located.
        """
        examined = tuple(dict.fromkeys(pages_examined)) or tuple(
            dict.fromkeys(p for o in outcomes for p in o.pages)
        )
        judged = any(o.judged for o in outcomes)
        located = [o for o in outcomes if not o.is_not_found]

        if not located:
            return FieldAnswer(
                field_id=request_field.field_id,
                value=NOT_FOUND,
                confidence=self.not_located_confidence,
                method=outcomes[0].method if outcomes else ExtractionMethod.HEURISTIC,
                pages=examined,
                judged=judged,
                notes="not located on examined pages",
            )

        pool = located
        if request_field.expected_type == ExpectedType.BOOLEAN:
            pool = [o for o in located if self._is_yes(o.value)] or located
        best = max(pool, key=lambda o: o.confidence)
        source_pages = ",".join(str(p) for p in best.pages)
        notes = f"{best.notes}; " if best.notes else ""
        return replace(
            best,
            pages=examined,
            judged=judged,
            notes=f"{notes}answered from page(s) {source_pages}" if source_pages else best.notes,
        )

    # ------------------------------------------------------------------
    # Consolidated requests
    # ------------------------------------------------------------------

    def _consolidated_request(
        self,
        request: ConsolidatedRequest,
        prompt: str,
        content: DocumentContent,
        field_count: int,
    ) -> AdapterRequest:
        return AdapterRequest(
            prompt=prompt,
            content=content,
            expected_type=ExpectedType.TEXT,
            field_id=request.field_id,
            system_prompt=EXTRACTION_SYSTEM_PROMPT,
            max_tokens=100 + 40 * field_count,
        )

    def pass_agreement(
        self,
        request: ConsolidatedRequest,
        pass_a: RankedPass,
        pass_b: RankedPass,
    ) -> float:
        """Mean per-field agreement between two passes over the same request."""
        if not request.expected_fields:
            return 1.0
        scores = [
            self.consensus.agreement(value_a, value_b, sub_field.expected_type)
            for sub_field, value_a, value_b in zip(
                request.expected_fields, pass_a.values, pass_b.values
            )
        ]
        return sum(scores) / len(scores)

    def subset_pass(
        self,
        request: ConsolidatedRequest,
        missing: Sequence[int],
        raw_response: str,
        confidence: float,
        rank: int,
    ) -> RankedPass:
        """Spread a subset answer back onto the full field list."""
        subset = [request.expected_fields[i] for i in missing]
        subset_values = parse_consolidated(raw_response, subset)
        values = [NOT_FOUND] * request.field_count
        confidences = [0.0] * request.field_count
        for index, value in zip(missing, subset_values):
            values[index] = value
            confidences[index] = confidence
        return RankedPass(
            name="subset",
            rank=rank,
            values=tuple(values),
            confidences=tuple(confidences),
        )

    async def _original_passes(
        self,
        request: ConsolidatedRequest,
        content: DocumentContent,
        timeout: float,
    ) -> list[RankedPass]:
        adapter_request = self._consolidated_request(
            request, build_consolidated_prompt(request), content, request.field_count
        )
        response_a, response_b = await asyncio.gather(
            self._analyze(self.primary, adapter_request, timeout),
            self._analyze(self.secondary, adapter_request, timeout),
        )
        passes = []
        for name, rank, response in (
            ("original", 0, response_a),
            ("original_secondary", 1, response_b),
        ):
            if response is not None:
                passes.append(
                    RankedPass.from_response(name, rank, response.response, request, response.confidence)
                )
        return passes

    async def _consolidate(
        self,
        run: _RunState,
        request: ConsolidatedRequest,
        content: DocumentContent,
        timeout: float,
        passes: list[RankedPass] | None = None,
    ) -> ConsolidatedAnswer | None:
        """
        Answer a consolidated request with progressive reanalysis.

        The two models answer first. Too many NOT_FOUND values or low
        agreement between them triggers an enhanced-prompt pass, a pass
        over only the missing fields, and one forced judge reanalysis
        seeded with the values found so far.

        Returns:
            Combined answer, or None when no model answered at all.
        """
        if passes is None:
            passes = await self._original_passes(request, content, timeout)
        if not passes:
            return None

        current = self.combiner.combine(request, passes)
        agreement = (
            self.pass_agreement(request, passes[0], passes[1]) if len(passes) > 1 else None
        )
        low_agreement = agreement is not None and not self.consensus.is_consensus(agreement)
        if not self.combiner.needs_reanalysis(current) and not low_agreement:
            return current

        run.reanalysis_triggered = True
        logger.info(
            "consolidated_reanalysis_triggered",
            field_id=request.field_id,
            not_found_rate=round(current.not_found_rate, 3),
            agreement=round(agreement, 3) if agreement is not None else None,
        )

        enhanced = await self._analyze(
            self.primary,
            self._consolidated_request(
                request, build_consolidated_prompt(request, enhanced=True), content, request.field_count
            ),
            timeout,
        )
        if enhanced is not None:
            passes.append(
                RankedPass.from_response("enhanced", 2, enhanced.response, request, enhanced.confidence)
            )
            current = self.combiner.combine(request, passes)

        missing = [i for i, value in enumerate(current.values) if is_not_found(value)]
        if missing:
            subset = [request.expected_fields[i] for i in missing]
            subset_response = await self._analyze(
                self.primary,
                self._consolidated_request(
                    request, build_subset_prompt(request, subset), content, len(subset)
                ),
                timeout,
            )
            if subset_response is not None:
                passes.append(
                    self.subset_pass(
                        request, missing, subset_response.response, subset_response.confidence, 3
                    )
                )
                current = self.combiner.combine(request, passes)

        reanalysis = await self.arbitrator.reanalyze_consolidated(request, current, content, rank=4)
        if reanalysis is not None:
            current = self.combiner.combine(
                request,
                [reanalysis],
                retained=list(zip(current.values, current.confidences)),
            )
        return current

    # ------------------------------------------------------------------
    # Batching
    # ------------------------------------------------------------------

    async def _in_batches(
        self,
        items: Sequence[T],
        concurrency: int,
        worker: Callable[[T], Awaitable[R]],
        delay: float,
    ) -> list[tuple[T, R | None]]:
        """
        Run a worker over items in fixed-size concurrent batches.

        A failed item yields None; the rest of its batch is unaffected.
        """
        results: list[tuple[T, R | None]] = []
        size = max(1, concurrency)
        for start in range(0, len(items), size):
            if start and delay > 0:
                await asyncio.sleep(delay)
            batch = items[start : start + size]
            outcomes = await asyncio.gather(*(worker(item) for item in batch), return_exceptions=True)
            for item, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    logger.error(
                        "batch_item_failed",
                        item=getattr(item, "field_id", str(item)),
                        error=str(outcome),
                        error_type=type(outcome).__name__,
                    )
                    results.append((item, None))
                else:
                    results.append((item, outcome))
        return results

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _text_content(self, source: DocumentSource, profile: DocumentProfile) -> DocumentContent | None:
        sections = [
            f"--- Page {number} ---\n{text.strip()}"
            for number, text in enumerate(source.page_texts(), 1)
            if text.strip()
        ]
        if not sections:
            return None
        return DocumentContent(
            text="\n\n".join(sections),
            file_name=profile.file_name,
            pages=tuple(range(1, source.page_count + 1)),
        )

    async def _run_direct(
        self,
        run: _RunState,
        fields: list[FieldRequest],
        requests: list[ConsolidatedRequest],
    ) -> RunnerResult:
        """Whole document in one call per field: extracted text, else the PDF itself."""
        content = None if run.plan.scan_only else self._text_content(run.source, run.profile)
        if content is None:
            content = run.source.document_content()
        timeout = run.plan.timeout_seconds
        policy = self.classifier.policy(FieldGroup.SIMPLE)

        async def answer_field(request_field: FieldRequest) -> FieldAnswer | None:
            outcome = await self._dual_extract(run, request_field, content, None, timeout)
            return self.best_answer(request_field, [outcome]) if outcome else None

        answered = await self._in_batches(fields, policy.concurrency, answer_field, self.batch_delay)
        combined = await self._in_batches(
            requests,
            1,
            lambda request: self._consolidate(run, request, content, timeout),
            self.batch_delay,
        )
        return (
            {f.field_id: a for f, a in answered if a is not None},
            {r.field_id: c for r, c in combined if c is not None},
        )

    async def _scan_field(
        self,
        run: _RunState,
        request_field: FieldRequest,
        mapping: PageMapping,
        policy: GroupPolicy,
    ) -> FieldAnswer | None:
        """
        Examine a field's target pages one at a time.

        Boolean signature fields stop at the first confident YES; every
        other field examines its whole page budget.
        """
        mode = self.classifier.processing_mode(request_field)
        early_exit = policy.early_exit and self.classifier.allows_early_exit(request_field)
        threshold = self.classifier.early_exit_threshold(request_field)
        pages = list(mapping.target_pages[: policy.max_pages])

        outcomes: list[FieldAnswer] = []
        examined: list[int] = []
        for page in pages:
            try:
                content = await run.source.page_content(page, mode)
            except Exception as e:
                logger.warning(
                    "page_content_failed",
                    field_id=request_field.field_id,
                    page=page,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            outcome = await self._dual_extract(
                run, request_field, content, page, run.plan.page_timeout_seconds
            )
            examined.append(page)
            if outcome is None:
                continue
            outcomes.append(outcome)

            if early_exit and self._is_yes(outcome.value) and outcome.confidence >= threshold:
                logger.info(
                    "early_exit",
                    field_id=request_field.field_id,
                    page=page,
                    confidence=outcome.confidence,
                    skipped=len(pages) - len(examined),
                )
                break

        if not outcomes:
            return None
        return self.best_answer(request_field, outcomes, examined)

    async def _run_targeted_vision(
        self,
        run: _RunState,
        fields: list[FieldRequest],
        requests: list[ConsolidatedRequest],
    ) -> RunnerResult:
        """Page targeting, then per-group batched page scans."""
        sub_fields = [sub for request in requests for sub in request.expected_fields]
        mappings = await self.targeter.map_fields(run.source, [*fields, *sub_fields])

        groups = self.classifier.partition(
            fields, {field_id: len(m.target_pages) for field_id, m in mappings.items()}
        )
        answers: dict[str, FieldAnswer] = {}
        for group in (FieldGroup.SIGNATURE, FieldGroup.SIMPLE, FieldGroup.COMPLEX, FieldGroup.COMPREHENSIVE):
            members = groups[group]
            if not members:
                continue
            policy = self.classifier.policy(group)
            results = await self._in_batches(
                members,
                policy.concurrency,
                lambda f, p=policy: self._scan_field(run, f, mappings[f.field_id], p),
                self.batch_delay,
            )
            answers.update({f.field_id: a for f, a in results if a is not None})

        combined: dict[str, ConsolidatedAnswer] = {}
        budget = self.classifier.policy(FieldGroup.COMPREHENSIVE).max_pages
        for request in requests:
            pages = list(
                dict.fromkeys(
                    page
                    for sub in request.expected_fields
                    for page in mappings[sub.field_id].target_pages
                )
            )[:budget] or [1]
            try:
                content = await run.source.pages_content(sorted(pages), ProcessingMode.DUAL)
            except Exception as e:
                logger.warning(
                    "consolidated_content_failed",
                    field_id=request.field_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue
            answer = await self._consolidate(run, request, content, run.plan.timeout_seconds)
            if answer is not None:
                combined[request.field_id] = answer

        return answers, combined

    def split_ranges(self, plan: StrategyPlan, page_count: int) -> list[tuple[int, int]]:
        """Inclusive page ranges covering every page, none longer than the page cap."""
        size = max(1, min(plan.pages_per_split, plan.page_cap))
        return [
            (first, min(first + size - 1, page_count))
            for first in range(1, page_count + 1, size)
        ]

    async def _process_split(
        self,
        run: _RunState,
        page_range: tuple[int, int],
        fields: list[FieldRequest],
        requests: list[ConsolidatedRequest],
    ) -> tuple[dict[str, FieldAnswer], dict[str, list[RankedPass]]]:
        first, last = page_range
        content = await run.source.range_content(first, last)
        timeout = run.plan.timeout_seconds

        async def answer_field(request_field: FieldRequest) -> FieldAnswer | None:
            return await self._dual_extract(run, request_field, content, None, timeout)

        policy = self.classifier.policy(FieldGroup.SIMPLE)
        answered = await self._in_batches(fields, policy.concurrency, answer_field, 0.0)
        passes = {
            request.field_id: await self._original_passes(request, content, timeout)
            for request in requests
        }
        logger.debug("split_processed", first_page=first, last_page=last)
        return {f.field_id: a for f, a in answered if a is not None}, passes

    async def _run_page_split(
        self,
        run: _RunState,
        fields: list[FieldRequest],
        requests: list[ConsolidatedRequest],
    ) -> RunnerResult:
        """
        Independent page-range sub-documents, merged across splits.

        Splits run a few at a time with a pause between groups; a failed
        split is skipped.
        """
        ranges = self.split_ranges(run.plan, run.profile.page_count)
        if not ranges:
            raise ValueError("Document has no pages to split")

        results = await self._in_batches(
            ranges,
            self.max_parallel_splits,
            lambda page_range: self._process_split(run, page_range, fields, requests),
            self.split_delay,
        )
        succeeded = [outcome for _, outcome in results if outcome is not None]
        logger.info("page_split_completed", splits=len(ranges), succeeded=len(succeeded))
        if not succeeded:
            return {}, {}

        answers: dict[str, FieldAnswer] = {}
        for request_field in fields:
            outcomes = [split[0][request_field.field_id] for split in succeeded if request_field.field_id in split[0]]
            if outcomes:
                answers[request_field.field_id] = self.best_answer(request_field, outcomes)

        combined: dict[str, ConsolidatedAnswer] = {}
        first_content: DocumentContent | None = None
        for request in requests:
            split_answers = [
                self.combiner.combine(request, split[1][request.field_id])
                for split in succeeded
                if split[1].get(request.field_id)
            ]
            if not split_answers:
                continue
            merged = self.combiner.consolidate_splits(request, split_answers)
            if self.combiner.needs_reanalysis(merged):
                if first_content is None:
                    first, last = ranges[0]
                    first_content = await run.source.range_content(first, last)
                merged = await self._consolidate(
                    run,
                    request,
                    first_content,
                    run.plan.timeout_seconds,
                    passes=[RankedPass.from_answer("splits", 0, merged)],
                ) or merged
            combined[request.field_id] = merged

        return answers, combined

    async def _run_retrieval(
        self,
        run: _RunState,
        fields: list[FieldRequest],
        requests: list[ConsolidatedRequest],
    ) -> RunnerResult:
        """Index the document into a session, answer from retrieved chunks, drop the session."""
        if self.retrieval is None:
            raise RetrievalError("No retrieval pipeline configured")

        pipeline = self.retrieval
        handle = await pipeline.index_document(run.source)
        try:

            async def answer_field(request_field: FieldRequest) -> FieldAnswer:
                result = await pipeline.answer(
                    handle, request_field, comprehensive=is_comprehensive_field(request_field)
                )
                parsed = parse_response(result.response, request_field.expected_type)
                outcome = FieldAnswer(
                    field_id=request_field.field_id,
                    value=parsed.answer,
                    confidence=result.confidence,
                    method=ExtractionMethod.RETRIEVAL,
                    pages=result.pages,
                    notes=f"{result.chunks_used} chunks",
                )
                return self.best_answer(request_field, [outcome])

            policy = self.classifier.policy(FieldGroup.SIMPLE)
            answered = await self._in_batches(fields, policy.concurrency, answer_field, self.batch_delay)

            combined: dict[str, ConsolidatedAnswer] = {}
            for request in requests:
                # Reanalysis reads the bounded retrieval context, not the whole document
                context = pipeline.assembler.assemble(
                    await pipeline.retrieve(handle, request.question, comprehensive=True)
                )
                text_content = DocumentContent(text=context, file_name=run.profile.file_name)
                try:
                    result = await pipeline.answer_consolidated(handle, request)
                except (ModelAdapterError, asyncio.TimeoutError) as e:
                    logger.warning(
                        "retrieval_consolidated_failed",
                        field_id=request.field_id,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    continue
                passes = [
                    RankedPass.from_response("retrieval", 0, result.response, request, result.confidence)
                ]
                answer = await self._consolidate(
                    run, request, text_content, run.plan.timeout_seconds, passes=passes
                )
                if answer is not None:
                    combined[request.field_id] = answer
        finally:
            pipeline.close_session(handle)

        return {f.field_id: a for f, a in answered if a is not None}, combined

    # ------------------------------------------------------------------
    # Defaults
    # ------------------------------------------------------------------

    def _heuristic_answer(self, request_field: FieldRequest) -> FieldAnswer:
        return FieldAnswer(
            field_id=request_field.field_id,
            value=NOT_FOUND,
            confidence=self.total_failure_confidence,
            method=ExtractionMethod.HEURISTIC,
            notes="every strategy failed",
        )

    def _heuristic_consolidated(self, request: ConsolidatedRequest) -> ConsolidatedAnswer:
        return ConsolidatedAnswer(
            field_id=request.field_id,
            field_ids=request.field_ids,
            values=tuple(NOT_FOUND for _ in request.expected_fields),
            confidences=tuple(self.total_failure_confidence for _ in request.expected_fields),
            confidence=self.total_failure_confidence,
            sources=tuple("heuristic" for _ in request.expected_fields),
        )


def build_orchestrator(
    primary_model: str | None = None,
    secondary_model: str | None = None,
    judge_model: str | None = None,
    text_model: str | None = None,
) -> ExtractionOrchestrator:
    """
    Build an orchestrator wired to OpenAI-compatible backends from settings.

    Example:
        orchestrator = build_orchestrator(judge_model="gpt-4o")
    """
    settings = get_settings().model

    primary = OpenAIModelAdapter(model=primary_model or settings.primary_model)
    secondary = OpenAIModelAdapter(model=secondary_model or settings.secondary_model)
    judge = OpenAIModelAdapter(model=judge_model or settings.judge_model)
    text = OpenAIModelAdapter(model=text_model or settings.text_model, supports_vision=False)
    retrieval = RetrievalPipeline(text, EmbeddingClient())

    return ExtractionOrchestrator(primary, secondary, judge=judge, retrieval=retrieval)


async def extract_document(
    file_path: Path,
    fields: Sequence[FieldRequest],
    consolidated: Sequence[ConsolidatedRequest] = (),
    orchestrator: ExtractionOrchestrator | None = None,
) -> ExtractionReport:
    """
    Extract fields from a PDF file on disk.

    Convenience function that opens the document, runs the orchestrator
    and closes the document.

    Example:
        report = await extract_document(
            Path("claim.pdf"),
            [FieldRequest("insured_signed", "Is the form signed?", ExpectedType.BOOLEAN)],
        )
        print(report.values)
    """
    runner = orchestrator or build_orchestrator()
    with PDFDocument.open(file_path) as document:
        return await runner.extract(document, fields, consolidated)
