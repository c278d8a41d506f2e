"""
Integration tests for complete document runs through the orchestrator.

Model backends are scripted adapters; documents are in-memory sources.
Each test drives one strategy end to end and checks the final report.
"""

import asyncio
import json

import pytest

from claim_extraction.client import AdapterUnavailableError
from claim_extraction.extraction import ExtractionOrchestrator, PageTargeter
from claim_extraction.retrieval import ChunkingStrategy, RetrievalPipeline
from claim_extraction.schemas import (
    NOT_FOUND,
    ConsolidatedRequest,
    ExpectedType,
    ExtractionMethod,
    FieldRequest,
)


MB = 1024 * 1024

EFFECTIVE = FieldRequest("effective_date", "What is the policy effective date?", ExpectedType.DATE)
POLICY_NUMBER = FieldRequest("policy_number", "What is the policy number?")
SIGNED = FieldRequest("insured_signed", "Is the application signed?", ExpectedType.BOOLEAN)

COVERAGE = ConsolidatedRequest(
    field_id="coverage_summary",
    question="Summarize the coverage terms",
    expected_fields=(
        FieldRequest("flood_excluded", "Is flood excluded?", ExpectedType.BOOLEAN),
        FieldRequest("deductible_amount", "What is the deductible?", ExpectedType.NUMBER),
        FieldRequest("wind_deductible", "What is the wind deductible?", ExpectedType.NUMBER),
    ),
)


def orchestrator(primary, secondary, **kwargs) -> ExtractionOrchestrator:
    kwargs.setdefault("targeter", PageTargeter())
    return ExtractionOrchestrator(
        primary,
        secondary,
        batch_delay_seconds=0,
        split_delay_seconds=0,
        **kwargs,
    )


def run(orch: ExtractionOrchestrator, document, fields, consolidated=()):
    return asyncio.run(orch.extract(document, fields, consolidated))


# -----------------------------------------------------------------------------
# Direct Strategy
# -----------------------------------------------------------------------------


class TestDirectRun:
    """Tests for small text documents answered in one call per field."""

    def test_agreeing_models_reach_consensus(self, make_adapter, make_document, text_pages) -> None:
        primary = make_adapter("04/11/2025", model="model-a", confidence=0.7)
        secondary = make_adapter("Effective 4/11/2025", model="model-b", confidence=0.8)

        report = run(orchestrator(primary, secondary), make_document(text_pages), [EFFECTIVE])

        answer = report.answers["effective_date"]
        assert answer.value == "04-11-25"
        assert answer.method == ExtractionMethod.CONSENSUS
        assert answer.confidence == pytest.approx(0.9)
        assert report.strategy == "direct"
        assert report.attempted_strategies == ["direct"]
        assert not report.reanalysis_triggered

    def test_extracted_text_is_sent(self, make_adapter, make_document, text_pages) -> None:
        primary = make_adapter("04/11/2025")

        run(orchestrator(primary, make_adapter("04/11/2025")), make_document(text_pages), [EFFECTIVE])

        content = primary.requests[0].content
        assert content.text.startswith("--- Page 1 ---\nDECLARATIONS.")
        assert content.document_bytes is None

    def test_disagreement_goes_to_judge(self, make_adapter, make_document, text_pages) -> None:
        judge = make_adapter(
            json.dumps({"decision": "B", "confidence": 0.93, "reasoning": "Endorsement date"}),
            model="judge",
        )
        orch = orchestrator(
            make_adapter("04/11/2025", model="model-a"),
            make_adapter("04/12/2025", model="model-b"),
            judge=judge,
        )

        report = run(orch, make_document(text_pages), [EFFECTIVE])

        answer = report.answers["effective_date"]
        assert answer.value == "04-12-25"
        assert answer.method == ExtractionMethod.JUDGE
        assert answer.judged
        assert answer.confidence == 0.93
        assert judge.call_count == 1
        assert report.error_patterns["counts"] == {"date": 1}

    def test_single_model_keeps_its_confidence(self, make_adapter, make_document, text_pages) -> None:
        orch = orchestrator(
            make_adapter("04/11/2025", model="model-a", confidence=0.75),
            make_adapter(AdapterUnavailableError("backend down"), model="model-b"),
        )

        report = run(orch, make_document(text_pages), [EFFECTIVE])

        answer = report.answers["effective_date"]
        assert answer.value == "04-11-25"
        assert answer.confidence == 0.75
        assert answer.method == ExtractionMethod.TEXT
        assert "single model (model-a)" in answer.notes


# -----------------------------------------------------------------------------
# Consolidated Requests
# -----------------------------------------------------------------------------


def consolidated_responder(request):
    prompt = request.prompt
    if prompt.startswith("## FOCUSED EXTRACTION"):
        return "$2,500;NOT_FOUND"
    if prompt.startswith("## CONSOLIDATED EXTRACTION"):
        return "YES;NOT_FOUND;NOT_FOUND"
    return NOT_FOUND


class TestConsolidatedRun:
    """Tests for progressive reanalysis of gappy consolidated answers."""

    def test_missing_values_trigger_reanalysis(self, make_adapter, make_document, text_pages) -> None:
        primary = make_adapter(consolidated_responder, model="model-a")
        secondary = make_adapter(consolidated_responder, model="model-b")
        judge = make_adapter("YES;2500;5000", model="judge")

        report = run(
            orchestrator(primary, secondary, judge=judge),
            make_document(text_pages),
            [],
            [COVERAGE],
        )

        answer = report.consolidated["coverage_summary"]
        assert report.reanalysis_triggered
        assert answer.values == ("YES", "2500", "5000")
        assert answer.sources[2] == "reanalysis"
        # Two original passes, then the enhanced and subset passes
        assert secondary.call_count == 1
        assert primary.call_count == 3
        assert judge.call_count == 1

        wire = report.answers["coverage_summary"]
        assert wire.method == ExtractionMethod.COMBINED
        assert wire.value == "YES;2500;5000"

    def test_complete_answer_skips_reanalysis(self, make_adapter, make_document, text_pages) -> None:
        primary = make_adapter("YES;2500;5000")
        judge = make_adapter("unused", model="judge")

        report = run(
            orchestrator(primary, make_adapter("YES;2500;5000"), judge=judge),
            make_document(text_pages),
            [],
            [COVERAGE],
        )

        assert not report.reanalysis_triggered
        assert report.consolidated["coverage_summary"].values == ("YES", "2500", "5000")
        assert primary.call_count == 1
        assert judge.call_count == 0


# -----------------------------------------------------------------------------
# Fallback Chain
# -----------------------------------------------------------------------------


class TestFallbackChain:
    """Tests for strategy fallback and total failure."""

    def test_total_failure_resolves_to_not_found(self, make_adapter, make_document, text_pages) -> None:
        failing = AdapterUnavailableError("backend down")
        orch = orchestrator(make_adapter(failing), make_adapter(failing))

        report = run(orch, make_document(text_pages), [EFFECTIVE], [COVERAGE])

        answer = report.answers["effective_date"]
        assert answer.value == NOT_FOUND
        assert answer.confidence == 0.1
        assert answer.method == ExtractionMethod.HEURISTIC
        assert report.consolidated["coverage_summary"].values == (NOT_FOUND,) * 3
        assert report.strategy == "heuristic"
        assert report.attempted_strategies == ["direct", "targeted_vision"]

    def test_missing_retrieval_pipeline_falls_back(self, make_adapter, make_document, text_pages) -> None:
        document = make_document(text_pages, file_size_bytes=40 * MB)
        orch = orchestrator(make_adapter("04/11/2025"), make_adapter("04/11/2025"))

        report = run(orch, document, [EFFECTIVE])

        answer = report.answers["effective_date"]
        assert answer.value == "04-11-25"
        assert report.plan["strategy"] == "retrieval_augmented"
        assert report.attempted_strategies == ["retrieval_augmented", "targeted_vision"]
        assert report.strategy == "targeted_vision"
        assert set(answer.pages) <= {1, 2, 3, 4}


# -----------------------------------------------------------------------------
# Retrieval Strategy
# -----------------------------------------------------------------------------


class TestRetrievalRun:
    """Tests for large text documents answered from retrieved chunks."""

    def test_answers_from_chunks(self, make_adapter, make_document, text_pages, fake_embeddings) -> None:
        pipeline = RetrievalPipeline(
            make_adapter("Effective 04/11/2025", model="text-model"),
            fake_embeddings,
            chunking_strategy=ChunkingStrategy.PAGE,
        )
        primary = make_adapter("unused")
        orch = orchestrator(primary, make_adapter("unused"), retrieval=pipeline)

        report = run(orch, make_document(text_pages, file_size_bytes=40 * MB), [EFFECTIVE])

        answer = report.answers["effective_date"]
        assert answer.value == "04-11-25"
        assert answer.method == ExtractionMethod.RETRIEVAL
        assert answer.confidence == 0.9
        assert report.strategy == "retrieval_augmented"
        assert primary.call_count == 0


# -----------------------------------------------------------------------------
# Targeted Vision
# -----------------------------------------------------------------------------


def signature_responder(request):
    return "YES" if request.page_number == 19 else "NO"


class TestTargetedVisionRun:
    """Tests for scanned documents examined page by page."""

    def test_signature_exits_early(self, make_adapter, make_document) -> None:
        document = make_document([""] * 20)
        primary = make_adapter(signature_responder)

        report = run(orchestrator(primary, make_adapter(signature_responder)), document, [SIGNED])

        answer = report.answers["insured_signed"]
        assert report.strategy == "targeted_vision"
        assert answer.value == "YES"
        assert answer.pages == (18, 19)
        assert [r.page_number for r in primary.requests] == [18, 19]
        assert document.rendered == [18, 19]

    def test_field_absent_from_every_page(self, make_adapter, make_document) -> None:
        document = make_document([""] * 20)

        report = run(
            orchestrator(make_adapter("NOT_FOUND"), make_adapter("NOT_FOUND")),
            document,
            [SIGNED],
        )

        answer = report.answers["insured_signed"]
        assert answer.value == NOT_FOUND
        assert answer.confidence == 0.3
        assert answer.pages == (18, 19, 20)


# -----------------------------------------------------------------------------
# Page Split
# -----------------------------------------------------------------------------


def split_responder(request):
    return "POL-12345" if request.content.file_name == "claim_pages_3-4.pdf" else NOT_FOUND


class TestPageSplitRun:
    """Tests for large scanned documents processed as page ranges."""

    def test_answer_merged_across_splits(self, make_adapter, make_document) -> None:
        document = make_document([""] * 6, file_size_bytes=90 * MB)
        primary = make_adapter(split_responder)

        report = run(orchestrator(primary, make_adapter(split_responder)), document, [POLICY_NUMBER])

        answer = report.answers["policy_number"]
        assert report.strategy == "page_split"
        assert answer.value == "POL-12345"
        assert answer.pages == (1, 2, 3, 4, 5, 6)
        assert sorted(r.content.file_name for r in primary.requests) == [
            "claim_pages_1-2.pdf",
            "claim_pages_3-4.pdf",
            "claim_pages_5-6.pdf",
        ]

    def test_splits_cover_pages_past_threshold(self, make_adapter, make_document) -> None:
        def last_split_responder(request):
            return "YES" if request.content.file_name.endswith("-950.pdf") else "NO"

        document = make_document([""] * 950, file_size_bytes=90 * MB)
        primary = make_adapter(last_split_responder)

        report = run(orchestrator(primary, make_adapter(last_split_responder)), document, [SIGNED])

        assert report.strategy == "page_split"
        assert report.answers["insured_signed"].value == "YES"
        assert sorted(r.content.file_name for r in primary.requests) == [
            "claim_pages_1-317.pdf",
            "claim_pages_318-634.pdf",
            "claim_pages_635-950.pdf",
        ]
        assert max(page for r in primary.requests for page in r.content.pages) == 950

    def test_failed_split_is_skipped(self, make_adapter, make_document) -> None:
        document = make_document([""] * 6, file_size_bytes=90 * MB)
        real_range_content = document.range_content

        async def range_content(first_page: int, last_page: int):
            if first_page == 1:
                raise RuntimeError("corrupt page range")
            return await real_range_content(first_page, last_page)

        document.range_content = range_content

        report = run(
            orchestrator(make_adapter(split_responder), make_adapter(split_responder)),
            document,
            [POLICY_NUMBER],
        )

        answer = report.answers["policy_number"]
        assert report.strategy == "page_split"
        assert answer.value == "POL-12345"
        assert answer.pages == (3, 4, 5, 6)
