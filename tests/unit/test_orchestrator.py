"""
Tests for orchestrator batching and page-split ranges.
"""

import asyncio

import pytest

from claim_extraction.config import get_settings
from claim_extraction.extraction import ExtractionOrchestrator, PageTargeter, select_strategy
from claim_extraction.schemas import DocumentProfile, FieldRequest


MB = 1024 * 1024

FIELDS = [FieldRequest(f"item_{n}", f"What is item {n}?") for n in range(1, 8)]


def orchestrator(primary, secondary, **kwargs) -> ExtractionOrchestrator:
    kwargs.setdefault("batch_delay_seconds", 0)
    return ExtractionOrchestrator(
        primary,
        secondary,
        targeter=PageTargeter(),
        split_delay_seconds=0,
        **kwargs,
    )


@pytest.fixture
def tracking_adapter(make_adapter):
    """Scripted adapter that records how many calls overlap."""

    class TrackingAdapter(make_adapter):
        def __init__(self, *args, **kwargs) -> None:
            super().__init__(*args, **kwargs)
            self.in_flight = 0
            self.max_in_flight = 0

        async def analyze(self, request):
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            try:
                await asyncio.sleep(0)
                return await super().analyze(request)
            finally:
                self.in_flight -= 1

    return TrackingAdapter


@pytest.fixture
def recorded_sleeps(monkeypatch) -> list[float]:
    """Pauses requested through asyncio.sleep; zero-length yields are not kept."""
    real_sleep = asyncio.sleep
    delays: list[float] = []

    async def record_sleep(delay, *args, **kwargs):
        if delay > 0:
            delays.append(delay)
        await real_sleep(0)

    monkeypatch.setattr(asyncio, "sleep", record_sleep)
    return delays


# -----------------------------------------------------------------------------
# Batching
# -----------------------------------------------------------------------------


class TestBatching:
    """Tests for bounded concurrent batches."""

    def test_in_flight_bounded_by_concurrency(self, make_adapter) -> None:
        orch = orchestrator(make_adapter("NO"), make_adapter("NO"))
        state = {"in_flight": 0, "max": 0}

        async def worker(item: int) -> int:
            state["in_flight"] += 1
            state["max"] = max(state["max"], state["in_flight"])
            await asyncio.sleep(0)
            state["in_flight"] -= 1
            return item * 2

        results = asyncio.run(orch._in_batches(list(range(8)), 3, worker, 0.0))

        assert state["max"] == 3
        assert results == [(n, n * 2) for n in range(8)]

    def test_pause_between_batches_only(self, make_adapter, recorded_sleeps) -> None:
        orch = orchestrator(make_adapter("NO"), make_adapter("NO"))

        async def worker(item: int) -> int:
            return item

        asyncio.run(orch._in_batches(list(range(7)), 3, worker, 1.5))

        # three batches, two pauses
        assert recorded_sleeps == [1.5, 1.5]

    def test_single_batch_does_not_pause(self, make_adapter, recorded_sleeps) -> None:
        orch = orchestrator(make_adapter("NO"), make_adapter("NO"))

        async def worker(item: int) -> int:
            return item

        asyncio.run(orch._in_batches([1, 2], 3, worker, 1.5))

        assert recorded_sleeps == []

    def test_failed_item_yields_none(self, make_adapter) -> None:
        orch = orchestrator(make_adapter("NO"), make_adapter("NO"))

        async def worker(item: int) -> int:
            if item == 2:
                raise RuntimeError("backend unavailable")
            return item

        results = asyncio.run(orch._in_batches([1, 2, 3], 3, worker, 0.0))

        assert results == [(1, 1), (2, None), (3, 3)]

    def test_field_calls_run_three_at_a_time(self, tracking_adapter, make_document, text_pages) -> None:
        primary = tracking_adapter("Acme Roofing LLC")
        secondary = tracking_adapter("Acme Roofing LLC")

        report = asyncio.run(
            orchestrator(primary, secondary).extract(make_document(text_pages), FIELDS)
        )

        assert report.strategy == "direct"
        assert primary.call_count == len(FIELDS)
        assert primary.max_in_flight == 3
        assert secondary.max_in_flight == 3

    def test_strict_backend_runs_two_at_a_time(
        self, monkeypatch, tracking_adapter, make_document, text_pages
    ) -> None:
        monkeypatch.setenv("MODEL_STRICT_BACKEND", "true")
        get_settings.cache_clear()
        primary = tracking_adapter("Acme Roofing LLC")

        asyncio.run(
            orchestrator(primary, tracking_adapter("Acme Roofing LLC")).extract(
                make_document(text_pages), FIELDS
            )
        )

        assert primary.call_count == len(FIELDS)
        assert primary.max_in_flight == 2

    def test_field_batches_pause_between_groups(
        self, make_adapter, make_document, text_pages, recorded_sleeps
    ) -> None:
        orch = orchestrator(
            make_adapter("Acme Roofing LLC"),
            make_adapter("Acme Roofing LLC"),
            batch_delay_seconds=0.5,
        )

        asyncio.run(orch.extract(make_document(text_pages), FIELDS))

        # seven fields at three per batch
        assert recorded_sleeps == [0.5, 0.5]


# -----------------------------------------------------------------------------
# Page Split Ranges
# -----------------------------------------------------------------------------


class TestSplitRanges:
    """Tests for page-split range construction."""

    def test_ranges_reach_last_page(self, make_adapter) -> None:
        profile = DocumentProfile("claim.pdf", 90 * MB, 950, 0)
        plan = select_strategy(profile)
        orch = orchestrator(make_adapter("NO"), make_adapter("NO"))

        ranges = orch.split_ranges(plan, profile.page_count)

        assert ranges == [(1, 317), (318, 634), (635, 950)]

    def test_ranges_never_exceed_page_cap(self, make_adapter) -> None:
        profile = DocumentProfile("claim.pdf", 10 * MB, 2_500, 0)
        plan = select_strategy(profile)
        orch = orchestrator(make_adapter("NO"), make_adapter("NO"))

        ranges = orch.split_ranges(plan, profile.page_count)

        assert ranges[0][0] == 1
        assert ranges[-1][1] == 2_500
        assert all(last - first + 1 <= plan.page_cap for first, last in ranges)
        assert all(b[0] == a[1] + 1 for a, b in zip(ranges, ranges[1:]))

    def test_no_pages_no_ranges(self, make_adapter) -> None:
        plan = select_strategy(DocumentProfile("claim.pdf", 0, 0, 0))
        orch = orchestrator(make_adapter("NO"), make_adapter("NO"))

        assert orch.split_ranges(plan, 0) == []
