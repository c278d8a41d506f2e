"""
Document-level strategy selection.

Chooses how a document is approached from its size, page count and text
density, and sizes the timeout and chunking budgets for that approach.
Selection is a pure function of the document profile.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

from claim_extraction.config import get_logger, get_settings
from claim_extraction.schemas import DocumentProfile


logger = get_logger(__name__)


_BYTES_PER_MB = 1024 * 1024


class Strategy(str, Enum):
    """Document-level processing strategy."""

    DIRECT = "direct"
    TARGETED_VISION = "targeted_vision"
    PAGE_SPLIT = "page_split"
    RETRIEVAL_AUGMENTED = "retrieval_augmented"


@dataclass(frozen=True, slots=True)
class StrategyPlan:
    """
    Selected strategy and its budgets.

    Attributes:
        strategy: Chosen strategy.
        timeout_seconds: Budget for one whole-document call.
        page_timeout_seconds: Budget for one per-page call.
        chunk_size_bytes: Target size of one document chunk or split.
        pages_per_split: Pages per split for page-split processing.
        page_cap: Maximum pages in one split or single provider call.
        scan_only: Whether the document is presumed to be scanned images.
        reason: Short explanation of the choice.
    """

    strategy: Strategy
    timeout_seconds: float
    page_timeout_seconds: float
    chunk_size_bytes: int
    pages_per_split: int
    page_cap: int
    scan_only: bool
    reason: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "timeout_seconds": self.timeout_seconds,
            "page_timeout_seconds": self.page_timeout_seconds,
            "chunk_size_mb": round(self.chunk_size_bytes / _BYTES_PER_MB, 2),
            "pages_per_split": self.pages_per_split,
            "page_cap": self.page_cap,
            "scan_only": self.scan_only,
            "reason": self.reason,
        }


class StrategySelector:
    """
    Picks a processing strategy from document metadata.

    Scan-only documents (too little extracted text overall or per MB) never
    take the text-driven paths. Text-rich documents go direct when small
    and retrieval-augmented when large.

    Example:
        plan = StrategySelector().select(document.profile())
        print(plan.strategy, plan.timeout_seconds)
    """

    LARGE_TIMEOUT_MULTIPLIER: int = 3

    def __init__(self) -> None:
        self._settings = get_settings().strategy

    def is_scan_only(self, profile: DocumentProfile) -> bool:
        s = self._settings
        return profile.text_length < s.min_text_chars or profile.text_density < s.min_text_chars_per_mb

    def timeout_for(self, size_mb: float) -> float:
        """Whole-call budget; never shrinks as the file grows."""
        s = self._settings
        if size_mb >= s.ultra_large_size_mb:
            return float(max(s.ultra_large_timeout_seconds, s.large_timeout_seconds))
        if size_mb >= s.standard_size_mb:
            scaled = s.base_timeout_seconds * self.LARGE_TIMEOUT_MULTIPLIER
            return float(max(s.base_timeout_seconds, min(s.large_timeout_seconds, scaled)))
        return float(s.base_timeout_seconds)

    def page_timeout_for(self, page_count: int) -> float:
        """Per-page budget; shrinks as the page count grows."""
        s = self._settings
        if page_count > 50:
            return float(s.long_page_timeout_seconds)
        if page_count > 20:
            return float(s.medium_page_timeout_seconds)
        return float(s.page_timeout_seconds)

    def chunk_size_for(self, size_mb: float) -> int:
        s = self._settings
        if size_mb >= s.ultra_large_size_mb:
            return int(s.ultra_large_chunk_size_mb * _BYTES_PER_MB)
        if size_mb >= s.standard_size_mb:
            return int(s.large_chunk_size_mb * _BYTES_PER_MB)
        return int(s.standard_size_mb * _BYTES_PER_MB)

    def page_cap(self) -> int:
        """Most pages one split (or one provider call) may carry."""
        s = self._settings
        return min(s.page_split_threshold, s.provider_page_limit)

    def pages_per_split(self, profile: DocumentProfile) -> int:
        """Pages per split so every split stays under the size and page targets."""
        s = self._settings
        if profile.page_count <= 0:
            return 1
        by_size = math.ceil(profile.file_size_mb / s.page_split_target_mb)
        by_pages = math.ceil(profile.page_count / self.page_cap())
        splits = max(1, by_size, by_pages)
        return max(1, math.ceil(profile.page_count / splits))

    def select(self, profile: DocumentProfile) -> StrategyPlan:
        """
        Select a strategy for a document.

        Args:
            profile: Size, page count and text length of the document.

        Returns:
            StrategyPlan with the strategy and its budgets.
        """
        s = self._settings
        size_mb = profile.file_size_mb
        page_count = profile.page_count

        if page_count <= 0 or profile.file_size_bytes <= 0:
            plan = StrategyPlan(
                strategy=Strategy.DIRECT,
                timeout_seconds=float(s.base_timeout_seconds),
                page_timeout_seconds=float(s.page_timeout_seconds),
                chunk_size_bytes=max(profile.file_size_bytes, 0),
                pages_per_split=max(page_count, 1),
                page_cap=max(page_count, 1),
                scan_only=False,
                reason="degenerate profile",
            )
            logger.warning("strategy_degenerate_profile", **profile.to_dict())
            return plan

        scan_only = self.is_scan_only(profile)
        over_page_threshold = page_count > s.page_split_threshold

        if scan_only:
            if size_mb < s.standard_size_mb and not over_page_threshold:
                strategy, reason = Strategy.TARGETED_VISION, "small scanned document"
            elif (
                size_mb >= s.ultra_large_size_mb
                or over_page_threshold
                or profile.text_length < s.min_text_chars
            ):
                strategy, reason = Strategy.PAGE_SPLIT, "large scanned document"
            else:
                strategy, reason = Strategy.TARGETED_VISION, "large partially scanned document"
        elif size_mb >= s.standard_size_mb or over_page_threshold:
            strategy, reason = Strategy.RETRIEVAL_AUGMENTED, "large text document"
        else:
            strategy, reason = Strategy.DIRECT, "text document within direct limits"

        plan = StrategyPlan(
            strategy=strategy,
            timeout_seconds=self.timeout_for(size_mb),
            page_timeout_seconds=self.page_timeout_for(page_count),
            chunk_size_bytes=self.chunk_size_for(size_mb),
            pages_per_split=self.pages_per_split(profile),
            page_cap=self.page_cap(),
            scan_only=scan_only,
            reason=reason,
        )

        logger.info(
            "strategy_selected",
            strategy=strategy.value,
            reason=reason,
            file_size_mb=round(size_mb, 2),
            page_count=page_count,
            text_density=round(profile.text_density, 1),
            scan_only=scan_only,
        )
        return plan

    def fallback_chain(self, strategy: Strategy) -> list[Strategy]:
        """
        Strategies tried in order when the selected one fails.

        The selected strategy first, then targeted vision, then a direct
        pass; the heuristic default follows the chain.
        """
        chain = [strategy]
        for fallback in (Strategy.TARGETED_VISION, Strategy.DIRECT):
            if fallback not in chain:
                chain.append(fallback)
        return chain


def select_strategy(profile: DocumentProfile) -> StrategyPlan:
    """
    Select a strategy for a document with default settings.

    Example:
        plan = select_strategy(DocumentProfile("claim.pdf", 90 * 1024 * 1024, 400, 2000))
        assert plan.strategy == Strategy.PAGE_SPLIT
    """
    return StrategySelector().select(profile)
