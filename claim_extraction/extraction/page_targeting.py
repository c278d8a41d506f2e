"""
Page targeting for large documents.

Reduces an N-page document to a few candidate pages per field:

1. Sample a representative subset of pages.
2. Classify the sampled pages with one model call.
3. Interpolate the classification to the other pages from the nearest
   sampled page, at a lower confidence.
4. Map each field to pages through a rule table keyed on the field type.

Classification failures fall back to position-only heuristics. Mapping
never raises.
"""

import asyncio
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Sequence

from claim_extraction.client import AdapterRequest, ModelAdapter, extract_json
from claim_extraction.config import get_logger, get_settings
from claim_extraction.prompts import build_page_classification_prompt
from claim_extraction.schemas import (
    DocumentSource,
    ExpectedType,
    FieldRequest,
    PageMapping,
    ProcessingMode,
)


logger = get_logger(__name__)


class PageContentType(str, Enum):
    """Content classification of a page."""

    DECLARATIONS = "declarations"
    COVERAGE = "coverage"
    EXCLUSIONS = "exclusions"
    SIGNATURES = "signatures"
    SCHEDULES = "schedules"
    ENDORSEMENTS = "endorsements"
    GENERAL = "general"

    @classmethod
    def parse(cls, value: Any) -> "PageContentType":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.GENERAL


class FieldType(str, Enum):
    """Kind of information a field asks for, as far as page location goes."""

    SIGNATURES = "signatures"
    DATES = "dates"
    POLICY_PERIOD = "policy_period"
    EXCLUSIONS = "exclusions"
    COVERAGE = "coverage"
    INSURED_INFO = "insured_info"
    POLICY_IDENTIFIERS = "policy_identifiers"
    COMPREHENSIVE = "comprehensive"
    GENERAL = "general"


_FRONT_MATTER_TYPES = frozenset(
    {
        FieldType.DATES,
        FieldType.POLICY_PERIOD,
        FieldType.INSURED_INFO,
        FieldType.POLICY_IDENTIFIERS,
    }
)


@dataclass(frozen=True, slots=True)
class PageAnalysis:
    """
    Classification of one page.

    Attributes:
        page_number: One-indexed page.
        content_type: Content classification.
        has_signatures: Signature lines or handwritten marks present.
        has_dates: Any date present.
        has_policy_numbers: Alphanumeric identifiers present.
        has_monetary_amounts: Amounts or premiums present.
        key_phrases: Up to five key phrases.
        confidence: 0.8 sampled, 0.3 interpolated, 0.4 heuristic.
    """

    page_number: int
    content_type: PageContentType
    has_signatures: bool = False
    has_dates: bool = False
    has_policy_numbers: bool = False
    has_monetary_amounts: bool = False
    key_phrases: tuple[str, ...] = ()
    confidence: float = 0.0

    @property
    def is_specialized(self) -> bool:
        return self.content_type != PageContentType.GENERAL

    def to_dict(self) -> dict[str, Any]:
        return {
            "page_number": self.page_number,
            "content_type": self.content_type.value,
            "has_signatures": self.has_signatures,
            "has_dates": self.has_dates,
            "has_policy_numbers": self.has_policy_numbers,
            "has_monetary_amounts": self.has_monetary_amounts,
            "key_phrases": list(self.key_phrases),
            "confidence": self.confidence,
        }


def classify_field_type(field: FieldRequest) -> FieldType:
    """Field type from keywords in the field id and question."""
    field_id = field.field_id.lower()
    question = field.question.lower()

    if "sign" in field_id or "signature" in question or "signed" in question:
        return FieldType.SIGNATURES
    if "date" in field_id or "date" in question or "effective" in field_id or "expir" in field_id:
        return FieldType.DATES
    if "policy" in field_id and any(k in field_id for k in ("valid", "start", "effective")):
        return FieldType.POLICY_PERIOD
    if "exclusion" in field_id or "exclusion" in question:
        return FieldType.EXCLUSIONS
    if "cover" in field_id or "cover" in question:
        return FieldType.COVERAGE
    if any(k in field_id for k in ("name", "insured", "company")):
        return FieldType.INSURED_INFO
    if "policy_number" in field_id or "claim_number" in field_id:
        return FieldType.POLICY_IDENTIFIERS
    if "comprehensive" in field_id or "go through the document" in question:
        return FieldType.COMPREHENSIVE
    return FieldType.GENERAL


def _unique(pages: Sequence[int], total_pages: int) -> tuple[int, ...]:
    seen: dict[int, None] = {}
    for page in pages:
        if 1 <= page <= total_pages:
            seen.setdefault(page, None)
    return tuple(seen)


class PageTargeter:
    """
    Proposes candidate pages per field.

    Example:
        targeter = PageTargeter(vision_adapter)
        mappings = await targeter.map_fields(document, fields)
        pages = mappings["insured_signature"].target_pages
    """

    SAMPLED_CONFIDENCE: float = 0.8
    INTERPOLATED_CONFIDENCE: float = 0.3
    HEURISTIC_CONFIDENCE: float = 0.4
    FALLBACK_MAPPING_CONFIDENCE: float = 0.3
    BASE_MAPPING_CONFIDENCE: float = 0.5
    SPECIALIZED_PAGE_BONUS: float = 0.1
    TYPE_MATCH_BONUS: float = 0.2

    def __init__(
        self,
        adapter: ModelAdapter | None = None,
        max_sample_pages: int | None = None,
        max_pages_per_field: int | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        """
        Initialize the targeter.

        Args:
            adapter: Vision-capable adapter for page classification. Without
                one, heuristic analysis is used.
            max_sample_pages: Page count up to which every page is sampled.
            max_pages_per_field: Upper bound on pages proposed per field.
            timeout_seconds: Budget for the classification call.
        """
        settings = get_settings()

        self.adapter = adapter
        self.max_sample_pages = max_sample_pages or settings.targeting.max_sample_pages
        self.max_pages_per_field = max_pages_per_field or settings.targeting.max_pages_per_field
        self.timeout_seconds = timeout_seconds or float(settings.model.timeout)

    def sample_pages(self, total_pages: int) -> list[int]:
        """
        Representative pages for classification.

        All pages for short documents; otherwise the first three, the
        quartile points and the last two.
        """
        if total_pages <= 0:
            return []
        if total_pages <= self.max_sample_pages:
            return list(range(1, total_pages + 1))

        pages = [1, 2, 3]
        for fraction in (0.25, 0.5, 0.75):
            point = math.floor(total_pages * fraction)
            if 3 <= point < total_pages:
                pages.append(point + 1)
        pages.extend([total_pages - 1, total_pages])
        return sorted(set(pages))

    async def classify_pages(
        self,
        source: DocumentSource,
        sample: Sequence[int],
    ) -> list[PageAnalysis] | None:
        """
        Classify sampled pages with one model call.

        Returns:
            Analyses of the sampled pages, or None if the call failed or
            its output could not be parsed.
        """
        if self.adapter is None or not sample:
            return None

        try:
            content = await source.pages_content(sample, ProcessingMode.VISUAL)
            request = AdapterRequest(
                prompt=build_page_classification_prompt(sample),
                content=content,
                expected_type=ExpectedType.JSON,
                field_id="page_classification",
            )
            response = await asyncio.wait_for(
                self.adapter.analyze(request), timeout=self.timeout_seconds
            )
        except Exception as e:
            logger.warning(
                "page_classification_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        analyses = self.parse_classification(response.response, sample)
        if not analyses:
            logger.warning(
                "page_classification_unparseable",
                preview=response.response[:200],
            )
            return None
        return analyses

    def parse_classification(self, raw: str, sample: Sequence[int]) -> list[PageAnalysis]:
        """Parse the classification JSON; entries without page or type are skipped."""
        payload = extract_json(raw)
        if isinstance(payload, dict):
            payload = [payload]
        if not isinstance(payload, list):
            return []

        sampled = set(sample)
        analyses: dict[int, PageAnalysis] = {}
        for item in payload:
            if not isinstance(item, dict) or not item.get("page") or not item.get("contentType"):
                continue
            try:
                page = int(item["page"])
            except (TypeError, ValueError):
                continue
            if page not in sampled:
                continue
            phrases = item.get("keyPhrases") or []
            analyses[page] = PageAnalysis(
                page_number=page,
                content_type=PageContentType.parse(item["contentType"]),
                has_signatures=bool(item.get("hasSignatures")),
                has_dates=bool(item.get("hasDates")),
                has_policy_numbers=bool(item.get("hasPolicyNumbers")),
                has_monetary_amounts=bool(item.get("hasMonetaryAmounts")),
                key_phrases=tuple(str(p).lower() for p in phrases if isinstance(p, str))[:5],
                confidence=self.SAMPLED_CONFIDENCE,
            )
        return [analyses[page] for page in sorted(analyses)]

    def expand(self, sampled: Sequence[PageAnalysis], total_pages: int) -> list[PageAnalysis]:
        """
        Extend sampled analyses to every page.

        A non-sampled page copies the flags of the nearest sampled page
        (the earlier one on ties) at the interpolated confidence.
        """
        by_page = {analysis.page_number: analysis for analysis in sampled}
        if not by_page:
            return self.heuristic_analysis(total_pages)

        expanded: list[PageAnalysis] = []
        ordered = sorted(by_page)
        for page in range(1, total_pages + 1):
            if page in by_page:
                expanded.append(by_page[page])
                continue
            nearest = by_page[min(ordered, key=lambda p: (abs(p - page), p))]
            expanded.append(
                PageAnalysis(
                    page_number=page,
                    content_type=nearest.content_type,
                    has_signatures=nearest.has_signatures,
                    has_dates=nearest.has_dates,
                    has_policy_numbers=nearest.has_policy_numbers,
                    has_monetary_amounts=nearest.has_monetary_amounts,
                    confidence=self.INTERPOLATED_CONFIDENCE,
                )
            )
        return expanded

    def heuristic_analysis(self, total_pages: int) -> list[PageAnalysis]:
        """Position-only classification of every page."""
        analyses: list[PageAnalysis] = []
        for page in range(1, total_pages + 1):
            if page <= 3:
                content_type = PageContentType.DECLARATIONS
            elif page > total_pages - 3:
                content_type = PageContentType.SIGNATURES
            elif total_pages * 0.3 < page < total_pages * 0.7:
                content_type = PageContentType.COVERAGE
            else:
                content_type = PageContentType.GENERAL

            analyses.append(
                PageAnalysis(
                    page_number=page,
                    content_type=content_type,
                    has_signatures=page > total_pages - 3,
                    has_dates=page <= 5,
                    has_policy_numbers=page <= 3,
                    has_monetary_amounts=page <= 5 or total_pages * 0.2 < page < total_pages * 0.8,
                    confidence=self.HEURISTIC_CONFIDENCE,
                )
            )
        return analyses

    def pages_for_field_type(
        self,
        field_type: FieldType,
        analyses: Sequence[PageAnalysis],
        total_pages: int,
    ) -> tuple[int, ...]:
        """Candidate pages for a field type from the rule table."""
        if field_type == FieldType.SIGNATURES:
            pages = [a.page_number for a in analyses if a.has_signatures]
            if not pages:
                pages = [total_pages - i for i in range(min(3, total_pages))]

        elif field_type in _FRONT_MATTER_TYPES:
            pages = [
                a.page_number
                for a in analyses
                if a.content_type == PageContentType.DECLARATIONS
                or a.has_dates
                or a.has_policy_numbers
            ][:4]
            if not pages:
                pages = [1, 2, 3]

        elif field_type == FieldType.EXCLUSIONS:
            pages = [a.page_number for a in analyses if a.content_type == PageContentType.EXCLUSIONS]
            if not pages:
                mid_start = max(1, math.floor(total_pages * 0.3))
                mid_end = max(mid_start, math.floor(total_pages * 0.7))
                pages = list(range(mid_start, min(mid_end, mid_start + 4) + 1))

        elif field_type == FieldType.COVERAGE:
            pages = [
                a.page_number
                for a in analyses
                if a.content_type in (PageContentType.COVERAGE, PageContentType.DECLARATIONS)
            ][:6]
            if not pages:
                pages = [1, 2, 3, total_pages // 2]

        elif field_type == FieldType.COMPREHENSIVE:
            specialized = [a.page_number for a in analyses if a.is_specialized][:3]
            pages = [1, 2, *specialized, total_pages]

        else:
            pages = [1, math.ceil(total_pages / 2), total_pages]

        return _unique(pages, total_pages)

    def mapping_confidence(
        self,
        field_type: FieldType,
        pages: Sequence[int],
        analyses: Sequence[PageAnalysis],
    ) -> float:
        """Base confidence plus bonuses for specialized pages and type matches, capped at 1.0."""
        by_page = {a.page_number: a for a in analyses}
        confidence = self.BASE_MAPPING_CONFIDENCE

        for page in pages:
            analysis = by_page.get(page)
            if analysis is None:
                continue
            if analysis.is_specialized:
                confidence += self.SPECIALIZED_PAGE_BONUS
            if (
                (field_type == FieldType.SIGNATURES and analysis.has_signatures)
                or (field_type == FieldType.DATES and analysis.has_dates)
                or (field_type == FieldType.POLICY_IDENTIFIERS and analysis.has_policy_numbers)
            ):
                confidence += self.TYPE_MATCH_BONUS

        return round(min(1.0, confidence), 6)

    def map_field(
        self,
        field: FieldRequest,
        analyses: Sequence[PageAnalysis],
        total_pages: int,
    ) -> PageMapping:
        field_type = classify_field_type(field)
        pages = self.pages_for_field_type(field_type, analyses, total_pages)[
            : self.max_pages_per_field
        ]
        by_page = {a.page_number: a for a in analyses}
        described = ", ".join(
            f"p{page}({by_page[page].content_type.value if page in by_page else 'unknown'})"
            for page in pages
        )
        return PageMapping(
            field_id=field.field_id,
            target_pages=pages,
            reasoning=f"{field_type.value} field -> targeting {described}",
            confidence=self.mapping_confidence(field_type, pages, analyses),
        )

    def fallback_mapping(
        self,
        fields: Sequence[FieldRequest],
        total_pages: int,
    ) -> dict[str, PageMapping]:
        """Position-only mapping used when targeting itself fails."""
        mappings: dict[str, PageMapping] = {}
        for field in fields:
            field_type = classify_field_type(field)
            if field_type == FieldType.SIGNATURES:
                pages = [total_pages - 1, total_pages]
            elif field_type in _FRONT_MATTER_TYPES:
                pages = [1, 2, 3]
            elif field_type == FieldType.COMPREHENSIVE:
                pages = [1, math.ceil(total_pages / 2), total_pages]
            else:
                pages = [1, total_pages]

            mappings[field.field_id] = PageMapping(
                field_id=field.field_id,
                target_pages=_unique(pages, total_pages),
                reasoning=f"Fallback heuristic for {field_type.value}",
                confidence=self.FALLBACK_MAPPING_CONFIDENCE,
            )
        return mappings

    async def analyze_pages(self, source: DocumentSource) -> list[PageAnalysis]:
        """Classification of every page: sampled and interpolated, or heuristic."""
        total_pages = source.page_count
        sample = self.sample_pages(total_pages)
        sampled = await self.classify_pages(source, sample)
        if sampled is None:
            return self.heuristic_analysis(total_pages)

        logger.info(
            "pages_classified",
            sampled=len(sampled),
            specialized=sum(1 for a in sampled if a.is_specialized),
            total_pages=total_pages,
        )
        return self.expand(sampled, total_pages)

    async def map_fields(
        self,
        source: DocumentSource,
        fields: Sequence[FieldRequest],
    ) -> dict[str, PageMapping]:
        """
        Map every field to candidate pages.

        Never raises: any failure produces the position-only fallback mapping.

        Args:
            source: Document being processed.
            fields: Fields to map.

        Returns:
            Field id to PageMapping.
        """
        total_pages = source.page_count
        try:
            analyses = await self.analyze_pages(source)
            mappings = {field.field_id: self.map_field(field, analyses, total_pages) for field in fields}
        except Exception as e:
            logger.error(
                "page_targeting_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return self.fallback_mapping(fields, total_pages)

        logger.info(
            "page_targeting_completed",
            fields=len(mappings),
            unique_pages=len({p for m in mappings.values() for p in m.target_pages}),
        )
        return mappings
