"""
Field grouping and per-field processing mode.

Groups decide concurrency, page budget and whether an early exit is
allowed; the processing mode decides what page content reaches the
models (images, text, or both).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from claim_extraction.config import get_logger, get_settings
from claim_extraction.schemas import (
    ConsolidatedRequest,
    ExpectedType,
    FieldRequest,
    ProcessingMode,
)


logger = get_logger(__name__)


class FieldGroup(str, Enum):
    """Processing group of a field."""

    SIMPLE = "simple"
    SIGNATURE = "signature"
    COMPLEX = "complex"
    COMPREHENSIVE = "comprehensive"


@dataclass(frozen=True, slots=True)
class GroupPolicy:
    """
    How fields of one group are processed.

    Attributes:
        concurrency: Fields processed per batch.
        max_pages: Page budget per field.
        early_exit: Whether a confident positive page may stop the scan.
    """

    concurrency: int
    max_pages: int
    early_exit: bool


VISUAL_KEYWORDS = ("sign", "signature", "initial", "stamp", "seal", "handwrit", "mark")
ANALYSIS_KEYWORDS = ("determine", "analyze", "assess", "evaluate", "compare", "verify")
COMPREHENSIVE_MARKERS = ("go through the document",)
COMPLEX_PAGE_COUNT = 3


def _text(field: FieldRequest) -> tuple[str, str]:
    return field.field_id.lower(), field.question.lower()


def is_signature_field(field: FieldRequest) -> bool:
    field_id, question = _text(field)
    return "sign" in field_id or "signature" in question or "signed" in question


def is_comprehensive_field(field: FieldRequest | ConsolidatedRequest) -> bool:
    if isinstance(field, ConsolidatedRequest):
        return True
    field_id, question = _text(field)
    return "comprehensive" in field_id or any(m in question for m in COMPREHENSIVE_MARKERS)


class FieldClassifier:
    """
    Keyword rules that partition fields into processing groups.

    Example:
        classifier = FieldClassifier()
        groups = classifier.partition(fields, {f.field_id: len(m.target_pages) for ...})
    """

    def __init__(self, strict_backend: bool | None = None) -> None:
        settings = get_settings()

        self.strict_backend = (
            strict_backend if strict_backend is not None else settings.model.strict_backend
        )
        self._extraction = settings.extraction
        self._targeting = settings.targeting

    def classify(self, field: FieldRequest, target_page_count: int = 0) -> FieldGroup:
        """
        Group of one field.

        Args:
            field: Field to classify.
            target_page_count: Pages proposed for the field by page targeting.
        """
        if is_comprehensive_field(field):
            return FieldGroup.COMPREHENSIVE
        if is_signature_field(field):
            return FieldGroup.SIGNATURE
        if target_page_count > COMPLEX_PAGE_COUNT:
            return FieldGroup.COMPLEX
        return FieldGroup.SIMPLE

    def partition(
        self,
        fields: Sequence[FieldRequest],
        target_page_counts: dict[str, int] | None = None,
    ) -> dict[FieldGroup, list[FieldRequest]]:
        """
        Partition fields into groups, preserving request order within a group.

        Every group is present in the result, possibly empty.
        """
        counts = target_page_counts or {}
        groups: dict[FieldGroup, list[FieldRequest]] = {group: [] for group in FieldGroup}
        for field in fields:
            groups[self.classify(field, counts.get(field.field_id, 0))].append(field)

        logger.debug(
            "fields_grouped",
            **{group.value: len(members) for group, members in groups.items()},
        )
        return groups

    def policy(self, group: FieldGroup) -> GroupPolicy:
        """Concurrency, page budget and early-exit rule of a group."""
        concurrency = (
            self._extraction.strict_batch_concurrency
            if self.strict_backend
            else self._extraction.batch_concurrency
        )
        if group == FieldGroup.COMPREHENSIVE:
            return GroupPolicy(
                concurrency=1,
                max_pages=self._targeting.consolidated_page_budget,
                early_exit=False,
            )
        return GroupPolicy(
            concurrency=concurrency,
            max_pages=self._targeting.max_pages_per_field,
            early_exit=group == FieldGroup.SIGNATURE,
        )

    def processing_mode(self, field: FieldRequest) -> ProcessingMode:
        """
        Content mode for a field.

        Analysis keywords get both images and text, visual keywords get
        page images, everything else reads text.
        """
        field_id, question = _text(field)
        if any(k in question for k in ANALYSIS_KEYWORDS):
            return ProcessingMode.DUAL
        if any(k in field_id or k in question for k in VISUAL_KEYWORDS):
            return ProcessingMode.VISUAL
        return ProcessingMode.TEXT

    def allows_early_exit(self, field: FieldRequest) -> bool:
        """Only boolean signature fields may stop their page scan early."""
        return field.expected_type == ExpectedType.BOOLEAN and is_signature_field(field)

    def early_exit_threshold(self, field: FieldRequest) -> float:
        """Confidence a YES page answer needs to stop the page scan."""
        if self.processing_mode(field) == ProcessingMode.DUAL:
            return self._extraction.dual_signature_early_exit_confidence
        return self._extraction.signature_early_exit_confidence
