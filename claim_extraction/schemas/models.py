"""
Core data model for claim field extraction.

Defines the immutable inputs (field requests), the per-call model results,
the document profile consumed by strategy selection, and the consolidated
answers returned to callers.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, Sequence


NOT_FOUND = "NOT_FOUND"
CONSOLIDATED_SEPARATOR = ";"


class ExpectedType(str, Enum):
    """Answer type a field is expected to resolve to."""

    BOOLEAN = "boolean"
    DATE = "date"
    TEXT = "text"
    NUMBER = "number"
    JSON = "json"


class ExtractionMethod(str, Enum):
    """How an answer was produced."""

    VISION = "vision"
    TEXT = "text"
    DOCUMENT = "document"
    RETRIEVAL = "retrieval"
    CONSENSUS = "consensus"
    JUDGE = "judge"
    COMBINED = "combined"
    HEURISTIC = "heuristic"


class ProcessingMode(str, Enum):
    """Which page representation is sent to the models for a field."""

    VISUAL = "visual"
    TEXT = "text"
    DUAL = "dual"


def is_not_found(value: str | None) -> bool:
    """Check whether a value is empty or the NOT_FOUND sentinel."""
    if value is None:
        return True
    stripped = value.strip()
    return not stripped or stripped.upper() == NOT_FOUND


@dataclass(frozen=True, slots=True)
class FieldRequest:
    """
    One named, typed question to answer from a document.

    Attributes:
        field_id: Stable identifier of the field.
        question: Natural-language question sent to the models.
        expected_type: Type the answer is normalized to.
    """

    field_id: str
    question: str
    expected_type: ExpectedType = ExpectedType.TEXT

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "field_id": self.field_id,
            "question": self.question,
            "expected_type": self.expected_type.value,
        }


@dataclass(frozen=True, slots=True)
class ConsolidatedRequest:
    """
    A single question whose answer packs several field values.

    The model answers with exactly one semicolon-delimited string; value
    ``i`` corresponds to ``expected_fields[i]``.

    Attributes:
        field_id: Identifier of the consolidated question.
        question: Question text sent to the models.
        expected_fields: Sub-fields in declared order.
    """

    field_id: str
    question: str
    expected_fields: tuple[FieldRequest, ...]

    @property
    def field_count(self) -> int:
        return len(self.expected_fields)

    @property
    def field_ids(self) -> tuple[str, ...]:
        return tuple(f.field_id for f in self.expected_fields)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "field_id": self.field_id,
            "question": self.question,
            "expected_fields": [f.to_dict() for f in self.expected_fields],
        }


@dataclass(frozen=True, slots=True)
class PageMapping:
    """
    Candidate pages proposed for one field.

    Attributes:
        field_id: Field the mapping belongs to.
        target_pages: One-indexed pages in examination order.
        reasoning: Short explanation of how the pages were chosen.
        confidence: Confidence in the mapping, 0.0-1.0.
    """

    field_id: str
    target_pages: tuple[int, ...]
    reasoning: str
    confidence: float

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "field_id": self.field_id,
            "target_pages": list(self.target_pages),
            "reasoning": self.reasoning,
            "confidence": self.confidence,
        }


@dataclass(frozen=True, slots=True)
class ModelResult:
    """
    Outcome of a single model adapter call.

    Attributes:
        field_id: Field the call answered.
        page: One-indexed page examined, or None for whole-document calls.
        raw_response: Cleaned answer text.
        confidence: Reported confidence, 0.0-1.0.
        model_id: Identifier of the backend model.
        method: How the answer was produced.
        tokens_used: Total tokens consumed by the call.
        elapsed_ms: Wall-clock latency of the call.
    """

    field_id: str
    page: int | None
    raw_response: str
    confidence: float
    model_id: str
    method: ExtractionMethod
    tokens_used: int = 0
    elapsed_ms: int = 0

    @property
    def is_not_found(self) -> bool:
        return is_not_found(self.raw_response)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "field_id": self.field_id,
            "page": self.page,
            "raw_response": self.raw_response,
            "confidence": self.confidence,
            "model_id": self.model_id,
            "method": self.method.value,
            "tokens_used": self.tokens_used,
            "elapsed_ms": self.elapsed_ms,
        }


@dataclass(frozen=True, slots=True)
class ConsolidatedAnswer:
    """
    Per-field values of a consolidated request.

    Invariant: ``values`` and ``confidences`` always have exactly one entry
    per expected field.

    Attributes:
        field_id: Identifier of the consolidated request.
        field_ids: Sub-field identifiers in declared order.
        values: Resolved value per sub-field (NOT_FOUND when unresolved).
        confidences: Per-sub-field confidence.
        confidence: Overall confidence of the combination.
        sources: Name of the pass that supplied each value.
    """

    field_id: str
    field_ids: tuple[str, ...]
    values: tuple[str, ...]
    confidences: tuple[float, ...]
    confidence: float
    sources: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if len(self.values) != len(self.field_ids) or len(self.confidences) != len(
            self.field_ids
        ):
            raise ValueError(
                f"Consolidated answer for {self.field_id} must have "
                f"{len(self.field_ids)} values, got {len(self.values)}"
            )

    @property
    def not_found_rate(self) -> float:
        """Fraction of sub-fields still unresolved."""
        if not self.values:
            return 0.0
        return sum(1 for v in self.values if is_not_found(v)) / len(self.values)

    def as_mapping(self) -> dict[str, str]:
        """Sub-field id to value."""
        return dict(zip(self.field_ids, self.values))

    def to_wire(self) -> str:
        """Render the semicolon-delimited wire format."""
        return CONSOLIDATED_SEPARATOR.join(self.values)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "field_id": self.field_id,
            "values": self.as_mapping(),
            "confidences": dict(zip(self.field_ids, self.confidences)),
            "confidence": self.confidence,
            "not_found_rate": self.not_found_rate,
            "answer": self.to_wire(),
        }


@dataclass(frozen=True, slots=True)
class FieldAnswer:
    """
    Final answer for one requested field.

    Attributes:
        field_id: Field identifier.
        value: Final value (NOT_FOUND when unresolved).
        confidence: Final confidence, the quality signal for callers.
        method: How the final value was produced.
        pages: Pages examined for the field.
        agreement: Consensus agreement between models, when measured.
        judged: Whether the judge arbitrated this field.
        notes: Short human-readable trail.
    """

    field_id: str
    value: str
    confidence: float
    method: ExtractionMethod
    pages: tuple[int, ...] = ()
    agreement: float | None = None
    judged: bool = False
    notes: str = ""

    @property
    def is_not_found(self) -> bool:
        return is_not_found(self.value)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "field_id": self.field_id,
            "value": self.value,
            "confidence": self.confidence,
            "method": self.method.value,
            "pages": list(self.pages),
            "agreement": self.agreement,
            "judged": self.judged,
            "notes": self.notes,
        }


@dataclass(frozen=True, slots=True)
class DocumentProfile:
    """
    Size, length and text density of a document.

    Attributes:
        file_name: Original file name.
        file_size_bytes: File size in bytes.
        page_count: Number of pages.
        text_length: Characters of extractable text across all pages.
    """

    file_name: str
    file_size_bytes: int
    page_count: int
    text_length: int

    @property
    def file_size_mb(self) -> float:
        return self.file_size_bytes / (1024 * 1024)

    @property
    def text_density(self) -> float:
        """Extracted characters per megabyte."""
        size_mb = self.file_size_mb
        if size_mb <= 0:
            return float(self.text_length)
        return self.text_length / size_mb

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "file_name": self.file_name,
            "file_size_mb": round(self.file_size_mb, 2),
            "page_count": self.page_count,
            "text_length": self.text_length,
            "text_density": round(self.text_density, 1),
        }


@dataclass(frozen=True, slots=True)
class DocumentContent:
    """
    Content handed to a model adapter: text, page images, or a whole PDF.

    Attributes:
        text: Extracted text, if any.
        images: Data URIs of rendered page images.
        document_bytes: Raw PDF bytes for file-capable backends.
        file_name: Name reported when the document is uploaded.
        pages: One-indexed pages the content covers.
    """

    text: str | None = None
    images: tuple[str, ...] = ()
    document_bytes: bytes | None = None
    file_name: str = "document.pdf"
    pages: tuple[int, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.text and not self.images and not self.document_bytes

    @property
    def has_images(self) -> bool:
        return bool(self.images)


class DocumentSource(Protocol):
    """
    Read access to a document, as required by the orchestrator.

    Implemented by ``PDFDocument``; tests provide lightweight fakes.
    """

    @property
    def page_count(self) -> int: ...

    def profile(self) -> DocumentProfile: ...

    def page_text(self, page_number: int) -> str: ...

    def page_texts(self) -> list[str]: ...

    async def page_content(
        self, page_number: int, mode: ProcessingMode
    ) -> DocumentContent: ...

    async def pages_content(
        self, page_numbers: Sequence[int], mode: ProcessingMode
    ) -> DocumentContent: ...

    async def range_content(self, first_page: int, last_page: int) -> DocumentContent: ...

    def document_content(self) -> DocumentContent: ...


@dataclass(slots=True)
class ExtractionReport:
    """
    Complete result of one orchestrator run.

    Attributes:
        answers: Final answer for every requested field id.
        consolidated: Per-sub-field answers of consolidated requests.
        strategy: Strategy that produced the answers.
        attempted_strategies: Every strategy tried, in order.
        reanalysis_triggered: Whether forced reanalysis ran.
        processing_time_ms: Total wall-clock time.
        profile: Profile of the processed document.
        plan: Selected strategy plan.
        error_patterns: Discrepancy patterns found by the judge.
    """

    answers: dict[str, FieldAnswer] = field(default_factory=dict)
    consolidated: dict[str, ConsolidatedAnswer] = field(default_factory=dict)
    strategy: str = ""
    attempted_strategies: list[str] = field(default_factory=list)
    reanalysis_triggered: bool = False
    processing_time_ms: int = 0
    profile: DocumentProfile | None = None
    plan: dict[str, Any] = field(default_factory=dict)
    error_patterns: dict[str, Any] = field(default_factory=dict)

    @property
    def values(self) -> dict[str, str]:
        """Field id to final value."""
        return {field_id: answer.value for field_id, answer in self.answers.items()}

    @property
    def overall_confidence(self) -> float:
        if not self.answers:
            return 0.0
        return sum(a.confidence for a in self.answers.values()) / len(self.answers)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "answers": {k: v.to_dict() for k, v in self.answers.items()},
            "consolidated": {k: v.to_dict() for k, v in self.consolidated.items()},
            "strategy": self.strategy,
            "attempted_strategies": self.attempted_strategies,
            "reanalysis_triggered": self.reanalysis_triggered,
            "processing_time_ms": self.processing_time_ms,
            "overall_confidence": self.overall_confidence,
            "profile": self.profile.to_dict() if self.profile else None,
            "plan": self.plan,
            "error_patterns": self.error_patterns,
        }
