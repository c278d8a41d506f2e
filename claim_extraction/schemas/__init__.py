"""
Data model for claim field extraction.

Re-exports the request, result and answer types shared by every stage
of the pipeline.
"""

from claim_extraction.schemas.models import (
    CONSOLIDATED_SEPARATOR,
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


__all__ = [
    "CONSOLIDATED_SEPARATOR",
    "NOT_FOUND",
    "ConsolidatedAnswer",
    "ConsolidatedRequest",
    "DocumentContent",
    "DocumentProfile",
    "DocumentSource",
    "ExpectedType",
    "ExtractionMethod",
    "ExtractionReport",
    "FieldAnswer",
    "FieldRequest",
    "ModelResult",
    "PageMapping",
    "ProcessingMode",
    "is_not_found",
]
