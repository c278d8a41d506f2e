"""
Claim document field extraction.

Extracts typed field values from insurance-claim PDFs by running two
independent models per question, reconciling them through consensus,
progressive combination and judge arbitration, and falling back to
retrieval over semantic chunks for oversized documents.

Usage:
    from claim_extraction import ExtractionOrchestrator, FieldRequest, ExpectedType
    from claim_extraction.preprocessing import PDFDocument
    from claim_extraction.client import OpenAIModelAdapter
"""

from importlib.metadata import PackageNotFoundError, version

from claim_extraction.config import configure_logging, get_logger, get_settings
from claim_extraction.extraction import (
    ExtractionOrchestrator,
    Strategy,
    StrategyPlan,
    build_orchestrator,
    extract_document,
    select_strategy,
)
from claim_extraction.schemas import (
    NOT_FOUND,
    ConsolidatedAnswer,
    ConsolidatedRequest,
    ExpectedType,
    ExtractionReport,
    FieldAnswer,
    FieldRequest,
)


try:
    __version__ = version("claim-extraction")
except PackageNotFoundError:
    __version__ = "0.1.0"

__all__ = [
    "__version__",
    # Configuration
    "configure_logging",
    "get_logger",
    "get_settings",
    # Requests and answers
    "NOT_FOUND",
    "ConsolidatedAnswer",
    "ConsolidatedRequest",
    "ExpectedType",
    "ExtractionReport",
    "FieldAnswer",
    "FieldRequest",
    # Orchestration
    "ExtractionOrchestrator",
    "Strategy",
    "StrategyPlan",
    "build_orchestrator",
    "extract_document",
    "select_strategy",
]
