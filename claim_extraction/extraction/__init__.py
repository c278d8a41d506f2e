"""
Extraction orchestration.

Provides strategy selection, page targeting, field grouping and the
orchestrator that sequences a document run.
"""

from claim_extraction.extraction.field_classifier import (
    FieldClassifier,
    FieldGroup,
    GroupPolicy,
    is_comprehensive_field,
    is_signature_field,
)
from claim_extraction.extraction.orchestrator import (
    ExtractionOrchestrator,
    build_orchestrator,
    extract_document,
)
from claim_extraction.extraction.page_targeting import (
    FieldType,
    PageAnalysis,
    PageContentType,
    PageTargeter,
    classify_field_type,
)
from claim_extraction.extraction.strategy import (
    Strategy,
    StrategyPlan,
    StrategySelector,
    select_strategy,
)


__all__ = [
    # Strategy
    "Strategy",
    "StrategyPlan",
    "StrategySelector",
    "select_strategy",
    # Page targeting
    "FieldType",
    "PageAnalysis",
    "PageContentType",
    "PageTargeter",
    "classify_field_type",
    # Field grouping
    "FieldClassifier",
    "FieldGroup",
    "GroupPolicy",
    "is_comprehensive_field",
    "is_signature_field",
    # Orchestration
    "ExtractionOrchestrator",
    "build_orchestrator",
    "extract_document",
]
