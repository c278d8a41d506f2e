"""
Prompt engineering module for claim field extraction.

Provides prompt builders for field extraction, consolidated extraction,
page classification, judge arbitration and retrieval synthesis.
"""

from claim_extraction.prompts.extraction import (
    EXTRACTION_SYSTEM_PROMPT,
    build_consolidated_prompt,
    build_field_prompt,
    build_page_classification_prompt,
    build_subset_prompt,
    format_instruction,
)
from claim_extraction.prompts.judge import (
    build_judge_prompt,
    build_judge_system_prompt,
    build_reanalysis_prompt,
)
from claim_extraction.prompts.retrieval import build_synthesis_prompt


__all__ = [
    # Extraction
    "EXTRACTION_SYSTEM_PROMPT",
    "build_consolidated_prompt",
    "build_field_prompt",
    "build_page_classification_prompt",
    "build_subset_prompt",
    "format_instruction",
    # Judge
    "build_judge_prompt",
    "build_judge_system_prompt",
    "build_reanalysis_prompt",
    # Retrieval
    "build_synthesis_prompt",
]
