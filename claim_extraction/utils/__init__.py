"""
Utility modules for the claim extraction pipeline.

Provides string, number and date normalization helpers.
"""

from claim_extraction.utils.date_utils import (
    CANONICAL_DATE_FORMAT,
    find_date,
    format_date,
    normalize_date,
    parse_date,
)
from claim_extraction.utils.string_utils import (
    canonical_number,
    extract_numbers,
    jaccard_similarity,
    normalize_whitespace,
    parse_number,
    strip_markdown,
    tokenize,
    truncate_text,
)


__all__ = [
    # Date utilities
    "CANONICAL_DATE_FORMAT",
    "find_date",
    "format_date",
    "normalize_date",
    "parse_date",
    # String utilities
    "canonical_number",
    "extract_numbers",
    "jaccard_similarity",
    "normalize_whitespace",
    "parse_number",
    "strip_markdown",
    "tokenize",
    "truncate_text",
]
