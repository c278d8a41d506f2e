"""
Extraction prompts for per-field and consolidated questions.

Provides the per-type answer format instructions, single-field page
prompts, consolidated multi-field prompts (standard, enhanced and
field-subset variants) and the page-classification prompt used by page
targeting.
"""

from typing import Sequence

from claim_extraction.schemas import (
    CONSOLIDATED_SEPARATOR,
    NOT_FOUND,
    ConsolidatedRequest,
    ExpectedType,
    FieldRequest,
)


EXTRACTION_SYSTEM_PROMPT = f"""You are an expert insurance document analyst.
You answer questions about claim and policy documents using ONLY what is
present in the content you are given.

Rules:
1. Never guess. If the information is not present, answer {NOT_FOUND}.
2. Follow the requested answer format exactly, with no extra commentary.
3. You may append a line "Confidence: <0.0-1.0>" after your answer."""


_FORMAT_INSTRUCTIONS: dict[ExpectedType, str] = {
    ExpectedType.BOOLEAN: "Answer only YES or NO.",
    ExpectedType.DATE: "Return only the date in MM-DD-YY format.",
    ExpectedType.NUMBER: "Return only the numeric value, without currency symbols or units.",
    ExpectedType.TEXT: "Provide a clear, concise answer based on the document content.",
    ExpectedType.JSON: "Return a single valid JSON object and nothing else.",
}


def format_instruction(expected_type: ExpectedType, question: str = "") -> str:
    """
    Answer-format instruction for one expected type.

    Text questions that already ask for semicolon-separated values keep
    that format.
    """
    if expected_type == ExpectedType.TEXT and (
        CONSOLIDATED_SEPARATOR in question or "semicolon" in question.lower()
    ):
        return (
            "Return your answer in the exact format specified, using semicolons "
            "as separators. Provide only the requested values in the specified order."
        )
    return _FORMAT_INSTRUCTIONS[expected_type]


def build_field_prompt(
    field: FieldRequest,
    page_number: int | None = None,
    total_pages: int | None = None,
    visual: bool = False,
) -> str:
    """
    Build the prompt for one field on one page (or a page set).

    Args:
        field: Field being asked.
        page_number: One-indexed page shown to the model, if a single page.
        total_pages: Document page count, for context.
        visual: Whether the model is looking at a page image.

    Returns:
        Complete extraction prompt.
    """
    location = ""
    if page_number is not None and total_pages:
        location = f"\nYou are looking at page {page_number} of {total_pages}.\n"

    visual_instruction = ""
    if visual:
        visual_instruction = (
            "\nInspect the page image carefully. Handwritten signatures, initials, "
            "electronic signatures, filled signature lines, stamps and seals all "
            "count as visual marks.\n"
        )

    return f"""## FIELD EXTRACTION - {field.field_id}
{location}{visual_instruction}
### Question
{field.question}

### Answer Format
{format_instruction(field.expected_type, field.question)}
If the information is not on this content, answer {NOT_FOUND}.

ANSWER:"""


def _field_list(fields: Sequence[FieldRequest]) -> str:
    lines = []
    for index, field in enumerate(fields, 1):
        lines.append(
            f"{index}. {field.field_id} ({field.expected_type.value}): {field.question}"
        )
    return "\n".join(lines)


def build_consolidated_prompt(
    request: ConsolidatedRequest,
    enhanced: bool = False,
) -> str:
    """
    Build a consolidated prompt packing several fields into one answer.

    The model must answer with exactly one semicolon-separated line, one
    value per expected field in declared order.

    Args:
        request: Consolidated request with its expected fields.
        enhanced: Use the more insistent wording of the second pass.

    Returns:
        Complete consolidated prompt.
    """
    count = request.field_count
    emphasis = ""
    if enhanced:
        emphasis = f"""
### SECOND PASS - BE THOROUGH
A previous pass left too many values unresolved. Examine EVERY page you
were given, including headers, footers, tables, stamps and handwriting,
before answering {NOT_FOUND} for any value. Signatures or initials anywhere
on a page count as YES for signature questions.
"""

    return f"""## CONSOLIDATED EXTRACTION - {request.field_id}
{emphasis}
### Question
{request.question}

### Values To Return (in this exact order)
{_field_list(request.expected_fields)}

### Answer Format
- Return exactly {count} values on ONE line, separated by semicolons ({CONSOLIDATED_SEPARATOR}).
- Boolean values: YES or NO.
- Dates: MM-DD-YY.
- Use {NOT_FOUND} for any value you cannot locate.
- No explanations, labels or extra lines.

ANSWER:"""


def build_subset_prompt(
    request: ConsolidatedRequest,
    subset: Sequence[FieldRequest],
) -> str:
    """
    Build a consolidated prompt restricted to a subset of the fields.

    Used by the chunked-by-field-subset pass so each call answers fewer
    values with more attention per value.
    """
    return f"""## FOCUSED EXTRACTION - {request.field_id}

### Context
{request.question}

### Values To Return (in this exact order)
{_field_list(subset)}

### Answer Format
- Return exactly {len(subset)} values on ONE line, separated by semicolons ({CONSOLIDATED_SEPARATOR}).
- Boolean values: YES or NO. Dates: MM-DD-YY.
- Use {NOT_FOUND} for any value you cannot locate.

ANSWER:"""


def build_page_classification_prompt(page_numbers: Sequence[int]) -> str:
    """
    Build the prompt that classifies sampled pages in one call.

    Args:
        page_numbers: One-indexed pages included in the request, in order.

    Returns:
        Prompt asking for a JSON array with one entry per page.
    """
    pages = ", ".join(str(number) for number in page_numbers)
    return f"""Analyze these document pages and classify each one. The pages shown are, in order: {pages}.

For each page, identify:
1. Content type: declarations, coverage, exclusions, signatures, schedules, endorsements, or general
2. Has signatures: true/false (handwritten marks, signature lines)
3. Has dates: true/false (any date format)
4. Has policy numbers: true/false (alphanumeric identifiers)
5. Has monetary amounts: true/false ($, amounts, premiums)
6. Key phrases found (up to 5 most important)

Respond with a JSON array only:
[
  {{
    "page": 1,
    "contentType": "declarations",
    "hasSignatures": false,
    "hasDates": true,
    "hasPolicyNumbers": true,
    "hasMonetaryAmounts": true,
    "keyPhrases": ["policy period", "effective date", "premium", "insured", "coverage"]
  }}
]"""
