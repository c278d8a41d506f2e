"""
Judge prompts for arbitration and forced reanalysis.

The judge sees both prior answers, the original question and a bounded
document excerpt, and must pick A, B or synthesize a new answer.
"""

from typing import Sequence

from claim_extraction.schemas import (
    CONSOLIDATED_SEPARATOR,
    NOT_FOUND,
    ConsolidatedRequest,
    ExpectedType,
)


def build_judge_system_prompt(expected_type: ExpectedType) -> str:
    """System prompt for the judge model."""
    return f"""You are an expert judge specializing in insurance document analysis.
Your role is to resolve discrepancies between two AI models by determining the correct answer.

Key responsibilities:
1. Analyze the document context carefully
2. Identify which model provided the factually correct answer
3. If both are partially correct, synthesize a better answer
4. Provide clear reasoning for your decision

Expected response type: {expected_type.value}
- For boolean: Answer must be YES or NO
- For date: Answer must be in MM-DD-YY format
- For text: Provide the most accurate text response
- For number: Provide the correct numeric value

Be decisive and accurate. Respond with JSON only."""


def build_judge_prompt(
    context: str,
    question: str,
    field_id: str,
    expected_type: ExpectedType,
    answer_a: str,
    confidence_a: float,
    model_a: str,
    answer_b: str,
    confidence_b: float,
    model_b: str,
) -> str:
    """
    Build the arbitration prompt for two conflicting answers.

    Args:
        context: Document excerpt, already bounded by the caller.
        question: Original question.
        field_id: Field being evaluated.
        expected_type: Expected answer type.
        answer_a: First model's answer.
        confidence_a: First model's confidence.
        model_a: First model's identifier.
        answer_b: Second model's answer.
        confidence_b: Second model's confidence.
        model_b: Second model's identifier.

    Returns:
        Judge prompt requesting a JSON decision.
    """
    return f"""As an expert judge, analyze these two different answers to the same question and determine the correct one.

DOCUMENT CONTEXT (excerpt):
{context or "(no text context available)"}

ORIGINAL QUESTION:
{question}

FIELD BEING EVALUATED: {field_id or "unknown"}
EXPECTED ANSWER TYPE: {expected_type.value}

MODEL A ({model_a}) ANSWER:
Response: {answer_a}
Confidence: {confidence_a}

MODEL B ({model_b}) ANSWER:
Response: {answer_b}
Confidence: {confidence_b}

Analyze both answers considering:
1. Which answer is factually correct based on the document?
2. Which answer better addresses the specific question asked?
3. Are there any obvious errors or misinterpretations?
4. For signature/visual questions: which model likely had better visual analysis?

Respond in JSON format:
{{
  "decision": "A" or "B" or "SYNTHESIZE",
  "correct_answer": "the actual correct answer",
  "confidence": 0.0-1.0,
  "reasoning": "brief explanation of your decision",
  "discrepancy_analysis": "why the models disagreed"
}}"""


def build_reanalysis_prompt(
    request: ConsolidatedRequest,
    current_values: Sequence[str],
) -> str:
    """
    Build the forced-reanalysis prompt for a consolidated answer.

    The model is shown the current values and asked to fill the
    NOT_FOUND positions without dropping values already resolved.
    """
    lines = []
    for index, (field, value) in enumerate(zip(request.expected_fields, current_values), 1):
        lines.append(f"{index}. {field.field_id} ({field.expected_type.value}): {value}")
    current = "\n".join(lines)
    count = request.field_count

    return f"""## FORCED REANALYSIS - {request.field_id}

A previous extraction left many values as {NOT_FOUND}. Re-examine the
document and resolve as many of them as the document supports.

### Original Question
{request.question}

### Current Values
{current}

### Instructions
- Keep every value that is already resolved unless the document clearly contradicts it.
- Search headers, footers, tables, stamps, handwriting and signature blocks.
- Return exactly {count} values on ONE line, separated by semicolons ({CONSOLIDATED_SEPARATOR}), in the order above.
- Boolean values: YES or NO. Dates: MM-DD-YY. Use {NOT_FOUND} only when truly absent.

ANSWER:"""
