"""
Retrieval synthesis prompts.
"""

from claim_extraction.prompts.extraction import format_instruction
from claim_extraction.schemas import NOT_FOUND, ExpectedType


def build_synthesis_prompt(question: str, context: str, expected_type: ExpectedType) -> str:
    """
    Build the prompt that answers a question from retrieved chunks.

    Args:
        question: Question to answer.
        context: Assembled chunk context with per-chunk headers.
        expected_type: Expected answer type.

    Returns:
        Synthesis prompt.
    """
    return f"""You are analyzing an insurance document. Use the following relevant document sections to answer the question precisely.

RELEVANT DOCUMENT SECTIONS:
{context}

QUESTION:
{question}

INSTRUCTIONS:
{format_instruction(expected_type, question)}

Base your answer only on the information provided in the document sections above. If information is not found, use "{NOT_FOUND}" for missing values.

ANSWER:"""
