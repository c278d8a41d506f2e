"""
Parsing and cleanup of raw model responses.

Model output rarely matches the requested shape exactly: answers arrive
wrapped in markdown, followed by explanations, or with a confidence
annotation inline. These helpers recover the answer locally and only
degrade to NOT_FOUND (or a wrapped JSON structure) when nothing usable
remains.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Sequence

from claim_extraction.config import get_logger
from claim_extraction.schemas import (
    CONSOLIDATED_SEPARATOR,
    NOT_FOUND,
    ExpectedType,
    FieldRequest,
)
from claim_extraction.utils import (
    canonical_number,
    normalize_date,
    normalize_whitespace,
    strip_markdown,
)


logger = get_logger(__name__)


DEFAULT_CONFIDENCE = 0.85

CONFIDENCE_PATTERN = re.compile(r"confidence[:\s]+([0-9.]+)", re.IGNORECASE)
_CONFIDENCE_ANNOTATION = re.compile(
    r"[\(\[]?\s*confidence[:\s]+[0-9.]+%?\s*[\)\]]?", re.IGNORECASE
)
_NOT_FOUND_PATTERN = re.compile(r"\bNOT[_\s]FOUND\b", re.IGNORECASE)
_YES_PATTERN = re.compile(r"\b(YES|TRUE)\b", re.IGNORECASE)
_NO_PATTERN = re.compile(r"\b(NO|FALSE)\b", re.IGNORECASE)

# Lines that explain an answer rather than carry it
_EXPLANATORY_PREFIXES = (
    "note",
    "explanation",
    "reasoning",
    "based on",
    "here is",
    "here are",
    "i found",
    "i have",
    "the document",
    "after reviewing",
    "analysis",
)

_JSON_PATTERNS = [
    re.compile(r"```json\s*([\s\S]*?)\s*```", re.MULTILINE),
    re.compile(r"```\s*([\s\S]*?)\s*```", re.MULTILINE),
]


@dataclass(frozen=True, slots=True)
class ParsedResponse:
    """
    Answer and confidence recovered from a raw model response.

    Attributes:
        answer: Cleaned answer text.
        confidence: Confidence stated by the model, or the default.
    """

    answer: str
    confidence: float


def parse_confidence(text: str, default: float = DEFAULT_CONFIDENCE) -> float:
    """
    Extract a stated confidence from a model response.

    Percent-style values (e.g. ``confidence: 85``) are scaled to 0-1.

    Args:
        text: Raw response text.
        default: Value used when no confidence is stated.

    Returns:
        Confidence clamped to 0.0-1.0.
    """
    if not text:
        return default

    match = CONFIDENCE_PATTERN.search(text)
    if not match:
        return default

    try:
        value = float(match.group(1).rstrip("."))
    except ValueError:
        return default

    if value > 1.0:
        value = value / 100.0
    return max(0.0, min(1.0, value))


def extract_json(content: str) -> Any | None:
    """
    Extract a JSON object or array from response content.

    Handles direct JSON, markdown code blocks, and JSON embedded in text.

    Args:
        content: Raw response content.

    Returns:
        Parsed JSON value or None if extraction fails.
    """
    if not content:
        return None

    content = content.strip()

    try:
        if content[0] in "{[":
            return json.loads(content)
    except json.JSONDecodeError:
        pass

    for pattern in _JSON_PATTERNS:
        for match in pattern.findall(content):
            candidate = match.strip()
            if candidate and candidate[0] in "{[":
                try:
                    return json.loads(candidate)
                except json.JSONDecodeError:
                    continue

    # Final attempt: outermost brackets of either kind
    for opener, closer in (("{", "}"), ("[", "]")):
        start = content.find(opener)
        end = content.rfind(closer) + 1
        if start >= 0 and end > start:
            try:
                return json.loads(content[start:end])
            except json.JSONDecodeError:
                continue

    logger.debug(
        "json_extraction_failed",
        content_length=len(content),
        content_preview=content[:200],
    )
    return None


def _is_explanatory(line: str) -> bool:
    lowered = line.strip().lower()
    return lowered.startswith(_EXPLANATORY_PREFIXES)


def select_answer_line(text: str) -> str:
    """
    Pick the line that carries the answer.

    For semicolon-delimited responses this is the first line containing a
    separator that is not an explanation; otherwise the first non-empty,
    non-explanatory line.
    """
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if not lines:
        return ""

    if CONSOLIDATED_SEPARATOR in text:
        for line in lines:
            if CONSOLIDATED_SEPARATOR in line and not _is_explanatory(line):
                return line

    for line in lines:
        if not _is_explanatory(line):
            return line
    return lines[0]


def _strip_annotations(text: str) -> str:
    text = _CONFIDENCE_ANNOTATION.sub("", text)
    return text.strip().strip("\"'").strip()


def clean_answer(text: str, expected_type: ExpectedType) -> str:
    """
    Clean one answer value according to its expected type.

    Args:
        text: Raw answer text for a single field.
        expected_type: Target type of the field.

    Returns:
        YES/NO for booleans, MM-DD-YY for dates, the numeric substring for
        numbers, serialized JSON for JSON fields, or the answer line for
        text. NOT_FOUND when nothing usable remains.
    """
    if expected_type == ExpectedType.JSON:
        return _clean_json(text)

    cleaned = _strip_annotations(strip_markdown(text or ""))
    if not cleaned or (_NOT_FOUND_PATTERN.search(cleaned) and len(cleaned) < 40):
        return NOT_FOUND

    if expected_type == ExpectedType.BOOLEAN:
        if _YES_PATTERN.search(cleaned):
            return "YES"
        if _NO_PATTERN.search(cleaned):
            return "NO"
        return NOT_FOUND

    line = select_answer_line(cleaned)

    if expected_type == ExpectedType.DATE:
        return normalize_date(line) or normalize_date(cleaned) or line

    if expected_type == ExpectedType.NUMBER:
        return canonical_number(line) or line

    return normalize_whitespace(line)


def _clean_json(text: str) -> str:
    parsed = extract_json(text or "")
    if parsed is None:
        stripped = (text or "").strip()
        if not stripped or _NOT_FOUND_PATTERN.fullmatch(stripped):
            return NOT_FOUND
        return json.dumps({"response": stripped})
    return json.dumps(parsed)


def parse_response(raw: str, expected_type: ExpectedType) -> ParsedResponse:
    """
    Recover the answer and confidence from a single-field response.

    Args:
        raw: Raw model response.
        expected_type: Target type of the field.

    Returns:
        ParsedResponse with cleaned answer and stated confidence.
    """
    return ParsedResponse(
        answer=clean_answer(raw, expected_type),
        confidence=parse_confidence(raw),
    )


def split_consolidated(raw: str, expected_count: int) -> list[str]:
    """
    Split a consolidated response into exactly ``expected_count`` values.

    Missing positions are padded with NOT_FOUND; surplus positions are
    dropped.

    Example:
        split_consolidated("YES;04-11-25", 3) -> ["YES", "04-11-25", "NOT_FOUND"]
    """
    if expected_count <= 0:
        return []

    line = select_answer_line(_strip_annotations(strip_markdown(raw or "")))
    values = [value.strip() for value in line.split(CONSOLIDATED_SEPARATOR)] if line else []
    values = [value if value else NOT_FOUND for value in values]

    if len(values) != expected_count:
        logger.debug(
            "consolidated_length_mismatch",
            expected=expected_count,
            received=len(values),
        )

    if len(values) < expected_count:
        values.extend([NOT_FOUND] * (expected_count - len(values)))
    return values[:expected_count]


def parse_consolidated(raw: str, expected_fields: Sequence[FieldRequest]) -> list[str]:
    """
    Split and type-clean a consolidated response.

    Returns:
        One cleaned value per expected field, in declared order.
    """
    values = split_consolidated(raw, len(expected_fields))
    return [
        clean_answer(value, field.expected_type)
        for value, field in zip(values, expected_fields)
    ]
