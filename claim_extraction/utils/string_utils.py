"""
String utility functions for claim document extraction.

Provides normalization, token and number helpers used when comparing
model answers and scoring retrieved text.
"""

import re
from decimal import Decimal, InvalidOperation


_NUMBER_PATTERN = re.compile(r"-?\d+(?:\.\d+)?")
_MARKDOWN_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"```[a-zA-Z]*\n?"), ""),
    (re.compile(r"\*\*(.+?)\*\*"), r"\1"),
    (re.compile(r"__(.+?)__"), r"\1"),
    (re.compile(r"(?<!\w)\*(?!\s)(.+?)(?<!\s)\*(?!\w)"), r"\1"),
    (re.compile(r"`([^`]*)`"), r"\1"),
    (re.compile(r"^#{1,6}\s*", re.MULTILINE), ""),
    (re.compile(r"^\s*[-*+]\s+", re.MULTILINE), ""),
]


def normalize_whitespace(text: str) -> str:
    """
    Normalize whitespace in text.

    Collapses multiple spaces, tabs, newlines into single spaces.

    Args:
        text: Text to normalize.

    Returns:
        Text with normalized whitespace.

    Example:
        normalize_whitespace("Hello   World\\n\\n") -> "Hello World"
    """
    if not text:
        return ""

    return " ".join(text.split())


def extract_numbers(text: str) -> list[str]:
    """
    Extract all numbers from text, ignoring thousands separators.

    Example:
        extract_numbers("Deductible $1,000 of 3 claims") -> ["1000", "3"]
    """
    if not text:
        return []

    # Thousands separators would otherwise split a number in two
    cleaned = re.sub(r"(?<=\d),(?=\d{3}\b)", "", text)
    return _NUMBER_PATTERN.findall(cleaned)


def parse_number(text: str) -> float | None:
    """
    Parse text that is entirely a number, allowing currency and percent marks.

    Args:
        text: Candidate numeric text such as "$1,500.00" or "12%".

    Returns:
        Parsed float, or None when the text is not a plain number.
    """
    if not text:
        return None

    cleaned = re.sub(r"[$,%\s]", "", text.strip())
    if cleaned.startswith("(") and cleaned.endswith(")"):
        cleaned = "-" + cleaned[1:-1]
    try:
        return float(cleaned)
    except ValueError:
        return None


def canonical_number(text: str) -> str | None:
    """
    Reduce text to its first numeric substring in canonical form.

    Trailing zeros are dropped so that "1,500.00" and "1500" compare equal.

    Example:
        canonical_number("Total: $1,500.00") -> "1500"
    """
    numbers = extract_numbers(text)
    if not numbers:
        return None
    try:
        value = Decimal(numbers[0]).normalize()
    except InvalidOperation:
        return numbers[0]
    # normalize() renders 1500 as 1.5E+3
    return format(value, "f")


def tokenize(text: str) -> set[str]:
    """Lowercased whitespace token set."""
    if not text:
        return set()
    return set(text.lower().split())


def jaccard_similarity(text1: str, text2: str) -> float:
    """
    Token-set (Jaccard) similarity between two strings.

    Returns:
        Intersection over union of whitespace tokens, 0.0 to 1.0.
    """
    tokens1 = tokenize(text1)
    tokens2 = tokenize(text2)
    if not tokens1 and not tokens2:
        return 1.0
    union = tokens1 | tokens2
    return len(tokens1 & tokens2) / len(union)


def strip_markdown(text: str) -> str:
    """Remove common markdown decoration from a model response."""
    if not text:
        return ""
    for pattern, replacement in _MARKDOWN_PATTERNS:
        text = pattern.sub(replacement, text)
    return text.strip()


def truncate_text(
    text: str,
    max_length: int,
    suffix: str = "...",
    word_boundary: bool = True,
) -> str:
    """
    Truncate text to maximum length.

    Args:
        text: Text to truncate.
        max_length: Maximum length including suffix.
        suffix: String to append when truncated.
        word_boundary: If True, truncate at word boundary.

    Returns:
        Truncated text.
    """
    if not text or len(text) <= max_length:
        return text

    truncate_length = max_length - len(suffix)

    if truncate_length <= 0:
        return suffix[:max_length]

    truncated = text[:truncate_length]

    if word_boundary:
        last_space = truncated.rfind(" ")
        if last_space > 0:
            truncated = truncated[:last_space]

    return truncated.rstrip() + suffix
