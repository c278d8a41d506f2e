"""
Date utility functions for claim document extraction.

Provides date parsing and normalization to the canonical two-digit
month-day-year form (MM-DD-YY) used on the consolidated wire format.
"""

import re
from datetime import date, datetime


CANONICAL_DATE_FORMAT = "%m-%d-%y"

# Common date format patterns with their strptime formats
DATE_FORMATS: list[tuple[str, str]] = [
    # US formats
    (r"^\d{1,2}/\d{1,2}/\d{4}$", "%m/%d/%Y"),  # MM/DD/YYYY
    (r"^\d{1,2}-\d{1,2}-\d{4}$", "%m-%d-%Y"),  # MM-DD-YYYY
    (r"^\d{1,2}/\d{1,2}/\d{2}$", "%m/%d/%y"),  # MM/DD/YY
    (r"^\d{1,2}-\d{1,2}-\d{2}$", "%m-%d-%y"),  # MM-DD-YY
    (r"^\d{1,2}\.\d{1,2}\.\d{4}$", "%m.%d.%Y"),  # MM.DD.YYYY
    # ISO format
    (r"^\d{4}-\d{1,2}-\d{1,2}$", "%Y-%m-%d"),  # YYYY-MM-DD
    (r"^\d{4}/\d{1,2}/\d{1,2}$", "%Y/%m/%d"),  # YYYY/MM/DD
    # Text formats
    (r"^\w+ \d{1,2}, \d{4}$", "%B %d, %Y"),  # January 1, 2024
    (r"^\w+ \d{1,2} \d{4}$", "%B %d %Y"),  # January 1 2024
    (r"^\d{1,2} \w+ \d{4}$", "%d %B %Y"),  # 1 January 2024
    (r"^\w{3}\.? \d{1,2}, \d{4}$", "%b %d, %Y"),  # Jan 1, 2024
    (r"^\w{3} \d{1,2} \d{4}$", "%b %d %Y"),  # Jan 1 2024
]

# Date-looking substrings inside longer answers
_EMBEDDED_DATE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\b\d{4}[-/]\d{1,2}[-/]\d{1,2}\b"),
    re.compile(r"\b\d{1,2}[-/.]\d{1,2}[-/.]\d{2,4}\b"),
    re.compile(r"\b[A-Z][a-z]{2,8}\.? \d{1,2},? \d{4}\b"),
]


def parse_date(
    date_string: str,
    formats: list[tuple[str, str]] | None = None,
    default: date | None = None,
) -> date | None:
    """
    Parse a date string into a date object.

    Attempts multiple common date formats seen on policy documents.

    Args:
        date_string: String representation of date.
        formats: Optional list of (pattern, strptime_format) tuples.
        default: Default value if parsing fails.

    Returns:
        Parsed date object or default value.

    Example:
        parse_date("04/11/2025") -> date(2025, 4, 11)
        parse_date("2025-04-11") -> date(2025, 4, 11)
        parse_date("April 11, 2025") -> date(2025, 4, 11)
    """
    if not date_string:
        return default

    date_string = date_string.strip()

    if formats is None:
        formats = DATE_FORMATS

    for pattern, date_format in formats:
        if re.match(pattern, date_string, re.IGNORECASE):
            try:
                return datetime.strptime(date_string, date_format).date()
            except ValueError:
                continue

    return default


def find_date(text: str) -> date | None:
    """
    Find and parse the first date embedded in free text.

    Example:
        find_date("Policy expires on 04/11/2025.") -> date(2025, 4, 11)
    """
    if not text:
        return None

    parsed = parse_date(text)
    if parsed is not None:
        return parsed

    for pattern in _EMBEDDED_DATE_PATTERNS:
        for match in pattern.finditer(text):
            candidate = parse_date(match.group(0).replace(".,", ","))
            if candidate is not None:
                return candidate
    return None


def format_date(
    d: date | datetime,
    output_format: str = CANONICAL_DATE_FORMAT,
) -> str:
    """
    Format a date object to string.

    Example:
        format_date(date(2025, 4, 11)) -> "04-11-25"
    """
    if isinstance(d, datetime):
        d = d.date()

    return d.strftime(output_format)


def normalize_date(
    date_string: str,
    output_format: str = CANONICAL_DATE_FORMAT,
) -> str | None:
    """
    Normalize a date string to the canonical format.

    Args:
        date_string: Date in any supported format, possibly inside a sentence.
        output_format: Desired output format.

    Returns:
        Normalized date string, or None if no date could be parsed.

    Example:
        normalize_date("4/11/2025") -> "04-11-25"
        normalize_date("04-11-25") -> "04-11-25"
    """
    parsed = find_date(date_string)

    if parsed is None:
        return None

    return format_date(parsed, output_format)
