"""
Structured logging configuration using structlog.

Provides JSON-formatted logging with contextual information, masking of
personal and policy identifiers found in claim documents, and integration
with Python's standard logging module.
"""

import logging
import logging.handlers
import re
import sys
from datetime import UTC, datetime
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from claim_extraction.config.settings import LogFormat, get_settings


# Identifier patterns masked before a log entry is rendered
PII_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    # SSN patterns
    (re.compile(r"\b\d{3}-\d{2}-\d{4}\b"), "[SSN-MASKED]"),
    # Credit card numbers (before phone numbers, which would match a prefix)
    (re.compile(r"\b\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b"), "[CC-MASKED]"),
    # Phone numbers
    (re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b"), "[PHONE-MASKED]"),
    # Email addresses
    (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "[EMAIL-MASKED]"),
    # Policy and claim numbers introduced by a label
    (
        re.compile(r"\b(?:policy|claim)\s*(?:no\.?|number|#)\s*[:\s]*[A-Z0-9-]{5,}", re.IGNORECASE),
        "[POLICY-NUMBER-MASKED]",
    ),
]


def mask_text(text: str) -> str:
    """Apply every identifier pattern to a string."""
    for pattern, replacement in PII_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def mask_pii(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """
    Mask personal and policy identifiers in log entries.

    Args:
        logger: Logger instance.
        method_name: Name of the logging method.
        event_dict: The event dictionary to process.

    Returns:
        EventDict with identifiers masked.
    """
    if not get_settings().logging.mask_pii:
        return event_dict

    def mask_value(value: Any) -> Any:
        if isinstance(value, str):
            return mask_text(value)
        if isinstance(value, dict):
            return {k: mask_value(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return type(value)(mask_value(item) for item in value)
        return value

    return {key: mask_value(val) for key, val in event_dict.items()}


def add_timestamp(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add ISO-8601 timestamp to log entries."""
    event_dict["timestamp"] = datetime.now(UTC).isoformat()
    return event_dict


def add_service_info(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """
    Add service metadata to log entries.

    Args:
        logger: Logger instance.
        method_name: Name of the logging method.
        event_dict: Event dictionary.

    Returns:
        EventDict with service info added.
    """
    settings = get_settings()
    event_dict["service"] = settings.app_name
    event_dict["version"] = settings.app_version
    event_dict["environment"] = settings.app_env.value
    return event_dict


def add_caller_info(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add caller information from the originating stdlib record."""
    if not get_settings().logging.include_caller:
        return event_dict

    record = event_dict.get("_record")
    if record:
        event_dict["caller"] = {
            "filename": record.filename,
            "function": record.funcName,
            "line": record.lineno,
            "module": record.module,
        }
    return event_dict


class PIIFilter(logging.Filter):
    """
    Logging filter that masks identifiers in foreign log records.

    Structlog events are masked by the ``mask_pii`` processor; this filter
    covers records emitted directly through the standard library.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not get_settings().logging.mask_pii:
            return True

        if isinstance(record.msg, str):
            record.msg = mask_text(record.msg)

        if record.args and isinstance(record.args, tuple):
            record.args = tuple(
                mask_text(arg) if isinstance(arg, str) else arg for arg in record.args
            )

        return True


def get_json_processors() -> list[Processor]:
    """Get processors for JSON log output."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        add_timestamp,
        add_service_info,
        add_caller_info,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.processors.format_exc_info,
        mask_pii,
        structlog.processors.JSONRenderer(),
    ]


def get_console_processors() -> list[Processor]:
    """Get processors for console log output."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        add_timestamp,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.processors.format_exc_info,
        mask_pii,
        structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback,
        ),
    ]


def configure_logging() -> None:
    """
    Configure the logging system with structlog.

    Sets up both structlog and standard library logging with JSON or
    console output, identifier masking, and a rotating file handler.
    """
    settings = get_settings()
    log_level = getattr(logging, settings.logging.level.value)
    is_json = settings.logging.format == LogFormat.JSON

    structlog.configure(
        processors=get_json_processors() if is_json else get_console_processors(),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    pre_chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.ExtraAdder(),
        add_timestamp,
    ]
    if is_json:
        pre_chain.append(add_service_info)
    pre_chain.extend(
        [
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.processors.format_exc_info,
            mask_pii,
        ]
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processor=(
            structlog.processors.JSONRenderer()
            if is_json
            else structlog.dev.ConsoleRenderer(colors=True)
        ),
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(PIIFilter())
    root_logger.addHandler(console_handler)

    log_file = settings.logging.file_path
    log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.handlers.RotatingFileHandler(
        filename=str(log_file),
        maxBytes=settings.logging.file_max_size_mb * 1024 * 1024,
        backupCount=settings.logging.file_backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)
    file_handler.addFilter(PIIFilter())
    root_logger.addHandler(file_handler)

    # Set levels for noisy third-party loggers
    for noisy in ("httpx", "httpcore", "openai", "asyncio", "fitz", "PIL"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a configured structlog logger instance.

    Args:
        name: Logger name. If None, uses the calling module's name.

    Returns:
        Configured structlog BoundLogger instance.
    """
    return structlog.get_logger(name)
