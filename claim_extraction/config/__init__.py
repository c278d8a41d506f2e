"""
Configuration module for the claim extraction pipeline.

Provides centralized configuration management using Pydantic Settings,
environment variable loading, and structured logging setup.
"""

from claim_extraction.config.logging_config import configure_logging, get_logger
from claim_extraction.config.settings import Environment, Settings, get_settings


__all__ = [
    "Settings",
    "get_settings",
    "Environment",
    "configure_logging",
    "get_logger",
]
