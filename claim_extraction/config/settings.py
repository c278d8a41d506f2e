"""
Application settings using Pydantic Settings.

Provides type-safe, validated configuration from environment variables
with sensible defaults for the claim document extraction pipeline.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any

from pydantic import AnyHttpUrl, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment enumeration."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging level enumeration."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output format enumeration."""

    JSON = "json"
    CONSOLE = "console"


class ModelSettings(BaseSettings):
    """Extraction model backend configuration (OpenAI-compatible API)."""

    model_config = SettingsConfigDict(
        env_prefix="MODEL_",
        extra="ignore",
    )

    base_url: AnyHttpUrl = Field(
        default="https://api.openai.com/v1",
        description="OpenAI-compatible API base URL",
    )
    api_key: SecretStr = Field(
        default=SecretStr(""),
        description="API key for the model backend",
    )
    primary_model: str = Field(
        default="gpt-4o",
        description="Model used for the first independent extraction",
    )
    secondary_model: str = Field(
        default="gpt-4o-mini",
        description="Model used for the second independent extraction",
    )
    judge_model: str = Field(
        default="gpt-4.1",
        description="More capable model used to arbitrate disagreements",
    )
    text_model: str = Field(
        default="gpt-4o-mini",
        description="Text-only model used for retrieval synthesis and text fallback",
    )
    max_tokens: Annotated[int, Field(ge=16, le=32768)] = Field(
        default=1500,
        description="Maximum tokens in a model response",
    )
    temperature: Annotated[float, Field(ge=0.0, le=2.0)] = Field(
        default=0.1,
        description="Sampling temperature (lower = more deterministic)",
    )
    timeout: Annotated[int, Field(ge=1, le=600)] = Field(
        default=120,
        description="Transport-level request timeout in seconds",
    )
    strict_backend: bool = Field(
        default=False,
        description="Primary backend enforces tighter parallel-load limits",
    )
    file_poll_interval_seconds: Annotated[float, Field(ge=0.0, le=60.0)] = Field(
        default=2.0,
        description="Delay between file readiness polls",
    )
    file_poll_max_attempts: Annotated[int, Field(ge=1, le=300)] = Field(
        default=30,
        description="Maximum readiness polls before giving up on an upload",
    )


class EmbeddingSettings(BaseSettings):
    """Embedding generation configuration."""

    model_config = SettingsConfigDict(
        env_prefix="EMBEDDING_",
        extra="ignore",
    )

    model: str = Field(
        default="text-embedding-3-small",
        description="Embedding model identifier",
    )
    dimensions: Annotated[int, Field(ge=8, le=8192)] = Field(
        default=1536,
        description="Embedding vector dimensionality",
    )
    batch_size: Annotated[int, Field(ge=1, le=100)] = Field(
        default=5,
        description="Texts embedded concurrently per batch",
    )
    batch_pause_seconds: Annotated[float, Field(ge=0.0, le=10.0)] = Field(
        default=0.1,
        description="Pause between embedding batches",
    )


class StrategySettings(BaseSettings):
    """Document-level strategy selection thresholds."""

    model_config = SettingsConfigDict(
        env_prefix="STRATEGY_",
        extra="ignore",
    )

    standard_size_mb: Annotated[float, Field(ge=1.0, le=1000.0)] = Field(
        default=30.0,
        description="Files below this size are processed as standard documents",
    )
    ultra_large_size_mb: Annotated[float, Field(ge=1.0, le=2000.0)] = Field(
        default=80.0,
        description="Files at or above this size get the most aggressive splitting",
    )
    min_text_chars: Annotated[int, Field(ge=0, le=1_000_000)] = Field(
        default=1000,
        description="Minimum extracted characters for text extraction to count as successful",
    )
    min_text_chars_per_mb: Annotated[int, Field(ge=0, le=1_000_000)] = Field(
        default=200,
        description="Text density below which a document is presumed scan-only",
    )
    base_timeout_seconds: Annotated[int, Field(ge=1, le=3600)] = Field(
        default=60,
        description="Timeout budget for standard documents",
    )
    large_timeout_seconds: Annotated[int, Field(ge=1, le=3600)] = Field(
        default=180,
        description=(
            "Timeout ceiling for large documents; ultra-large documents use "
            "ultra_large_timeout_seconds instead"
        ),
    )
    ultra_large_timeout_seconds: Annotated[int, Field(ge=1, le=3600)] = Field(
        default=300,
        description="Timeout budget for ultra-large documents",
    )
    page_timeout_seconds: Annotated[int, Field(ge=1, le=600)] = Field(
        default=15,
        description="Per-page call timeout for short documents",
    )
    medium_page_timeout_seconds: Annotated[int, Field(ge=1, le=600)] = Field(
        default=12,
        description="Per-page call timeout for documents over 20 pages",
    )
    long_page_timeout_seconds: Annotated[int, Field(ge=1, le=600)] = Field(
        default=10,
        description="Per-page call timeout for documents over 50 pages",
    )
    large_chunk_size_mb: Annotated[float, Field(ge=0.5, le=100.0)] = Field(
        default=4.5,
        description="Chunk size for large documents",
    )
    ultra_large_chunk_size_mb: Annotated[float, Field(ge=0.5, le=100.0)] = Field(
        default=3.0,
        description="Chunk size for ultra-large documents",
    )
    provider_page_limit: Annotated[int, Field(ge=1, le=100_000)] = Field(
        default=1000,
        description="Hard page limit of the document-capable backend",
    )
    page_split_threshold: Annotated[int, Field(ge=1, le=100_000)] = Field(
        default=900,
        description="Page count above which documents must be split",
    )
    page_split_target_mb: Annotated[float, Field(ge=1.0, le=500.0)] = Field(
        default=35.0,
        description="Target size of each page-range split",
    )
    max_parallel_splits: Annotated[int, Field(ge=1, le=10)] = Field(
        default=3,
        description="Page-range splits analyzed concurrently",
    )
    split_delay_seconds: Annotated[float, Field(ge=0.0, le=30.0)] = Field(
        default=1.0,
        description="Delay between batches of page-range splits",
    )


class TargetingSettings(BaseSettings):
    """Page targeting configuration."""

    model_config = SettingsConfigDict(
        env_prefix="TARGETING_",
        extra="ignore",
    )

    max_sample_pages: Annotated[int, Field(ge=1, le=50)] = Field(
        default=10,
        description="Documents up to this many pages are classified exhaustively",
    )
    max_pages_per_field: Annotated[int, Field(ge=1, le=20)] = Field(
        default=5,
        description="Maximum candidate pages proposed per field",
    )
    consolidated_page_budget: Annotated[int, Field(ge=1, le=50)] = Field(
        default=10,
        description="Pages examined for consolidated multi-field prompts",
    )


class ExtractionSettings(BaseSettings):
    """Orchestration, batching and early-exit configuration."""

    model_config = SettingsConfigDict(
        env_prefix="EXTRACTION_",
        extra="ignore",
    )

    batch_concurrency: Annotated[int, Field(ge=1, le=10)] = Field(
        default=3,
        description="Concurrent field extractions per batch",
    )
    strict_batch_concurrency: Annotated[int, Field(ge=1, le=10)] = Field(
        default=2,
        description="Concurrent field extractions when the backend is strict",
    )
    batch_delay_seconds: Annotated[float, Field(ge=0.0, le=30.0)] = Field(
        default=1.0,
        description="Delay inserted between batches",
    )
    signature_early_exit_confidence: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.6,
        description="Confidence for a YES that ends a signature page scan",
    )
    dual_signature_early_exit_confidence: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.7,
        description="Signature early-exit confidence on the dual (text + image) path",
    )
    total_failure_confidence: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.1,
        description="Confidence reported when every call for a field failed",
    )
    not_located_confidence: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.3,
        description="Confidence reported when every page answered NOT_FOUND",
    )


class ConsensusSettings(BaseSettings):
    """Agreement scoring configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CONSENSUS_",
        extra="ignore",
    )

    agreement_threshold: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.8,
        description="Agreement below which the judge is invoked",
    )
    numeric_tolerance: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.1,
        description="Relative difference under which numbers agree",
    )
    numeric_agreement: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.9,
        description="Agreement assigned to numbers within tolerance",
    )
    consensus_bonus: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.15,
        description="Confidence bonus when both models agree",
    )
    consensus_cap: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.99,
        description="Maximum confidence after a consensus bonus",
    )


class CombinerSettings(BaseSettings):
    """Progressive multi-pass combination configuration."""

    model_config = SettingsConfigDict(
        env_prefix="COMBINER_",
        extra="ignore",
    )

    plausible_margin: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.15,
        description="Confidence gain needed to overwrite a plausible value",
    )
    placeholder_margin: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.05,
        description="Confidence gain needed to overwrite a placeholder value",
    )
    confidence_floor: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.7,
        description="Minimum overall confidence of a multi-pass combination",
    )
    retention_bonus: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.05,
        description="Confidence bonus for values retained from an earlier run",
    )
    plausible_min_length: Annotated[int, Field(ge=0, le=100)] = Field(
        default=2,
        description="Values longer than this are considered plausible",
    )
    not_found_rate_threshold: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.4,
        description="NOT_FOUND fraction above which forced reanalysis runs",
    )


class JudgeSettings(BaseSettings):
    """Judge/arbitrator configuration."""

    model_config = SettingsConfigDict(
        env_prefix="JUDGE_",
        extra="ignore",
    )

    context_chars: Annotated[int, Field(ge=0, le=100_000)] = Field(
        default=3000,
        description="Document context characters sent to the judge",
    )
    temperature: Annotated[float, Field(ge=0.0, le=2.0)] = Field(
        default=0.1,
        description="Judge sampling temperature",
    )
    max_tokens: Annotated[int, Field(ge=16, le=8192)] = Field(
        default=500,
        description="Maximum tokens in a judge response",
    )
    default_confidence: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.85,
        description="Confidence assumed when the judge omits one",
    )
    fallback_discount: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.8,
        description="Multiplier applied to the fallback winner's confidence",
    )
    error_pattern_threshold: Annotated[int, Field(ge=1, le=100)] = Field(
        default=2,
        description="Discrepancies per field kind above which the kind is flagged",
    )


class RetrievalSettings(BaseSettings):
    """Chunking, search and context assembly configuration."""

    model_config = SettingsConfigDict(
        env_prefix="RETRIEVAL_",
        extra="ignore",
    )

    semantic_threshold: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.85,
        description="Consecutive-sentence similarity below which a chunk ends",
    )
    chunk_size: Annotated[int, Field(ge=100, le=20_000)] = Field(
        default=1000,
        description="Characters per chunk for recursive splitting",
    )
    chunk_overlap: Annotated[int, Field(ge=0, le=5_000)] = Field(
        default=100,
        description="Character overlap between recursive chunks",
    )
    vector_weight: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.7,
        description="Weight of cosine similarity in the blended score",
    )
    keyword_weight: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.3,
        description="Weight of keyword overlap in the blended score",
    )
    min_top_k: Annotated[int, Field(ge=1, le=50)] = Field(
        default=2,
        description="Minimum chunks retrieved",
    )
    max_top_k: Annotated[int, Field(ge=1, le=50)] = Field(
        default=5,
        description="Maximum chunks retrieved",
    )
    top_k_ratio: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.3,
        description="Fraction of session chunks retrieved",
    )
    max_context_tokens: Annotated[int, Field(ge=100, le=200_000)] = Field(
        default=8000,
        description="Token budget for the assembled context window",
    )
    synthesis_confidence: Annotated[float, Field(ge=0.0, le=1.0)] = Field(
        default=0.9,
        description="Confidence reported for retrieval-synthesized answers",
    )

    @model_validator(mode="after")
    def validate_top_k_bounds(self) -> "RetrievalSettings":
        """Ensure the top-k bounds are ordered."""
        if self.min_top_k > self.max_top_k:
            raise ValueError("min_top_k must not exceed max_top_k")
        return self


class PDFProcessingSettings(BaseSettings):
    """PDF loading and rendering configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PDF_",
        extra="ignore",
    )

    dpi: Annotated[int, Field(ge=72, le=600)] = Field(
        default=200,
        description="DPI for page to image conversion",
    )
    max_file_size_mb: Annotated[int, Field(ge=1, le=2000)] = Field(
        default=500,
        description="Maximum accepted PDF size in megabytes",
    )

    @property
    def max_file_size_bytes(self) -> int:
        """Get maximum file size in bytes."""
        return self.max_file_size_mb * 1024 * 1024


class SessionSettings(BaseSettings):
    """Processing session lifecycle configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SESSION_",
        extra="ignore",
    )

    ttl_hours: Annotated[float, Field(gt=0.0, le=168.0)] = Field(
        default=2.0,
        description="Hours before a processing session expires",
    )
    cleanup_interval_hours: Annotated[float, Field(gt=0.0, le=168.0)] = Field(
        default=6.0,
        description="Hours between expired-session sweeps",
    )


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        extra="ignore",
    )

    level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level",
    )
    format: LogFormat = Field(
        default=LogFormat.JSON,
        description="Log output format",
    )
    file_path: Path = Field(
        default=Path("./logs/claim_extraction.log"),
        description="Log file path",
    )
    file_max_size_mb: Annotated[int, Field(ge=1, le=1000)] = Field(
        default=100,
        description="Maximum log file size in MB",
    )
    file_backup_count: Annotated[int, Field(ge=1, le=20)] = Field(
        default=5,
        description="Number of backup log files to keep",
    )
    include_caller: bool = Field(
        default=True,
        description="Include caller information in log entries",
    )
    mask_pii: bool = Field(
        default=True,
        description="Mask personal and policy identifiers in log output",
    )

    @field_validator("file_path", mode="before")
    @classmethod
    def coerce_path(cls, v: Any) -> Path:
        """Accept string paths from the environment."""
        return Path(v) if isinstance(v, str) else v


class Settings(BaseSettings):
    """
    Main application settings aggregating all configuration sections.

    Settings are loaded from environment variables with optional .env file support.
    Each section has its own prefix for environment variable naming.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    app_name: str = Field(
        default="claim-extraction",
        description="Application name",
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version",
    )
    app_env: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    # Component settings
    model: ModelSettings = Field(default_factory=ModelSettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    strategy: StrategySettings = Field(default_factory=StrategySettings)
    targeting: TargetingSettings = Field(default_factory=TargetingSettings)
    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)
    consensus: ConsensusSettings = Field(default_factory=ConsensusSettings)
    combiner: CombinerSettings = Field(default_factory=CombinerSettings)
    judge: JudgeSettings = Field(default_factory=JudgeSettings)
    retrieval: RetrievalSettings = Field(default_factory=RetrievalSettings)
    pdf: PDFProcessingSettings = Field(default_factory=PDFProcessingSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate critical settings for production environment."""
        if self.app_env == Environment.PRODUCTION:
            if not self.model.api_key.get_secret_value():
                raise ValueError("MODEL_API_KEY must be set in production")
            if self.debug:
                raise ValueError("DEBUG must be False in production")
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.app_env == Environment.TESTING


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached application settings instance.

    Returns:
        Settings: Application settings singleton.
    """
    return Settings()
