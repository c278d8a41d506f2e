"""
Model backend clients.

Provides the uniform model adapter contract, the OpenAI-compatible
adapter, upload readiness polling, response parsing and embeddings.
"""

from claim_extraction.client.embeddings import EmbeddingClient, cosine_similarity
from claim_extraction.client.errors import (
    AdapterMalformedOutputError,
    AdapterRateLimitError,
    AdapterTimeoutError,
    AdapterUnavailableError,
    ModelAdapterError,
)
from claim_extraction.client.file_poller import FilePoller, PollOutcome, PollState
from claim_extraction.client.model_adapter import (
    AdapterRequest,
    AdapterResponse,
    ModelAdapter,
    OpenAIModelAdapter,
)
from claim_extraction.client.response_parser import (
    DEFAULT_CONFIDENCE,
    ParsedResponse,
    clean_answer,
    extract_json,
    parse_confidence,
    parse_consolidated,
    parse_response,
    split_consolidated,
)


__all__ = [
    # Adapter contract
    "AdapterRequest",
    "AdapterResponse",
    "ModelAdapter",
    "OpenAIModelAdapter",
    # Errors
    "ModelAdapterError",
    "AdapterUnavailableError",
    "AdapterRateLimitError",
    "AdapterTimeoutError",
    "AdapterMalformedOutputError",
    # Polling
    "FilePoller",
    "PollOutcome",
    "PollState",
    # Parsing
    "DEFAULT_CONFIDENCE",
    "ParsedResponse",
    "clean_answer",
    "extract_json",
    "parse_confidence",
    "parse_consolidated",
    "parse_response",
    "split_consolidated",
    # Embeddings
    "EmbeddingClient",
    "cosine_similarity",
]
