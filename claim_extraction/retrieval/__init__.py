"""
Retrieval subsystem for oversized documents.

Provides semantic chunking, session-owned chunk storage, blended
similarity search, context assembly and answer synthesis.
"""

from claim_extraction.retrieval.chunking import (
    ChunkingStrategy,
    ChunkMetadata,
    DocumentChunk,
    SemanticChunker,
    SemanticType,
    split_sentences,
    top_keywords,
)
from claim_extraction.retrieval.pipeline import (
    RetrievalAnswer,
    RetrievalError,
    RetrievalPipeline,
)
from claim_extraction.retrieval.search import (
    ChunkRetriever,
    ContextAssembler,
    ScoredChunk,
    extract_keywords,
    keyword_score,
)
from claim_extraction.retrieval.session_store import (
    ProcessingSession,
    SessionError,
    SessionExpiredError,
    SessionHandle,
    SessionNotFoundError,
    SessionStatus,
    SessionStore,
    StaleSessionHandleError,
)


__all__ = [
    # Chunking
    "ChunkingStrategy",
    "ChunkMetadata",
    "DocumentChunk",
    "SemanticChunker",
    "SemanticType",
    "split_sentences",
    "top_keywords",
    # Search
    "ChunkRetriever",
    "ContextAssembler",
    "ScoredChunk",
    "extract_keywords",
    "keyword_score",
    # Sessions
    "ProcessingSession",
    "SessionError",
    "SessionExpiredError",
    "SessionHandle",
    "SessionNotFoundError",
    "SessionStatus",
    "SessionStore",
    "StaleSessionHandleError",
    # Pipeline
    "RetrievalAnswer",
    "RetrievalError",
    "RetrievalPipeline",
]
