"""
Similarity search and context assembly over document chunks.

Chunks are ranked by a blend of embedding cosine similarity and keyword
overlap with the query, and the top results are packed into a
token-bounded context window with a provenance header per chunk.
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Sequence

from claim_extraction.client.embeddings import cosine_similarity
from claim_extraction.config import get_logger, get_settings
from claim_extraction.retrieval.chunking import DocumentChunk
from claim_extraction.utils import truncate_text


logger = get_logger(__name__)


QUERY_STOPWORDS = frozenset({"this", "that", "with", "from", "they", "have", "were", "been", "their"})
CHARS_PER_TOKEN = 4

_QUERY_WORD = re.compile(r"[a-z0-9]+")


def extract_keywords(query: str) -> list[str]:
    """Query words longer than three characters, minus stopwords, in order."""
    seen: dict[str, None] = {}
    for word in _QUERY_WORD.findall(query.lower()):
        if len(word) > 3 and word not in QUERY_STOPWORDS:
            seen.setdefault(word, None)
    return list(seen)


def keyword_score(content: str, keywords: Sequence[str]) -> float:
    """
    Keyword overlap between a chunk and the query keywords.

    Each occurrence of a keyword contributes ``1 / len(keywords)``; the
    total is capped at 1.0.
    """
    if not keywords:
        return 0.0
    lowered = content.lower()
    score = sum(lowered.count(keyword) / len(keywords) for keyword in keywords)
    return min(1.0, score)


@dataclass(frozen=True, slots=True)
class ScoredChunk:
    """A chunk with its retrieval scores."""

    chunk: DocumentChunk
    similarity: float
    keyword_score: float
    relevance: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "chunk_index": self.chunk.chunk_index,
            "pages": list(self.chunk.page_numbers),
            "similarity": round(self.similarity, 4),
            "keyword_score": round(self.keyword_score, 4),
            "relevance": round(self.relevance, 4),
        }


class ChunkRetriever:
    """
    Ranks chunks against a query embedding.

    relevance = vector_weight * cosine + keyword_weight * keyword overlap

    Example:
        retriever = ChunkRetriever()
        top = retriever.search(query, query_vector, chunks)
    """

    def __init__(
        self,
        vector_weight: float | None = None,
        keyword_weight: float | None = None,
        min_top_k: int | None = None,
        max_top_k: int | None = None,
        top_k_ratio: float | None = None,
    ) -> None:
        settings = get_settings().retrieval

        def pick(value: Any, default: Any) -> Any:
            return default if value is None else value

        self.vector_weight = pick(vector_weight, settings.vector_weight)
        self.keyword_weight = pick(keyword_weight, settings.keyword_weight)
        self.min_top_k = pick(min_top_k, settings.min_top_k)
        self.max_top_k = pick(max_top_k, settings.max_top_k)
        self.top_k_ratio = pick(top_k_ratio, settings.top_k_ratio)

    def top_k(self, chunk_count: int) -> int:
        """Number of chunks retrieved for a session of the given size."""
        proportional = math.ceil(self.top_k_ratio * chunk_count)
        return max(self.min_top_k, min(self.max_top_k, proportional))

    def score(
        self,
        query_vector: Sequence[float],
        keywords: Sequence[str],
        chunk: DocumentChunk,
    ) -> ScoredChunk:
        similarity = (
            cosine_similarity(query_vector, chunk.embedding) if chunk.embedding is not None else 0.0
        )
        overlap = keyword_score(chunk.content, keywords)
        return ScoredChunk(
            chunk=chunk,
            similarity=similarity,
            keyword_score=overlap,
            relevance=self.vector_weight * similarity + self.keyword_weight * overlap,
        )

    def rank(
        self,
        query: str,
        query_vector: Sequence[float],
        chunks: Sequence[DocumentChunk],
    ) -> list[ScoredChunk]:
        """Score every chunk; most relevant first, ties in document order."""
        keywords = extract_keywords(query)
        scored = [self.score(query_vector, keywords, chunk) for chunk in chunks]
        return sorted(scored, key=lambda s: (-s.relevance, s.chunk.chunk_index))

    def search(
        self,
        query: str,
        query_vector: Sequence[float],
        chunks: Sequence[DocumentChunk],
        top_k: int | None = None,
    ) -> list[ScoredChunk]:
        """
        Retrieve the most relevant chunks.

        Args:
            query: Query text (used for keyword overlap).
            query_vector: Query embedding.
            chunks: Candidate chunks.
            top_k: Number of results; derived from the chunk count if omitted.

        Returns:
            Up to top_k scored chunks, most relevant first.
        """
        if not chunks:
            return []
        limit = top_k if top_k is not None else self.top_k(len(chunks))
        results = self.rank(query, query_vector, chunks)[:limit]

        logger.debug(
            "chunks_retrieved",
            candidates=len(chunks),
            returned=len(results),
            top_relevance=round(results[0].relevance, 4) if results else None,
        )
        return results


class ContextAssembler:
    """
    Packs ranked chunks into a bounded context window.

    Chunks are added in rank order under a header
    ``[Chunk i - Pages a-b - Relevance: x.xx]``. A chunk that does not fit
    is truncated to the remaining budget; once the budget is exhausted the
    lower-ranked chunks are dropped.
    """

    SEPARATOR = "\n\n"
    MIN_TRUNCATED_CHARS = 200

    def __init__(self, max_tokens: int | None = None) -> None:
        self.max_tokens = max_tokens or get_settings().retrieval.max_context_tokens

    @property
    def max_chars(self) -> int:
        return self.max_tokens * CHARS_PER_TOKEN

    @staticmethod
    def header(position: int, scored: ScoredChunk | None, chunk: DocumentChunk) -> str:
        relevance = f"{scored.relevance:.2f}" if scored is not None else "n/a"
        return f"[Chunk {position} - Pages {chunk.page_range} - Relevance: {relevance}]"

    def assemble(self, ranked: Sequence[ScoredChunk | DocumentChunk]) -> str:
        """
        Build the context string.

        Args:
            ranked: Scored chunks in rank order, or plain chunks in
                document order for comprehensive mode.

        Returns:
            Context text within the token budget.
        """
        parts: list[str] = []
        used = 0
        dropped = 0

        for position, item in enumerate(ranked, 1):
            scored = item if isinstance(item, ScoredChunk) else None
            chunk = item.chunk if isinstance(item, ScoredChunk) else item
            header = self.header(position, scored, chunk)

            overhead = len(header) + 1 + (len(self.SEPARATOR) if parts else 0)
            remaining = self.max_chars - used - overhead
            if remaining < self.MIN_TRUNCATED_CHARS and remaining < len(chunk.content):
                dropped = len(ranked) - position + 1
                break

            body = chunk.content
            if len(body) > remaining:
                body = truncate_text(body, remaining)

            parts.append(f"{header}\n{body}")
            used += overhead + len(body)

        if dropped:
            logger.debug("context_chunks_dropped", dropped=dropped, budget_chars=self.max_chars)
        return self.SEPARATOR.join(parts)
