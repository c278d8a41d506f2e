"""
Document chunking for retrieval.

Splits page text into chunks by page, by semantic breakpoints (a drop in
embedding similarity between consecutive sentences), or recursively by
size. Every chunk carries the pages it came from and lightweight content
metadata. Chunks are immutable; attaching an embedding returns a new
chunk.
"""

import hashlib
import re
from collections import Counter
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Sequence

from langchain_text_splitters import RecursiveCharacterTextSplitter

from claim_extraction.client.embeddings import EmbeddingClient, cosine_similarity
from claim_extraction.config import get_logger, get_settings


logger = get_logger(__name__)


_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+(?=[A-Z0-9\"'(])")
_HAS_DATE = re.compile(r"\d{1,2}[-/]\d{1,2}[-/]\d{2,4}|\b(19|20)\d{2}\b")
_HAS_NAME = re.compile(r"(?:[A-Z][a-z]+ ){1,2}[A-Z][a-z]+")
_HAS_MONEY = re.compile(r"[$€£]\s?\d{1,3}(?:,\d{3})*(?:\.\d{2})?")
_WORD = re.compile(r"[a-z]+")

CHUNK_STOPWORDS = frozenset(
    {"a", "an", "the", "in", "on", "is", "of", "for", "to", "and", "this", "that", "with", "from"}
)


class ChunkingStrategy(str, Enum):
    """How text is split into chunks."""

    PAGE = "page"
    SEMANTIC = "semantic"
    RECURSIVE = "recursive"


class SemanticType(str, Enum):
    """Coarse role of a chunk's content."""

    HEADER = "header"
    LIST = "list"
    SIGNATURE = "signature"
    CONTENT = "content"


def top_keywords(text: str, limit: int = 5) -> tuple[str, ...]:
    """Most frequent non-stopword words longer than three letters."""
    words = [
        word
        for word in _WORD.findall(text.lower())
        if len(word) > 3 and word not in CHUNK_STOPWORDS
    ]
    return tuple(word for word, _ in Counter(words).most_common(limit))


def detect_semantic_type(text: str) -> SemanticType:
    stripped = text.strip()
    if not stripped:
        return SemanticType.CONTENT
    upper_ratio = sum(1 for char in stripped if char.isupper()) / len(stripped)
    if upper_ratio > 0.5 and len(stripped) < 100:
        return SemanticType.HEADER
    if stripped.startswith("•") or re.match(r"^\d+\.", stripped):
        return SemanticType.LIST
    lowered = stripped.lower()
    if "signature" in lowered or "signed by" in lowered:
        return SemanticType.SIGNATURE
    return SemanticType.CONTENT


@dataclass(frozen=True, slots=True)
class ChunkMetadata:
    """
    Content features of a chunk.

    Attributes:
        semantic_type: Coarse role of the content.
        has_numbers: Contains any digit.
        has_dates: Contains a date-like pattern.
        has_names: Contains a capitalized multi-word name.
        has_monetary_values: Contains a currency amount.
        keywords: Up to five most frequent keywords.
    """

    semantic_type: SemanticType
    has_numbers: bool
    has_dates: bool
    has_names: bool
    has_monetary_values: bool
    keywords: tuple[str, ...]

    @classmethod
    def from_text(cls, text: str) -> "ChunkMetadata":
        return cls(
            semantic_type=detect_semantic_type(text),
            has_numbers=any(char.isdigit() for char in text),
            has_dates=bool(_HAS_DATE.search(text)),
            has_names=bool(_HAS_NAME.search(text)),
            has_monetary_values=bool(_HAS_MONEY.search(text)),
            keywords=top_keywords(text),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "semantic_type": self.semantic_type.value,
            "has_numbers": self.has_numbers,
            "has_dates": self.has_dates,
            "has_names": self.has_names,
            "has_monetary_values": self.has_monetary_values,
            "keywords": list(self.keywords),
        }


@dataclass(frozen=True, slots=True)
class DocumentChunk:
    """
    A content-coherent slice of document text.

    Attributes:
        content: Chunk text.
        page_numbers: One-indexed source pages, ascending.
        chunk_index: Position of the chunk in the document.
        metadata: Content features.
        embedding: Embedding vector once attached.
    """

    content: str
    page_numbers: tuple[int, ...]
    chunk_index: int
    metadata: ChunkMetadata
    embedding: tuple[float, ...] | None = None

    @property
    def content_hash(self) -> str:
        return hashlib.sha256(self.content.encode("utf-8")).hexdigest()

    @property
    def is_embedded(self) -> bool:
        return self.embedding is not None

    @property
    def page_range(self) -> str:
        if not self.page_numbers:
            return "?"
        return f"{self.page_numbers[0]}-{self.page_numbers[-1]}"

    @property
    def token_estimate(self) -> int:
        """Approximate token count (four characters per token)."""
        return max(1, len(self.content) // 4)

    def with_embedding(self, embedding: Sequence[float]) -> "DocumentChunk":
        """
        Return a copy carrying the embedding.

        Raises:
            ValueError: If the chunk is already embedded.
        """
        if self.embedding is not None:
            raise ValueError(f"Chunk {self.chunk_index} is already embedded")
        return replace(self, embedding=tuple(float(v) for v in embedding))

    def to_dict(self) -> dict[str, Any]:
        return {
            "chunk_index": self.chunk_index,
            "page_numbers": list(self.page_numbers),
            "characters": len(self.content),
            "embedded": self.is_embedded,
            "metadata": self.metadata.to_dict(),
        }


def _make_chunk(content: str, pages: Sequence[int], index: int) -> DocumentChunk:
    return DocumentChunk(
        content=content,
        page_numbers=tuple(sorted(set(pages))),
        chunk_index=index,
        metadata=ChunkMetadata.from_text(content),
    )


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_BOUNDARY.split(text) if s.strip()]


class SemanticChunker:
    """
    Splits page text into retrieval chunks.

    Semantic chunking embeds consecutive sentences and starts a new chunk
    wherever their similarity drops below the threshold. Without an
    embedding client, or when embeddings are unusable, it falls back to
    recursive size-based splitting.

    Example:
        chunker = SemanticChunker(embedding_client)
        chunks = await chunker.chunk(page_texts, ChunkingStrategy.SEMANTIC)
    """

    def __init__(
        self,
        embedding_client: EmbeddingClient | None = None,
        similarity_threshold: float | None = None,
        chunk_size: int | None = None,
        chunk_overlap: int | None = None,
    ) -> None:
        settings = get_settings().retrieval

        self._embeddings = embedding_client
        self.similarity_threshold = (
            similarity_threshold
            if similarity_threshold is not None
            else settings.semantic_threshold
        )
        self.chunk_size = chunk_size or settings.chunk_size
        self.chunk_overlap = chunk_overlap if chunk_overlap is not None else settings.chunk_overlap
        self._splitter = RecursiveCharacterTextSplitter(
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
            length_function=len,
            separators=["\n\n", "\n", " ", ""],
        )

    async def chunk(
        self,
        page_texts: Sequence[str],
        strategy: ChunkingStrategy = ChunkingStrategy.SEMANTIC,
    ) -> list[DocumentChunk]:
        """
        Chunk a document's page texts.

        Args:
            page_texts: Text of each page, in page order.
            strategy: Chunking strategy.

        Returns:
            Chunks in document order, indexed from zero.
        """
        if strategy == ChunkingStrategy.PAGE:
            chunks = self.chunk_by_page(page_texts)
        elif strategy == ChunkingStrategy.SEMANTIC:
            chunks = await self.chunk_semantic(page_texts)
        else:
            chunks = self.chunk_recursive(page_texts)

        logger.info(
            "document_chunked",
            strategy=strategy.value,
            pages=len(page_texts),
            chunks=len(chunks),
        )
        return chunks

    def chunk_by_page(self, page_texts: Sequence[str]) -> list[DocumentChunk]:
        """One chunk per non-empty page; oversized pages are split by size."""
        chunks: list[DocumentChunk] = []
        for page_number, text in enumerate(page_texts, 1):
            text = text.strip()
            if not text:
                continue
            parts = [text] if len(text) <= self.chunk_size else self._splitter.split_text(text)
            for part in parts:
                chunks.append(_make_chunk(part, [page_number], len(chunks)))
        return chunks

    def chunk_recursive(self, page_texts: Sequence[str]) -> list[DocumentChunk]:
        """Size-based splitting within each page, keeping page provenance."""
        chunks: list[DocumentChunk] = []
        for page_number, text in enumerate(page_texts, 1):
            if not text.strip():
                continue
            for part in self._splitter.split_text(text):
                chunks.append(_make_chunk(part, [page_number], len(chunks)))
        return chunks

    async def chunk_semantic(self, page_texts: Sequence[str]) -> list[DocumentChunk]:
        """Chunk at semantic breakpoints between consecutive sentences."""
        sentences: list[tuple[str, int]] = [
            (sentence, page_number)
            for page_number, text in enumerate(page_texts, 1)
            for sentence in split_sentences(text)
        ]

        if self._embeddings is None or len(sentences) <= 1:
            if len(sentences) == 1:
                return [_make_chunk(sentences[0][0], [sentences[0][1]], 0)]
            return self.chunk_recursive(page_texts)

        vectors = await self._embeddings.embed_many([s for s, _ in sentences])
        if not any(any(vector) for vector in vectors):
            logger.warning("semantic_chunking_fallback", reason="no usable embeddings")
            return self.chunk_recursive(page_texts)

        breakpoints = [0]
        for index in range(len(sentences) - 1):
            if cosine_similarity(vectors[index], vectors[index + 1]) < self.similarity_threshold:
                breakpoints.append(index + 1)
        breakpoints.append(len(sentences))

        chunks: list[DocumentChunk] = []
        for start, end in zip(breakpoints, breakpoints[1:]):
            group = sentences[start:end]
            if not group:
                continue
            content = " ".join(sentence for sentence, _ in group)
            pages = [page for _, page in group]
            if len(content) > self.chunk_size * 2:
                # Runaway groups are split by size, keeping their page span
                for part in self._splitter.split_text(content):
                    chunks.append(_make_chunk(part, pages, len(chunks)))
            else:
                chunks.append(_make_chunk(content, pages, len(chunks)))

        logger.debug(
            "semantic_breakpoints_found",
            sentences=len(sentences),
            chunks=len(chunks),
            threshold=self.similarity_threshold,
        )
        return chunks
