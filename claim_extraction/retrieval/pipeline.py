"""
Retrieval-augmented answering for oversized documents.

A document is indexed once into a processing session (chunk, embed,
store); each question is then answered by retrieving the most relevant
chunks, assembling a bounded context and asking a text model to
synthesize the answer. Comprehensive mode skips ranking and uses every
chunk of the session.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Sequence

from claim_extraction.client import (
    AdapterRequest,
    EmbeddingClient,
    ModelAdapter,
)
from claim_extraction.config import get_logger, get_settings
from claim_extraction.prompts import (
    EXTRACTION_SYSTEM_PROMPT,
    build_consolidated_prompt,
    build_synthesis_prompt,
)
from claim_extraction.retrieval.chunking import ChunkingStrategy, DocumentChunk, SemanticChunker
from claim_extraction.retrieval.search import ChunkRetriever, ContextAssembler, ScoredChunk
from claim_extraction.retrieval.session_store import SessionHandle, SessionStatus, SessionStore
from claim_extraction.schemas import (
    ConsolidatedRequest,
    DocumentContent,
    DocumentSource,
    ExpectedType,
    ExtractionMethod,
    FieldRequest,
    ModelResult,
)


logger = get_logger(__name__)


class RetrievalError(Exception):
    """Raised when a document cannot be indexed for retrieval."""

    pass


@dataclass(frozen=True, slots=True)
class RetrievalAnswer:
    """
    Answer synthesized from retrieved chunks.

    Attributes:
        response: Raw model response.
        confidence: Confidence assigned to the synthesized answer.
        pages: Pages covered by the context chunks.
        chunks_used: Number of chunks in the context.
        model_id: Model that synthesized the answer.
        tokens_used: Tokens consumed by the synthesis call.
        elapsed_ms: Latency of the synthesis call.
    """

    response: str
    confidence: float
    pages: tuple[int, ...]
    chunks_used: int
    model_id: str
    tokens_used: int = 0
    elapsed_ms: int = 0

    def to_model_result(self, field_id: str) -> ModelResult:
        return ModelResult(
            field_id=field_id,
            page=None,
            raw_response=self.response,
            confidence=self.confidence,
            model_id=self.model_id,
            method=ExtractionMethod.RETRIEVAL,
            tokens_used=self.tokens_used,
            elapsed_ms=self.elapsed_ms,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "response": self.response,
            "confidence": self.confidence,
            "pages": list(self.pages),
            "chunks_used": self.chunks_used,
            "model_id": self.model_id,
        }


class RetrievalPipeline:
    """
    Chunk, embed, search and synthesize over one session per document.

    Example:
        pipeline = RetrievalPipeline(text_adapter, EmbeddingClient())
        handle = await pipeline.index_document(document)
        try:
            answer = await pipeline.answer(handle, field)
        finally:
            pipeline.close_session(handle)
    """

    def __init__(
        self,
        adapter: ModelAdapter,
        embedding_client: EmbeddingClient,
        store: SessionStore | None = None,
        chunker: SemanticChunker | None = None,
        retriever: ChunkRetriever | None = None,
        assembler: ContextAssembler | None = None,
        chunking_strategy: ChunkingStrategy = ChunkingStrategy.SEMANTIC,
        synthesis_confidence: float | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        """
        Initialize the pipeline.

        Args:
            adapter: Text model used for synthesis.
            embedding_client: Client for chunk and query embeddings.
            store: Session arena. A private store is created if omitted.
            chunker: Chunker. Defaults to a semantic chunker on the same client.
            retriever: Chunk ranker.
            assembler: Context window builder.
            chunking_strategy: How documents are chunked.
            synthesis_confidence: Confidence of synthesized answers.
            timeout_seconds: Budget for one synthesis call.
        """
        settings = get_settings()

        self.adapter = adapter
        self.embeddings = embedding_client
        self.store = store or SessionStore()
        self.chunker = chunker or SemanticChunker(embedding_client)
        self.retriever = retriever or ChunkRetriever()
        self.assembler = assembler or ContextAssembler()
        self.chunking_strategy = chunking_strategy
        self.synthesis_confidence = (
            synthesis_confidence
            if synthesis_confidence is not None
            else settings.retrieval.synthesis_confidence
        )
        self.timeout_seconds = timeout_seconds or float(settings.model.timeout)

    async def index_document(self, source: DocumentSource) -> SessionHandle:
        """
        Chunk and embed a document into a new session.

        Args:
            source: Document to index.

        Returns:
            Handle to the ready session.

        Raises:
            RetrievalError: If the document has no extractable text. The
                session of a failed index is deleted before the error
                propagates.
        """
        start_time = time.perf_counter()
        profile = source.profile()
        handle = self.store.create(profile)

        try:
            chunks = await self.chunker.chunk(source.page_texts(), self.chunking_strategy)
            if not chunks:
                raise RetrievalError(f"No extractable text in {profile.file_name}")

            self.store.set_total_chunks(handle, len(chunks))
            vectors = await self.embeddings.embed_many([chunk.content for chunk in chunks])
            embedded = [chunk.with_embedding(vector) for chunk, vector in zip(chunks, vectors)]
            self.store.add_chunks(handle, embedded)
            self.store.set_status(handle, SessionStatus.READY)
        except Exception as e:
            self.store.delete(handle)
            logger.error(
                "document_indexing_failed",
                session_id=handle.session_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        logger.info(
            "document_indexed",
            session_id=handle.session_id,
            chunks=len(embedded),
            duration_ms=int((time.perf_counter() - start_time) * 1000),
        )
        return handle

    async def retrieve(
        self,
        handle: SessionHandle,
        question: str,
        comprehensive: bool = False,
    ) -> list[ScoredChunk] | list[DocumentChunk]:
        """
        Chunks that form the context for a question.

        In comprehensive mode every chunk is returned in document order.
        """
        chunks = self.store.chunks(handle)
        if comprehensive:
            return sorted(chunks, key=lambda c: c.chunk_index)

        query_vector = (await self.embeddings.embed_many([question]))[0]
        return self.retriever.search(question, query_vector, chunks)

    async def _synthesize(
        self,
        prompt: str,
        field_id: str,
        expected_type: ExpectedType,
        context_items: Sequence[ScoredChunk | DocumentChunk],
        adapter: ModelAdapter | None,
        max_tokens: int | None = None,
    ) -> RetrievalAnswer:
        model = adapter or self.adapter
        request = AdapterRequest(
            prompt=prompt,
            content=DocumentContent(),
            expected_type=expected_type,
            field_id=field_id,
            system_prompt=EXTRACTION_SYSTEM_PROMPT,
            max_tokens=max_tokens,
        )
        response = await asyncio.wait_for(model.analyze(request), timeout=self.timeout_seconds)

        chunks = [item.chunk if isinstance(item, ScoredChunk) else item for item in context_items]
        pages = tuple(sorted({page for chunk in chunks for page in chunk.page_numbers}))
        return RetrievalAnswer(
            response=response.response,
            confidence=self.synthesis_confidence,
            pages=pages,
            chunks_used=len(chunks),
            model_id=response.model_id,
            tokens_used=response.tokens_used,
            elapsed_ms=response.elapsed_ms,
        )

    async def answer(
        self,
        handle: SessionHandle,
        field: FieldRequest,
        adapter: ModelAdapter | None = None,
        comprehensive: bool = False,
    ) -> RetrievalAnswer:
        """
        Answer one field from the session's chunks.

        Args:
            handle: Indexed session.
            field: Field to answer.
            adapter: Optional synthesis model override.
            comprehensive: Use every chunk instead of the top ranked ones.

        Raises:
            ModelAdapterError: If the synthesis call fails.
            asyncio.TimeoutError: If the synthesis call exceeds its budget.
        """
        items = await self.retrieve(handle, field.question, comprehensive)
        context = self.assembler.assemble(items)
        prompt = build_synthesis_prompt(field.question, context, field.expected_type)

        result = await self._synthesize(prompt, field.field_id, field.expected_type, items, adapter)
        logger.info(
            "retrieval_answer_synthesized",
            session_id=handle.session_id,
            field_id=field.field_id,
            chunks_used=result.chunks_used,
            pages=list(result.pages),
        )
        return result

    async def answer_consolidated(
        self,
        handle: SessionHandle,
        request: ConsolidatedRequest,
        adapter: ModelAdapter | None = None,
        comprehensive: bool = True,
    ) -> RetrievalAnswer:
        """
        Answer a consolidated request from the session's chunks.

        Comprehensive mode is the default because every sub-field must be
        populated.
        """
        items = await self.retrieve(handle, request.question, comprehensive)
        context = self.assembler.assemble(items)
        prompt = (
            f"{build_consolidated_prompt(request)}\n\n"
            f"RELEVANT DOCUMENT SECTIONS:\n{context}"
        )

        result = await self._synthesize(
            prompt,
            request.field_id,
            ExpectedType.TEXT,
            items,
            adapter,
            max_tokens=100 + 40 * request.field_count,
        )
        logger.info(
            "retrieval_consolidated_synthesized",
            session_id=handle.session_id,
            field_id=request.field_id,
            fields=request.field_count,
            chunks_used=result.chunks_used,
        )
        return result

    def close_session(self, handle: SessionHandle) -> bool:
        """Delete the session and every chunk and embedding it owns."""
        return self.store.delete(handle)
