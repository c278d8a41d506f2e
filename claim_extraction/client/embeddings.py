"""
Embedding generation for retrieval.

Texts are embedded through an OpenAI-compatible embeddings endpoint in
small concurrent batches. A failed item degrades to a zero vector so the
rest of the batch stays usable.
"""

import asyncio
from typing import Sequence

import numpy as np
from openai import AsyncOpenAI

from claim_extraction.config import get_logger, get_settings


logger = get_logger(__name__)


def cosine_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """
    Cosine similarity between two vectors.

    Returns 0.0 when either vector has zero norm or the shapes differ.
    """
    vec_a = np.asarray(a, dtype=np.float64)
    vec_b = np.asarray(b, dtype=np.float64)
    if vec_a.shape != vec_b.shape or vec_a.size == 0:
        return 0.0

    norm = float(np.linalg.norm(vec_a) * np.linalg.norm(vec_b))
    if norm == 0.0:
        return 0.0
    return float(np.dot(vec_a, vec_b) / norm)


class EmbeddingClient:
    """
    Async embedding client with batched generation.

    Example:
        client = EmbeddingClient()
        vectors = await client.embed_many(["first chunk", "second chunk"])
    """

    def __init__(
        self,
        model: str | None = None,
        dimensions: int | None = None,
        batch_size: int | None = None,
        batch_pause_seconds: float | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        settings = get_settings()

        self._model = model or settings.embedding.model
        self._dimensions = dimensions or settings.embedding.dimensions
        self._batch_size = batch_size or settings.embedding.batch_size
        self._batch_pause = (
            batch_pause_seconds
            if batch_pause_seconds is not None
            else settings.embedding.batch_pause_seconds
        )
        self._client = client or AsyncOpenAI(
            base_url=str(settings.model.base_url),
            api_key=settings.model.api_key.get_secret_value() or "not-needed",
            timeout=float(settings.model.timeout),
            max_retries=0,
        )

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def zero_vector(self) -> list[float]:
        return [0.0] * self._dimensions

    async def embed(self, text: str) -> list[float]:
        """
        Embed a single text.

        Raises:
            openai.OpenAIError: If the embedding call fails.
        """
        response = await self._client.embeddings.create(
            model=self._model,
            input=text,
        )
        return list(response.data[0].embedding)

    async def _embed_or_zero(self, index: int, text: str) -> list[float]:
        if not text.strip():
            return self.zero_vector()
        try:
            return await self.embed(text)
        except Exception as e:
            logger.warning(
                "embedding_failed",
                index=index,
                error=str(e),
                error_type=type(e).__name__,
            )
            return self.zero_vector()

    async def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        """
        Embed texts in batches, preserving input order.

        Args:
            texts: Texts to embed.

        Returns:
            One vector per input text; failed items are zero vectors.
        """
        vectors: list[list[float]] = []
        failed = 0

        for start in range(0, len(texts), self._batch_size):
            batch = texts[start : start + self._batch_size]
            results = await asyncio.gather(
                *(
                    self._embed_or_zero(start + offset, text)
                    for offset, text in enumerate(batch)
                )
            )
            failed += sum(1 for vector in results if not any(vector))
            vectors.extend(results)

            if start + self._batch_size < len(texts) and self._batch_pause > 0:
                await asyncio.sleep(self._batch_pause)

        logger.info(
            "embeddings_generated",
            count=len(vectors),
            zero_vectors=failed,
            model=self._model,
        )
        return vectors

    async def close(self) -> None:
        await self._client.close()
