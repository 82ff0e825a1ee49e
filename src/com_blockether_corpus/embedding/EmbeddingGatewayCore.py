"""
Core module for turning chunk texts into embedding vectors.

The gateway batches texts into the external embedding capability, truncates
inputs that exceed the capability's token ceiling, and isolates failures per
batch: a batch that still fails after its retries yields empty vectors for
its items instead of aborting the whole request.
"""

import logging
from typing import List, Optional, Sequence

import anyio

from ..utils.RateLimiting import rate_limit_retry
from ..utils.TypedCalls import ArityOneTypedCall
from .internal.EmbeddingTypes import (
    EmbeddingError,
    EmbeddingRequest,
    EmbeddingResponse,
    EmbeddingResult,
    EmbeddingSettings,
)

logger = logging.getLogger(__name__)


class EmbeddingGatewayCore:
    """Batches texts into an embedding capability with truncation and partial-failure isolation."""

    def __init__(
        self,
        embedder: ArityOneTypedCall[EmbeddingRequest, EmbeddingResponse],
        settings: Optional[EmbeddingSettings] = None,
    ):
        """
        Initialize the gateway.

        Args:
            embedder: Typed call that embeds a list of texts
            settings: Gateway settings (defaults mirror text-embedding-3-small)
        """
        self._embedder = embedder
        self._settings = settings or EmbeddingSettings()

    @property
    def settings(self) -> EmbeddingSettings:
        return self._settings

    def truncate(self, text: str) -> str:
        """Cut ``text`` to the capability's input ceiling."""
        max_chars = self._settings.max_input_chars
        if len(text) > max_chars:
            logger.debug(f"Truncating embedding input from {len(text)} to {max_chars} characters")
            return text[:max_chars]
        return text

    async def embed_one(self, text: str) -> List[float]:
        """
        Embed a single text, typically a search query.

        Args:
            text: Text to embed

        Returns:
            The embedding vector

        Raises:
            ValueError: If the text is empty or whitespace
            EmbeddingError: If the capability fails after retries
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")

        try:
            response = await self._call_with_retry([self.truncate(text)])
        except Exception as e:
            logger.error(f"Embedding generation failed: {e}")
            raise EmbeddingError(f"Failed to generate embedding: {e}") from e

        vectors = self._validated_vectors(response, expected=1)
        return vectors[0]

    async def embed_batch(self, texts: Sequence[str]) -> List[EmbeddingResult]:
        """
        Embed texts in order, batch by batch.

        Args:
            texts: Texts to embed

        Returns:
            One result per input text in input order; texts of a failed batch
            carry an empty embedding and the failure message
        """
        if not texts:
            return []

        batch_size = self._settings.batch_size
        total_batches = (len(texts) + batch_size - 1) // batch_size
        results: List[EmbeddingResult] = []

        for batch_index, start in enumerate(range(0, len(texts), batch_size)):
            batch = list(texts[start : start + batch_size])
            logger.info(f"Processing embedding batch {batch_index + 1}/{total_batches}")

            try:
                response = await self._call_with_retry([self.truncate(text) for text in batch])
                if len(response.vectors) != len(batch):
                    raise EmbeddingError(f"Expected {len(batch)} embeddings, received {len(response.vectors)}")
            except Exception as e:
                logger.warning(f"Embedding batch {batch_index + 1}/{total_batches} failed: {e}")
                results.extend(
                    EmbeddingResult(index=start + offset, text=text, error=str(e)) for offset, text in enumerate(batch)
                )
            else:
                vectors = self._validated_vectors(response, expected=len(batch))
                per_text_tokens = (response.total_tokens or 0) // len(batch)
                results.extend(
                    EmbeddingResult(
                        index=start + offset,
                        text=text,
                        embedding=vector,
                        token_count=per_text_tokens,
                    )
                    for offset, (text, vector) in enumerate(zip(batch, vectors))
                )

            if start + batch_size < len(texts) and self._settings.inter_batch_delay_ms > 0:
                await anyio.sleep(self._settings.inter_batch_delay_ms / 1000)

        failed = sum(1 for result in results if not result.succeeded)
        if failed:
            logger.warning(f"Embedded {len(results) - failed}/{len(results)} texts, {failed} failed")
        else:
            logger.info(f"Embedded {len(results)} texts")
        return results

    async def _call_with_retry(self, texts: List[str]) -> EmbeddingResponse:
        @rate_limit_retry(self._settings.max_retries, self._settings.retry_min_wait, self._settings.retry_max_wait)
        async def call() -> EmbeddingResponse:
            return await self._embedder.call(
                EmbeddingRequest(
                    texts=texts,
                    model=self._settings.model,
                    dimensions=self._settings.dimensions,
                )
            )

        return await call()  # type: ignore[no-any-return]

    def _validated_vectors(self, response: EmbeddingResponse, expected: int) -> List[List[float]]:
        """
        Check count and dimensionality of the returned vectors.

        A count mismatch is a capability failure; a dimensionality mismatch is a
        configuration error and raises ``ValueError`` so it is never stored.
        """
        if len(response.vectors) != expected:
            raise EmbeddingError(f"Expected {expected} embeddings, received {len(response.vectors)}")

        for vector in response.vectors:
            if len(vector) != self._settings.dimensions:
                raise ValueError(
                    f"Embedding dimensionality mismatch: expected {self._settings.dimensions}, got {len(vector)}"
                )
        return response.vectors
