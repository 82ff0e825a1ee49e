"""
Embedding capability backed by the OpenAI embeddings endpoint.
"""

import os
from typing import Optional

from openai import AsyncOpenAI

from ...embedding.internal.EmbeddingTypes import EmbeddingRequest, EmbeddingResponse
from ..TypedCalls import ArityOneTypedCall


class OpenAIEmbeddingCall(ArityOneTypedCall[EmbeddingRequest, EmbeddingResponse]):
    """
    Production embedder. The client reads ``OPENAI_API_KEY`` and the optional
    ``CORPUS_OPENAI_BASE_URL`` when none is injected.
    """

    def __init__(self, client: Optional[AsyncOpenAI] = None):
        self._client = client or AsyncOpenAI(
            base_url=os.environ.get("CORPUS_OPENAI_BASE_URL") or None,
            api_key=os.environ.get("OPENAI_API_KEY"),
        )

    async def call(self, x: EmbeddingRequest) -> EmbeddingResponse:
        response = await self._client.embeddings.create(
            model=x.model,
            input=x.texts,
            dimensions=x.dimensions,
        )
        data = sorted(response.data, key=lambda item: item.index)
        usage = getattr(response, "usage", None)
        return EmbeddingResponse(
            vectors=[list(item.embedding) for item in data],
            total_tokens=usage.total_tokens if usage is not None else None,
        )
