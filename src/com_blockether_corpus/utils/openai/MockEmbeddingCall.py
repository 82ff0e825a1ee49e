"""
Mock embedding capability for tests.

Vectors are deterministic: explicit ones when registered for a text, otherwise
a unit vector seeded from the SHA-256 of the text. Identical texts therefore
always embed identically and distinct texts are nearly orthogonal.
"""

import hashlib
from typing import List, Mapping, Optional, Sequence

import numpy as np

from ...embedding.internal.EmbeddingTypes import EmbeddingRequest, EmbeddingResponse
from ..TypedCalls import ArityOneTypedCall


class MockEmbeddingCall(ArityOneTypedCall[EmbeddingRequest, EmbeddingResponse]):
    def __init__(
        self,
        vectors: Optional[Mapping[str, Sequence[float]]] = None,
        failures: Sequence[Optional[Exception]] = (),
        dimensions: Optional[int] = None,
        tokens_per_text: int = 10,
    ):
        """
        Args:
            vectors: Explicit vectors by exact input text
            failures: Per-call script; an exception at position i is raised on call i
            dimensions: Force this output size instead of the requested one
            tokens_per_text: Usage reported per input text
        """
        self.vectors = {text: list(vector) for text, vector in (vectors or {}).items()}
        self.failures = list(failures)
        self.dimensions = dimensions
        self.tokens_per_text = tokens_per_text
        self.requests: List[EmbeddingRequest] = []

    @property
    def call_count(self) -> int:
        return len(self.requests)

    async def call(self, x: EmbeddingRequest) -> EmbeddingResponse:
        position = len(self.requests)
        self.requests.append(x)

        if position < len(self.failures) and self.failures[position] is not None:
            raise self.failures[position]  # type: ignore[misc]

        dimensions = self.dimensions or x.dimensions
        return EmbeddingResponse(
            vectors=[self.vector_for(text, dimensions) for text in x.texts],
            total_tokens=self.tokens_per_text * len(x.texts),
        )

    def vector_for(self, text: str, dimensions: int) -> List[float]:
        if text in self.vectors:
            return list(self.vectors[text])
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
        vector = np.random.default_rng(seed).standard_normal(dimensions)
        return (vector / np.linalg.norm(vector)).tolist()
