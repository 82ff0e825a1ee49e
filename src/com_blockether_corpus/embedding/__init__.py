"""Embedding gateway: batched, truncating, failure-isolating access to an embedding capability."""

from .EmbeddingGatewayCore import EmbeddingGatewayCore
from .internal.EmbeddingTypes import (
    EmbeddingError,
    EmbeddingRequest,
    EmbeddingResponse,
    EmbeddingResult,
    EmbeddingSettings,
)

__all__ = [
    "EmbeddingGatewayCore",
    "EmbeddingSettings",
    "EmbeddingRequest",
    "EmbeddingResponse",
    "EmbeddingResult",
    "EmbeddingError",
]
