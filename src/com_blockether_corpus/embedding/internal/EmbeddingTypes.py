"""
Types for the embedding gateway.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class EmbeddingSettings(BaseModel):
    """Immutable configuration of the embedding gateway."""

    model_config = ConfigDict(frozen=True)

    model: str = Field(default="text-embedding-3-small", description="Embedding model name")
    dimensions: int = Field(default=1536, gt=0, description="Dimensionality of every produced vector")
    max_input_tokens: int = Field(default=8191, gt=0, description="Token ceiling of one embedding input")
    chars_per_token_ceiling: int = Field(
        default=3,
        gt=0,
        description="Characters per token assumed when truncating (the narrowest script ratio)",
    )
    batch_size: int = Field(default=100, gt=0, description="Maximum texts per embedding call")
    inter_batch_delay_ms: int = Field(default=100, ge=0, description="Pause between consecutive batches")
    max_retries: int = Field(default=3, ge=1, description="Attempts per batch before it is marked failed")
    retry_min_wait: int = Field(default=1000, ge=0, description="Minimum wait between retries (milliseconds)")
    retry_max_wait: int = Field(default=10000, ge=0, description="Maximum wait between retries (milliseconds)")

    @property
    def max_input_chars(self) -> int:
        """Character length beyond which inputs are truncated."""
        return self.max_input_tokens * self.chars_per_token_ceiling


class EmbeddingRequest(BaseModel):
    """Request sent to the embedding capability."""

    texts: List[str] = Field(description="Texts to embed, already truncated")
    model: str = Field(description="Embedding model name")
    dimensions: int = Field(description="Requested output dimensionality")


class EmbeddingResponse(BaseModel):
    """Response of the embedding capability, one vector per requested text in order."""

    vectors: List[List[float]] = Field(description="Embedding vectors in request order")
    total_tokens: Optional[int] = Field(default=None, description="Tokens billed for the whole request")


class EmbeddingResult(BaseModel):
    """Outcome for one input text of a batch."""

    index: int = Field(description="Position of the text in the input batch")
    text: str = Field(description="The original (untruncated) text")
    embedding: List[float] = Field(default_factory=list, description="Vector, empty when embedding failed")
    token_count: int = Field(default=0, description="Approximate tokens attributed to this text")
    error: Optional[str] = Field(default=None, description="Failure message when the embedding is empty")

    @property
    def succeeded(self) -> bool:
        return len(self.embedding) > 0


class EmbeddingError(RuntimeError):
    """Embedding a single text failed."""
