from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CORSConfig(BaseModel):
    """Cross-origin access for the admin tooling. Only listed origins are allowed."""

    model_config = ConfigDict(frozen=True)

    allow_origins: List[str] = Field(default_factory=list)
    allow_methods: List[str] = Field(default=["GET", "POST", "PUT", "DELETE", "OPTIONS"])
    allow_headers: List[str] = Field(
        default=["Content-Type", "Authorization", "X-Requested-With", "Accept", "Origin", "X-Api-Key"]
    )
    expose_headers: List[str] = Field(default=["X-Process-Time-Ms", "Retry-After"])
    max_age: int = Field(default=3600, ge=0)


class ASGIConfig(BaseModel):
    """Settings of the HTTP application hosting the corpus modules."""

    model_config = ConfigDict(frozen=True)

    title: str = Field(default="Corpus API")
    description: str = Field(default="Document ingestion, review and semantic retrieval")
    version: str = Field(default="0.1.0")

    # Applied before every module prefix, e.g. "/api/v1"
    prefix: str = Field(default="")

    docs_enabled: bool = Field(default=True, description="Serve /docs and /openapi.json under the prefix")
    cors: Optional[CORSConfig] = None
    gzip_minimum_size: Optional[int] = Field(
        default=1000,
        ge=0,
        description="Compress responses at least this large; None disables compression",
    )

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000, gt=0)

    def prefixed(self, path: str) -> str:
        return f"{self.prefix.rstrip('/')}{path}" if self.prefix else path
