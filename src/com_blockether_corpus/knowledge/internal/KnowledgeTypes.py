"""
Types for the knowledge store: persisted chunks, queries, search and context results.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ...segmentation.internal.SegmentationTypes import ContentType


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def chunk_id_for(document_id: str, index: int) -> str:
    """Deterministic chunk id; every chunk of a document shares the ``<document_id>_`` prefix."""
    return f"{document_id}_{index}"


def chunk_prefix_for(document_id: str) -> str:
    return f"{document_id}_"


class VolumeType(str, Enum):
    """Role of the source volume, used to bucket retrieval."""

    STUDENT = "student"
    TEACHER = "teacher"
    CURRICULUM = "curriculum"


class SourceType(str, Enum):
    PDF = "pdf"
    DOCX = "docx"
    MANUAL = "manual"


class ContextBucket(str, Enum):
    """Retrieval buckets, declared in the order their sections are assembled."""

    CURRICULUM = "curriculum"
    PRIMARY = "primary"
    SUPPLEMENTARY = "supplementary"


class KnowledgeChunk(BaseModel):
    """A persisted chunk with its embedding and classification."""

    id: str = Field(description="<document_id>_<sequence index>")
    document_id: str
    subject: str
    grade: str
    grades: List[str] = Field(default_factory=list, description="All grades a curriculum chunk applies to")
    volume: Optional[str] = None
    volume_type: VolumeType = VolumeType.STUDENT
    chapter: str
    chapter_number: int = 1
    unit_reference: Optional[str] = None
    page_range: Optional[str] = None
    content: str
    content_type: ContentType = ContentType.EXPLANATION
    embedding: List[float] = Field(default_factory=list)
    source: Optional[str] = Field(default=None, description="Originating file name")
    source_type: SourceType = SourceType.PDF
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    quality: Optional[float] = Field(default=None, description="Average extraction agreement of the document")
    usage_count: int = 0
    last_used_at: Optional[datetime] = None
    keywords: List[str] = Field(default_factory=list)
    related_topics: List[str] = Field(default_factory=list)


class ChunkFilters(BaseModel):
    """Structural equality filters of a search. Unset fields do not filter."""

    subject: Optional[str] = None
    grade: Optional[str] = None
    volume: Optional[str] = None
    volume_type: Optional[VolumeType] = None
    content_type: Optional[ContentType] = None

    def as_equalities(self) -> Dict[str, Any]:
        return {field: value for field, value in self if value is not None}


class ChunkQuery(BaseModel):
    """A filtered, bounded fetch against the knowledge repository."""

    equals: Dict[str, Any] = Field(default_factory=dict, description="Field -> required value")
    array_contains: Dict[str, Any] = Field(default_factory=dict, description="List field -> value it must contain")
    created_after: Optional[datetime] = Field(default=None, description="Exclusive lower bound on created_at")
    limit: Optional[int] = Field(default=None, ge=0)


class KnowledgeStoreSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    default_limit: int = Field(default=5, gt=0, description="Results returned when a search sets no limit")
    default_min_similarity: float = Field(default=0.7, ge=-1.0, le=1.0)
    fetch_cap: int = Field(default=500, gt=0, description="Candidates fetched per filtered query before ranking")
    write_batch_size: int = Field(default=10, gt=0, description="Chunks per repository write")
    usage_queue_size: int = Field(default=1000, gt=0, description="Pending usage updates before new ones are dropped")


class SearchRequest(BaseModel):
    query: str
    filters: ChunkFilters = Field(default_factory=ChunkFilters)
    limit: Optional[int] = Field(default=None, gt=0)
    min_similarity: Optional[float] = Field(default=None, ge=-1.0, le=1.0)


class SearchResult(BaseModel):
    """A ranked chunk; the embedding is stripped."""

    chunk: KnowledgeChunk
    similarity: float


class SearchResponse(BaseModel):
    results: List[SearchResult] = Field(default_factory=list)
    query: str
    processing_time_ms: int = 0


class PromptContextOptions(BaseModel):
    """Shape of a multi-bucket context; weights split ``max_chunks`` between the buckets."""

    max_chunks: int = Field(default=10, gt=0)
    curriculum_weight: float = Field(default=0.3, ge=0.0, le=1.0)
    primary_weight: float = Field(default=0.4, ge=0.0, le=1.0)
    supplementary_weight: float = Field(default=0.3, ge=0.0, le=1.0)
    subject: Optional[str] = None
    min_similarity: Optional[float] = Field(default=None, ge=-1.0, le=1.0)
    curriculum_title: str = "Curriculum boundaries"
    primary_title: str = "Student book content"
    supplementary_title: str = "Teacher guide content"


class ContextSection(BaseModel):
    bucket: ContextBucket
    title: str
    results: List[SearchResult] = Field(default_factory=list)


class PromptContext(BaseModel):
    """Assembled context text plus the per-bucket results it was built from."""

    text: str = ""
    sections: List[ContextSection] = Field(default_factory=list)
    failed_buckets: Dict[ContextBucket, str] = Field(
        default_factory=dict,
        description="Buckets whose search failed, with the error message",
    )


class KnowledgeStats(BaseModel):
    total_chunks: int = 0
    by_grade: Dict[str, int] = Field(default_factory=dict)
    by_subject: Dict[str, int] = Field(default_factory=dict)
    by_volume_type: Dict[str, int] = Field(default_factory=dict)


class DocumentClassification(BaseModel):
    """Classification given at upload and stamped on every chunk of the document."""

    subject: str
    grade: str
    grades: List[str] = Field(default_factory=list, description="Additional grades a curriculum volume covers")
    volume: Optional[str] = None
    volume_type: VolumeType = VolumeType.STUDENT
    source_type: SourceType = SourceType.PDF


class IndexingOutcome(BaseModel):
    document_id: str
    chunks_created: int = 0
    chapters_found: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
