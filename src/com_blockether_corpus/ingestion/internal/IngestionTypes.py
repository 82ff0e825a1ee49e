"""
Upload request and result types.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from ...extraction.internal.ExtractionTypes import BatchProgress
from ...knowledge.internal.KnowledgeTypes import DocumentClassification
from ...segmentation.internal.SegmentationTypes import ChapterOverride


class UploadRequest(BaseModel):
    """
    A document to ingest, given either as bytes or as a blob store path.

    To continue a multi-batch extraction, send the same document again with
    ``document_id`` set to the id returned by the previous call.
    """

    file_name: str = Field(min_length=1)
    classification: DocumentClassification
    content: Optional[bytes] = Field(default=None, description="Raw PDF bytes")
    storage_path: Optional[str] = Field(default=None, description="Blob store path of the PDF")
    document_id: Optional[str] = Field(default=None, description="Id of an in-flight batch extraction to resume")
    replaces_document_id: Optional[str] = Field(
        default=None,
        description="Document whose chunks are deleted once this one is indexed",
    )
    chapter_overrides: Dict[str, ChapterOverride] = Field(default_factory=dict)


class UploadProgress(BaseModel):
    """Checkpoint summary returned while a large document is still being extracted."""

    total_pages: int
    processed_pages: int
    last_processed_page: int
    pages_needing_review: List[int] = Field(default_factory=list)

    @classmethod
    def from_checkpoint(cls, progress: BatchProgress) -> "UploadProgress":
        return cls(
            total_pages=progress.total_pages,
            processed_pages=progress.processed_pages,
            last_processed_page=progress.last_processed_page,
            pages_needing_review=list(progress.pages_needing_review),
        )


class UploadResult(BaseModel):
    success: bool
    document_id: Optional[str] = None
    review_id: Optional[str] = None
    chunks_created: int = 0
    chapters_found: List[str] = Field(default_factory=list)
    average_confidence: Optional[float] = None
    pages_needing_review: List[int] = Field(default_factory=list)
    processing_time_ms: int = 0
    errors: List[str] = Field(default_factory=list)
    progress: Optional[UploadProgress] = None
    needs_more_batches: bool = False
    next_start_page: Optional[int] = None
