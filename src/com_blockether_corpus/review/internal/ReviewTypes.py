"""
Types for the human review and re-indexing workflow.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from ...extraction.internal.ExtractionTypes import Page, utc_now
from ...knowledge.internal.KnowledgeTypes import DocumentClassification, SourceType, VolumeType
from ...segmentation.internal.SegmentationTypes import ChapterOverride


class ReviewStatus(str, Enum):
    PENDING_REVIEW = "pending_review"
    REVIEWED = "reviewed"
    APPROVED = "approved"


class IndexUnavailableError(RuntimeError):
    """The store cannot serve a filtered and ordered query until its composite index exists."""


class ReviewStateError(RuntimeError):
    """The requested transition is not allowed from the review's current status."""


class ExtractionReview(BaseModel):
    """Per-page extraction state of one document, open for human correction."""

    id: str
    document_id: str = Field(description="Document whose chunks are currently indexed")
    file_name: str
    storage_path: Optional[str] = Field(default=None, description="Blob path of the original upload")
    subject: str
    grade: str
    grades: List[str] = Field(default_factory=list)
    volume: Optional[str] = None
    volume_type: VolumeType = VolumeType.STUDENT
    source_type: SourceType = SourceType.PDF
    chapter_overrides: Dict[str, ChapterOverride] = Field(default_factory=dict)
    pages: List[Page] = Field(default_factory=list)
    total_pages: int = 0
    average_confidence: float = 0.0
    pages_needing_review: List[int] = Field(default_factory=list)
    status: ReviewStatus = ReviewStatus.PENDING_REVIEW
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    chunks_created: int = 0
    superseded_document_ids: List[str] = Field(default_factory=list)

    @property
    def classification(self) -> DocumentClassification:
        return DocumentClassification(
            subject=self.subject,
            grade=self.grade,
            grades=self.grades,
            volume=self.volume,
            volume_type=self.volume_type,
            source_type=self.source_type,
        )

    def page(self, page_number: int) -> Page:
        for page in self.pages:
            if page.page_number == page_number:
                return page
        raise KeyError(f"Review {self.id} has no page {page_number}")

    def still_needing_review(self) -> List[int]:
        return sorted(page.page_number for page in self.pages if page.awaiting_review)


class PageCorrection(BaseModel):
    text: str = Field(min_length=1)
    corrected_by: str = Field(min_length=1)


class ApprovalResult(BaseModel):
    review_id: str
    previous_document_id: str
    document_id: str
    deleted_chunks: int = 0
    chunks_created: int = 0
    chapters_found: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
