"""Human review of low-confidence pages and re-indexing of corrected text."""

from .internal.ReviewRepository import InMemoryReviewRepository, ReviewRepository
from .internal.ReviewTypes import (
    ApprovalResult,
    ExtractionReview,
    IndexUnavailableError,
    PageCorrection,
    ReviewStateError,
    ReviewStatus,
)
from .ReviewWorkflowCore import ReviewWorkflowCore

__all__ = [
    "ReviewWorkflowCore",
    "ReviewRepository",
    "InMemoryReviewRepository",
    "ExtractionReview",
    "ReviewStatus",
    "PageCorrection",
    "ApprovalResult",
    "IndexUnavailableError",
    "ReviewStateError",
]
