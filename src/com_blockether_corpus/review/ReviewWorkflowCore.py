"""
Core module for human review of extracted pages and re-indexing of corrections.

A review is opened for every extracted document. Reviewers correct flagged
pages one at a time; once no flagged page is left uncorrected the review
becomes ``reviewed``. Approval is the only way corrected text reaches the
searchable corpus: the document's chunks are deleted, the corrected full text
is chunked, embedded and stored again under a new document id, and the review
is marked ``approved``. Between the deletion and the rewrite a search may see
no chunks for the document.
"""

import logging
import uuid
from typing import List, Mapping, Optional

from ..extraction.internal.ExtractionTypes import DocumentExtractionResult, assemble_full_text, utc_now
from ..knowledge.internal.ChunkIndexer import ChunkIndexer
from ..knowledge.internal.KnowledgeTypes import DocumentClassification
from ..knowledge.KnowledgeStoreCore import KnowledgeStoreCore
from ..segmentation.internal.SegmentationTypes import ChapterOverride
from ..utils.BlobStore import BlobStore
from ..utils.Timing import async_timed_operation
from .internal.ReviewRepository import ReviewRepository
from .internal.ReviewTypes import (
    ApprovalResult,
    ExtractionReview,
    IndexUnavailableError,
    ReviewStateError,
    ReviewStatus,
)

logger = logging.getLogger(__name__)


class ReviewWorkflowCore:
    """Review listing, page correction and approval with re-indexing."""

    def __init__(
        self,
        repository: ReviewRepository,
        indexer: ChunkIndexer,
        knowledge: KnowledgeStoreCore,
        blob_store: Optional[BlobStore] = None,
        page_marker_label: str = "page",
    ):
        self._repository = repository
        self._indexer = indexer
        self._knowledge = knowledge
        self._blob_store = blob_store
        self._page_marker_label = page_marker_label

    async def create_review(
        self,
        document_id: str,
        classification: DocumentClassification,
        extraction: DocumentExtractionResult,
        storage_path: Optional[str] = None,
        chapter_overrides: Optional[Mapping[str, ChapterOverride]] = None,
        chunks_created: int = 0,
    ) -> ExtractionReview:
        """Open a review over a completed extraction; it starts ``reviewed`` when no page is flagged."""
        pending = sorted(page.page_number for page in extraction.pages if page.awaiting_review)
        review = ExtractionReview(
            id=uuid.uuid4().hex,
            document_id=document_id,
            file_name=extraction.file_name,
            storage_path=storage_path,
            subject=classification.subject,
            grade=classification.grade,
            grades=classification.grades,
            volume=classification.volume,
            volume_type=classification.volume_type,
            source_type=classification.source_type,
            chapter_overrides=dict(chapter_overrides or {}),
            pages=sorted(extraction.pages, key=lambda page: page.page_number),
            total_pages=extraction.total_pages,
            average_confidence=extraction.average_confidence,
            pages_needing_review=pending,
            status=ReviewStatus.PENDING_REVIEW if pending else ReviewStatus.REVIEWED,
            chunks_created=chunks_created,
        )
        await self._repository.save(review)
        logger.info(f"Opened review {review.id} for {review.file_name}: {len(pending)} pages need review")
        return review

    async def get_review(self, review_id: str) -> ExtractionReview:
        review = await self._repository.get(review_id)
        if review is None:
            raise KeyError(f"Review {review_id} not found")
        return review

    async def list_pending_reviews(self, limit: Optional[int] = None) -> List[ExtractionReview]:
        """Reviews still awaiting corrections, newest first."""
        return await self.list_all_reviews(status=ReviewStatus.PENDING_REVIEW, limit=limit)

    async def list_all_reviews(
        self,
        status: Optional[ReviewStatus] = None,
        limit: Optional[int] = None,
    ) -> List[ExtractionReview]:
        """
        Reviews, optionally filtered by status, newest first.

        When the store lacks the composite index the filtered, ordered query
        needs, the reviews are fetched unordered and sorted here instead.
        """
        try:
            return await self._repository.query(status=status, order_by="created_at", descending=True, limit=limit)
        except IndexUnavailableError as e:
            logger.warning(f"Review index unavailable, falling back to unordered query: {e}")

        reviews = await self._repository.query(status=status)
        reviews.sort(key=lambda review: review.created_at, reverse=True)
        return reviews[:limit] if limit is not None else reviews

    async def correct_page(
        self,
        review_id: str,
        page_number: int,
        text: str,
        corrected_by: str,
    ) -> ExtractionReview:
        """
        Record a human correction of one page.

        Re-submitting the text a page is already corrected to changes nothing,
        even after approval.

        Raises:
            KeyError: If the review or the page does not exist
            ValueError: If the corrected text is empty
            ReviewStateError: If the review is already approved and the text differs
        """
        review = await self.get_review(review_id)
        page = review.page(page_number)
        if page.corrected_text == text:
            logger.debug(f"Correction of page {page_number} in review {review_id} is unchanged")
            return review
        if review.status == ReviewStatus.APPROVED:
            raise ReviewStateError(f"Review {review_id} is already approved")
        if not text.strip():
            raise ValueError("Corrected text cannot be empty")

        now = utc_now()
        corrected = page.model_copy(
            update={
                "corrected_text": text,
                "corrected_by": corrected_by,
                "corrected_at": now,
                "needs_review": False,
            }
        )
        pages = [corrected if p.page_number == page_number else p for p in review.pages]
        updated = review.model_copy(update={"pages": pages, "updated_at": now})
        pending = updated.still_needing_review()
        updated = updated.model_copy(
            update={
                "pages_needing_review": pending,
                "status": ReviewStatus.REVIEWED if not pending else review.status,
            }
        )

        await self._repository.save(updated)
        logger.info(
            f"Page {page_number} of review {review_id} corrected by {corrected_by}; "
            f"{len(pending)} pages still need review"
        )
        return updated

    @async_timed_operation("Review approval")
    async def approve_review(self, review_id: str, approved_by: str) -> ApprovalResult:
        """
        Approve a review and re-index its corrected text.

        The corrected full text (corrected page text where present, consensus
        text otherwise) replaces every chunk of the current document. The new
        chunks belong to a fresh document id; the old one is kept in
        ``superseded_document_ids``. If re-indexing fails, chunks already written
        under the new id are removed and the review is left unapproved.

        Raises:
            KeyError: If the review does not exist
            ReviewStateError: If the review is already approved
        """
        review = await self.get_review(review_id)
        if review.status == ReviewStatus.APPROVED:
            raise ReviewStateError(f"Review {review_id} is already approved")

        full_text = assemble_full_text(review.pages, self._page_marker_label)
        previous_document_id = review.document_id
        document_id = uuid.uuid4().hex

        deleted = await self._knowledge.delete_document(previous_document_id)
        try:
            outcome = await self._indexer.index_text(
                full_text,
                document_id,
                review.classification,
                source=review.file_name,
                chapter_overrides=review.chapter_overrides,
                quality=review.average_confidence,
            )

            if self._blob_store is not None:
                await self._blob_store.write(f"corrections/{document_id}.md", full_text.encode("utf-8"))

            now = utc_now()
            approved = review.model_copy(
                update={
                    "document_id": document_id,
                    "superseded_document_ids": [*review.superseded_document_ids, previous_document_id],
                    "status": ReviewStatus.APPROVED,
                    "approved_by": approved_by,
                    "approved_at": now,
                    "updated_at": now,
                    "chunks_created": outcome.chunks_created,
                }
            )
            await self._repository.save(approved)
        except Exception as e:
            logger.error(f"Approval of review {review_id} failed, removing chunks of {document_id}: {e}")
            await self._discard_partial_document(document_id)
            raise

        logger.info(
            f"Review {review_id} approved by {approved_by}: replaced {deleted} chunks of {previous_document_id} "
            f"with {outcome.chunks_created} chunks of {document_id}"
        )
        return ApprovalResult(
            review_id=review_id,
            previous_document_id=previous_document_id,
            document_id=document_id,
            deleted_chunks=deleted,
            chunks_created=outcome.chunks_created,
            chapters_found=outcome.chapters_found,
            errors=outcome.errors,
        )

    async def update_storage_path(self, review_id: str, storage_path: str) -> ExtractionReview:
        review = await self.get_review(review_id)
        updated = review.model_copy(update={"storage_path": storage_path, "updated_at": utc_now()})
        await self._repository.save(updated)
        return updated

    async def _discard_partial_document(self, document_id: str) -> None:
        try:
            await self._knowledge.delete_document(document_id)
        except Exception as e:
            logger.error(f"Failed to remove partial chunks of {document_id}: {e}")
