"""
Core module for document upload.

Upload -> consensus extraction (checkpointed for large documents) -> chunking
-> embedding -> storage -> review creation. Large documents come back with
``needs_more_batches`` until their last extraction window is done; the caller
re-sends the document with the returned ``document_id`` to continue.
"""

import logging
import time
import uuid
from typing import Optional

from ..extraction.ConsensusExtractorCore import ConsensusExtractorCore, ProgressCallback
from ..extraction.internal.ExtractionTypes import DocumentExtractionResult
from ..knowledge.internal.ChunkIndexer import ChunkIndexer
from ..knowledge.KnowledgeStoreCore import KnowledgeStoreCore
from ..review.ReviewWorkflowCore import ReviewWorkflowCore
from ..utils.BlobStore import BlobStore
from ..utils.Timing import elapsed_ms
from .internal.IngestionTypes import UploadProgress, UploadRequest, UploadResult

logger = logging.getLogger(__name__)


class IngestionCore:
    def __init__(
        self,
        extractor: ConsensusExtractorCore,
        indexer: ChunkIndexer,
        knowledge: KnowledgeStoreCore,
        reviews: ReviewWorkflowCore,
        blob_store: Optional[BlobStore] = None,
    ):
        self._extractor = extractor
        self._indexer = indexer
        self._knowledge = knowledge
        self._reviews = reviews
        self._blob_store = blob_store

    async def upload_document(
        self,
        request: UploadRequest,
        on_progress: Optional[ProgressCallback] = None,
    ) -> UploadResult:
        """
        Ingest a document.

        Document-level failures (missing content, unreadable PDF, nothing
        extracted, storage errors) are returned as ``success=False`` with the
        message in ``errors``; chunks already written for the document are
        removed again.

        Args:
            request: Document bytes or storage path plus its classification
            on_progress: Optional per-page extraction progress callback

        Returns:
            The upload outcome, partial while more extraction batches are needed
        """
        start_time = time.time()
        document_id = request.document_id or uuid.uuid4().hex
        indexing_started = False

        try:
            document = await self._load_content(request)
            total_pages = self._extractor.count_pages(document)
            batched = self._extractor.requires_batches(total_pages)

            if batched:
                batch = await self._extractor.resume_batch(document, request.file_name, document_id, on_progress)
                if batch.needs_more_batches:
                    return UploadResult(
                        success=True,
                        document_id=document_id,
                        pages_needing_review=list(batch.progress.pages_needing_review),
                        processing_time_ms=elapsed_ms(start_time),
                        progress=UploadProgress.from_checkpoint(batch.progress),
                        needs_more_batches=True,
                        next_start_page=batch.next_start_page,
                    )
                extraction = self._extractor.progress_to_result(batch.progress)
            else:
                extraction = await self._extractor.extract_document(document, request.file_name, on_progress)

            self._ensure_content(extraction)

            indexing_started = True
            outcome = await self._indexer.index_text(
                extraction.full_text,
                document_id,
                request.classification,
                source=request.file_name,
                chapter_overrides=request.chapter_overrides,
                quality=extraction.average_confidence,
            )

            if self._blob_store is not None:
                await self._blob_store.write(f"extractions/{document_id}.md", extraction.full_text.encode("utf-8"))

            review = await self._reviews.create_review(
                document_id,
                request.classification,
                extraction,
                storage_path=request.storage_path,
                chapter_overrides=request.chapter_overrides,
                chunks_created=outcome.chunks_created,
            )

            if request.replaces_document_id and request.replaces_document_id != document_id:
                await self._knowledge.delete_document(request.replaces_document_id)
            if batched:
                await self._extractor.discard_checkpoint(document_id)

        except Exception as e:
            logger.exception(f"Upload of {request.file_name} failed: {e}")
            if indexing_started:
                await self._discard_partial_document(document_id)
            return UploadResult(
                success=False,
                document_id=document_id,
                processing_time_ms=elapsed_ms(start_time),
                errors=[str(e)],
            )

        logger.info(
            f"Uploaded {request.file_name} as {document_id}: {outcome.chunks_created} chunks, "
            f"{len(outcome.chapters_found)} chapters, {len(extraction.pages_needing_review)} pages need review"
        )
        return UploadResult(
            success=True,
            document_id=document_id,
            review_id=review.id,
            chunks_created=outcome.chunks_created,
            chapters_found=outcome.chapters_found,
            average_confidence=extraction.average_confidence,
            pages_needing_review=extraction.pages_needing_review,
            processing_time_ms=elapsed_ms(start_time),
            errors=outcome.errors,
        )

    async def delete_document(self, document_id: str) -> int:
        return await self._knowledge.delete_document(document_id)

    async def _load_content(self, request: UploadRequest) -> bytes:
        if request.content:
            return request.content
        if request.storage_path:
            if self._blob_store is None:
                raise ValueError("A storage path was given but no blob store is configured")
            return await self._blob_store.read(request.storage_path)
        raise ValueError("No file content or storage path provided")

    @staticmethod
    def _ensure_content(extraction: DocumentExtractionResult) -> None:
        if not any(page.effective_text.strip() for page in extraction.pages):
            raise ValueError("No content extracted from document")

    async def _discard_partial_document(self, document_id: str) -> None:
        try:
            await self._knowledge.delete_document(document_id)
        except Exception as e:
            logger.error(f"Failed to remove partial chunks of {document_id}: {e}")
