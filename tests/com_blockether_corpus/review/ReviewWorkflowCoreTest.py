"""
Tests for ReviewWorkflowCore: review creation, page corrections, approval
with re-indexing, and review listing.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

import pytest

from com_blockether_corpus.embedding import EmbeddingGatewayCore, EmbeddingSettings
from com_blockether_corpus.extraction import (
    Confidence,
    DocumentExtractionResult,
    ExtractionMethod,
    Page,
    assemble_full_text,
)
from com_blockether_corpus.knowledge import (
    ChunkIndexer,
    ChunkQuery,
    DocumentClassification,
    InMemoryKnowledgeRepository,
    KnowledgeChunk,
    KnowledgeStoreCore,
    KnowledgeStoreSettings,
)
from com_blockether_corpus.review import (
    ExtractionReview,
    InMemoryReviewRepository,
    ReviewStateError,
    ReviewStatus,
    ReviewWorkflowCore,
)
from com_blockether_corpus.segmentation import ChunkerCore
from com_blockether_corpus.utils import InMemoryBlobStore
from com_blockether_corpus.utils.openai.MockEmbeddingCall import MockEmbeddingCall

FRACTIONS = "Chapter 1: Fractions\n" + "A fraction names part of a whole. " * 6
DECIMALS = "Chapter 2: Decimals\n" + "A decimal fraction uses place value after the point. " * 4
GARBLED = "Chaptr 2 Dcmls ???"


def _page(page_number: int, text: str, needs_review: bool = False) -> Page:
    return Page(
        page_number=page_number,
        primary_text=text,
        verification_text=text,
        consensus_text=text,
        confidence=Confidence.LOW if needs_review else Confidence.HIGH,
        agreement_score=0.4 if needs_review else 1.0,
        needs_review=needs_review,
        extraction_method=ExtractionMethod.DUAL_PASS,
    )


class FlakyWriteRepository(InMemoryKnowledgeRepository):
    """Fails the n-th write once armed."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_on_write: Optional[int] = None
        self._writes = 0

    async def write_batch(self, chunks: Sequence[KnowledgeChunk]) -> None:
        if self.fail_on_write is not None:
            self._writes += 1
            if self._writes == self.fail_on_write:
                raise OSError("write rejected")
        await super().write_batch(chunks)


def _extraction(pages: List[Page]) -> DocumentExtractionResult:
    return DocumentExtractionResult(
        file_name="fractions.pdf",
        total_pages=len(pages),
        pages=pages,
        full_text=assemble_full_text(pages),
        average_confidence=sum(page.agreement_score for page in pages) / len(pages),
        pages_needing_review=[page.page_number for page in pages if page.needs_review],
    )


class TestReviewWorkflowCore:
    """Test suite for ReviewWorkflowCore."""

    @pytest.fixture
    def classification(self) -> DocumentClassification:
        return DocumentClassification(subject="math", grade="5")

    @pytest.fixture
    def embeddings(self) -> EmbeddingGatewayCore:
        return EmbeddingGatewayCore(MockEmbeddingCall(), EmbeddingSettings(dimensions=4, inter_batch_delay_ms=0))

    @pytest.fixture
    def knowledge(self, embeddings: EmbeddingGatewayCore) -> KnowledgeStoreCore:
        return KnowledgeStoreCore(InMemoryKnowledgeRepository(), embeddings)

    @pytest.fixture
    def indexer(self, embeddings: EmbeddingGatewayCore, knowledge: KnowledgeStoreCore) -> ChunkIndexer:
        return ChunkIndexer(ChunkerCore(), embeddings, knowledge)

    @pytest.fixture
    def blob_store(self) -> InMemoryBlobStore:
        return InMemoryBlobStore()

    @pytest.fixture
    def repository(self) -> InMemoryReviewRepository:
        return InMemoryReviewRepository()

    @pytest.fixture
    def workflow(
        self,
        repository: InMemoryReviewRepository,
        indexer: ChunkIndexer,
        knowledge: KnowledgeStoreCore,
        blob_store: InMemoryBlobStore,
    ) -> ReviewWorkflowCore:
        return ReviewWorkflowCore(repository, indexer, knowledge, blob_store=blob_store)

    @pytest.fixture
    def extraction(self) -> DocumentExtractionResult:
        return _extraction([_page(1, FRACTIONS), _page(2, GARBLED, needs_review=True)])

    @pytest.mark.anyio
    async def test_review_with_flagged_pages_is_pending(
        self,
        workflow: ReviewWorkflowCore,
        classification: DocumentClassification,
        extraction: DocumentExtractionResult,
    ) -> None:
        review = await workflow.create_review("doc-1", classification, extraction, storage_path="uploads/f.pdf")

        assert review.status == ReviewStatus.PENDING_REVIEW
        assert review.pages_needing_review == [2]
        assert review.document_id == "doc-1"
        assert review.storage_path == "uploads/f.pdf"
        assert review.classification == classification
        assert await workflow.get_review(review.id) == review

    @pytest.mark.anyio
    async def test_review_without_flagged_pages_is_reviewed(
        self, workflow: ReviewWorkflowCore, classification: DocumentClassification
    ) -> None:
        review = await workflow.create_review("doc-2", classification, _extraction([_page(1, FRACTIONS)]))

        assert review.status == ReviewStatus.REVIEWED
        assert review.pages_needing_review == []

    @pytest.mark.anyio
    async def test_unknown_review(self, workflow: ReviewWorkflowCore) -> None:
        with pytest.raises(KeyError):
            await workflow.get_review("missing")

    @pytest.mark.anyio
    async def test_correcting_the_last_flagged_page(
        self,
        workflow: ReviewWorkflowCore,
        classification: DocumentClassification,
        extraction: DocumentExtractionResult,
    ) -> None:
        review = await workflow.create_review("doc-1", classification, extraction)

        updated = await workflow.correct_page(review.id, 2, DECIMALS, "reviewer@example.com")

        page = updated.page(2)
        assert page.corrected_text == DECIMALS
        assert page.effective_text == DECIMALS
        assert page.corrected_by == "reviewer@example.com"
        assert page.corrected_at is not None
        assert not page.needs_review
        assert updated.pages_needing_review == []
        assert updated.status == ReviewStatus.REVIEWED
        assert (await workflow.get_review(review.id)).page(2).corrected_text == DECIMALS

    @pytest.mark.anyio
    async def test_correction_keeps_pending_while_pages_remain(
        self, workflow: ReviewWorkflowCore, classification: DocumentClassification
    ) -> None:
        extraction = _extraction([_page(1, GARBLED, needs_review=True), _page(2, GARBLED, needs_review=True)])
        review = await workflow.create_review("doc-3", classification, extraction)

        updated = await workflow.correct_page(review.id, 1, FRACTIONS, "reviewer")

        assert updated.status == ReviewStatus.PENDING_REVIEW
        assert updated.pages_needing_review == [2]

    @pytest.mark.anyio
    async def test_repeated_correction_is_a_no_op(
        self,
        workflow: ReviewWorkflowCore,
        classification: DocumentClassification,
        extraction: DocumentExtractionResult,
    ) -> None:
        review = await workflow.create_review("doc-1", classification, extraction)
        first = await workflow.correct_page(review.id, 2, DECIMALS, "reviewer")

        second = await workflow.correct_page(review.id, 2, DECIMALS, "someone else")

        assert second == first
        assert second.page(2).corrected_by == "reviewer"

    @pytest.mark.anyio
    async def test_correction_errors(
        self,
        workflow: ReviewWorkflowCore,
        classification: DocumentClassification,
        extraction: DocumentExtractionResult,
    ) -> None:
        review = await workflow.create_review("doc-1", classification, extraction)

        with pytest.raises(ValueError):
            await workflow.correct_page(review.id, 2, "   ", "reviewer")
        with pytest.raises(KeyError):
            await workflow.correct_page(review.id, 9, DECIMALS, "reviewer")
        with pytest.raises(KeyError):
            await workflow.correct_page("missing", 2, DECIMALS, "reviewer")

    @pytest.mark.anyio
    async def test_approval_reindexes_corrected_text(
        self,
        workflow: ReviewWorkflowCore,
        indexer: ChunkIndexer,
        knowledge: KnowledgeStoreCore,
        blob_store: InMemoryBlobStore,
        classification: DocumentClassification,
        extraction: DocumentExtractionResult,
    ) -> None:
        original = await indexer.index_text(extraction.full_text, "doc-1", classification)
        review = await workflow.create_review(
            "doc-1", classification, extraction, chunks_created=original.chunks_created
        )
        corrected = await workflow.correct_page(review.id, 2, DECIMALS, "reviewer")

        result = await workflow.approve_review(review.id, "lead-reviewer")

        corrected_text = assemble_full_text(corrected.pages)
        assert result.previous_document_id == "doc-1"
        assert result.document_id != "doc-1"
        assert result.deleted_chunks == original.chunks_created
        assert result.chunks_created == len(indexer.chunker.segment(corrected_text).chunks) == 2
        assert result.chapters_found == ["Chapter 1: Fractions", "Chapter 2: Decimals"]

        stored = await knowledge.repository.scan()
        assert all(chunk.id.startswith(f"{result.document_id}_") for chunk in stored)
        assert await knowledge.repository.fetch(ChunkQuery(equals={"document_id": "doc-1"})) == []
        assert any(DECIMALS.splitlines()[1].strip()[:40] in chunk.content for chunk in stored)

        assert await blob_store.read(f"corrections/{result.document_id}.md") == corrected_text.encode("utf-8")

        approved = await workflow.get_review(review.id)
        assert approved.status == ReviewStatus.APPROVED
        assert approved.approved_by == "lead-reviewer"
        assert approved.approved_at is not None
        assert approved.document_id == result.document_id
        assert approved.superseded_document_ids == ["doc-1"]
        assert approved.chunks_created == 2

    @pytest.mark.anyio
    async def test_pending_review_can_be_approved(
        self,
        workflow: ReviewWorkflowCore,
        classification: DocumentClassification,
        extraction: DocumentExtractionResult,
    ) -> None:
        review = await workflow.create_review("doc-1", classification, extraction)

        result = await workflow.approve_review(review.id, "lead")

        assert result.chunks_created == 1
        assert (await workflow.get_review(review.id)).status == ReviewStatus.APPROVED

    @pytest.mark.anyio
    async def test_approved_review_is_final(
        self,
        workflow: ReviewWorkflowCore,
        classification: DocumentClassification,
        extraction: DocumentExtractionResult,
    ) -> None:
        review = await workflow.create_review("doc-1", classification, extraction)
        await workflow.approve_review(review.id, "lead")

        with pytest.raises(ReviewStateError):
            await workflow.approve_review(review.id, "lead")
        with pytest.raises(ReviewStateError):
            await workflow.correct_page(review.id, 2, DECIMALS, "reviewer")

    @pytest.mark.anyio
    async def test_repeated_correction_after_approval_is_a_no_op(
        self,
        workflow: ReviewWorkflowCore,
        classification: DocumentClassification,
        extraction: DocumentExtractionResult,
    ) -> None:
        review = await workflow.create_review("doc-1", classification, extraction)
        await workflow.correct_page(review.id, 2, DECIMALS, "reviewer")
        await workflow.approve_review(review.id, "lead")
        approved = await workflow.get_review(review.id)

        again = await workflow.correct_page(review.id, 2, DECIMALS, "reviewer")

        assert again == approved
        assert again.status == ReviewStatus.APPROVED

    @pytest.mark.anyio
    async def test_failed_approval_removes_partial_chunks(
        self,
        embeddings: EmbeddingGatewayCore,
        blob_store: InMemoryBlobStore,
        repository: InMemoryReviewRepository,
        classification: DocumentClassification,
        extraction: DocumentExtractionResult,
    ) -> None:
        chunks = FlakyWriteRepository()
        knowledge = KnowledgeStoreCore(chunks, embeddings, KnowledgeStoreSettings(write_batch_size=1))
        indexer = ChunkIndexer(ChunkerCore(), embeddings, knowledge)
        workflow = ReviewWorkflowCore(repository, indexer, knowledge, blob_store=blob_store)

        await indexer.index_text(extraction.full_text, "doc-1", classification)
        review = await workflow.create_review("doc-1", classification, extraction)
        await workflow.correct_page(review.id, 2, DECIMALS, "reviewer")
        chunks.fail_on_write = 2

        with pytest.raises(OSError, match="write rejected"):
            await workflow.approve_review(review.id, "lead")

        assert await chunks.scan() == []
        unapproved = await workflow.get_review(review.id)
        assert unapproved.status == ReviewStatus.REVIEWED
        assert unapproved.document_id == "doc-1"
        assert unapproved.superseded_document_ids == []

        result = await workflow.approve_review(review.id, "lead")

        assert result.chunks_created == 2
        assert {chunk.document_id for chunk in await chunks.scan()} == {result.document_id}

    @pytest.mark.anyio
    async def test_update_storage_path(
        self,
        workflow: ReviewWorkflowCore,
        classification: DocumentClassification,
        extraction: DocumentExtractionResult,
    ) -> None:
        review = await workflow.create_review("doc-1", classification, extraction)

        updated = await workflow.update_storage_path(review.id, "archive/fractions.pdf")

        assert updated.storage_path == "archive/fractions.pdf"
        assert (await workflow.get_review(review.id)).storage_path == "archive/fractions.pdf"


class TestReviewListing:
    T0 = datetime(2024, 5, 1, tzinfo=timezone.utc)

    async def _seed(self, repository: InMemoryReviewRepository) -> None:
        for review_id, status, age in (
            ("a", ReviewStatus.PENDING_REVIEW, 5),
            ("b", ReviewStatus.REVIEWED, 4),
            ("c", ReviewStatus.PENDING_REVIEW, 1),
            ("d", ReviewStatus.PENDING_REVIEW, 3),
        ):
            await repository.save(
                ExtractionReview(
                    id=review_id,
                    document_id=f"doc-{review_id}",
                    file_name=f"{review_id}.pdf",
                    subject="math",
                    grade="1",
                    status=status,
                    created_at=self.T0 - timedelta(days=age),
                )
            )

    def _workflow(self, repository: InMemoryReviewRepository) -> ReviewWorkflowCore:
        embeddings = EmbeddingGatewayCore(MockEmbeddingCall(), EmbeddingSettings(dimensions=4))
        knowledge = KnowledgeStoreCore(InMemoryKnowledgeRepository(), embeddings)
        return ReviewWorkflowCore(repository, ChunkIndexer(ChunkerCore(), embeddings, knowledge), knowledge)

    @pytest.mark.anyio
    async def test_newest_first(self) -> None:
        repository = InMemoryReviewRepository()
        await self._seed(repository)
        workflow = self._workflow(repository)

        all_reviews = await workflow.list_all_reviews()
        pending = await workflow.list_pending_reviews(limit=2)

        assert [review.id for review in all_reviews] == ["c", "d", "b", "a"]
        assert [review.id for review in pending] == ["c", "d"]

    @pytest.mark.anyio
    async def test_falls_back_without_composite_index(self, caplog: pytest.LogCaptureFixture) -> None:
        repository = InMemoryReviewRepository(composite_indexes=frozenset())
        await self._seed(repository)
        workflow = self._workflow(repository)

        pending = await workflow.list_pending_reviews()
        limited = await workflow.list_all_reviews(status=ReviewStatus.PENDING_REVIEW, limit=1)

        assert [review.id for review in pending] == ["c", "d", "a"]
        assert [review.id for review in limited] == ["c"]
        assert "falling back" in caplog.text
