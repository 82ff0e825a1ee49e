"""
Tests for ChunkIndexer: segmentation, embedding and persistence of one document.
"""

from typing import Tuple

import pytest

from com_blockether_corpus.embedding import EmbeddingGatewayCore, EmbeddingSettings
from com_blockether_corpus.knowledge import (
    ChunkIndexer,
    DocumentClassification,
    InMemoryKnowledgeRepository,
    KnowledgeStoreCore,
    SourceType,
    VolumeType,
)
from com_blockether_corpus.segmentation import ChapterOverride, ChunkerCore, ContentType
from com_blockether_corpus.utils.openai.MockEmbeddingCall import MockEmbeddingCall
from com_blockether_corpus.utils.RateLimiting import RateLimitError

BODY = "A fraction names part of a whole. The denominator counts the equal parts. " * 3
DOCUMENT = (
    f"<!-- page 1 -->\nChapter 1: Fractions\n{BODY}\n\n---\n\n"
    f"<!-- page 2 -->\nChapter 2: Decimals\n{BODY}\n\n---\n\n"
    f"<!-- page 3 -->\nChapter 3: Percent\n{BODY}"
)


class TestChunkIndexer:
    @pytest.fixture
    def classification(self) -> DocumentClassification:
        return DocumentClassification(
            subject="math",
            grade="4",
            grades=["4", "5"],
            volume="A",
            volume_type=VolumeType.TEACHER,
            source_type=SourceType.PDF,
        )

    def _indexer(self, embedder: MockEmbeddingCall) -> Tuple[ChunkIndexer, KnowledgeStoreCore]:
        embeddings = EmbeddingGatewayCore(
            embedder,
            EmbeddingSettings(
                dimensions=4,
                batch_size=1,
                inter_batch_delay_ms=0,
                max_retries=2,
                retry_min_wait=1,
                retry_max_wait=2,
            ),
        )
        store = KnowledgeStoreCore(InMemoryKnowledgeRepository(), embeddings)
        return ChunkIndexer(ChunkerCore(), embeddings, store), store

    @pytest.mark.anyio
    async def test_index_text_stamps_classification(self, classification: DocumentClassification) -> None:
        indexer, store = self._indexer(MockEmbeddingCall())

        outcome = await indexer.index_text(
            DOCUMENT,
            "doc42",
            classification,
            source="guide.pdf",
            chapter_overrides={"Chapter 2: Decimals": ChapterOverride(unit_reference="unit-2")},
            quality=0.93,
        )

        assert outcome.chunks_created == 3
        assert outcome.chapters_found == ["Chapter 1: Fractions", "Chapter 2: Decimals", "Chapter 3: Percent"]
        assert outcome.errors == []

        stored = sorted(await store.repository.scan(), key=lambda chunk: chunk.id)
        assert [chunk.id for chunk in stored] == ["doc42_0", "doc42_1", "doc42_2"]
        first = stored[0]
        assert first.document_id == "doc42"
        assert first.grades == ["4", "5"]
        assert first.volume == "A"
        assert first.volume_type == VolumeType.TEACHER
        assert first.source == "guide.pdf"
        assert first.quality == 0.93
        assert first.page_range == "p. 1"
        assert first.content_type == ContentType.EXPLANATION
        assert len(first.embedding) == 4
        assert stored[1].unit_reference == "unit-2"

    @pytest.mark.anyio
    async def test_chunk_count_matches_segmentation(self, classification: DocumentClassification) -> None:
        indexer, _ = self._indexer(MockEmbeddingCall())

        outcome = await indexer.index_text(DOCUMENT, "doc1", classification)

        assert outcome.chunks_created == len(indexer.chunker.segment(DOCUMENT).chunks)

    @pytest.mark.anyio
    async def test_failed_embedding_skips_only_that_chunk(self, classification: DocumentClassification) -> None:
        # One text per batch; the second batch is rate limited on both attempts
        embedder = MockEmbeddingCall(failures=[None, RateLimitError("429 timeout"), RateLimitError("429 timeout")])
        indexer, store = self._indexer(embedder)

        outcome = await indexer.index_text(DOCUMENT, "doc7", classification)

        assert outcome.chunks_created == 2
        assert outcome.errors == ["Failed to generate embedding for chunk 1"]
        stored_ids = sorted(chunk.id for chunk in await store.repository.scan())
        assert stored_ids == ["doc7_0", "doc7_2"]

    @pytest.mark.anyio
    async def test_empty_text_writes_nothing(self, classification: DocumentClassification) -> None:
        indexer, _ = self._indexer(MockEmbeddingCall())

        outcome = await indexer.index_text("", "doc0", classification)

        assert outcome.chunks_created == 0
        assert outcome.chapters_found == []
