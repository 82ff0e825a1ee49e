"""
Segmentation -> embedding -> persistence of a document's text.

Shared by first-time ingestion and by review approval, which re-indexes the
corrected text under a new document id.
"""

import logging
from typing import List, Mapping, Optional

from ...embedding.EmbeddingGatewayCore import EmbeddingGatewayCore
from ...segmentation.ChunkerCore import ChunkerCore
from ...segmentation.internal.SegmentationTypes import ChapterOverride
from ..KnowledgeStoreCore import KnowledgeStoreCore
from .KnowledgeTypes import (
    DocumentClassification,
    IndexingOutcome,
    KnowledgeChunk,
    chunk_id_for,
    utc_now,
)

logger = logging.getLogger(__name__)


class ChunkIndexer:
    def __init__(self, chunker: ChunkerCore, embeddings: EmbeddingGatewayCore, store: KnowledgeStoreCore):
        self._chunker = chunker
        self._embeddings = embeddings
        self._store = store

    @property
    def chunker(self) -> ChunkerCore:
        return self._chunker

    async def index_text(
        self,
        text: str,
        document_id: str,
        classification: DocumentClassification,
        source: Optional[str] = None,
        chapter_overrides: Optional[Mapping[str, ChapterOverride]] = None,
        quality: Optional[float] = None,
    ) -> IndexingOutcome:
        """
        Chunk, embed and store a document's text.

        Chunks whose embedding failed are skipped and reported in ``errors``;
        the rest keep their sequence index in the chunk id.

        Args:
            text: Full document text (page markers allowed)
            document_id: Owner of the new chunks
            classification: Subject, grade and volume stamped on each chunk
            source: Originating file name
            chapter_overrides: Per-chapter unit reference and content type
            quality: Average extraction agreement of the document

        Returns:
            Counts of chunks written and chapters found, plus per-chunk errors
        """
        segmentation = self._chunker.segment(text, chapter_overrides)
        embedded = await self._embeddings.embed_batch([chunk.content for chunk in segmentation.chunks])

        now = utc_now()
        errors: List[str] = []
        records: List[KnowledgeChunk] = []
        for index, (chunk, result) in enumerate(zip(segmentation.chunks, embedded)):
            if not result.succeeded:
                errors.append(f"Failed to generate embedding for chunk {index}")
                continue
            records.append(
                KnowledgeChunk(
                    id=chunk_id_for(document_id, index),
                    document_id=document_id,
                    subject=classification.subject,
                    grade=classification.grade,
                    grades=list(dict.fromkeys([classification.grade, *classification.grades])),
                    volume=classification.volume,
                    volume_type=classification.volume_type,
                    chapter=chunk.chapter,
                    chapter_number=chunk.chapter_number,
                    unit_reference=chunk.unit_reference,
                    page_range=chunk.page_range,
                    content=chunk.content,
                    content_type=chunk.content_type,
                    embedding=result.embedding,
                    source=source,
                    source_type=classification.source_type,
                    created_at=now,
                    updated_at=now,
                    quality=quality,
                    keywords=chunk.keywords,
                )
            )

        if errors:
            logger.warning(f"{len(errors)} of {len(segmentation.chunks)} chunks of {document_id} have no embedding")

        written = await self._store.write_chunks(records)
        return IndexingOutcome(
            document_id=document_id,
            chunks_created=written,
            chapters_found=segmentation.chapter_names,
            errors=errors,
        )
