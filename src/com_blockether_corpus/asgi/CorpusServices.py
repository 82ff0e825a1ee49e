"""
Wiring of the corpus cores around shared collaborators.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from ..embedding.EmbeddingGatewayCore import EmbeddingGatewayCore
from ..embedding.internal.EmbeddingTypes import EmbeddingRequest, EmbeddingResponse, EmbeddingSettings
from ..extraction.ConsensusExtractorCore import ConsensusExtractorCore, PageExtractor
from ..extraction.internal.CheckpointStore import CheckpointStore, InMemoryCheckpointStore
from ..extraction.internal.ExtractionTypes import ExtractionSettings
from ..ingestion.IngestionCore import IngestionCore
from ..knowledge.internal.ChunkIndexer import ChunkIndexer
from ..knowledge.internal.KnowledgeRepository import InMemoryKnowledgeRepository, KnowledgeRepository
from ..knowledge.internal.KnowledgeTypes import KnowledgeStoreSettings
from ..knowledge.KnowledgeStoreCore import KnowledgeStoreCore
from ..review.internal.ReviewRepository import InMemoryReviewRepository, ReviewRepository
from ..review.ReviewWorkflowCore import ReviewWorkflowCore
from ..segmentation.ChunkerCore import ChunkerCore
from ..segmentation.internal.SegmentationTypes import ChunkerSettings
from ..utils.BlobStore import BlobStore, InMemoryBlobStore
from ..utils.TypedCalls import ArityOneTypedCall


class CorpusServices(BaseModel):
    """The public cores of the corpus, built over one set of stores and capabilities."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    extractor: ConsensusExtractorCore
    chunker: ChunkerCore
    embeddings: EmbeddingGatewayCore
    knowledge: KnowledgeStoreCore
    reviews: ReviewWorkflowCore
    ingestion: IngestionCore
    blob_store: Optional[BlobStore] = None

    @classmethod
    def build(
        cls,
        page_extractor: PageExtractor,
        embedder: ArityOneTypedCall[EmbeddingRequest, EmbeddingResponse],
        verifier: Optional[PageExtractor] = None,
        extraction_settings: Optional[ExtractionSettings] = None,
        chunker_settings: Optional[ChunkerSettings] = None,
        embedding_settings: Optional[EmbeddingSettings] = None,
        knowledge_settings: Optional[KnowledgeStoreSettings] = None,
        knowledge_repository: Optional[KnowledgeRepository] = None,
        review_repository: Optional[ReviewRepository] = None,
        checkpoint_store: Optional[CheckpointStore] = None,
        blob_store: Optional[BlobStore] = None,
        model_names: Optional[Sequence[str]] = None,
    ) -> "CorpusServices":
        """
        Build every core. Stores that are not given are created in memory.

        Args:
            page_extractor: Capability for primary extraction passes
            embedder: Embedding capability
            verifier: Capability for verification passes (defaults to ``page_extractor``)
        """
        extractor = ConsensusExtractorCore(
            page_extractor,
            verifier=verifier,
            settings=extraction_settings,
            checkpoint_store=checkpoint_store if checkpoint_store is not None else InMemoryCheckpointStore(),
            model_names=model_names,
        )
        chunker = ChunkerCore(chunker_settings)
        embeddings = EmbeddingGatewayCore(embedder, embedding_settings)
        knowledge = KnowledgeStoreCore(
            knowledge_repository if knowledge_repository is not None else InMemoryKnowledgeRepository(),
            embeddings,
            knowledge_settings,
        )
        blobs = blob_store if blob_store is not None else InMemoryBlobStore()
        indexer = ChunkIndexer(chunker, embeddings, knowledge)
        reviews = ReviewWorkflowCore(
            review_repository if review_repository is not None else InMemoryReviewRepository(),
            indexer,
            knowledge,
            blob_store=blobs,
            page_marker_label=extractor.settings.page_marker_label,
        )
        ingestion = IngestionCore(extractor, indexer, knowledge, reviews, blob_store=blobs)
        return cls(
            extractor=extractor,
            chunker=chunker,
            embeddings=embeddings,
            knowledge=knowledge,
            reviews=reviews,
            ingestion=ingestion,
            blob_store=blobs,
        )

    @asynccontextmanager
    async def running(self) -> AsyncIterator["CorpusServices"]:
        """Keep the background usage tracking of the knowledge store running."""
        async with self.knowledge:
            yield self

