"""
Knowledge store: persisted chunks, filtered semantic search and weighted
multi-bucket prompt context.
"""

from .internal.ChunkIndexer import ChunkIndexer
from .internal.KnowledgeRepository import InMemoryKnowledgeRepository, KnowledgeRepository
from .internal.KnowledgeTypes import (
    ChunkFilters,
    ChunkQuery,
    ContextBucket,
    ContextSection,
    DocumentClassification,
    IndexingOutcome,
    KnowledgeChunk,
    KnowledgeStats,
    KnowledgeStoreSettings,
    PromptContext,
    PromptContextOptions,
    SearchRequest,
    SearchResponse,
    SearchResult,
    SourceType,
    VolumeType,
    chunk_id_for,
    chunk_prefix_for,
)
from .KnowledgeStoreCore import KnowledgeStoreCore

__all__ = [
    "KnowledgeStoreCore",
    "KnowledgeStoreSettings",
    "ChunkIndexer",
    "DocumentClassification",
    "IndexingOutcome",
    # Storage
    "KnowledgeRepository",
    "InMemoryKnowledgeRepository",
    "KnowledgeChunk",
    "ChunkQuery",
    "chunk_id_for",
    "chunk_prefix_for",
    # Classification
    "VolumeType",
    "SourceType",
    "ContextBucket",
    # Search and context
    "ChunkFilters",
    "SearchRequest",
    "SearchResponse",
    "SearchResult",
    "PromptContextOptions",
    "PromptContext",
    "ContextSection",
    "KnowledgeStats",
]
