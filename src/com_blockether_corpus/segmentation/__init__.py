"""Chapter detection and token-bounded chunking of extracted document text."""

from .ChunkerCore import ChunkerCore
from .internal.SegmentationTypes import (
    Chapter,
    ChapterOverride,
    ChunkerSettings,
    ContentType,
    SegmentationResult,
    TextChunk,
)

__all__ = [
    "ChunkerCore",
    "ChunkerSettings",
    "Chapter",
    "ChapterOverride",
    "ContentType",
    "SegmentationResult",
    "TextChunk",
]
