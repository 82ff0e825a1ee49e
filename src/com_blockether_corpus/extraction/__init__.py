"""
Consensus page extraction.

Dual-pass extraction with character-error-rate agreement scoring for small
documents, checkpointed single-pass windows for large ones, and majority-vote
re-extraction of flagged pages.
"""

from .ConsensusExtractorCore import ConsensusExtractorCore
from .internal.CheckpointStore import (
    CheckpointStore,
    FileCheckpointStore,
    InMemoryCheckpointStore,
)
from .internal.ExtractionTypes import (
    BatchExtractionResult,
    BatchProgress,
    Confidence,
    DocumentExtractionResult,
    ExtractionMethod,
    ExtractionPass,
    ExtractionSettings,
    Page,
    PageExtractionRequest,
    PageExtractionResponse,
    PageExtractionStatus,
    PageStatus,
    TextQualityReport,
    assemble_full_text,
)

__all__ = [
    "ConsensusExtractorCore",
    # Settings and capability contract
    "ExtractionSettings",
    "PageExtractionRequest",
    "PageExtractionResponse",
    "ExtractionPass",
    # Results
    "Page",
    "Confidence",
    "ExtractionMethod",
    "DocumentExtractionResult",
    "PageExtractionStatus",
    "PageStatus",
    "TextQualityReport",
    "assemble_full_text",
    # Checkpointing
    "BatchProgress",
    "BatchExtractionResult",
    "CheckpointStore",
    "InMemoryCheckpointStore",
    "FileCheckpointStore",
]
