"""Internal building blocks of the consensus extractor."""

from .AgreementScoring import (
    agreement_score,
    character_error_rate,
    classify_confidence,
    majority_consensus,
    merge_extractions,
)
from .PageIsolation import count_pages, isolate_page
from .TextQuality import validate_text_quality

__all__ = [
    "agreement_score",
    "character_error_rate",
    "classify_confidence",
    "majority_consensus",
    "merge_extractions",
    "count_pages",
    "isolate_page",
    "validate_text_quality",
]
