"""
Types for consensus page extraction.

This module holds the extractor's immutable settings, the request/response
pair exchanged with the extraction capability, the per-page record, and the
checkpoint value type used to resume large documents across invocations.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


PAGE_SEPARATOR = "\n\n---\n\n"


class Confidence(str, Enum):
    """Confidence tier of a page's consensus text."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ExtractionMethod(str, Enum):
    """How a page's consensus text was obtained."""

    DUAL_PASS = "dual_pass"
    SINGLE_PASS = "single_pass"
    MAJORITY_VOTE = "majority_vote"
    FAILED = "failed"


class ExtractionPass(str, Enum):
    PRIMARY = "primary"
    VERIFICATION = "verification"
    REEXTRACTION = "reextraction"


class PageStatus(str, Enum):
    """Progress states reported to an extraction progress callback."""

    EXTRACTING = "extracting"
    VERIFYING = "verifying"
    CONSENSUS = "consensus"
    COMPLETED = "completed"
    NEEDS_REVIEW = "needs_review"
    ERROR = "error"


class ExtractionSettings(BaseModel):
    """Immutable extractor configuration; tests inject tight thresholds and zero delays."""

    model_config = ConfigDict(frozen=True)

    # Rate limiting
    max_retries: int = Field(default=5, ge=1, description="Attempts per external call on rate limiting")
    initial_delay_ms: int = Field(default=10000, ge=0, description="Backoff after the first rate-limit failure")
    max_delay_ms: int = Field(default=120000, ge=0, description="Ceiling of the exponential backoff")
    delay_between_pages_ms: int = Field(
        default=200,
        ge=0,
        description="Pause between pages; halved when verification is skipped",
    )

    # Execution modes
    large_document_threshold: int = Field(
        default=50,
        ge=1,
        description="Documents with more pages than this skip dual-pass verification",
    )
    max_pages_per_batch: int = Field(
        default=40,
        ge=1,
        description="Pages processed per checkpointed batch invocation",
    )

    # Consensus scoring
    high_confidence_threshold: float = Field(default=0.95, ge=0.0, le=1.0)
    medium_confidence_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    merge_length_difference: float = Field(
        default=0.30,
        ge=0.0,
        le=1.0,
        description="Relative length difference above which the longer pass wins the merge",
    )
    primary_agreement_shortcut: float = Field(
        default=0.90,
        ge=0.0,
        le=1.0,
        description="At or above this agreement the primary pass is used without merging",
    )
    single_pass_agreement: float = Field(
        default=0.85,
        ge=0.0,
        le=1.0,
        description="Nominal agreement recorded for pages extracted without verification",
    )
    primary_temperature: float = Field(default=0.0, ge=0.0, description="Temperature of the primary pass")
    verification_temperature: float = Field(default=0.1, ge=0.0, description="Temperature of the verification pass")

    # Targeted re-extraction
    reextraction_attempts: int = Field(default=3, ge=2, description="Independent runs per re-extracted page")
    reextraction_delay_ms: int = Field(default=500, ge=0, description="Pause between re-extraction runs")
    reextraction_high_threshold: float = Field(default=0.90, ge=0.0, le=1.0)
    reextraction_medium_threshold: float = Field(default=0.80, ge=0.0, le=1.0)
    reextraction_review_threshold: float = Field(default=0.85, ge=0.0, le=1.0)

    # Output
    page_marker_label: str = Field(default="page", description="Label used in the <!-- page N --> markers")
    document_language: str = Field(default="Hebrew", description="Language named in the extraction prompts")
    quality_script_range: str = Field(
        default="\u0590-\u05ff",
        description="Unicode range (regex class body) of the document's main script for quality checks",
    )

    @model_validator(mode="after")
    def _ordered_thresholds(self) -> "ExtractionSettings":
        if self.medium_confidence_threshold > self.high_confidence_threshold:
            raise ValueError("medium_confidence_threshold must not exceed high_confidence_threshold")
        if self.reextraction_medium_threshold > self.reextraction_high_threshold:
            raise ValueError("reextraction_medium_threshold must not exceed reextraction_high_threshold")
        return self


class PageExtractionRequest(BaseModel):
    """Request sent to the extraction capability for one isolated page."""

    document: bytes = Field(description="Standalone single-page PDF")
    page_number: int = Field(ge=1, description="Page number in the source document (1-indexed)")
    total_pages: int = Field(ge=1, description="Page count of the source document")
    prompt: str = Field(description="Extraction instructions")
    temperature: float = Field(default=0.0, description="Sampling temperature, 0 is most deterministic")
    pass_kind: ExtractionPass = Field(default=ExtractionPass.PRIMARY, description="Which pass issued the request")
    mime_type: str = Field(default="application/pdf")


class PageExtractionResponse(BaseModel):
    """Plain text transcribed from one page."""

    text: str = Field(default="", description="Full text of the page in reading order")


class PageExtractionStatus(BaseModel):
    """Progress event for one page."""

    page_number: int
    status: PageStatus
    confidence: Optional[Confidence] = None
    error: Optional[str] = None


class Page(BaseModel):
    """Extraction record of one page, optionally carrying a human correction."""

    page_number: int = Field(ge=1, description="Page number (1-indexed)")
    primary_text: str = Field(default="", description="Text of the primary pass")
    verification_text: Optional[str] = Field(
        default=None,
        description="Text of the verification pass, None when verification was skipped",
    )
    consensus_text: str = Field(default="", description="Reconciled text used downstream")
    confidence: Confidence = Field(description="Confidence tier")
    agreement_score: float = Field(ge=0.0, le=1.0, description="1 - character error rate between passes")
    needs_review: bool = Field(description="Whether a human must check this page")
    extraction_method: ExtractionMethod = Field(description="How the consensus text was obtained")
    corrected_text: Optional[str] = Field(default=None, description="Human-corrected text, supersedes consensus")
    corrected_by: Optional[str] = Field(default=None, description="Identity of the corrector")
    corrected_at: Optional[datetime] = Field(default=None, description="When the correction was recorded")

    @property
    def effective_text(self) -> str:
        """Corrected text when present, consensus text otherwise."""
        return self.corrected_text if self.corrected_text is not None else self.consensus_text

    @property
    def awaiting_review(self) -> bool:
        """Flagged for review and not yet corrected."""
        return self.needs_review and not self.corrected_text


class DocumentExtractionResult(BaseModel):
    """Extraction outcome of a whole document."""

    file_name: str
    total_pages: int
    pages: List[Page]
    full_text: str
    average_confidence: float = Field(description="Mean agreement score over all pages")
    pages_needing_review: List[int] = Field(default_factory=list)
    extraction_time_ms: int = 0
    models_used: List[str] = Field(default_factory=list)


def assemble_full_text(pages: Sequence[Page], page_marker_label: str = "page") -> str:
    """Join page texts in page order, each under a ``<!-- page N -->`` marker, preferring corrected text."""
    ordered = sorted(pages, key=lambda page: page.page_number)
    return PAGE_SEPARATOR.join(
        f"<!-- {page_marker_label} {page.page_number} -->\n{page.effective_text}" for page in ordered
    )


class BatchProgress(BaseModel):
    """
    Checkpoint of an in-flight large-document extraction.

    ``last_processed_page`` only ever grows and never exceeds ``total_pages``;
    the next invocation resumes at ``last_processed_page + 1``.
    """

    document_id: str
    file_name: str
    total_pages: int = Field(ge=1)
    processed_pages: int = Field(default=0, ge=0)
    last_processed_page: int = Field(default=0, ge=0)
    pages: List[Page] = Field(default_factory=list)
    pages_needing_review: List[int] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    is_complete: bool = False

    @model_validator(mode="after")
    def _within_document(self) -> "BatchProgress":
        if self.last_processed_page > self.total_pages:
            raise ValueError(
                f"last_processed_page {self.last_processed_page} exceeds total_pages {self.total_pages}"
            )
        return self

    @property
    def next_page(self) -> int:
        return self.last_processed_page + 1

    @property
    def remaining_pages(self) -> int:
        return self.total_pages - self.last_processed_page


class BatchExtractionResult(BaseModel):
    """Outcome of one checkpointed batch invocation."""

    progress: BatchProgress
    needs_more_batches: bool
    next_start_page: Optional[int] = Field(default=None, description="Page to resume from, None when complete")
    pages_processed: int = Field(default=0, description="Pages handled by this invocation")


class TextQualityReport(BaseModel):
    """Heuristic plausibility check of extracted text."""

    is_valid: bool
    script_ratio: float = Field(description="Share of non-whitespace characters in the document's main script")
    has_numbers: bool
    suspicious_patterns: List[str] = Field(default_factory=list)
