"""
Core module for high-confidence page extraction.

Every page of a document is isolated into a standalone PDF and transcribed by
an external extraction capability. Small documents get a second, independently
phrased verification pass; the two passes are scored against each other by
character error rate and reconciled into one consensus text with a confidence
tier. Large documents are processed in checkpointed windows so that each
invocation fits in a bounded wall-clock budget and the next one resumes where
the last one stopped.

Pages are processed strictly one after another to respect the capability's
shared rate limit.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence

import anyio

from ..utils.RateLimiting import rate_limit_retry
from ..utils.Timing import async_timed_operation, elapsed_ms
from ..utils.TypedCalls import ArityOneTypedCall
from .internal.AgreementScoring import (
    agreement_score,
    classify_confidence,
    majority_consensus,
    merge_extractions,
)
from .internal.CheckpointStore import CheckpointStore
from .internal.ExtractionPrompts import (
    primary_prompt,
    reextraction_prompt,
    verification_prompt,
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
from .internal.PageIsolation import count_pages, isolate_page
from .internal.TextQuality import validate_text_quality

logger = logging.getLogger(__name__)

PageExtractor = ArityOneTypedCall[PageExtractionRequest, PageExtractionResponse]
ProgressCallback = Callable[[PageExtractionStatus], None]


class ConsensusExtractorCore:
    """Dual-pass, checkpointed page extraction with agreement-based confidence."""

    def __init__(
        self,
        extractor: PageExtractor,
        verifier: Optional[PageExtractor] = None,
        settings: Optional[ExtractionSettings] = None,
        checkpoint_store: Optional[CheckpointStore] = None,
        model_names: Optional[Sequence[str]] = None,
    ):
        """
        Initialize the extractor.

        Args:
            extractor: Capability used for primary passes and re-extraction
            verifier: Capability used for verification passes (defaults to ``extractor``)
            settings: Immutable extraction settings
            checkpoint_store: Where batch checkpoints live; required by ``resume_batch``
            model_names: Names reported in ``models_used``
        """
        self._extractor = extractor
        self._verifier = verifier or extractor
        self._settings = settings or ExtractionSettings()
        self._checkpoint_store = checkpoint_store
        self._model_names = list(model_names) if model_names else [type(extractor).__name__]

    @property
    def settings(self) -> ExtractionSettings:
        return self._settings

    @staticmethod
    def count_pages(document: bytes) -> int:
        return count_pages(document)

    def should_verify(self, total_pages: int) -> bool:
        """Dual-pass verification runs only for documents up to the large-document threshold."""
        return total_pages <= self._settings.large_document_threshold

    def requires_batches(self, total_pages: int) -> bool:
        """Whether a document is too large for a single invocation."""
        return total_pages > self._settings.large_document_threshold

    async def extract_page(
        self,
        document: bytes,
        page_number: int,
        total_pages: int,
        verify: bool = True,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Page:
        """
        Extract one page, never raising for extraction failures.

        Args:
            document: Full source PDF
            page_number: 1-indexed page to extract
            total_pages: Page count of the source document
            verify: Run the verification pass and score agreement
            on_progress: Optional progress callback

        Returns:
            The page record; a failed page carries a placeholder text, low
            confidence and the review flag

        Raises:
            ValueError: If ``page_number`` is outside ``1..total_pages``
        """
        if page_number < 1 or page_number > total_pages:
            raise ValueError(f"Page {page_number} out of range 1..{total_pages}")

        self._report(on_progress, page_number, PageStatus.EXTRACTING)
        logger.info(f"Processing page {page_number}/{total_pages}...")

        try:
            single_page = isolate_page(document, page_number)
            primary_text = await self._run_pass(
                self._extractor,
                single_page,
                page_number,
                total_pages,
                ExtractionPass.PRIMARY,
            )
            logger.info(f"Primary pass extracted {len(primary_text)} chars for page {page_number}")

            if verify:
                page = await self._verified_page(single_page, page_number, total_pages, primary_text, on_progress)
            else:
                page = self._single_pass_page(page_number, primary_text)
        except Exception as e:
            logger.exception(f"Failed to process page {page_number}: {e}")
            self._report(on_progress, page_number, PageStatus.ERROR, error=str(e))
            return self._failed_page(page_number, e)

        self._report(
            on_progress,
            page_number,
            PageStatus.NEEDS_REVIEW if page.needs_review else PageStatus.COMPLETED,
            confidence=page.confidence,
        )
        logger.info(
            f"Page {page_number}: confidence={page.confidence.value}, agreement={page.agreement_score * 100:.1f}%"
        )
        return page

    @async_timed_operation("Document extraction")
    async def extract_document(
        self,
        document: bytes,
        file_name: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> DocumentExtractionResult:
        """
        Extract every page of a document in one invocation.

        Verification is skipped, and every page flagged for review, when the
        document exceeds the large-document threshold.

        Raises:
            ValueError: If the document is empty or not a readable PDF
        """
        start_time = time.time()
        total_pages = count_pages(document)
        logger.info(f"Starting extraction for {file_name}: {total_pages} pages")

        verify = self.should_verify(total_pages)
        if not verify:
            logger.warning(
                f"Large document ({total_pages} pages) - skipping dual verification. "
                "All pages will be marked for manual review."
            )

        pages: List[Page] = []
        for page_number in range(1, total_pages + 1):
            pages.append(await self.extract_page(document, page_number, total_pages, verify, on_progress))
            if page_number < total_pages:
                await self._pause_between_pages(verify)

        result = self._build_result(file_name, total_pages, pages, elapsed_ms(start_time))
        logger.info(
            f"Extraction complete: {total_pages} pages, {len(result.pages_needing_review)} need review, "
            f"avg confidence: {result.average_confidence * 100:.1f}%"
        )
        return result

    @async_timed_operation("Batch extraction")
    async def extract_document_batch(
        self,
        document: bytes,
        file_name: str,
        document_id: str,
        progress: Optional[BatchProgress] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BatchExtractionResult:
        """
        Extract the next window of pages of a large document.

        The window is ``[last_processed_page + 1, min(last_processed_page + window, total_pages)]``
        and is always single-pass. The given progress is not mutated; the
        updated checkpoint is returned for the caller to persist.

        Args:
            document: Full source PDF
            file_name: Name of the uploaded file
            document_id: Document the checkpoint belongs to
            progress: Checkpoint of the previous invocation, None to start fresh
            on_progress: Optional progress callback

        Returns:
            The updated checkpoint plus whether more invocations are needed
        """
        start_time = time.time()
        total_pages = count_pages(document)

        if progress is None:
            progress = BatchProgress(document_id=document_id, file_name=file_name, total_pages=total_pages)
        else:
            if progress.document_id != document_id:
                raise ValueError(f"Checkpoint belongs to {progress.document_id}, not {document_id}")
            if progress.total_pages != total_pages:
                raise ValueError(
                    f"Checkpoint expects {progress.total_pages} pages but the document has {total_pages}"
                )
            progress = progress.model_copy(deep=True)

        start_page = progress.next_page
        end_page = min(progress.last_processed_page + self._settings.max_pages_per_batch, total_pages)

        if start_page > end_page:
            logger.info(f"Batch extraction for {document_id} already complete")
        else:
            logger.info(
                f"Processing pages {start_page}-{end_page} of {total_pages} (batch of {end_page - start_page + 1})"
            )

        for page_number in range(start_page, end_page + 1):
            page = await self.extract_page(document, page_number, total_pages, verify=False, on_progress=on_progress)
            progress.pages.append(page)
            if page.needs_review:
                progress.pages_needing_review.append(page_number)

            progress.processed_pages += 1
            progress.last_processed_page = page_number
            progress.updated_at = datetime.now(timezone.utc)

            if page_number < end_page:
                await self._pause_between_pages(verified=False)

        progress.is_complete = progress.last_processed_page >= total_pages
        pages_processed = max(end_page - start_page + 1, 0)

        logger.info(f"Batch complete: processed {pages_processed} pages in {elapsed_ms(start_time) / 1000:.1f}s")
        if progress.is_complete:
            logger.info(
                f"Full extraction complete: {total_pages} pages, {len(progress.pages_needing_review)} need review"
            )
        else:
            logger.info(f"More batches needed: {progress.remaining_pages} pages remaining")

        return BatchExtractionResult(
            progress=progress,
            needs_more_batches=not progress.is_complete,
            next_start_page=None if progress.is_complete else progress.next_page,
            pages_processed=pages_processed,
        )

    async def resume_batch(
        self,
        document: bytes,
        file_name: str,
        document_id: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BatchExtractionResult:
        """
        Load the document's checkpoint, extract the next window and persist the result.

        Raises:
            RuntimeError: If the extractor has no checkpoint store
        """
        if self._checkpoint_store is None:
            raise RuntimeError("resume_batch requires a checkpoint store")

        progress = await self._checkpoint_store.load(document_id)
        if progress is not None:
            logger.info(f"Resuming {document_id} from page {progress.next_page}/{progress.total_pages}")

        result = await self.extract_document_batch(document, file_name, document_id, progress, on_progress)
        await self._checkpoint_store.save(result.progress)
        return result

    async def discard_checkpoint(self, document_id: str) -> None:
        """Remove a document's checkpoint once its extraction has been consumed."""
        if self._checkpoint_store is not None:
            await self._checkpoint_store.delete(document_id)

    def progress_to_result(self, progress: BatchProgress) -> DocumentExtractionResult:
        """Assemble a full extraction result from a (usually complete) checkpoint."""
        extraction_time = int((progress.updated_at - progress.started_at).total_seconds() * 1000)
        return self._build_result(
            progress.file_name,
            progress.total_pages,
            list(progress.pages),
            extraction_time,
            pages_needing_review=list(progress.pages_needing_review),
        )

    def assemble_full_text(self, pages: Sequence[Page]) -> str:
        """Join page texts with page markers, preferring corrected text."""
        return assemble_full_text(pages, self._settings.page_marker_label)

    async def reextract_pages(
        self,
        document: bytes,
        page_numbers: Sequence[int],
    ) -> Dict[int, Page]:
        """
        Re-run flagged pages several times and keep the majority text.

        Each page is extracted ``reextraction_attempts`` times; the candidate
        with the highest total agreement with the others becomes the consensus.
        Pages whose re-extraction fails are left out of the result.

        Returns:
            Mapping of page number to its re-extracted record
        """
        total_pages = count_pages(document)
        results: Dict[int, Page] = {}

        for page_number in page_numbers:
            if page_number < 1 or page_number > total_pages:
                raise ValueError(f"Page {page_number} out of range 1..{total_pages}")

            logger.info(f"Re-extracting page {page_number}...")
            try:
                single_page = isolate_page(document, page_number)
                attempts: List[str] = []
                for run in range(self._settings.reextraction_attempts):
                    attempts.append(
                        await self._run_pass(
                            self._extractor,
                            single_page,
                            page_number,
                            total_pages,
                            ExtractionPass.REEXTRACTION,
                        )
                    )
                    if run < self._settings.reextraction_attempts - 1 and self._settings.reextraction_delay_ms > 0:
                        await anyio.sleep(self._settings.reextraction_delay_ms / 1000)
            except Exception as e:
                logger.error(f"Re-extraction failed for page {page_number}: {e}")
                continue

            consensus_text, average_agreement = majority_consensus(attempts)
            results[page_number] = Page(
                page_number=page_number,
                primary_text=attempts[0],
                verification_text=attempts[1],
                consensus_text=consensus_text,
                confidence=self._reextraction_confidence(average_agreement),
                agreement_score=average_agreement,
                needs_review=average_agreement < self._settings.reextraction_review_threshold,
                extraction_method=ExtractionMethod.MAJORITY_VOTE,
            )
            logger.info(f"Re-extracted page {page_number}: agreement={average_agreement * 100:.1f}%")

        return results

    def validate_text_quality(self, text: str) -> TextQualityReport:
        return validate_text_quality(text, self._settings.quality_script_range)

    async def _verified_page(
        self,
        single_page: bytes,
        page_number: int,
        total_pages: int,
        primary_text: str,
        on_progress: Optional[ProgressCallback],
    ) -> Page:
        self._report(on_progress, page_number, PageStatus.VERIFYING)
        try:
            verification_text = await self._run_pass(
                self._verifier,
                single_page,
                page_number,
                total_pages,
                ExtractionPass.VERIFICATION,
            )
        except Exception as e:
            # An unusable verification scores zero agreement and flags the page
            logger.warning(f"Verification pass failed for page {page_number}: {e}")
            verification_text = ""
        logger.info(f"Verification pass extracted {len(verification_text)} chars for page {page_number}")

        self._report(on_progress, page_number, PageStatus.CONSENSUS)
        score = agreement_score(primary_text, verification_text)
        confidence, needs_review = classify_confidence(
            score,
            self._settings.high_confidence_threshold,
            self._settings.medium_confidence_threshold,
        )

        if score >= self._settings.primary_agreement_shortcut:
            consensus_text = primary_text
        else:
            consensus_text = merge_extractions(primary_text, verification_text, self._settings.merge_length_difference)

        return Page(
            page_number=page_number,
            primary_text=primary_text,
            verification_text=verification_text,
            consensus_text=consensus_text,
            confidence=confidence,
            agreement_score=score,
            needs_review=needs_review,
            extraction_method=ExtractionMethod.DUAL_PASS,
        )

    def _single_pass_page(self, page_number: int, primary_text: str) -> Page:
        # Unverified text is never reported as high confidence
        return Page(
            page_number=page_number,
            primary_text=primary_text,
            verification_text=None,
            consensus_text=primary_text,
            confidence=Confidence.MEDIUM,
            agreement_score=self._settings.single_pass_agreement,
            needs_review=True,
            extraction_method=ExtractionMethod.SINGLE_PASS,
        )

    @staticmethod
    def _failed_page(page_number: int, error: Exception) -> Page:
        return Page(
            page_number=page_number,
            primary_text="",
            verification_text=None,
            consensus_text=f"[Extraction error on page {page_number}: {error}]",
            confidence=Confidence.LOW,
            agreement_score=0.0,
            needs_review=True,
            extraction_method=ExtractionMethod.FAILED,
        )

    async def _run_pass(
        self,
        capability: PageExtractor,
        single_page: bytes,
        page_number: int,
        total_pages: int,
        pass_kind: ExtractionPass,
    ) -> str:
        """Call the capability once, retrying only on rate limiting."""
        language = self._settings.document_language
        if pass_kind == ExtractionPass.VERIFICATION:
            prompt = verification_prompt(page_number, total_pages, language)
            temperature = self._settings.verification_temperature
        elif pass_kind == ExtractionPass.REEXTRACTION:
            prompt = reextraction_prompt(page_number, total_pages, language)
            temperature = self._settings.primary_temperature
        else:
            prompt = primary_prompt(page_number, total_pages, language)
            temperature = self._settings.primary_temperature

        request = PageExtractionRequest(
            document=single_page,
            page_number=page_number,
            total_pages=total_pages,
            prompt=prompt,
            temperature=temperature,
            pass_kind=pass_kind,
        )

        @rate_limit_retry(
            max_attempts=self._settings.max_retries,
            initial_delay_ms=self._settings.initial_delay_ms,
            max_delay_ms=self._settings.max_delay_ms,
        )
        async def attempt() -> str:
            response = await capability.call(request)
            return response.text

        return await attempt()  # type: ignore[no-any-return]

    def _reextraction_confidence(self, score: float) -> Confidence:
        if score >= self._settings.reextraction_high_threshold:
            return Confidence.HIGH
        if score >= self._settings.reextraction_medium_threshold:
            return Confidence.MEDIUM
        return Confidence.LOW

    async def _pause_between_pages(self, verified: bool) -> None:
        delay_ms = self._settings.delay_between_pages_ms
        if not verified:
            delay_ms = delay_ms / 2
        if delay_ms > 0:
            await anyio.sleep(delay_ms / 1000)

    def _build_result(
        self,
        file_name: str,
        total_pages: int,
        pages: List[Page],
        extraction_time_ms: int,
        pages_needing_review: Optional[List[int]] = None,
    ) -> DocumentExtractionResult:
        ordered = sorted(pages, key=lambda page: page.page_number)
        if pages_needing_review is None:
            pages_needing_review = [page.page_number for page in ordered if page.needs_review]
        average = sum(page.agreement_score for page in ordered) / len(ordered) if ordered else 0.0

        return DocumentExtractionResult(
            file_name=file_name,
            total_pages=total_pages,
            pages=ordered,
            full_text=self.assemble_full_text(ordered),
            average_confidence=average,
            pages_needing_review=pages_needing_review,
            extraction_time_ms=extraction_time_ms,
            models_used=list(self._model_names),
        )

    @staticmethod
    def _report(
        callback: Optional[ProgressCallback],
        page_number: int,
        status: PageStatus,
        confidence: Optional[Confidence] = None,
        error: Optional[str] = None,
    ) -> None:
        if callback is not None:
            callback(PageExtractionStatus(page_number=page_number, status=status, confidence=confidence, error=error))
