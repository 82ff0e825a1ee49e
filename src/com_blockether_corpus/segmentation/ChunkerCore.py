"""
Core module for text segmentation and chunking.

Extracted document text is split into chapters at heading lines, and each
chapter into token-bounded chunks built from whole paragraphs. Every chunk
after the first in a chapter starts with a short overlap (the last sentence or
two of the previous chunk) so retrieval keeps local context. Chunks are tagged
with a content type and domain keywords.

Page markers (``<!-- page N -->``) and page separators written by the extractor
are removed from the content and used to derive each chapter's page range.
"""

import logging
import re
from typing import Dict, List, Mapping, Optional

from ..utils.Timing import timed_operation
from .internal.ContentTagging import detect_content_type, extract_keywords
from .internal.SegmentationTypes import (
    Chapter,
    ChapterOverride,
    ChunkerSettings,
    ContentType,
    SegmentationResult,
    TextChunk,
)
from .internal.TokenEstimation import NARROW_SCRIPT_CHARS_PER_TOKEN, estimate_tokens

logger = logging.getLogger(__name__)

PAGE_MARKER = re.compile(r"^<!--\s*[^\s>]+\s+(\d+)\s*-->$")
PAGE_SEPARATOR_LINE = "---"
PARAGRAPH_BREAK = re.compile(r"\n\s*\n+")
SENTENCE_END = re.compile(r"[.!?。]")
SENTENCE = re.compile(r"[^.!?。]+[.!?。]*")


class ChunkerCore:
    """Heading-based chapter detection and paragraph-accumulating, overlap-seeded chunking."""

    def __init__(self, settings: Optional[ChunkerSettings] = None):
        self._settings = settings or ChunkerSettings()
        self._chapter_patterns = [re.compile(pattern) for pattern in self._settings.chapter_patterns]

    @property
    def settings(self) -> ChunkerSettings:
        return self._settings

    @staticmethod
    def estimate_tokens(text: str) -> int:
        return estimate_tokens(text)

    def is_chapter_heading(self, line: str) -> bool:
        return any(pattern.match(line) for pattern in self._chapter_patterns)

    def detect_chapters(self, text: str) -> List[Chapter]:
        """
        Split text into chapters at heading lines.

        Text before the first heading, or the whole text when no heading
        matches, becomes a chapter with the default name. Empty chapters are
        dropped.

        Args:
            text: Document text, optionally with page markers

        Returns:
            Chapters in document order, numbered from 1
        """
        sections: List[Dict] = []
        current: Dict = self._new_section(self._settings.default_chapter_name)
        current_page: Optional[int] = None

        for line in text.splitlines():
            stripped = line.strip()

            marker = PAGE_MARKER.match(stripped)
            if marker:
                current_page = int(marker.group(1))
                continue
            if stripped == PAGE_SEPARATOR_LINE:
                continue

            if stripped and self.is_chapter_heading(stripped):
                sections.append(current)
                current = self._new_section(stripped[: self._settings.max_chapter_name_length])

            current["lines"].append(line)
            if stripped and current_page is not None:
                if current["start_page"] is None:
                    current["start_page"] = current_page
                current["end_page"] = current_page

        sections.append(current)

        chapters: List[Chapter] = []
        for section in sections:
            content = "\n".join(section["lines"]).strip()
            if not content:
                continue
            chapters.append(
                Chapter(
                    name=section["name"],
                    number=len(chapters) + 1,
                    content=content,
                    start_page=section["start_page"],
                    end_page=section["end_page"],
                )
            )
        return chapters

    def chunk_text(self, text: str) -> List[str]:
        """
        Cut text into chunks of whole paragraphs within the token budget.

        A chunk is emitted when adding the next paragraph would exceed
        ``max_tokens`` and the chunk already has ``min_chunk_length``
        characters. Paragraphs larger than the budget are split at sentence
        boundaries first. A trailing chunk shorter than the minimum is dropped.

        Args:
            text: Chapter text

        Returns:
            Chunk texts in order
        """
        if not text or len(text.strip()) < self._settings.min_chunk_length:
            return []

        max_tokens = self._settings.max_tokens
        min_length = self._settings.min_chunk_length

        chunks: List[str] = []
        current = ""

        for paragraph in self._paragraphs(text):
            candidate = f"{current}\n\n{paragraph}" if current else paragraph
            if current and estimate_tokens(candidate) > max_tokens and len(current) >= min_length:
                chunks.append(current.strip())
                overlap = self._overlap(current)
                current = f"{overlap}\n\n{paragraph}" if overlap else paragraph
            else:
                current = candidate

        if len(current) >= min_length:
            chunks.append(current.strip())

        return chunks

    def detect_content_type(self, text: str) -> ContentType:
        return detect_content_type(text, self._settings.content_type_patterns)

    def extract_keywords(self, text: str) -> List[str]:
        return extract_keywords(text, self._settings.keyword_lexicon)

    @timed_operation("Segmentation")
    def segment(
        self,
        text: str,
        chapter_overrides: Optional[Mapping[str, ChapterOverride]] = None,
    ) -> SegmentationResult:
        """
        Detect chapters and chunk each of them.

        Args:
            text: Full document text
            chapter_overrides: Metadata forced onto the chunks of named chapters

        Returns:
            Chapters and tagged chunks in document order
        """
        overrides = chapter_overrides or {}
        chapters = self.detect_chapters(text)
        chunks: List[TextChunk] = []

        for chapter in chapters:
            override = overrides.get(chapter.name)
            for piece in self.chunk_text(chapter.content):
                content_type = override.content_type if override and override.content_type else None
                chunks.append(
                    TextChunk(
                        content=piece,
                        chapter=chapter.name,
                        chapter_number=chapter.number,
                        page_range=chapter.page_range,
                        unit_reference=override.unit_reference if override else None,
                        content_type=content_type or self.detect_content_type(piece),
                        keywords=self.extract_keywords(piece),
                    )
                )

        logger.info(f"Segmented text: {len(chapters)} chapters, {len(chunks)} chunks")
        return SegmentationResult(chapters=chapters, chunks=chunks)

    @staticmethod
    def _new_section(name: str) -> Dict:
        return {"name": name, "lines": [], "start_page": None, "end_page": None}

    def _paragraphs(self, text: str) -> List[str]:
        paragraphs: List[str] = []
        for paragraph in PARAGRAPH_BREAK.split(text.strip()):
            paragraph = paragraph.strip()
            if paragraph:
                paragraphs.extend(self._split_oversized(paragraph))
        return paragraphs

    def _split_oversized(self, paragraph: str) -> List[str]:
        """Break a paragraph over the token budget into sentence groups that fit."""
        max_tokens = self._settings.max_tokens
        if estimate_tokens(paragraph) <= max_tokens:
            return [paragraph]

        window = max_tokens * NARROW_SCRIPT_CHARS_PER_TOKEN
        pieces: List[str] = []
        current = ""
        for sentence in SENTENCE.findall(paragraph):
            sentence = sentence.strip()
            if not sentence:
                continue

            if estimate_tokens(sentence) > max_tokens:
                if current:
                    pieces.append(current)
                    current = ""
                pieces.extend(sentence[i : i + window].strip() for i in range(0, len(sentence), window))
                continue

            candidate = f"{current} {sentence}" if current else sentence
            if current and estimate_tokens(candidate) > max_tokens:
                pieces.append(current)
                current = sentence
            else:
                current = candidate

        if current:
            pieces.append(current)
        return [piece for piece in pieces if piece]

    def _overlap(self, chunk: str) -> str:
        """Last sentence or two of a chunk, capped at ``overlap_tokens``."""
        budget = self._settings.overlap_tokens
        if budget == 0:
            return ""

        sentences = SENTENCE_END.split(chunk)
        overlap = ". ".join(sentences[-2:]) if len(sentences) > 2 else sentences[-1]
        overlap = overlap.strip()

        if estimate_tokens(overlap) > budget:
            overlap = overlap[-budget * NARROW_SCRIPT_CHARS_PER_TOKEN :].strip()
        return overlap
