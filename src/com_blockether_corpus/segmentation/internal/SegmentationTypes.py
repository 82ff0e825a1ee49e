"""
Types for text segmentation and chunking.
"""

from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class ContentType(str, Enum):
    """Pedagogical role of a chunk, detected from keyword patterns."""

    EXPLANATION = "explanation"
    EXAMPLE = "example"
    EXERCISE = "exercise"
    SOLUTION = "solution"
    TIP = "tip"
    COMMON_MISTAKE = "common_mistake"
    DEFINITION = "definition"
    RULE = "rule"
    SUMMARY = "summary"


DEFAULT_CHAPTER_PATTERNS: Tuple[str, ...] = (
    r"^פרק\s+[א-ת\d]+(?:[:\s]|$)",
    r"^יחידה\s+[א-ת\d]+(?:[:\s]|$)",
    r"^נושא\s+[א-ת\d]+(?:[:\s]|$)",
    r"^שיעור\s+[א-ת\d]+(?:[:\s]|$)",
    r"^(?:Chapter|Unit|Topic|Lesson)\s+\w+(?:[:.\s]|$)",
)

# Checked in this order; the first matching type wins
DEFAULT_CONTENT_TYPE_PATTERNS: Dict[ContentType, Tuple[str, ...]] = {
    ContentType.EXAMPLE: ("דוגמה", "דוגמא", "למשל", "לדוגמה", r"\bexample\b", r"\bfor instance\b"),
    ContentType.EXERCISE: ("תרגיל", "תרגול", "פתור", "חשב", "מצא", r"\bexercise\b", r"\bsolve\b", r"\bcalculate\b"),
    ContentType.SOLUTION: ("פתרון", "תשובה", "פיתרון", r"\bsolution\b", r"\banswer\b"),
    ContentType.TIP: ("טיפ", "רמז", "שים לב", "חשוב לזכור", r"\btip\b", r"\bhint\b", r"\bnote that\b"),
    ContentType.COMMON_MISTAKE: ("טעות נפוצה", "שגיאה נפוצה", "זהירות", "אל תשכח", r"\bcommon mistake\b"),
    ContentType.DEFINITION: ("הגדרה", "מהו", "מהי", "נקרא", r"\bdefinition\b", r"\bis called\b"),
    ContentType.RULE: ("כלל", "חוק", "נוסחה", "נוסחא", r"\brule\b", r"\bformula\b"),
    ContentType.SUMMARY: ("סיכום", "לסיכום", "בקיצור", r"\bsummary\b", r"\bin short\b"),
}

DEFAULT_KEYWORD_LEXICON: Tuple[str, ...] = (
    "חיבור",
    "חיסור",
    "כפל",
    "חילוק",
    "שבר",
    "עשרוני",
    "אחוז",
    "משוואה",
    "היקף",
    "שטח",
    "נפח",
    "זווית",
    "משולש",
    "מלבן",
    "ריבוע",
    "עיגול",
    "ישר",
    "מספר",
    "ספרה",
    "עשרות",
    "יחידות",
    "מאות",
    "אלפים",
    "גדול",
    "קטן",
    "שווה",
    "סדר",
    "מיון",
    "ממוצע",
    "חציון",
    "גרף",
    "טבלה",
    "ציר",
    "נקודה",
    "קו",
    "קטע",
    "מעגל",
    "רדיוס",
    "קוטר",
)


class ChunkerSettings(BaseModel):
    """Immutable chunking configuration."""

    model_config = ConfigDict(frozen=True)

    max_tokens: int = Field(default=500, gt=0, description="Token budget of a chunk before its overlap prefix")
    overlap_tokens: int = Field(default=50, ge=0, description="Upper bound of the overlap carried into the next chunk")
    min_chunk_length: int = Field(default=100, ge=0, description="Minimum characters for a chunk to be emitted")
    chapter_patterns: Tuple[str, ...] = Field(
        default=DEFAULT_CHAPTER_PATTERNS,
        description="Heading patterns (matched per line) that open a new chapter",
    )
    content_type_patterns: Dict[ContentType, Tuple[str, ...]] = Field(
        default_factory=lambda: dict(DEFAULT_CONTENT_TYPE_PATTERNS),
        description="Keyword patterns per content type, checked in insertion order",
    )
    keyword_lexicon: Tuple[str, ...] = Field(
        default=DEFAULT_KEYWORD_LEXICON,
        description="Domain terms extracted as chunk keywords",
    )
    default_chapter_name: str = Field(default="General content", description="Name used when no heading is found")
    max_chapter_name_length: int = Field(default=120, gt=0)


class ChapterOverride(BaseModel):
    """Per-chapter metadata supplied by the uploader."""

    unit_reference: Optional[str] = Field(default=None, description="Student-book unit a teacher guide chapter covers")
    content_type: Optional[ContentType] = Field(default=None, description="Forced content type for every chunk")


class Chapter(BaseModel):
    """A heading-delimited section of the document text."""

    name: str
    number: int = Field(ge=1)
    content: str
    start_page: Optional[int] = None
    end_page: Optional[int] = None

    @property
    def page_range(self) -> Optional[str]:
        if self.start_page is None:
            return None
        if self.end_page is None or self.end_page == self.start_page:
            return f"p. {self.start_page}"
        return f"pp. {self.start_page}-{self.end_page}"


class TextChunk(BaseModel):
    """A token-bounded slice of chapter text with its tags."""

    content: str
    chapter: str
    chapter_number: int
    page_range: Optional[str] = None
    unit_reference: Optional[str] = None
    content_type: ContentType = ContentType.EXPLANATION
    keywords: List[str] = Field(default_factory=list)


class SegmentationResult(BaseModel):
    """Chapters found in a text and the chunks cut from them, in document order."""

    chapters: List[Chapter] = Field(default_factory=list)
    chunks: List[TextChunk] = Field(default_factory=list)

    @property
    def chapter_names(self) -> List[str]:
        return [chapter.name for chapter in self.chapters]
