"""
Keyword-pattern tagging of chunk content.
"""

import re
from functools import lru_cache
from typing import Dict, List, Pattern, Sequence, Tuple

from .SegmentationTypes import ContentType


@lru_cache(maxsize=512)
def _compiled(pattern: str) -> Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


def detect_content_type(text: str, patterns: Dict[ContentType, Tuple[str, ...]]) -> ContentType:
    """First content type (in pattern order) with a matching pattern, explanation otherwise."""
    for content_type, type_patterns in patterns.items():
        for pattern in type_patterns:
            if _compiled(pattern).search(text):
                return content_type
    return ContentType.EXPLANATION


def extract_keywords(text: str, lexicon: Sequence[str]) -> List[str]:
    """Lexicon terms present in the text, in lexicon order, without duplicates."""
    found: List[str] = []
    for term in lexicon:
        if term in text and term not in found:
            found.append(term)
    return found
