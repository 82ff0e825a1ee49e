"""
Heuristic plausibility checks for extracted page text.
"""

import re

from .ExtractionTypes import TextQualityReport

_DIGIT = re.compile(r"\d")
_LONG_LATIN_WORD = re.compile(r"[a-zA-Z]{5,}")
_WHITESPACE = re.compile(r"\s")

# Doubled vav without a following space is a common misread of other letters
_DOUBLE_VAV = "וו"
_UNRECOGNIZED_RUNS = ("???", "□□□")

MIN_SCRIPT_RATIO = 0.3
MAX_SUSPICIOUS_PATTERNS = 2


def validate_text_quality(text: str, script_range: str = "\u0590-\u05ff") -> TextQualityReport:
    """
    Check whether extracted text looks like a plausible transcription.

    Args:
        text: Extracted page text
        script_range: Regex character-class body of the document's main script

    Returns:
        Report with the script ratio and the suspicious patterns found; the
        text is valid when the ratio exceeds 0.3 and fewer than two patterns hit
    """
    script_chars = len(re.findall(f"[{script_range}]", text))
    total_chars = len(_WHITESPACE.sub("", text))
    script_ratio = script_chars / total_chars if total_chars > 0 else 0.0

    suspicious = []
    if _DOUBLE_VAV in text and f"{_DOUBLE_VAV} " not in text:
        suspicious.append("possible_vav_confusion")
    if _LONG_LATIN_WORD.search(text):
        suspicious.append("unexpected_english_words")
    if any(run in text for run in _UNRECOGNIZED_RUNS):
        suspicious.append("unrecognized_characters")

    return TextQualityReport(
        is_valid=script_ratio > MIN_SCRIPT_RATIO and len(suspicious) < MAX_SUSPICIOUS_PATTERNS,
        script_ratio=script_ratio,
        has_numbers=bool(_DIGIT.search(text)),
        suspicious_patterns=suspicious,
    )
