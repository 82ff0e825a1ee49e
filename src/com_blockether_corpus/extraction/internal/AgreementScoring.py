"""
Agreement scoring between independent extractions of the same page.

Agreement is ``1 - CER`` where the character error rate is the Levenshtein
distance between the whitespace-normalised texts divided by the longer
length. The functions here are pure: identical inputs always produce the same
score, tier and consensus text.
"""

import re
from typing import List, Sequence, Tuple

from rapidfuzz.distance import Levenshtein

from .ExtractionTypes import Confidence

_WHITESPACE = re.compile(r"\s+")


def normalize_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def character_error_rate(text1: str, text2: str) -> float:
    """
    Character error rate between two extractions.

    Returns:
        0.0 for identical texts, 1.0 when exactly one side is empty, otherwise
        the Levenshtein distance normalised by the longer text's length
    """
    s1 = normalize_whitespace(text1)
    s2 = normalize_whitespace(text2)

    if s1 == s2:
        return 0.0
    if not s1 or not s2:
        return 1.0

    distance = Levenshtein.distance(s1, s2)
    return distance / max(len(s1), len(s2))


def agreement_score(text1: str, text2: str) -> float:
    return 1.0 - character_error_rate(text1, text2)


def classify_confidence(score: float, high_threshold: float, medium_threshold: float) -> Tuple[Confidence, bool]:
    """
    Map an agreement score to a confidence tier and a needs-review flag.

    Lower bounds are inclusive: ``score == high_threshold`` is high.
    """
    if score >= high_threshold:
        return Confidence.HIGH, False
    if score >= medium_threshold:
        return Confidence.MEDIUM, False
    return Confidence.LOW, True


def merge_extractions(primary: str, secondary: str, length_difference: float) -> str:
    """
    Reconcile two passes into one text.

    When the lengths differ by more than ``length_difference`` of the longer
    text, the longer one is kept since it most likely captured more content;
    otherwise the primary pass wins.
    """
    longest = max(len(primary), len(secondary))
    if longest == 0:
        return primary

    if abs(len(primary) - len(secondary)) / longest > length_difference:
        return primary if len(primary) > len(secondary) else secondary
    return primary


def majority_consensus(candidates: Sequence[str]) -> Tuple[str, float]:
    """
    Pick the candidate that agrees most with all the others.

    Args:
        candidates: Independent extractions of one page

    Returns:
        (consensus text, average agreement of every candidate with it); the
        earliest candidate wins ties

    Raises:
        ValueError: If no candidates are given
    """
    if not candidates:
        raise ValueError("At least one candidate is required")
    if len(candidates) == 1:
        return candidates[0], 1.0

    totals: List[float] = [0.0] * len(candidates)
    for i in range(len(candidates)):
        for j in range(i + 1, len(candidates)):
            score = agreement_score(candidates[i], candidates[j])
            totals[i] += score
            totals[j] += score

    best_index = max(range(len(candidates)), key=lambda index: (totals[index], -index))
    consensus = candidates[best_index]

    average = sum(agreement_score(consensus, candidate) for candidate in candidates) / len(candidates)
    return consensus, average
