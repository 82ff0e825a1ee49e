"""
Tests for character-error-rate agreement, confidence tiers and consensus selection.
"""

import pytest

from com_blockether_corpus.extraction import Confidence
from com_blockether_corpus.extraction.internal import (
    agreement_score,
    character_error_rate,
    classify_confidence,
    majority_consensus,
    merge_extractions,
)


class TestCharacterErrorRate:
    def test_identical_texts(self) -> None:
        assert character_error_rate("שלום עולם", "שלום עולם") == 0.0
        assert agreement_score("שלום עולם", "שלום עולם") == 1.0

    def test_whitespace_is_normalised(self) -> None:
        assert character_error_rate("line one\n\nline   two ", "line one line two") == 0.0

    def test_one_side_empty(self) -> None:
        assert character_error_rate("text", "") == 1.0
        assert character_error_rate("   ", "text") == 1.0

    def test_both_empty(self) -> None:
        assert character_error_rate("", "  ") == 0.0

    def test_disjoint_texts_of_equal_length(self) -> None:
        assert agreement_score("aaaa", "bbbb") == 0.0

    def test_normalised_by_longer_text(self) -> None:
        assert character_error_rate("abcd", "abcdefgh") == pytest.approx(0.5)

    def test_symmetric(self) -> None:
        assert agreement_score("kitten", "sitting") == agreement_score("sitting", "kitten")


class TestClassifyConfidence:
    @pytest.mark.parametrize(
        "score, expected, needs_review",
        [
            (1.0, Confidence.HIGH, False),
            (0.95, Confidence.HIGH, False),
            (0.9499, Confidence.MEDIUM, False),
            (0.85, Confidence.MEDIUM, False),
            (0.8499, Confidence.LOW, True),
            (0.0, Confidence.LOW, True),
        ],
    )
    def test_tiers_with_inclusive_lower_bounds(
        self, score: float, expected: Confidence, needs_review: bool
    ) -> None:
        assert classify_confidence(score, 0.95, 0.85) == (expected, needs_review)


class TestMergeExtractions:
    def test_similar_lengths_keep_primary(self) -> None:
        assert merge_extractions("primary text", "second text!", 0.3) == "primary text"

    def test_much_longer_verification_wins(self) -> None:
        assert merge_extractions("short", "a much longer transcription", 0.3) == "a much longer transcription"

    def test_much_longer_primary_wins(self) -> None:
        assert merge_extractions("a much longer transcription", "short", 0.3) == "a much longer transcription"

    def test_both_empty(self) -> None:
        assert merge_extractions("", "", 0.3) == ""


class TestMajorityConsensus:
    def test_picks_the_text_agreeing_with_most(self) -> None:
        consensus, average = majority_consensus(["hello world", "hxllo world", "hello world"])

        assert consensus == "hello world"
        assert average == pytest.approx((1.0 + (1 - 1 / 11) + 1.0) / 3)

    def test_earliest_candidate_wins_ties(self) -> None:
        consensus, _ = majority_consensus(["aaaa", "bbbb"])
        assert consensus == "aaaa"

    def test_single_candidate(self) -> None:
        assert majority_consensus(["only"]) == ("only", 1.0)

    def test_no_candidates(self) -> None:
        with pytest.raises(ValueError):
            majority_consensus([])
