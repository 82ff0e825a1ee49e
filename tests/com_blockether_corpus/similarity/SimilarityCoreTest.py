"""
Tests for cosine similarity and linear-scan ranking.
"""

import math

import numpy as np
import pytest

from com_blockether_corpus.similarity import SimilarityCore


class TestCosineSimilarity:
    def test_identical_vectors(self) -> None:
        assert SimilarityCore.cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self) -> None:
        assert SimilarityCore.cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_opposite_vectors(self) -> None:
        assert SimilarityCore.cosine_similarity([1.0, 1.0], [-1.0, -1.0]) == pytest.approx(-1.0)

    def test_zero_vector_scores_zero(self) -> None:
        assert SimilarityCore.cosine_similarity([0.0, 0.0], [1.0, 2.0]) == 0.0

    def test_accepts_numpy_arrays(self) -> None:
        score = SimilarityCore.cosine_similarity(np.array([3.0, 4.0]), np.array([4.0, 3.0]))
        assert score == pytest.approx(24.0 / 25.0)

    def test_shape_mismatch_raises(self) -> None:
        with pytest.raises(ValueError, match="shapes must match"):
            SimilarityCore.cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])


class TestRank:
    QUERY = [1.0, 0.0]

    @staticmethod
    def _at_angle(degrees: float) -> list:
        radians = math.radians(degrees)
        return [math.cos(radians), math.sin(radians)]

    def test_results_in_non_increasing_order(self) -> None:
        candidates = [
            ("far", self._at_angle(40)),
            ("near", self._at_angle(5)),
            ("mid", self._at_angle(20)),
        ]

        ranked = SimilarityCore.rank(self.QUERY, candidates, limit=10, min_similarity=0.0)

        assert [candidate.id for candidate in ranked] == ["near", "mid", "far"]
        similarities = [candidate.similarity for candidate in ranked]
        assert similarities == sorted(similarities, reverse=True)

    def test_truncates_to_limit(self) -> None:
        candidates = [(f"c{i}", self._at_angle(i)) for i in range(10)]

        ranked = SimilarityCore.rank(self.QUERY, candidates, limit=3, min_similarity=0.0)

        assert [candidate.id for candidate in ranked] == ["c0", "c1", "c2"]

    def test_discards_candidates_below_minimum(self) -> None:
        candidates = [
            ("close", self._at_angle(10)),
            ("wide", self._at_angle(60)),
        ]

        ranked = SimilarityCore.rank(self.QUERY, candidates, limit=5, min_similarity=0.7)

        assert [candidate.id for candidate in ranked] == ["close"]
        assert all(candidate.similarity >= 0.7 for candidate in ranked)

    def test_minimum_is_inclusive(self) -> None:
        ranked = SimilarityCore.rank(self.QUERY, [("exact", [1.0, 0.0])], limit=5, min_similarity=1.0)
        assert [candidate.id for candidate in ranked] == ["exact"]

    def test_ties_keep_input_order(self) -> None:
        candidates = [("first", [2.0, 0.0]), ("second", [1.0, 0.0]), ("third", [5.0, 0.0])]

        ranked = SimilarityCore.rank(self.QUERY, candidates, limit=3, min_similarity=0.0)

        assert [candidate.id for candidate in ranked] == ["first", "second", "third"]

    def test_skips_candidates_without_embedding(self) -> None:
        ranked = SimilarityCore.rank(self.QUERY, [("empty", []), ("ok", [1.0, 0.0])], limit=5, min_similarity=0.0)
        assert [candidate.id for candidate in ranked] == ["ok"]

    def test_dimension_mismatch_is_an_error(self) -> None:
        with pytest.raises(ValueError, match="candidate bad"):
            SimilarityCore.rank(self.QUERY, [("bad", [1.0, 0.0, 0.0])], limit=5, min_similarity=0.0)

    def test_empty_query_is_an_error(self) -> None:
        with pytest.raises(ValueError):
            SimilarityCore.rank([], [("a", [1.0])], limit=5, min_similarity=0.0)

    def test_no_candidates_or_zero_limit(self) -> None:
        assert SimilarityCore.rank(self.QUERY, [], limit=5) == []
        assert SimilarityCore.rank(self.QUERY, [("a", [1.0, 0.0])], limit=0) == []
