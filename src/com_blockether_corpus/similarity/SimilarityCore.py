"""
Core similarity math for the retrieval path.

Provides cosine similarity between embedding vectors and a linear-scan
top-k ranking over candidate vectors. All vectors compared against each
other must share one dimensionality; a mismatch is a programming error and
raises instead of producing a score.
"""

import logging
from typing import List, Sequence, Tuple, Union

import numpy as np
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

Vector = Union[Sequence[float], np.ndarray]


class ScoredCandidate(BaseModel):
    """A candidate id with its similarity to the query vector."""

    id: str = Field(description="Identifier of the ranked candidate")
    similarity: float = Field(description="Cosine similarity to the query, between -1 and 1")


class SimilarityCore:
    """
    Stateless similarity helpers.

    Ranking is a plain linear scan: every candidate is scored, filtered by the
    minimum similarity, sorted descending and truncated. There is no
    approximate index behind it.
    """

    @classmethod
    def cosine_similarity(
        cls,
        embedding1: Vector,
        embedding2: Vector,
    ) -> float:
        """
        Calculate cosine similarity between two embeddings.

        Args:
            embedding1: First embedding vector
            embedding2: Second embedding vector

        Returns:
            Cosine similarity score between -1 and 1, 0.0 when either vector is all zeros

        Raises:
            ValueError: If embeddings have different shapes
        """
        vector1 = np.asarray(embedding1, dtype=np.float64)
        vector2 = np.asarray(embedding2, dtype=np.float64)

        if vector1.shape != vector2.shape:
            raise ValueError(f"Embedding shapes must match: {vector1.shape} != {vector2.shape}")

        norm1 = np.linalg.norm(vector1)
        norm2 = np.linalg.norm(vector2)

        if norm1 == 0 or norm2 == 0:
            return 0.0

        similarity = np.dot(vector1, vector2) / (norm1 * norm2)
        return float(similarity)

    @classmethod
    def rank(
        cls,
        query: Vector,
        candidates: Sequence[Tuple[str, Vector]],
        limit: int = 5,
        min_similarity: float = 0.7,
    ) -> List[ScoredCandidate]:
        """
        Rank candidates by cosine similarity to the query.

        Candidates without a vector (empty embedding) are skipped. Ties keep the
        candidates' input order.

        Args:
            query: Query embedding
            candidates: (id, embedding) pairs to score
            limit: Maximum number of results
            min_similarity: Results below this similarity are discarded

        Returns:
            Scored candidates in non-increasing similarity order

        Raises:
            ValueError: If a candidate vector's dimensionality differs from the query's
        """
        if limit <= 0 or not candidates:
            return []

        query_vector = np.asarray(query, dtype=np.float64)
        if query_vector.ndim != 1 or query_vector.size == 0:
            raise ValueError(f"Query embedding must be a non-empty 1D vector, got shape {query_vector.shape}")

        ids: List[str] = []
        rows: List[np.ndarray] = []
        for candidate_id, embedding in candidates:
            vector = np.asarray(embedding, dtype=np.float64)
            if vector.size == 0:
                continue
            if vector.shape != query_vector.shape:
                raise ValueError(
                    f"Embedding shapes must match: {vector.shape} != {query_vector.shape} (candidate {candidate_id})"
                )
            ids.append(candidate_id)
            rows.append(vector)

        if not rows:
            return []

        matrix = np.vstack(rows)
        similarities = cls._cosine_scores(query_vector, matrix)

        # Stable sort on the negated scores keeps input order for ties
        order = np.argsort(-similarities, kind="stable")

        ranked: List[ScoredCandidate] = []
        for index in order:
            score = float(similarities[index])
            if score < min_similarity:
                break
            ranked.append(ScoredCandidate(id=ids[index], similarity=score))
            if len(ranked) >= limit:
                break

        logger.debug(f"Ranked {len(rows)} candidates, kept {len(ranked)} (limit={limit}, min={min_similarity})")
        return ranked

    @staticmethod
    def _cosine_scores(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
        """Cosine similarity of ``query`` against every row of ``matrix``; zero rows score 0."""
        query_norm = np.linalg.norm(query)
        row_norms = np.linalg.norm(matrix, axis=1)
        if query_norm == 0:
            return np.zeros(matrix.shape[0])

        denominators = row_norms * query_norm
        dots = matrix @ query
        scores = np.zeros(matrix.shape[0])
        nonzero = denominators > 0
        scores[nonzero] = dots[nonzero] / denominators[nonzero]
        return scores
