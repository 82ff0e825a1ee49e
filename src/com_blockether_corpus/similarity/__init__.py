"""Vector similarity and ranking."""

from .SimilarityCore import ScoredCandidate, SimilarityCore

__all__ = [
    "SimilarityCore",
    "ScoredCandidate",
]
