"""
Review persistence contract with an in-process implementation.
"""

from datetime import datetime
from typing import AbstractSet, Dict, List, Optional, Protocol, Tuple, runtime_checkable

from .ReviewTypes import ExtractionReview, IndexUnavailableError, ReviewStatus

DEFAULT_COMPOSITE_INDEXES = frozenset({("status", "created_at"), ("status", "updated_at")})


@runtime_checkable
class ReviewRepository(Protocol):
    async def get(self, review_id: str) -> Optional[ExtractionReview]: ...

    async def save(self, review: ExtractionReview) -> None: ...

    async def query(
        self,
        status: Optional[ReviewStatus] = None,
        order_by: Optional[str] = None,
        descending: bool = True,
        limit: Optional[int] = None,
        created_after: Optional[datetime] = None,
    ) -> List[ExtractionReview]:
        """
        Filtered, optionally ordered fetch.

        Raises:
            IndexUnavailableError: If a status filter is combined with an
                ordering the store has no composite index for
        """
        ...

    async def scan(self) -> List[ExtractionReview]: ...


class InMemoryReviewRepository:
    """
    Dict-backed review store that enforces composite indexes like a hosted
    document database would: a status filter plus an ordering only works when
    ``(status, order_by)`` is declared.
    """

    def __init__(self, composite_indexes: AbstractSet[Tuple[str, str]] = DEFAULT_COMPOSITE_INDEXES):
        self._reviews: Dict[str, ExtractionReview] = {}
        self._composite_indexes = frozenset(composite_indexes)

    async def get(self, review_id: str) -> Optional[ExtractionReview]:
        review = self._reviews.get(review_id)
        return review.model_copy(deep=True) if review is not None else None

    async def save(self, review: ExtractionReview) -> None:
        self._reviews[review.id] = review.model_copy(deep=True)

    async def query(
        self,
        status: Optional[ReviewStatus] = None,
        order_by: Optional[str] = None,
        descending: bool = True,
        limit: Optional[int] = None,
        created_after: Optional[datetime] = None,
    ) -> List[ExtractionReview]:
        if order_by is not None and order_by not in ExtractionReview.model_fields:
            raise ValueError(f"Unknown review field: {order_by}")
        if status is not None and order_by is not None and ("status", order_by) not in self._composite_indexes:
            raise IndexUnavailableError(f"The query requires a composite index on (status, {order_by})")

        reviews = [
            review
            for review in self._reviews.values()
            if (status is None or review.status == status)
            and (created_after is None or review.created_at > created_after)
        ]
        if order_by is not None:
            reviews.sort(key=lambda review: getattr(review, order_by), reverse=descending)
        if limit is not None:
            reviews = reviews[:limit]
        return [review.model_copy(deep=True) for review in reviews]

    async def scan(self) -> List[ExtractionReview]:
        return [review.model_copy(deep=True) for review in self._reviews.values()]
