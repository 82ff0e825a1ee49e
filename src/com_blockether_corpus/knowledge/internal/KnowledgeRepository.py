"""
Durable filtered store contract for knowledge chunks, with an in-process implementation.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Protocol, Sequence, runtime_checkable

from .KnowledgeTypes import ChunkQuery, KnowledgeChunk

logger = logging.getLogger(__name__)


@runtime_checkable
class KnowledgeRepository(Protocol):
    """
    Storage of chunks keyed by id.

    Supports equality filters on structural fields, array-membership filters,
    a range filter on ``created_at``, bounded fetches, batched writes and
    deletion of an id-prefix range.
    """

    async def write_batch(self, chunks: Sequence[KnowledgeChunk]) -> None: ...

    async def fetch(self, query: ChunkQuery) -> List[KnowledgeChunk]: ...

    async def delete_by_prefix(self, prefix: str) -> int: ...

    async def increment_usage(self, chunk_ids: Sequence[str], used_at: datetime) -> None: ...

    async def scan(self) -> List[KnowledgeChunk]: ...


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class InMemoryKnowledgeRepository:
    """Dict-backed repository. Values are copied in and out so callers never share state with it."""

    def __init__(self) -> None:
        self._chunks: Dict[str, KnowledgeChunk] = {}

    def __len__(self) -> int:
        return len(self._chunks)

    async def write_batch(self, chunks: Sequence[KnowledgeChunk]) -> None:
        for chunk in chunks:
            self._chunks[chunk.id] = chunk.model_copy(deep=True)

    async def fetch(self, query: ChunkQuery) -> List[KnowledgeChunk]:
        fields = KnowledgeChunk.model_fields
        for field in list(query.equals) + list(query.array_contains):
            if field not in fields:
                raise ValueError(f"Unknown chunk field: {field}")

        matches: List[KnowledgeChunk] = []
        for chunk in self._chunks.values():
            if query.limit is not None and len(matches) >= query.limit:
                break
            if not self._matches(chunk, query):
                continue
            matches.append(chunk.model_copy(deep=True))
        return matches

    async def delete_by_prefix(self, prefix: str) -> int:
        if not prefix:
            raise ValueError("Prefix cannot be empty")
        doomed = [chunk_id for chunk_id in self._chunks if chunk_id.startswith(prefix)]
        for chunk_id in doomed:
            del self._chunks[chunk_id]
        return len(doomed)

    async def increment_usage(self, chunk_ids: Sequence[str], used_at: datetime) -> None:
        for chunk_id in chunk_ids:
            chunk = self._chunks.get(chunk_id)
            if chunk is None:
                logger.debug(f"Usage update for missing chunk {chunk_id}")
                continue
            self._chunks[chunk_id] = chunk.model_copy(
                update={"usage_count": chunk.usage_count + 1, "last_used_at": used_at}
            )

    async def scan(self) -> List[KnowledgeChunk]:
        return [chunk.model_copy(deep=True) for chunk in self._chunks.values()]

    @staticmethod
    def _matches(chunk: KnowledgeChunk, query: ChunkQuery) -> bool:
        for field, expected in query.equals.items():
            if _plain(getattr(chunk, field)) != _plain(expected):
                return False
        for field, member in query.array_contains.items():
            values = [_plain(value) for value in getattr(chunk, field) or []]
            if _plain(member) not in values:
                return False
        if query.created_after is not None and chunk.created_at <= query.created_after:
            return False
        return True
