"""
Core module for knowledge persistence and semantic retrieval.

Search embeds the query, fetches candidates matching the structural filters
(bounded by a fetch cap), ranks them by cosine similarity and records usage of
the returned chunks without making the caller wait for it.

Prompt context assembly runs one search per retrieval bucket concurrently and
concatenates the results in a fixed priority order: curriculum first, then the
student book, then the teacher guide. The curriculum bucket unions an exact
grade match with grade-array membership, since curriculum chunks may apply to
several grades.
"""

import logging
import math
import time
from collections import Counter
from contextlib import AsyncExitStack
from typing import Dict, List, Optional, Sequence, Tuple

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from ..embedding.EmbeddingGatewayCore import EmbeddingGatewayCore
from ..similarity.SimilarityCore import SimilarityCore
from ..utils.Timing import async_timed_operation, elapsed_ms
from .internal.KnowledgeRepository import KnowledgeRepository
from .internal.KnowledgeTypes import (
    ChunkQuery,
    ContextBucket,
    ContextSection,
    KnowledgeChunk,
    KnowledgeStats,
    KnowledgeStoreSettings,
    PromptContext,
    PromptContextOptions,
    SearchRequest,
    SearchResponse,
    SearchResult,
    VolumeType,
    chunk_prefix_for,
    utc_now,
)

logger = logging.getLogger(__name__)

UsageBatch = Tuple[str, ...]


class KnowledgeStoreCore:
    """
    Filtered semantic search and multi-bucket context assembly over a knowledge repository.

    Used as an async context manager, the store runs a background worker that
    applies usage updates. Usage of searches made outside that lifespan is not
    recorded.
    """

    def __init__(
        self,
        repository: KnowledgeRepository,
        embeddings: EmbeddingGatewayCore,
        settings: Optional[KnowledgeStoreSettings] = None,
    ):
        self._repository = repository
        self._embeddings = embeddings
        self._settings = settings or KnowledgeStoreSettings()
        self._exit_stack: Optional[AsyncExitStack] = None
        self._usage_stream: Optional[MemoryObjectSendStream[UsageBatch]] = None

    @property
    def settings(self) -> KnowledgeStoreSettings:
        return self._settings

    @property
    def repository(self) -> KnowledgeRepository:
        return self._repository

    async def __aenter__(self) -> "KnowledgeStoreCore":
        stack = AsyncExitStack()
        await stack.__aenter__()
        try:
            task_group = await stack.enter_async_context(anyio.create_task_group())
            send_stream, receive_stream = anyio.create_memory_object_stream(
                max_buffer_size=self._settings.usage_queue_size
            )
            task_group.start_soon(self._usage_worker, receive_stream)
        except BaseException:
            await stack.aclose()
            raise
        self._exit_stack = stack
        self._usage_stream = send_stream
        return self

    async def __aexit__(self, exc_type, exc, tb) -> Optional[bool]:
        stream, self._usage_stream = self._usage_stream, None
        stack, self._exit_stack = self._exit_stack, None
        if stream is not None:
            # Closing the sender lets the worker drain what is queued and stop
            await stream.aclose()
        if stack is None:
            return None
        return await stack.__aexit__(exc_type, exc, tb)

    async def search(self, request: SearchRequest) -> SearchResponse:
        """
        Rank chunks matching the request's filters by similarity to its query.

        Args:
            request: Query text, structural filters, limit and minimum similarity

        Returns:
            Results in non-increasing similarity order and the processing time

        Raises:
            ValueError: If the query is empty
            EmbeddingError: If the query could not be embedded
        """
        start_time = time.time()
        if not request.query.strip():
            raise ValueError("Search query cannot be empty")

        query_vector = await self._embeddings.embed_one(request.query)
        limit = request.limit or self._settings.default_limit
        min_similarity = self._min_similarity(request.min_similarity)

        results = await self._search_bucket(
            query_vector,
            [ChunkQuery(equals=request.filters.as_equalities())],
            limit,
            min_similarity,
        )
        await self._track_usage(results)

        processing_time_ms = elapsed_ms(start_time)
        logger.info(f"Search returned {len(results)} results in {processing_time_ms}ms")
        return SearchResponse(results=results, query=request.query, processing_time_ms=processing_time_ms)

    @async_timed_operation("Prompt context assembly")
    async def build_prompt_context(
        self,
        topic: str,
        grade: str,
        options: Optional[PromptContextOptions] = None,
    ) -> PromptContext:
        """
        Assemble weighted context for a topic from the three retrieval buckets.

        Each bucket gets ``ceil(max_chunks * weight)`` results. A failing bucket
        does not blank out the others; it is reported in ``failed_buckets``.

        Args:
            topic: Topic text to retrieve context for
            grade: Grade the context is for
            options: Bucket weights, subject filter and section titles

        Returns:
            The context text and the sections it was built from

        Raises:
            ValueError: If the topic is empty
            EmbeddingError: If the topic could not be embedded
        """
        options = options or PromptContextOptions()
        if not topic.strip():
            raise ValueError("Topic cannot be empty")

        query_vector = await self._embeddings.embed_one(topic)
        min_similarity = self._min_similarity(options.min_similarity)
        base_filters = {"subject": options.subject} if options.subject else {}

        plans: List[Tuple[ContextBucket, str, float, List[ChunkQuery]]] = [
            (
                ContextBucket.CURRICULUM,
                options.curriculum_title,
                options.curriculum_weight,
                [
                    ChunkQuery(equals={**base_filters, "volume_type": VolumeType.CURRICULUM, "grade": grade}),
                    ChunkQuery(
                        equals={**base_filters, "volume_type": VolumeType.CURRICULUM},
                        array_contains={"grades": grade},
                    ),
                ],
            ),
            (
                ContextBucket.PRIMARY,
                options.primary_title,
                options.primary_weight,
                [ChunkQuery(equals={**base_filters, "volume_type": VolumeType.STUDENT, "grade": grade})],
            ),
            (
                ContextBucket.SUPPLEMENTARY,
                options.supplementary_title,
                options.supplementary_weight,
                [ChunkQuery(equals={**base_filters, "volume_type": VolumeType.TEACHER, "grade": grade})],
            ),
        ]

        outcomes: Dict[ContextBucket, List[SearchResult]] = {}
        failures: Dict[ContextBucket, str] = {}

        async def run_bucket(bucket: ContextBucket, queries: List[ChunkQuery], limit: int) -> None:
            try:
                outcomes[bucket] = await self._search_bucket(query_vector, queries, limit, min_similarity)
            except Exception as e:
                logger.warning(f"Context bucket {bucket.value} failed: {e}")
                failures[bucket] = str(e)

        async with anyio.create_task_group() as task_group:
            for bucket, _, weight, queries in plans:
                limit = math.ceil(options.max_chunks * weight)
                if limit > 0:
                    task_group.start_soon(run_bucket, bucket, queries, limit)

        sections: List[ContextSection] = []
        parts: List[str] = []
        for bucket, title, _, _ in plans:
            results = outcomes.get(bucket, [])
            if not results:
                continue
            sections.append(ContextSection(bucket=bucket, title=title, results=results))
            parts.append(f"### {title}:\n")
            for result in results:
                parts.append(f"[{result.chunk.chapter}]\n{result.chunk.content}\n\n")

        await self._track_usage([result for section in sections for result in section.results])

        logger.info(
            f"Built prompt context for grade {grade}: "
            + ", ".join(f"{section.bucket.value}={len(section.results)}" for section in sections)
        )
        return PromptContext(text="".join(parts).strip(), sections=sections, failed_buckets=failures)

    @async_timed_operation("Chunk persistence")
    async def write_chunks(self, chunks: Sequence[KnowledgeChunk]) -> int:
        """
        Persist chunks in batches of ``write_batch_size``.

        Raises:
            ValueError: If a chunk has no embedding or one of the wrong dimensionality
        """
        dimensions = self._embeddings.settings.dimensions
        for chunk in chunks:
            if len(chunk.embedding) != dimensions:
                raise ValueError(
                    f"Chunk {chunk.id} has {len(chunk.embedding)}-dimensional embedding, expected {dimensions}"
                )

        batch_size = self._settings.write_batch_size
        for offset in range(0, len(chunks), batch_size):
            batch = list(chunks[offset : offset + batch_size])
            await self._repository.write_batch(batch)
            logger.info(f"Saved chunks {offset + 1}-{offset + len(batch)} of {len(chunks)}")
        return len(chunks)

    async def delete_document(self, document_id: str) -> int:
        """Delete every chunk of a document; returns the number deleted."""
        if not document_id:
            raise ValueError("Document id cannot be empty")
        deleted = await self._repository.delete_by_prefix(chunk_prefix_for(document_id))
        logger.info(f"Deleted {deleted} chunks of document {document_id}")
        return deleted

    async def get_stats(self) -> KnowledgeStats:
        chunks = await self._repository.scan()
        return KnowledgeStats(
            total_chunks=len(chunks),
            by_grade=dict(Counter(chunk.grade for chunk in chunks)),
            by_subject=dict(Counter(chunk.subject for chunk in chunks)),
            by_volume_type=dict(Counter(chunk.volume_type.value for chunk in chunks)),
        )

    def _min_similarity(self, requested: Optional[float]) -> float:
        return self._settings.default_min_similarity if requested is None else requested

    async def _search_bucket(
        self,
        query_vector: List[float],
        queries: Sequence[ChunkQuery],
        limit: int,
        min_similarity: float,
    ) -> List[SearchResult]:
        """Fetch the union of the queries' candidates (deduplicated by id) and rank them."""
        candidates: Dict[str, KnowledgeChunk] = {}
        for query in queries:
            capped = query.model_copy(update={"limit": self._settings.fetch_cap})
            for chunk in await self._repository.fetch(capped):
                candidates.setdefault(chunk.id, chunk)

        ranked = SimilarityCore.rank(
            query_vector,
            [(chunk_id, chunk.embedding) for chunk_id, chunk in candidates.items()],
            limit=limit,
            min_similarity=min_similarity,
        )
        return [
            SearchResult(
                chunk=candidates[scored.id].model_copy(update={"embedding": []}),
                similarity=scored.similarity,
            )
            for scored in ranked
        ]

    async def _track_usage(self, results: Sequence[SearchResult]) -> None:
        if not results:
            return
        chunk_ids: UsageBatch = tuple(result.chunk.id for result in results)

        if self._usage_stream is None:
            logger.debug(f"Usage worker not running, skipping usage update for {len(chunk_ids)} chunks")
            return

        try:
            self._usage_stream.send_nowait(chunk_ids)
        except anyio.WouldBlock:
            logger.warning(f"Usage queue full, dropping usage update for {len(chunk_ids)} chunks")
        except (anyio.ClosedResourceError, anyio.BrokenResourceError) as e:
            logger.warning(f"Usage worker unavailable, dropping usage update: {e!r}")

    async def _usage_worker(self, receive_stream: MemoryObjectReceiveStream[UsageBatch]) -> None:
        async with receive_stream:
            async for chunk_ids in receive_stream:
                await self._record_usage(chunk_ids)

    async def _record_usage(self, chunk_ids: UsageBatch) -> None:
        try:
            await self._repository.increment_usage(chunk_ids, utc_now())
        except Exception as e:
            logger.warning(f"Failed to record usage for {len(chunk_ids)} chunks: {e}")
