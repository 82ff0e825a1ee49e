"""
Corpus ASGI Module - JSON endpoints for upload, search, context and review
"""

import base64
import binascii
import logging
from contextlib import contextmanager
from typing import Any, AsyncContextManager, Dict, Iterator, List, Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..embedding.internal.EmbeddingTypes import EmbeddingError
from ..ingestion.internal.IngestionTypes import UploadRequest, UploadResult
from ..knowledge.internal.KnowledgeTypes import (
    DocumentClassification,
    KnowledgeStats,
    PromptContext,
    PromptContextOptions,
    SearchRequest,
    SearchResponse,
)
from ..review.internal.ReviewTypes import (
    ApprovalResult,
    ExtractionReview,
    PageCorrection,
    ReviewStateError,
    ReviewStatus,
)
from ..segmentation.internal.SegmentationTypes import ChapterOverride
from .ASGICoreModule import ASGICoreModule
from .CorpusServices import CorpusServices

logger = logging.getLogger(__name__)


class UploadDocumentBody(BaseModel):
    file_name: str = Field(min_length=1)
    classification: DocumentClassification
    content_base64: Optional[str] = Field(default=None, description="Base64-encoded PDF bytes")
    storage_path: Optional[str] = None
    document_id: Optional[str] = Field(default=None, description="Resume an in-flight batch extraction")
    replaces_document_id: Optional[str] = None
    chapter_overrides: Dict[str, ChapterOverride] = Field(default_factory=dict)


class ContextBody(BaseModel):
    topic: str
    grade: str
    options: PromptContextOptions = Field(default_factory=PromptContextOptions)


class ApproveBody(BaseModel):
    approved_by: str = Field(min_length=1)


class StoragePathBody(BaseModel):
    storage_path: str = Field(min_length=1)


class DeleteDocumentResponse(BaseModel):
    document_id: str
    deleted_chunks: int


@contextmanager
def _http_errors() -> Iterator[None]:
    """Map core exceptions to HTTP status codes."""
    try:
        yield
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0]) if e.args else "Not found") from e
    except ReviewStateError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except EmbeddingError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


class CorpusASGIModule(ASGICoreModule):
    """Transport for the ingestion, retrieval and review operations. No authentication."""

    services: CorpusServices = Field(exclude=True, description="Cores behind the endpoints")
    max_search_limit: int = Field(default=20, gt=0, description="Upper bound on results per search request")

    def __init__(self, services: CorpusServices, prefix: str = "/corpus", **kwargs: Any) -> None:
        super().__init__(
            services=services,
            prefix=prefix,
            title="Corpus",
            description="Document ingestion, semantic retrieval and extraction review",
            **kwargs,
        )

    def lifespan(self) -> AsyncContextManager[Any]:
        return self.services.running()

    def setup_routes(self, router: APIRouter) -> None:
        services = self.services
        max_search_limit = self.max_search_limit

        @router.post("/documents", response_model=UploadResult)
        async def upload_document(body: UploadDocumentBody) -> Any:
            content: Optional[bytes] = None
            if body.content_base64:
                try:
                    content = base64.b64decode(body.content_base64, validate=True)
                except (binascii.Error, ValueError) as e:
                    raise HTTPException(status_code=422, detail=f"Invalid base64 content: {e}") from e

            result = await services.ingestion.upload_document(
                UploadRequest(
                    file_name=body.file_name,
                    classification=body.classification,
                    content=content,
                    storage_path=body.storage_path,
                    document_id=body.document_id,
                    replaces_document_id=body.replaces_document_id,
                    chapter_overrides=body.chapter_overrides,
                )
            )
            if not result.success:
                return JSONResponse(status_code=422, content=result.model_dump(mode="json"))
            return result

        @router.delete("/documents/{document_id}", response_model=DeleteDocumentResponse)
        async def delete_document(document_id: str) -> DeleteDocumentResponse:
            with _http_errors():
                deleted = await services.knowledge.delete_document(document_id)
            return DeleteDocumentResponse(document_id=document_id, deleted_chunks=deleted)

        @router.post("/search", response_model=SearchResponse)
        async def search(body: SearchRequest) -> SearchResponse:
            if body.limit is not None and body.limit > max_search_limit:
                body = body.model_copy(update={"limit": max_search_limit})
            with _http_errors():
                return await services.knowledge.search(body)

        @router.post("/context", response_model=PromptContext)
        async def build_context(body: ContextBody) -> PromptContext:
            with _http_errors():
                return await services.knowledge.build_prompt_context(body.topic, body.grade, body.options)

        @router.get("/stats", response_model=KnowledgeStats)
        async def get_stats() -> KnowledgeStats:
            return await services.knowledge.get_stats()

        @router.get("/reviews", response_model=List[ExtractionReview])
        async def list_reviews(
            status: Optional[ReviewStatus] = Query(None),
            limit: Optional[int] = Query(None, ge=1, le=500),
        ) -> List[ExtractionReview]:
            return await services.reviews.list_all_reviews(status=status, limit=limit)

        @router.get("/reviews/{review_id}", response_model=ExtractionReview)
        async def get_review(review_id: str) -> ExtractionReview:
            with _http_errors():
                return await services.reviews.get_review(review_id)

        @router.post("/reviews/{review_id}/pages/{page_number}", response_model=ExtractionReview)
        async def correct_page(review_id: str, page_number: int, body: PageCorrection) -> ExtractionReview:
            with _http_errors():
                return await services.reviews.correct_page(review_id, page_number, body.text, body.corrected_by)

        @router.post("/reviews/{review_id}/approve", response_model=ApprovalResult)
        async def approve_review(review_id: str, body: ApproveBody) -> ApprovalResult:
            with _http_errors():
                return await services.reviews.approve_review(review_id, body.approved_by)

        @router.put("/reviews/{review_id}/storage-path", response_model=ExtractionReview)
        async def update_storage_path(review_id: str, body: StoragePathBody) -> ExtractionReview:
            with _http_errors():
                return await services.reviews.update_storage_path(review_id, body.storage_path)
