"""
Vision-model page extraction using Instructor.

Each request sends the single-page PDF as a base64 file part next to the
extraction prompt and parses the reply into a ``PageExtractionResponse``.
"""

import base64
import os
from typing import Any, Optional

import instructor
from openai import AsyncOpenAI

from ...extraction.internal.ExtractionTypes import PageExtractionRequest, PageExtractionResponse
from ..TypedCalls import ArityOneTypedCall


class InstructorPageExtractionCall(ArityOneTypedCall[PageExtractionRequest, PageExtractionResponse]):
    """
    Production page extractor backed by an OpenAI-compatible vision model.

    The client is configured from ``OPENAI_API_KEY`` and the optional
    ``CORPUS_OPENAI_BASE_URL``; the model defaults to ``CORPUS_EXTRACTION_MODEL``
    or gpt-4o.
    """

    def __init__(
        self,
        completion: Optional[Any] = None,
        model: Optional[str] = None,
    ):
        self.model = model or os.environ.get("CORPUS_EXTRACTION_MODEL", "gpt-4o")
        self._client = completion or instructor.from_openai(
            AsyncOpenAI(
                base_url=os.environ.get("CORPUS_OPENAI_BASE_URL") or None,
                api_key=os.environ.get("OPENAI_API_KEY"),
            )
        )

    async def call(self, x: PageExtractionRequest) -> PageExtractionResponse:
        if not self._client:
            raise ValueError("Instructor client is not initialized")

        encoded = base64.b64encode(x.document).decode("ascii")
        response = await self._client.chat.completions.create(
            model=self.model,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": x.prompt},
                        {
                            "type": "file",
                            "file": {
                                "filename": f"page-{x.page_number}.pdf",
                                "file_data": f"data:{x.mime_type};base64,{encoded}",
                            },
                        },
                    ],
                }
            ],
            response_model=PageExtractionResponse,
            temperature=x.temperature,
        )
        return response  # type: ignore[no-any-return]
