"""
Mock page extractor for testing extraction without vision-model calls.

Responses are scripted: a list cycled across all calls, optionally overridden
per page. An ``Exception`` in a script is raised instead of returned, which
lets tests exercise retries, failed verifications and error placeholders.
"""

from typing import Dict, List, Mapping, Optional, Sequence, Union

from ...extraction.internal.ExtractionTypes import PageExtractionRequest, PageExtractionResponse
from ..TypedCalls import ArityOneTypedCall

ScriptedResponse = Union[str, Exception]


class MockPageExtractionCall(ArityOneTypedCall[PageExtractionRequest, PageExtractionResponse]):
    """Returns scripted page texts and records every request it receives."""

    def __init__(
        self,
        fixed_responses: Sequence[ScriptedResponse] = ("",),
        page_responses: Optional[Mapping[int, Sequence[ScriptedResponse]]] = None,
        model_name: str = "mock-extractor",
    ):
        """
        Initialize the mock extractor.

        Args:
            fixed_responses: Responses to cycle through for pages without a script
            page_responses: Per-page responses, cycled per page
            model_name: Identifier for this mock model
        """
        if not fixed_responses:
            raise ValueError("fixed_responses must not be empty")
        self.fixed_responses = list(fixed_responses)
        self.page_responses = {page: list(script) for page, script in (page_responses or {}).items()}
        self.model_name = model_name
        self.requests: List[PageExtractionRequest] = []
        self._call_count = 0
        self._page_call_counts: Dict[int, int] = {}

    @property
    def call_count(self) -> int:
        return self._call_count

    def pages_requested(self) -> List[int]:
        return [request.page_number for request in self.requests]

    async def call(self, x: PageExtractionRequest) -> PageExtractionResponse:
        self.requests.append(x)

        script = self.page_responses.get(x.page_number)
        if script:
            page_count = self._page_call_counts.get(x.page_number, 0)
            self._page_call_counts[x.page_number] = page_count + 1
            item = script[page_count % len(script)]
        else:
            item = self.fixed_responses[self._call_count % len(self.fixed_responses)]
        self._call_count += 1

        if isinstance(item, Exception):
            raise item
        return PageExtractionResponse(text=item)

    def reset_call_count(self) -> None:
        """Start every script from its first response again."""
        self._call_count = 0
        self._page_call_counts.clear()
        self.requests.clear()
