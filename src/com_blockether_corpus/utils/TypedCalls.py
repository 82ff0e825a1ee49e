"""
Arity-One Typed Calls Protocol - the seam between the engine and its external capabilities.

Every external capability the engine depends on (page extraction, text embedding)
is reached through this protocol: one pydantic request in, one pydantic response
out. Production implementations wrap OpenAI/Instructor clients; tests plug in the
mocks that sit beside them in ``utils.instructor`` and ``utils.openai``.
"""

from abc import abstractmethod
from typing import Generic, Protocol, TypeVar, Union, runtime_checkable

from pydantic import BaseModel, RootModel

T = TypeVar("T", bound=BaseModel, covariant=True)
X = TypeVar("X", bound=Union[str, BaseModel, RootModel], contravariant=True)


@runtime_checkable
class ArityOneTypedCall(Protocol, Generic[X, T]):
    """
    Protocol for arity-one typed calls that return structured Pydantic models.

    Implementations are expected to surface rate limiting as
    ``RateLimitError`` (or an error whose message identifies the rate limit)
    so that callers can distinguish retryable from terminal failures.
    """

    @abstractmethod
    async def call(
        self,
        x: X,
    ) -> T:
        """
        Make a typed call and return a structured response.

        Args:
            x: The request, a string or a pydantic model.

        Returns:
            Structured response as type T (Pydantic model)
        """
        ...
