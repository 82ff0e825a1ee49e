"""
Utility modules shared by the corpus areas.
"""

from .BlobStore import BlobStore, InMemoryBlobStore, LocalBlobStore
from .RateLimiting import RateLimitError, is_rate_limit_error, rate_limit_retry
from .Timing import async_timed_operation, elapsed_ms, timed_operation
from .TypedCalls import ArityOneTypedCall

__all__ = [
    "ArityOneTypedCall",
    "BlobStore",
    "InMemoryBlobStore",
    "LocalBlobStore",
    "RateLimitError",
    "is_rate_limit_error",
    "rate_limit_retry",
    "timed_operation",
    "async_timed_operation",
    "elapsed_ms",
]
