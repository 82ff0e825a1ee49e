"""
Rate-limit classification and backoff for calls to external capabilities.

A rate-limit-class failure is retried with exponential backoff, bounded by a
minimum and maximum delay, and never shorter than a delay the server suggested.
Any other failure is terminal and is re-raised on the first attempt.
"""

import logging
import re
from typing import Any, Callable, Optional, TypeVar

import openai
from tenacity import (
    RetryCallState,
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
)
from tenacity.wait import wait_base

logger = logging.getLogger(__name__)

T = TypeVar("T")

RATE_LIMIT_MARKERS = ("429", "RESOURCE_EXHAUSTED", "quota")
_RETRY_DELAY_PATTERN = re.compile(r"retryDelay.*?(\d+)s")


class RateLimitError(RuntimeError):
    """An external capability rejected a call because of rate limiting or quota."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


def is_rate_limit_error(error: BaseException) -> bool:
    """Whether ``error`` is retryable rate limiting rather than a terminal failure."""
    if isinstance(error, (RateLimitError, openai.RateLimitError)):
        return True
    message = str(error)
    return any(marker in message for marker in RATE_LIMIT_MARKERS)


def suggested_delay_seconds(error: BaseException) -> Optional[float]:
    """Server-suggested retry delay carried by ``error``, if any."""
    retry_after = getattr(error, "retry_after", None)
    if isinstance(retry_after, (int, float)):
        return float(retry_after)

    match = _RETRY_DELAY_PATTERN.search(str(error))
    if match:
        return float(match.group(1))
    return None


def backoff_seconds(
    attempt_number: int,
    initial_delay_ms: int,
    max_delay_ms: int,
    error: Optional[BaseException] = None,
) -> float:
    """
    Delay before the next attempt.

    Args:
        attempt_number: The attempt that just failed (1-based)
        initial_delay_ms: Delay after the first failure
        max_delay_ms: Ceiling for the exponential part
        error: The failure, inspected for a server-suggested delay

    Returns:
        ``max(min(initial * 2^(attempt-1), max), suggested)`` in seconds
    """
    exponential = min(initial_delay_ms * (2 ** max(attempt_number - 1, 0)), max_delay_ms) / 1000
    suggested = suggested_delay_seconds(error) if error is not None else None
    if suggested is None:
        return exponential
    return max(exponential, suggested)


class wait_rate_limit_backoff(wait_base):
    """Tenacity wait strategy combining exponential backoff with the server hint."""

    def __init__(self, initial_delay_ms: int, max_delay_ms: int):
        self.initial_delay_ms = initial_delay_ms
        self.max_delay_ms = max_delay_ms

    def __call__(self, retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        return backoff_seconds(retry_state.attempt_number, self.initial_delay_ms, self.max_delay_ms, error)


def rate_limit_retry(
    max_attempts: int,
    initial_delay_ms: int,
    max_delay_ms: int,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Build a tenacity decorator that retries only rate-limit-class failures.

    The last failure is re-raised unchanged once ``max_attempts`` is reached.
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_rate_limit_backoff(initial_delay_ms, max_delay_ms),
        retry=retry_if_exception(is_rate_limit_error),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
