"""
Timing helpers. Pipeline steps log when they start and how many milliseconds
they took, or how long they ran before failing.
"""

import logging
import time
from functools import wraps
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def elapsed_ms(start_time: float) -> int:
    """Milliseconds elapsed since ``start_time`` (a ``time.time()`` value)."""
    return int((time.time() - start_time) * 1000)


def timed_operation(step_name: str) -> Callable[[Callable[..., T]], Callable[..., T]]:
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            logger.info(f"{step_name}: Starting...")
            start_time = time.time()
            try:
                result = func(*args, **kwargs)
            except Exception:
                logger.warning(f"{step_name}: Failed after {elapsed_ms(start_time)}ms")
                raise
            logger.info(f"{step_name}: Completed in {elapsed_ms(start_time)}ms")
            return result

        return wrapper

    return decorator


def async_timed_operation(step_name: str) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Async variant of :func:`timed_operation` for core operations."""

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            logger.info(f"{step_name}: Starting...")
            start_time = time.time()
            try:
                result = await func(*args, **kwargs)
            except Exception:
                logger.warning(f"{step_name}: Failed after {elapsed_ms(start_time)}ms")
                raise
            logger.info(f"{step_name}: Completed in {elapsed_ms(start_time)}ms")
            return result

        return wrapper

    return decorator
