"""Retry decorator with exponential backoff — stdlib only.

If the raised exception carries a ``retry_after`` hint (seconds, as sent by
GitHub's secondary rate limiter) the wait is at least that long, still capped
at ``max_delay``.
"""
from __future__ import annotations

import functools
import logging
import random
import time
from typing import Any, Callable, Tuple, Type

logger = logging.getLogger(__name__)


def backoff_delay(
    attempt: int,
    exc: BaseException,
    *,
    base_delay: float,
    max_delay: float,
    backoff_factor: float,
    jitter: bool,
) -> float:
    delay = base_delay * (backoff_factor ** (attempt - 1))
    if jitter:
        delay *= 0.5 + random.random()
    hint = getattr(exc, "retry_after", None)
    if hint:
        delay = max(delay, float(hint))
    return min(delay, max_delay)


def retry(
    *,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    backoff_factor: float = 2.0,
    jitter: bool = True,
    retryable: Tuple[Type[BaseException], ...] = (Exception,),
) -> Callable:
    """Decorator: retries the wrapped callable on ``retryable`` exceptions only."""

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            for attempt in range(1, max_attempts + 1):
                try:
                    return fn(*args, **kwargs)
                except retryable as exc:
                    if attempt == max_attempts:
                        logger.error(
                            "%s gave up after %d attempts: %s",
                            fn.__qualname__,
                            max_attempts,
                            exc,
                        )
                        raise
                    delay = backoff_delay(
                        attempt,
                        exc,
                        base_delay=base_delay,
                        max_delay=max_delay,
                        backoff_factor=backoff_factor,
                        jitter=jitter,
                    )
                    logger.warning(
                        "%s attempt %d/%d failed (%s), retrying in %.1fs",
                        fn.__qualname__,
                        attempt,
                        max_attempts,
                        exc,
                        delay,
                    )
                    time.sleep(delay)
            raise RuntimeError(f"{fn.__qualname__}: max_attempts must be >= 1")

        return wrapper

    return decorator
