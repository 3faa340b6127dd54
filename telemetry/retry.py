from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, Iterable, Optional, Type, TypeVar

from telemetry.logging_utils import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


def compute_backoff(attempt: int, base_delay: float, factor: float, jitter: float) -> float:
    delay = base_delay * (factor ** attempt)
    if jitter:
        delay += random.uniform(0, jitter)
    return delay


async def retry_async_with_backoff(
    fn: Callable[[], Awaitable[T]],
    *,
    retries: int = 3,
    base_delay: float = 0.25,
    factor: float = 2.0,
    jitter: float = 0.1,
    retry_exceptions: Iterable[Type[BaseException]] = (Exception,),
    operation: Optional[str] = None,
) -> T:
    """Await `fn()` up to `retries` times; only for idempotent operations."""
    if retries < 1:
        raise ValueError("retries must be at least 1")
    retryable = tuple(retry_exceptions)
    attempt = 0
    while True:
        try:
            return await fn()
        except retryable as exc:
            if attempt >= retries - 1:
                raise
            delay = compute_backoff(attempt, base_delay, factor, jitter)
            logger.warning(
                "retrying_operation",
                extra={
                    "operation": operation,
                    "attempt": attempt + 1,
                    "delay_s": round(delay, 3),
                    "error": str(exc)[:200],
                },
            )
            await asyncio.sleep(delay)
            attempt += 1
