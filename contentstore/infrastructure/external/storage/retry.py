"""Linear-backoff retry used for every B2 network call."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from contentstore.shared.telemetry.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


async def with_retries(
    operation: Callable[[], Awaitable[T]],
    max_retries: int,
    retry_delay: float,
    *,
    description: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` up to ``max_retries`` times.

    Waits ``retry_delay * attempt`` seconds between attempts (1-indexed).
    Every exception is retried the same way; after the last attempt the last
    exception is re-raised.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt.
        max_retries: Total attempts (values below 1 are treated as 1).
        retry_delay: Base delay in seconds.
        description: Label for log lines.
        sleep: Awaitable sleep, replaceable in tests.
    """
    attempts = max(1, max_retries)
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if attempt == attempts:
                raise
            logger.warning(
                "%s failed, retrying (%d/%d): %s",
                description,
                attempt,
                attempts,
                e,
            )
            await sleep(retry_delay * attempt)
    raise AssertionError("unreachable")
