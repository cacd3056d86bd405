"""Backoff utilities.

`exponential_backoff` is an async generator that yields the current delay for the
caller to attempt an operation, then sleeps before the next attempt. It drives the
broker connect retries.

`backoff_delay` computes the delay for the n-th consecutive failure without
sleeping, so a caller can wait on something else (e.g. a shutdown event) instead.
"""
import asyncio
from typing import AsyncIterator


async def exponential_backoff(
    initial_delay: float,
    max_delay: float,
    multiplier: float,
    max_attempts: int,
) -> AsyncIterator[float]:
    delay = initial_delay
    for attempt in range(1, max_attempts + 1):
        yield delay
        if attempt < max_attempts:
            delay = min(delay * multiplier, max_delay)
            await asyncio.sleep(delay)


def backoff_delay(
    attempt: int,
    initial_delay: float,
    max_delay: float,
    multiplier: float,
) -> float:
    """Delay before retrying after `attempt` consecutive failures (1-based), capped at max_delay."""
    if attempt < 1:
        return 0.0
    delay = initial_delay
    for _ in range(attempt - 1):
        delay *= multiplier
        if delay >= max_delay:
            return max_delay
    return min(delay, max_delay)
