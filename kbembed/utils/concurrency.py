"""Bounded-concurrency helpers for batch fan-out.

The embedding orchestrator runs batches through :func:`throttled_gather` so
that at most ``limit`` batches are in flight at once.  With ``limit=1`` the
batches run strictly one after another, which is the default.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Sequence, TypeVar

_T = TypeVar("_T")


async def throttled_gather(
    factories: Sequence[Callable[[], Awaitable[_T]]],
    limit: int = 1,
) -> list[_T]:
    """Run awaitables with at most *limit* executing concurrently.

    Parameters
    ----------
    factories:
        Zero-argument callables returning an awaitable.  Using factories
        instead of bare coroutines means nothing starts before a semaphore
        slot is free, and no coroutine is left un-awaited when an earlier
        one fails.
    limit:
        Maximum number of concurrently running awaitables (>= 1).

    Returns
    -------
    list[_T]
        Results in the same order as *factories*, independent of the order
        in which they completed.  Exceptions propagate as with
        ``asyncio.gather``; callers that need per-item isolation must catch
        inside the awaitable.
    """
    if limit < 1:
        msg = f"limit must be >= 1, got {limit}"
        raise ValueError(msg)

    if limit == 1:
        return [await factory() for factory in factories]

    semaphore = asyncio.Semaphore(limit)

    async def _wrapped(factory: Callable[[], Awaitable[_T]]) -> _T:
        async with semaphore:
            return await factory()

    return list(await asyncio.gather(*(_wrapped(f) for f in factories)))
