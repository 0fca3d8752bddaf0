"""Async utilities for bridging blocking I/O into the deploy pipeline."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Coroutine, Sequence, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a blocking function in a worker thread.

    Used for local file reads and ``requests`` calls so they never stall
    the event loop.

    Example:
        data = await run_sync(reader.read, "/index.html")
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def with_timeout(
    awaitable: Awaitable[T], timeout: float | None
) -> T:
    """Await *awaitable*, raising ``TimeoutError`` after *timeout* seconds.

    ``None`` disables the limit.  When the limit hits, the awaiting task
    stops waiting; a call already running in a worker thread is left to
    finish on its own.
    """
    if timeout is None:
        return await awaitable
    return await asyncio.wait_for(awaitable, timeout)


async def gather_limited(
    coros: Sequence[Coroutine[Any, Any, T]],
    limit: int,
) -> list[T]:
    """Run coroutines concurrently with at most *limit* running at once.

    Returns results in input order.  Exceptions propagate from the first
    failure, like ``asyncio.gather``.

    Args:
        coros: Coroutines to run.
        limit: Maximum number running at any instant (>= 1).
    """
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit}")

    semaphore = asyncio.Semaphore(limit)

    async def _bounded(coro: Coroutine[Any, Any, T]) -> T:
        async with semaphore:
            return await coro

    return list(await asyncio.gather(*(_bounded(c) for c in coros)))
