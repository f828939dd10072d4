"""Bounded worker pool — asyncio fan-out for compile and archive work.

WHY
───
Both pipeline phases fan out one unit of work per item (one compile per
unique entry, one archive per function) and must never run more than the
configured number at once. ``asyncio`` with a semaphore gives that bound on
a single event loop; blocking work inside a mapper is pushed to a thread
with ``asyncio.to_thread``.

ARCHITECTURE
────────────
::

    map_bounded(items, mapper, concurrency)   ─ all-or-nothing
      └── first failure cancels work still waiting for a slot,
          discards in-flight results and re-raises

    map_settled(items, mapper, concurrency)   ─ per-item outcome
      └── list of results or exceptions, one per item

Both return outcomes in input order regardless of completion order.
``concurrency=None`` (or ``math.inf``) means unbounded: the semaphore is
sized to the number of items.

Example::

    results = await map_bounded(entries, compile_one, concurrency=4)
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

from fnpack.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def resolve_limit(concurrency: int | float | None, item_count: int) -> int:
    """Number of simultaneous workers for ``item_count`` items."""
    if concurrency is None or (isinstance(concurrency, float) and math.isinf(concurrency)):
        return max(item_count, 1)
    limit = int(concurrency)
    if limit < 1:
        raise ValueError(f"concurrency must be a positive integer, got {concurrency!r}")
    return limit


async def map_bounded(
    items: Sequence[T],
    mapper: Callable[[T], Awaitable[R]],
    *,
    concurrency: int | float | None = None,
) -> list[R]:
    """Run ``mapper`` over ``items`` with at most ``concurrency`` in flight.

    Raises the first exception any mapper raises. Items still waiting for
    a slot are cancelled; mappers already running are cancelled at their
    next suspension point and their results are never returned.
    """
    sem = asyncio.Semaphore(resolve_limit(concurrency, len(items)))

    async def _run_one(item: T) -> R:
        async with sem:
            return await mapper(item)

    tasks = [asyncio.ensure_future(_run_one(item)) for item in items]
    if not tasks:
        return []

    done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    failed = [t for t in tasks if t in done and not t.cancelled() and t.exception() is not None]
    if failed:
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        logger.debug("pool.cancelled", cancelled=len(pending), total=len(tasks))
        raise failed[0].exception()  # type: ignore[misc]

    return [task.result() for task in tasks]


async def map_settled(
    items: Sequence[T],
    mapper: Callable[[T], Awaitable[R]],
    *,
    concurrency: int | float | None = None,
) -> list[R | BaseException]:
    """Run every item to completion; failures are returned, not raised."""
    sem = asyncio.Semaphore(resolve_limit(concurrency, len(items)))

    async def _run_one(item: T) -> Any:
        async with sem:
            return await mapper(item)

    return await asyncio.gather(*[_run_one(item) for item in items], return_exceptions=True)


__all__ = ["map_bounded", "map_settled", "resolve_limit"]
