"""Bounded concurrency runner: FIFO starts, at most N items in flight."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

import anyio

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_bounded(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[object]],
    limit: int,
) -> None:
    """Run ``worker(item)`` for every item, at most *limit* at a time.

    Items start in list order; the next one starts as soon as any running
    one settles. Completion order is unspecified. An exception escaping
    *worker* is logged and does not stop the remaining items.
    """
    if limit < 1:
        raise ValueError(f"Concurrency limit must be >= 1, got {limit}")

    pending = iter(items)

    async def slot() -> None:
        # next() between awaits is atomic on a single event loop
        for item in pending:
            try:
                await worker(item)
            except Exception:
                logger.exception("Worker failed for %s", getattr(item, "id", item))

    async with anyio.create_task_group() as tg:
        for _ in range(min(limit, len(items))):
            tg.start_soon(slot)
