"""
Bounded fan-out for independent per-user lookups.

Runs one coroutine per item inside an asyncio.TaskGroup, capped by a
semaphore, and returns results in input order. If any task raises, the
group cancels the rest and the first error propagates.

Usage:
    from circlecal.fanout import bounded_map

    permissions = await bounded_map(lambda pid: resolve(pid), participant_ids, 8)
"""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def bounded_map(
    func: Callable[[T], Awaitable[R]],
    items: Sequence[T],
    max_concurrency: int,
) -> list[R]:
    if max_concurrency < 1:
        raise ValueError(f"max_concurrency must be at least 1, got {max_concurrency}")

    semaphore = asyncio.Semaphore(max_concurrency)

    async def _run(item: T) -> R:
        async with semaphore:
            return await func(item)

    try:
        async with asyncio.TaskGroup() as group:
            tasks = [group.create_task(_run(item)) for item in items]
    except ExceptionGroup as eg:
        # Surface the first failure rather than the group wrapper
        raise eg.exceptions[0] from None

    return [task.result() for task in tasks]


__all__ = ["bounded_map"]
