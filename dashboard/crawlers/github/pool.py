"""Bounded-concurrency map over a list of inputs."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def map_with_concurrency(
    items: Sequence[T],
    limit: int,
    mapper: Callable[[T], Awaitable[R]],
) -> list[R]:
    """Apply *mapper* to every item with at most *limit* calls in flight.

    Results are addressed by input index, so the output order always matches
    the input order. The first failure cancels the remaining workers and is
    re-raised. Mappers that want per-item tolerance catch inside the mapper.
    """

    pending = list(items)
    if not pending:
        return []

    results: list[R] = [None] * len(pending)  # type: ignore[list-item]
    cursor = 0

    async def worker() -> None:
        nonlocal cursor
        while cursor < len(pending):
            index = cursor
            cursor += 1
            results[index] = await mapper(pending[index])

    worker_count = min(max(int(limit or 1), 1), len(pending))
    tasks = [asyncio.create_task(worker()) for _ in range(worker_count)]
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    return results
