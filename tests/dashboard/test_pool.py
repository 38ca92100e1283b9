from __future__ import annotations

import asyncio

import pytest

from dashboard.crawlers.github.pool import map_with_concurrency


@pytest.mark.asyncio
async def test_results_follow_input_order_not_completion_order() -> None:
    delays = [0.03, 0.0, 0.02, 0.01, 0.0]

    async def mapper(index: int) -> str:
        await asyncio.sleep(delays[index])
        return f"item-{index}"

    results = await map_with_concurrency(list(range(5)), 3, mapper)

    assert results == ["item-0", "item-1", "item-2", "item-3", "item-4"]


@pytest.mark.asyncio
async def test_never_exceeds_concurrency_limit() -> None:
    in_flight = 0
    peak = 0

    async def mapper(value: int) -> int:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.005)
        in_flight -= 1
        return value * 2

    results = await map_with_concurrency(list(range(10)), 2, mapper)

    assert results == [value * 2 for value in range(10)]
    assert peak == 2


@pytest.mark.asyncio
async def test_each_input_is_processed_once() -> None:
    seen: list[int] = []

    async def mapper(value: int) -> int:
        seen.append(value)
        await asyncio.sleep(0)
        return value

    await map_with_concurrency(list(range(7)), 4, mapper)

    assert sorted(seen) == list(range(7))


@pytest.mark.asyncio
async def test_first_failure_propagates_and_stops_remaining_work() -> None:
    started: list[int] = []

    async def mapper(value: int) -> int:
        started.append(value)
        if value == 1:
            raise RuntimeError("boom")
        await asyncio.sleep(0.05)
        return value

    with pytest.raises(RuntimeError, match="boom"):
        await map_with_concurrency(list(range(10)), 2, mapper)

    assert len(started) < 10


@pytest.mark.asyncio
async def test_empty_input_and_clamped_limit() -> None:
    async def mapper(value: int) -> int:
        return value + 1

    assert await map_with_concurrency([], 4, mapper) == []
    assert await map_with_concurrency([1, 2, 3], 0, mapper) == [2, 3, 4]
