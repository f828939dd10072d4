"""Tests for fnpack.execution.pool — bounded asyncio fan-out."""

from __future__ import annotations

import asyncio
import math

import pytest

from fnpack.execution.pool import map_bounded, map_settled, resolve_limit


class _Tracker:
    """Mapper that records how many calls run at once."""

    def __init__(self, delay: float = 0.01):
        self.delay = delay
        self.active = 0
        self.peak = 0

    async def __call__(self, item: int) -> int:
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            # Later items finish first
            await asyncio.sleep(self.delay * (10 - item % 10))
            return item * 2
        finally:
            self.active -= 1


class TestResolveLimit:
    def test_none_is_item_count(self):
        assert resolve_limit(None, 7) == 7

    def test_inf_is_item_count(self):
        assert resolve_limit(math.inf, 5) == 5

    def test_empty_input_still_positive(self):
        assert resolve_limit(None, 0) == 1

    def test_explicit(self):
        assert resolve_limit(3, 100) == 3

    def test_rejects_zero(self):
        with pytest.raises(ValueError):
            resolve_limit(0, 3)


class TestMapBounded:
    @pytest.mark.asyncio
    async def test_results_in_input_order(self):
        tracker = _Tracker(delay=0.001)
        assert await map_bounded(list(range(6)), tracker, concurrency=3) == [0, 2, 4, 6, 8, 10]

    @pytest.mark.asyncio
    async def test_never_exceeds_limit(self):
        tracker = _Tracker(delay=0.001)
        await map_bounded(list(range(8)), tracker, concurrency=2)
        assert tracker.peak == 2

    @pytest.mark.asyncio
    async def test_unbounded_runs_everything_at_once(self):
        tracker = _Tracker(delay=0.001)
        await map_bounded(list(range(5)), tracker, concurrency=None)
        assert tracker.peak == 5

    @pytest.mark.asyncio
    async def test_empty(self):
        assert await map_bounded([], _Tracker(), concurrency=2) == []

    @pytest.mark.asyncio
    async def test_first_failure_raised_and_rest_cancelled(self):
        finished: list[int] = []

        async def mapper(item: int) -> int:
            if item == 0:
                raise ValueError("boom")
            await asyncio.sleep(0.2)
            finished.append(item)
            return item

        with pytest.raises(ValueError, match="boom"):
            await map_bounded([0, 1, 2, 3], mapper, concurrency=1)
        await asyncio.sleep(0.3)
        assert finished == []


class TestMapSettled:
    @pytest.mark.asyncio
    async def test_collects_failures_in_order(self):
        async def mapper(item: int) -> int:
            if item % 2:
                raise RuntimeError(f"odd {item}")
            return item

        outcomes = await map_settled([0, 1, 2, 3], mapper, concurrency=2)
        assert outcomes[0] == 0
        assert outcomes[2] == 2
        assert isinstance(outcomes[1], RuntimeError)
        assert str(outcomes[3]) == "odd 3"

    @pytest.mark.asyncio
    async def test_bounded(self):
        tracker = _Tracker(delay=0.001)
        await map_settled(list(range(6)), tracker, concurrency=4)
        assert tracker.peak == 4
