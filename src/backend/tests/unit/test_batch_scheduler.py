"""
Unit tests for the batch scheduler.

Tests cover:
- Result ordering regardless of completion order
- Bounded concurrency per chunk
- One retry, then the fallback value
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from core.exceptions import ConfigurationError
from services.batch_scheduler import BatchScheduler


class TestBatchSchedulerOrdering:
    """Tests for result ordering and chunking."""

    @pytest.mark.asyncio
    async def test_results_follow_input_order(self):
        """Later items finishing first does not reorder results."""
        scheduler = BatchScheduler(chunk_size=5)

        async def fetch(item):
            await asyncio.sleep((10 - item) / 1000)
            return item * 10

        results = await scheduler.run(list(range(10)), fetch, fallback=lambda item: -1)
        assert results == [item * 10 for item in range(10)]

    @pytest.mark.asyncio
    async def test_concurrency_bounded_by_chunk_size(self):
        """No more than chunk_size fetches are in flight at once."""
        scheduler = BatchScheduler(chunk_size=5)
        in_flight = 0
        peak = 0

        async def fetch(item):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.001)
            in_flight -= 1
            return item

        results = await scheduler.run(list(range(12)), fetch, fallback=lambda item: None)
        assert results == list(range(12))
        assert peak == 5

    def test_chunks(self):
        """Items split into consecutive chunks of at most chunk_size."""
        scheduler = BatchScheduler(chunk_size=5)
        assert scheduler.chunks(list(range(12))) == [
            [0, 1, 2, 3, 4], [5, 6, 7, 8, 9], [10, 11]
        ]

    @pytest.mark.asyncio
    async def test_empty_input(self):
        """No items means no fetches and an empty result."""
        scheduler = BatchScheduler()
        results = await scheduler.run([], fetch=None, fallback=lambda item: None)
        assert results == []


class TestBatchSchedulerRetry:
    """Tests for the retry and fallback policy."""

    @pytest.mark.asyncio
    async def test_transient_failure_retried_once(self):
        """A fetch failing once succeeds on its retry."""
        scheduler = BatchScheduler(chunk_size=5, retries=1)
        attempts = {}

        async def fetch(item):
            attempts[item] = attempts.get(item, 0) + 1
            if item == 3 and attempts[item] == 1:
                raise ConnectionError("pool exhausted")
            return item

        results = await scheduler.run(list(range(6)), fetch, fallback=lambda item: -1)
        assert results == list(range(6))
        assert attempts[3] == 2
        assert attempts[0] == 1

    @pytest.mark.asyncio
    async def test_persistent_failure_falls_back(self):
        """After the retry is spent the fallback value is used in place."""
        scheduler = BatchScheduler(chunk_size=5, retries=1)
        attempts = {}

        async def fetch(item):
            attempts[item] = attempts.get(item, 0) + 1
            if item == 2:
                raise TimeoutError("store timed out")
            return item

        results = await scheduler.run(
            [0, 1, 2, 3], fetch, fallback=lambda item: 0, label=lambda item: f"day-{item}"
        )
        assert results == [0, 1, 0, 3]
        assert attempts[2] == 2

    @pytest.mark.asyncio
    async def test_no_retries(self):
        """With retries disabled a failure falls back after one attempt."""
        scheduler = BatchScheduler(chunk_size=2, retries=0)
        fetch = AsyncMock(side_effect=RuntimeError("down"))

        results = await scheduler.run(["a"], fetch, fallback=lambda item: "fallback")
        assert results == ["fallback"]
        fetch.assert_awaited_once_with("a")

    @pytest.mark.asyncio
    async def test_retry_uses_second_answer(self):
        """The retried attempt's result is the one returned."""
        scheduler = BatchScheduler(chunk_size=5, retries=1)
        fetch = AsyncMock(side_effect=[ConnectionError("reset"), 42])

        results = await scheduler.run(["day"], fetch, fallback=lambda item: 0)
        assert results == [42]
        assert fetch.await_count == 2


class TestBatchSchedulerConfig:
    """Tests for scheduler configuration validation."""

    def test_chunk_size_must_be_positive(self):
        """A zero chunk size is rejected."""
        with pytest.raises(ConfigurationError):
            BatchScheduler(chunk_size=0)

    def test_retries_must_not_be_negative(self):
        """Negative retries are rejected."""
        with pytest.raises(ConfigurationError):
            BatchScheduler(retries=-1)
