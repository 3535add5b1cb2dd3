"""Tests for batched job execution."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from token_signal_tracker.jobs.batching import run_in_batches


class TestRunInBatches:
    @pytest.mark.asyncio
    async def test_delays_between_items_and_batches(self) -> None:
        sleep = AsyncMock()
        seen: list[int] = []

        async def worker(item: int) -> None:
            seen.append(item)

        report = await run_in_batches(
            [1, 2, 3, 4, 5], worker, batch_size=2, item_delay=1.0, batch_delay=3.0, sleep=sleep
        )

        assert seen == [1, 2, 3, 4, 5]
        assert report.total == 5
        assert report.succeeded == 5
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 3.0, 1.0, 3.0]

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_batch(self) -> None:
        async def worker(item: int) -> None:
            if item == 2:
                raise ValueError("bad item")

        report = await run_in_batches([1, 2, 3], worker, item_delay=0, batch_delay=0)

        assert report.succeeded == 2
        assert report.failed == 1
        assert "bad item" in report.errors[0]

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self) -> None:
        async def worker(item: int) -> None:
            raise asyncio.CancelledError

        with pytest.raises(asyncio.CancelledError):
            await run_in_batches([1], worker, item_delay=0, batch_delay=0)

    @pytest.mark.asyncio
    async def test_empty_input(self) -> None:
        report = await run_in_batches([], AsyncMock(), sleep=AsyncMock())
        assert report.total == 0

    @pytest.mark.asyncio
    async def test_rejects_zero_batch_size(self) -> None:
        with pytest.raises(ValueError):
            await run_in_batches([1], AsyncMock(), batch_size=0)
