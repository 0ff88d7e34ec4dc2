"""
Tests for the batch processor.
"""

import asyncio

import pytest

from harvester.batch import BatchConfig, BatchItemError, is_batch_error, run_batch
from harvester.cancel import CancelToken
from harvester.errors import BatchItemFailed, HarvestCancelled

FAST = BatchConfig(batch_size=3, delay_between_batches=0.0)


class TestRunBatch:

    @pytest.mark.asyncio
    async def test_results_follow_input_order(self):
        async def worker(item, index):
            # later items finish first
            await asyncio.sleep(0.01 * (5 - index))
            return item * 10

        assert await run_batch([1, 2, 3, 4, 5], worker, FAST) == [10, 20, 30, 40, 50]

    @pytest.mark.asyncio
    async def test_concurrency_bounded_by_batch_size(self):
        active = 0
        peak = 0

        async def worker(item, index):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return item

        await run_batch(list(range(10)), worker, FAST)
        assert peak == 3

    @pytest.mark.asyncio
    async def test_plain_function_worker(self):
        assert await run_batch(["a", "b"], lambda item, index: f"{index}:{item}", FAST) == ["0:a", "1:b"]

    @pytest.mark.asyncio
    async def test_empty_input(self):
        assert await run_batch([], lambda item, index: item) == []

    @pytest.mark.asyncio
    async def test_failures_become_error_placeholders(self):
        def worker(item, index):
            if item == "bad":
                raise ValueError("cannot process")
            return item.upper()

        results = await run_batch(["ok", "bad", "fine"], worker, FAST)
        assert results[0] == "OK"
        assert results[2] == "FINE"
        error = results[1]
        assert is_batch_error(error)
        assert error == BatchItemError(index=1, item="bad", error="cannot process")

    @pytest.mark.asyncio
    async def test_stop_on_first_failure(self):
        processed = []

        def worker(item, index):
            processed.append(item)
            if item == 1:
                raise RuntimeError("boom")
            return item

        config = BatchConfig(batch_size=2, delay_between_batches=0.0, continue_on_error=False)
        with pytest.raises(BatchItemFailed) as exc_info:
            await run_batch([0, 1, 2, 3, 4], worker, config)
        assert exc_info.value.index == 1
        assert isinstance(exc_info.value.cause, RuntimeError)
        # the second chunk never started
        assert sorted(processed) == [0, 1]

    @pytest.mark.asyncio
    async def test_abort_cancels_unfinished_siblings(self):
        finished = []

        async def worker(item, index):
            if item == 0:
                raise RuntimeError("boom")
            await asyncio.sleep(0.05)
            finished.append(item)
            return item

        config = BatchConfig(batch_size=3, delay_between_batches=0.0, continue_on_error=False)
        with pytest.raises(BatchItemFailed):
            await run_batch([0, 1, 2], worker, config)
        await asyncio.sleep(0.1)
        assert finished == []

    @pytest.mark.asyncio
    async def test_delay_between_chunks(self):
        loop = asyncio.get_running_loop()
        config = BatchConfig(batch_size=1, delay_between_batches=0.05)
        start = loop.time()
        await run_batch([1, 2, 3], lambda item, index: item, config)
        assert loop.time() - start >= 0.09

    @pytest.mark.asyncio
    async def test_cancellation_reports_completed_chunks(self):
        token = CancelToken()

        def worker(item, index):
            if index == 1:
                token.cancel("stop")
            return item

        config = BatchConfig(batch_size=2, delay_between_batches=5.0)
        with pytest.raises(HarvestCancelled) as exc_info:
            await run_batch(list(range(6)), worker, config, cancel=token)
        assert exc_info.value.context["completed"] == [0, 1]
