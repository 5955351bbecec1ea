"""
Unit tests for the execution pool.
"""

import asyncio

import pytest

from tagdispatch.errors import PoolClosedError, PoolSaturatedError
from tagdispatch.worker.pool import ExecutionPool


class TestExecutionPool:
    """Tests for bounded execution."""

    @pytest.mark.asyncio
    async def test_runs_submission(self):
        pool = ExecutionPool(max_workers=2)

        async def work(value: int) -> int:
            return value * 2

        task = pool.submit(work, 21)

        assert await task == 42

    @pytest.mark.asyncio
    async def test_bounds_concurrency(self):
        pool = ExecutionPool(max_workers=2)
        running = 0
        peak = 0

        async def work() -> None:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.05)
            running -= 1

        tasks = [pool.submit(work) for _ in range(5)]
        await asyncio.sleep(0.01)

        assert pool.active_count == 2
        assert pool.pending_count == 3

        await asyncio.gather(*tasks)
        assert peak == 2

    @pytest.mark.asyncio
    async def test_rejects_when_saturated(self):
        pool = ExecutionPool(max_workers=1, max_queue=1)
        release = asyncio.Event()

        async def work() -> None:
            await release.wait()

        pool.submit(work)
        pool.submit(work)

        with pytest.raises(PoolSaturatedError):
            pool.submit(work)

        release.set()
        assert await pool.shutdown(timeout=1) is True

    @pytest.mark.asyncio
    async def test_default_queue_is_twice_workers(self):
        assert ExecutionPool(max_workers=3).max_queue == 6

    def test_requires_a_worker(self):
        with pytest.raises(ValueError):
            ExecutionPool(max_workers=0)

    @pytest.mark.asyncio
    async def test_rejects_after_shutdown(self):
        pool = ExecutionPool(max_workers=1)

        assert await pool.shutdown() is True

        async def work() -> None:
            pass

        with pytest.raises(PoolClosedError):
            pool.submit(work)

    @pytest.mark.asyncio
    async def test_shutdown_does_not_wait_for_running_work(self):
        pool = ExecutionPool(max_workers=1)
        release = asyncio.Event()

        async def work() -> str:
            await release.wait()
            return "done"

        task = pool.submit(work)
        await asyncio.sleep(0)
        assert pool.active_count == 1

        assert await asyncio.wait_for(pool.shutdown(), timeout=1) is True
        assert not task.done()

        release.set()
        assert await task == "done"

    @pytest.mark.asyncio
    async def test_shutdown_waits_for_queued_work_to_start(self):
        pool = ExecutionPool(max_workers=1)
        release = asyncio.Event()

        async def work() -> None:
            await release.wait()

        pool.submit(work)
        pool.submit(work)
        await asyncio.sleep(0)
        assert pool.pending_count == 1

        shutdown = asyncio.create_task(pool.shutdown(timeout=1))
        await asyncio.sleep(0.01)
        assert not shutdown.done()

        release.set()
        assert await shutdown is True

    @pytest.mark.asyncio
    async def test_shutdown_timeout_does_not_cancel(self):
        pool = ExecutionPool(max_workers=1)
        release = asyncio.Event()

        async def work() -> str:
            await release.wait()
            return "done"

        running = pool.submit(work)
        queued = pool.submit(work)
        await asyncio.sleep(0)

        assert await pool.shutdown(timeout=0.05) is False
        assert not running.done()
        assert not queued.done()

        release.set()
        assert await running == "done"
        assert await queued == "done"
