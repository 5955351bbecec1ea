"""
Bounded execution pool for job bodies.

A fixed number of slots run concurrently on the worker's event loop; a
limited number of further submissions may wait for a slot. Anything
beyond that is refused immediately rather than queued without bound.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from tagdispatch.errors import PoolClosedError, PoolSaturatedError
from tagdispatch.observability.logging import get_logger


class ExecutionPool:
    """
    Runs submitted coroutines with at most `max_workers` at a time.

    Example:
        pool = ExecutionPool(max_workers=2)
        task = pool.submit(run_job, job)
        ...
        drained = await pool.shutdown(timeout=30)
    """

    def __init__(
        self,
        max_workers: int,
        max_queue: int | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ):
        """
        Initialize the pool.

        Args:
            max_workers: Number of submissions that may run concurrently.
            max_queue: Number of further submissions that may wait for a
                slot. Defaults to twice `max_workers`.
            logger: Logger to report through.
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")

        self.max_workers = max_workers
        self.max_queue = max_workers * 2 if max_queue is None else max_queue
        self._slots = asyncio.Semaphore(max_workers)
        self._tasks: set[asyncio.Task] = set()
        self._started: set[asyncio.Task] = set()
        self._active = 0
        self._queue_empty = asyncio.Event()
        self._queue_empty.set()
        self._closed = False
        self._logger = logger or get_logger(__name__)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def active_count(self) -> int:
        """Submissions currently holding a slot."""
        return self._active

    @property
    def pending_count(self) -> int:
        """Submissions waiting for a slot."""
        return len(self._tasks) - len(self._started)

    def submit(self, fn: Callable[..., Awaitable[Any]], *args: Any) -> asyncio.Task:
        """
        Schedule `fn(*args)` to run once a slot is free.

        Args:
            fn: Coroutine function to run.
            *args: Arguments passed to `fn`.

        Returns:
            The task wrapping the submission.

        Raises:
            PoolClosedError: If shutdown() has been called.
            PoolSaturatedError: If every slot and queue position is taken.
        """
        if self._closed:
            raise PoolClosedError("Execution pool is shut down")
        if len(self._tasks) >= self.max_workers + self.max_queue:
            raise PoolSaturatedError(
                f"Execution pool saturated ({self.max_workers} running, "
                f"{self.max_queue} queued)"
            )

        task = asyncio.create_task(self._run(fn, *args))
        self._tasks.add(task)
        self._queue_empty.clear()
        task.add_done_callback(self._forget)
        return task

    def _settle(self) -> None:
        if self.pending_count == 0:
            self._queue_empty.set()

    def _forget(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        self._started.discard(task)
        self._settle()

    async def _run(self, fn: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        async with self._slots:
            self._started.add(asyncio.current_task())
            self._settle()
            self._active += 1
            try:
                return await fn(*args)
            finally:
                self._active -= 1

    async def shutdown(self, timeout: float | None = None) -> bool:
        """
        Stop accepting work and wait for queued submissions to start.

        Work already holding a slot is neither waited on nor cancelled;
        the caller bounds that separately.

        Args:
            timeout: Seconds to wait for the queue to empty. None waits
                indefinitely.

        Returns:
            True if no submission was still waiting for a slot when
            `timeout` expired.
        """
        self._closed = True

        if self.pending_count == 0:
            return True

        try:
            await asyncio.wait_for(self._queue_empty.wait(), timeout=timeout)
        except TimeoutError:
            self._logger.warning(
                "Execution pool did not terminate",
                timeout=timeout,
                remaining=self.pending_count,
            )
            return False
        return True
