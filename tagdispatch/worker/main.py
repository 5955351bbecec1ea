"""
Worker process for executing jobs.

The worker polls the shared queue, admits jobs whose tags are free onto
a bounded execution pool, records each outcome in the store, and drains
in-flight work before tearing down.
"""

import asyncio
import os
import time
from collections.abc import Iterable

import structlog

from tagdispatch.config import get_settings
from tagdispatch.constants import (
    DEFAULT_ERROR_MESSAGE,
    SPAN_CLAIM_JOB,
    SPAN_EXECUTE_JOB,
    ClaimStatus,
    JobStatus,
    RejectionPolicy,
    WorkerState,
)
from tagdispatch.db.store import JobStore
from tagdispatch.errors import PoolClosedError, PoolSaturatedError
from tagdispatch.observability.logging import bind_context, get_logger, job_context, setup_logging
from tagdispatch.observability.metrics import MetricsCollector, get_metrics
from tagdispatch.observability.tracing import get_tracer, instrument_sqlalchemy, setup_tracing
from tagdispatch.types.job import Job, JobContext, JobResult
from tagdispatch.worker.control import WorkerControl
from tagdispatch.worker.handlers import JobHandler, execute_job
from tagdispatch.worker.pool import ExecutionPool


class Worker:
    """
    Tag-aware job worker.

    Features:
    - Atomic claim of the queue head, refused while any of its tags is active
    - Bounded concurrency through an ExecutionPool of `max_threads` slots
    - Optional tag allow-list with a configurable rejection policy
    - Pause/resume and graceful, time-bounded shutdown via WorkerControl
    - Fail-stop: an error in the poll loop shuts the worker down
    """

    def __init__(
        self,
        store: JobStore,
        worker_id: str | None = None,
        max_threads: int | None = None,
        poll_interval: float | None = None,
        allowed_tags: Iterable[str] | None = None,
        rejection_policy: RejectionPolicy | str | None = None,
        handler: JobHandler | None = None,
        control: WorkerControl | None = None,
        drain_timeout: float | None = None,
        pool_shutdown_timeout: float | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the worker.

        Unset arguments fall back to the application settings.

        Args:
            store: The shared job store. Closed by shutdown().
            worker_id: Unique worker identifier. Defaults to hostname + PID.
            max_threads: Maximum number of jobs executing at once.
            poll_interval: Seconds between poll cycles.
            allowed_tags: Tag allow-list. None or empty accepts every job.
            rejection_policy: What to do with a queue head outside the allow-list.
            handler: Job body. Defaults to the handler registry.
            control: Pause/resume/shutdown state object.
            drain_timeout: Seconds to wait for in-flight jobs on shutdown.
            pool_shutdown_timeout: Seconds to wait for the pool to terminate.
            logger: Logger to report through.
            metrics: Metrics collector.
        """
        settings = get_settings()

        self.store = store
        self.worker_id = worker_id or settings.worker_id or f"{os.uname().nodename}-{os.getpid()}"
        self.max_threads = max_threads or settings.max_threads
        self.poll_interval = settings.poll_interval if poll_interval is None else poll_interval
        if allowed_tags is None:
            self.allowed_tags = settings.allowed_tags
        else:
            self.allowed_tags = frozenset(allowed_tags) or None
        self.rejection_policy = RejectionPolicy(rejection_policy or settings.rejection_policy)
        self.handler = handler or execute_job
        self.control = control or WorkerControl()
        self.drain_timeout = (
            settings.drain_timeout_seconds if drain_timeout is None else drain_timeout
        )
        self.pool_shutdown_timeout = (
            settings.pool_shutdown_timeout_seconds
            if pool_shutdown_timeout is None
            else pool_shutdown_timeout
        )

        self._logger = (logger or get_logger(__name__)).bind(worker_id=self.worker_id)
        self._metrics = metrics or get_metrics()
        self._pool = ExecutionPool(self.max_threads, logger=self._logger)
        self._in_flight: dict[str, asyncio.Task] = {}
        self._shutdown_lock = asyncio.Lock()

    @property
    def state(self) -> WorkerState:
        return self.control.state

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    async def start(self) -> None:
        """Run the poll loop until shutdown is requested, then shut down."""
        self._logger.info(
            "Worker starting",
            max_threads=self.max_threads,
            poll_interval=self.poll_interval,
            allowed_tags=sorted(self.allowed_tags) if self.allowed_tags else None,
            rejection_policy=str(self.rejection_policy),
        )

        try:
            while not self.control.shutdown_requested:
                await self._poll_once()
                await self.control.wait(self.poll_interval)
                self._reap()
        except Exception:
            self._logger.exception("Error in worker loop, shutting down")
        finally:
            await self.shutdown()

    async def _poll_once(self) -> None:
        if not self.control.is_running or len(self._in_flight) >= self.max_threads:
            return

        job = await self.find_available_job()
        if job is not None:
            await self._dispatch(job)

    def _is_authorized(self, job: Job) -> bool:
        if self.allowed_tags is None:
            return True
        return bool(job.tag_set & self.allowed_tags)

    async def _reject(self, job: Job, passed_over: set[str]) -> None:
        self._metrics.record_job_rejected(self.worker_id, str(self.rejection_policy))

        if self.rejection_policy == RejectionPolicy.DISCARD:
            await self.store.remove(job.id)
            self._logger.warning("Discarded job outside tag allow-list", job_id=job.id, tags=job.tags)
        elif self.rejection_policy == RejectionPolicy.REQUEUE:
            await self.store.requeue(job.id)
            passed_over.add(job.id)
            self._logger.info("Requeued job outside tag allow-list", job_id=job.id, tags=job.tags)
        else:
            passed_over.add(job.id)
            self._logger.debug("Skipped job outside tag allow-list", job_id=job.id, tags=job.tags)

    async def find_available_job(self) -> Job | None:
        """
        Claim the first admissible job at the head of the queue.

        Jobs outside the allow-list are handled by the rejection policy
        and the search continues. A head job whose tags are active stops
        the search; jobs behind it are not considered this cycle.

        Returns:
            The claimed job, already processing, or None.
        """
        passed_over: set[str] = set()

        with get_tracer().start_as_current_span(SPAN_CLAIM_JOB) as span:
            span.set_attribute("worker_id", self.worker_id)

            while self.control.is_running:
                job = await self.store.peek(exclude=passed_over)
                if job is None:
                    return None

                if not self._is_authorized(job):
                    await self._reject(job, passed_over)
                    continue

                result = await self.store.claim(job.id, self.worker_id)

                if result.status == ClaimStatus.CONFLICT:
                    self._logger.debug(
                        "Queue head blocked by active tags",
                        job_id=job.id,
                        conflicting_tags=sorted(result.conflicting_tags),
                    )
                    return None

                if result.status == ClaimStatus.GONE:
                    continue

                span.set_attribute("job_id", job.id)
                self._metrics.record_job_claimed(self.worker_id)
                return result.job

        return None

    async def _dispatch(self, job: Job) -> None:
        try:
            task = self._pool.submit(self._run_job, job)
        except (PoolSaturatedError, PoolClosedError) as e:
            self._logger.error("Could not dispatch claimed job", job_id=job.id, error=str(e))
            await self.store.mark_failed(job, f"Worker could not dispatch job: {e}")
            return

        self._in_flight[job.id] = task
        self._logger.info("Dispatched job", job_id=job.id, in_flight=len(self._in_flight))

    async def _run_job(self, job: Job) -> None:
        """
        Execute a single claimed job and record its outcome.

        Never raises: handler failures fail the job, and a failure to
        record the outcome is logged.
        """
        start_time = time.monotonic()
        log = self._logger.bind(job_id=job.id, tags=job.tags)

        try:
            context = JobContext.for_job(job, self.worker_id)
            log.info("Executing job", job_type=context.job_type)

            try:
                with (
                    job_context(job.id, job.tags),
                    get_tracer().start_as_current_span(SPAN_EXECUTE_JOB) as span,
                ):
                    span.set_attribute("job_id", job.id)
                    span.set_attribute("worker_id", self.worker_id)
                    span.set_attribute("tags", list(job.tags))

                    result = await self.handler(context)
            except Exception as e:
                log.exception("Exception executing job")
                result = JobResult(success=False, error=str(e) or type(e).__name__)

            duration = time.monotonic() - start_time
            result.duration_ms = duration * 1000
            status = JobStatus.COMPLETED if result.success else JobStatus.FAILED

            try:
                if result.success:
                    await self.store.mark_completed(job)
                    log.info("Job completed successfully", duration=f"{duration:.2f}s")
                else:
                    await self.store.mark_failed(job, result.error or DEFAULT_ERROR_MESSAGE)
                    log.warning("Job failed", error=result.error, duration=f"{duration:.2f}s")
            except Exception:
                log.exception("Failed to record job outcome", status=str(status))

            self._metrics.record_job_completed(str(status), duration)

        finally:
            self._in_flight.pop(job.id, None)

    def _reap(self) -> None:
        for job_id, task in list(self._in_flight.items()):
            if task.done():
                self._in_flight.pop(job_id, None)

    async def _drain(self) -> None:
        pending = [task for task in self._in_flight.values() if not task.done()]
        if not pending:
            return

        self._logger.info("Waiting for in-flight jobs", count=len(pending))
        _, still_running = await asyncio.wait(pending, timeout=self.drain_timeout)
        if still_running:
            self._logger.warning(
                f"Timeout waiting for jobs after {self.drain_timeout}s",
                remaining=len(still_running),
            )

    async def shutdown(self) -> None:
        """
        Stop admitting, drain in-flight jobs, stop the pool, close the store.

        Idempotent and never raises. Jobs still running after the drain
        timeout are left to finish on their own.
        """
        async with self._shutdown_lock:
            if self.control.state == WorkerState.STOPPED:
                return

            self.control.request_shutdown()
            self._logger.info("Worker shutting down", in_flight=len(self._in_flight))

            try:
                await self._drain()
                await self._pool.shutdown(self.pool_shutdown_timeout)
                await self.store.close()
            except Exception:
                self._logger.exception("Error during worker shutdown")
            finally:
                self.control.mark_stopped()

            self._logger.info("Worker stopped")


async def run_async() -> None:
    """Run the worker asynchronously."""
    setup_logging()
    setup_tracing()

    settings = get_settings()
    store = JobStore.from_url(settings.database_url)
    instrument_sqlalchemy(store.engine)

    control = WorkerControl()
    control.install_signal_handlers(asyncio.get_running_loop())

    worker = Worker(store, control=control)
    bind_context(worker_id=worker.worker_id)
    await worker.start()


def run() -> None:
    """Run the worker."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
