"""
Active tag reconciler.

Workers reconcile the active tag set every time a job finishes. A worker
that dies mid-job never gets there, and its tags would stay reserved, so
this service repeats the reconciliation periodically and keeps the store
gauges current while it is at it.
"""

import asyncio
import signal

import structlog

from tagdispatch.config import get_settings
from tagdispatch.constants import SPAN_RECONCILE_TAGS
from tagdispatch.db.store import JobStore
from tagdispatch.observability.logging import get_logger, setup_logging
from tagdispatch.observability.metrics import MetricsCollector, get_metrics
from tagdispatch.observability.tracing import get_tracer, instrument_sqlalchemy, setup_tracing


class TagReconciler:
    """
    Periodic active tag reconciliation.

    Runs periodically to:
    1. Drop active tags that no processing job holds
    2. Update queue depth, processing and active tag gauges
    """

    def __init__(
        self,
        store: JobStore,
        interval_seconds: float | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the reconciler.

        Args:
            store: The shared job store.
            interval_seconds: Seconds between reconciliation runs.
            logger: Logger to report through.
            metrics: Metrics collector.
        """
        settings = get_settings()
        self.store = store
        self.interval = interval_seconds or settings.reconciler_interval_seconds
        self._logger = logger or get_logger(__name__)
        self._metrics = metrics or get_metrics()
        self._stopping = asyncio.Event()

    async def start(self) -> None:
        """Run reconciliation every `interval` seconds until stopped."""
        self._logger.info("Reconciler starting", interval=self.interval)
        self._stopping.clear()

        while not self._stopping.is_set():
            try:
                await self.run_once()
            except Exception:
                self._logger.exception("Error in reconciler loop")

            try:
                await asyncio.wait_for(self._stopping.wait(), self.interval)
            except asyncio.TimeoutError:
                continue

        self._logger.info("Reconciler stopped")

    def stop(self) -> None:
        """Stop the reconciler after the current run."""
        self._logger.info("Reconciler stopping")
        self._stopping.set()

    async def run_once(self) -> list[str]:
        """
        Run one reconciliation (for testing or cron-style execution).

        Returns:
            The stale tags that were released.
        """
        with get_tracer().start_as_current_span(SPAN_RECONCILE_TAGS) as span:
            released = await self.store.reconcile_active_tags()
            span.set_attribute("released", len(released))

        if released:
            self._metrics.record_tags_reconciled(len(released))
            self._logger.info("Released stale tags", tags=released)

        self._metrics.update_store_gauges(
            queue_size=await self.store.queue_size(),
            processing=len(await self.store.processing_jobs()),
            active_tags=len(await self.store.active_tags()),
        )
        return released


async def run_async() -> None:
    """Run the reconciler asynchronously."""
    setup_logging()
    setup_tracing()

    store = JobStore.from_url(get_settings().database_url)
    instrument_sqlalchemy(store.engine)
    reconciler = TagReconciler(store)

    # Handle shutdown signals
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, reconciler.stop)

    try:
        await reconciler.start()
    finally:
        await store.close()


def run() -> None:
    """Run the reconciler."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
