"""
Prometheus metrics collection.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from tagdispatch.constants import (
    METRIC_ACTIVE_TAGS,
    METRIC_JOB_DURATION,
    METRIC_JOBS_CLAIMED,
    METRIC_JOBS_COMPLETED,
    METRIC_JOBS_ENQUEUED,
    METRIC_JOBS_REJECTED,
    METRIC_PROCESSING,
    METRIC_QUEUE_DEPTH,
    METRIC_TAGS_RECONCILED,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the dispatcher.

    Collects metrics for:
    - Queue depth, processing count and active tag count
    - Job submissions, claims, allow-list rejections and completions
    - Job execution duration
    - Tags released by reconciliation
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.queue_depth = Gauge(
            METRIC_QUEUE_DEPTH,
            "Number of jobs waiting in the queue",
            registry=self._registry,
        )

        self.processing = Gauge(
            METRIC_PROCESSING,
            "Number of jobs currently processing",
            registry=self._registry,
        )

        self.active_tags = Gauge(
            METRIC_ACTIVE_TAGS,
            "Number of tags reserved by processing jobs",
            registry=self._registry,
        )

        self.jobs_enqueued = Counter(
            METRIC_JOBS_ENQUEUED,
            "Total number of jobs enqueued",
            registry=self._registry,
        )

        self.jobs_claimed = Counter(
            METRIC_JOBS_CLAIMED,
            "Total number of jobs claimed by workers",
            ["worker_id"],
            registry=self._registry,
        )

        self.jobs_rejected = Counter(
            METRIC_JOBS_REJECTED,
            "Total number of queue heads outside a worker's allow-list",
            ["worker_id", "policy"],
            registry=self._registry,
        )

        self.jobs_completed = Counter(
            METRIC_JOBS_COMPLETED,
            "Total number of jobs finished",
            ["status"],
            registry=self._registry,
        )

        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Job execution duration in seconds",
            ["status"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self._registry,
        )

        self.tags_reconciled = Counter(
            METRIC_TAGS_RECONCILED,
            "Total number of stale active tags released by reconciliation",
            registry=self._registry,
        )

    def record_job_enqueued(self) -> None:
        """Record a job submission."""
        self.jobs_enqueued.inc()

    def record_job_claimed(self, worker_id: str) -> None:
        self.jobs_claimed.labels(worker_id=worker_id).inc()

    def record_job_rejected(self, worker_id: str, policy: str) -> None:
        self.jobs_rejected.labels(worker_id=worker_id, policy=policy).inc()

    def record_job_completed(self, status: str, duration_seconds: float) -> None:
        """Record a job completion."""
        self.jobs_completed.labels(status=status).inc()
        self.job_duration.labels(status=status).observe(duration_seconds)

    def record_tags_reconciled(self, count: int) -> None:
        self.tags_reconciled.inc(count)

    def update_store_gauges(self, queue_size: int, processing: int, active_tags: int) -> None:
        """Update the queue depth, processing and active tag gauges."""
        self.queue_depth.set(queue_size)
        self.processing.set(processing)
        self.active_tags.set(active_tags)

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics response."""
        return CONTENT_TYPE_LATEST


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
