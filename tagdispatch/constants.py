"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class JobStatus(StrEnum):
    """
    Job lifecycle states.

    State transitions (forward only, terminal states are final):
    - PENDING -> PROCESSING (claimed by a worker)
    - PROCESSING -> COMPLETED (success)
    - PROCESSING -> FAILED (handler error)
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class WorkerState(StrEnum):
    """
    Worker admission states.

    - RUNNING: admitting new jobs
    - PAUSED: not admitting, in-flight jobs keep running
    - DRAINING: shutting down, waiting for in-flight jobs
    - STOPPED: loop exited and resources released
    """

    RUNNING = "running"
    PAUSED = "paused"
    DRAINING = "draining"
    STOPPED = "stopped"


class RejectionPolicy(StrEnum):
    """What a worker does with a queue head outside its tag allow-list."""

    DISCARD = "discard"
    REQUEUE = "requeue"
    SKIP = "skip"


class ClaimStatus(StrEnum):
    """Outcome of an atomic claim attempt."""

    CLAIMED = "claimed"
    CONFLICT = "conflict"
    GONE = "gone"


# Default values
DEFAULT_MAX_THREADS = 2
DEFAULT_POLL_INTERVAL_SECONDS = 1.0
DEFAULT_DRAIN_TIMEOUT_SECONDS = 60.0
DEFAULT_POOL_SHUTDOWN_TIMEOUT_SECONDS = 30.0
DEFAULT_REJECTION_POLICY = RejectionPolicy.DISCARD
DEFAULT_JOB_TYPE = "sleep"
DEFAULT_ERROR_MESSAGE = "Unknown error"

# Metrics names
METRIC_QUEUE_DEPTH = "tagdispatch_queue_depth"
METRIC_PROCESSING = "tagdispatch_processing_jobs"
METRIC_ACTIVE_TAGS = "tagdispatch_active_tags"
METRIC_JOBS_ENQUEUED = "tagdispatch_jobs_enqueued_total"
METRIC_JOBS_CLAIMED = "tagdispatch_jobs_claimed_total"
METRIC_JOBS_REJECTED = "tagdispatch_jobs_rejected_total"
METRIC_JOBS_COMPLETED = "tagdispatch_jobs_completed_total"
METRIC_JOB_DURATION = "tagdispatch_job_duration_seconds"
METRIC_TAGS_RECONCILED = "tagdispatch_tags_reconciled_total"

# Trace span names
SPAN_CLAIM_JOB = "claim_job"
SPAN_EXECUTE_JOB = "execute_job"
SPAN_RECONCILE_TAGS = "reconcile_tags"
