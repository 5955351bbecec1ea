"""
Job entity and related type definitions.

The Job is the record every other component exchanges. Its status moves
through a fixed transition table; `transition` is the only place that
changes status and stamps timestamps.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from tagdispatch.constants import (
    DEFAULT_ERROR_MESSAGE,
    DEFAULT_JOB_TYPE,
    ClaimStatus,
    JobStatus,
)
from tagdispatch.errors import InvalidTransitionError


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}

TERMINAL_STATUSES = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)


class Job(BaseModel):
    """
    A unit of work carrying resource tags.

    `id` and `created_at` are fixed at construction. `tags` keeps the
    producer's order (duplicates included); conflict checks use `tag_set`.
    `data` is passed through to the handler untouched.
    """

    id: str = Field(default_factory=lambda: str(uuid4()), frozen=True)
    tags: list[str] = Field(default_factory=list)
    status: JobStatus = JobStatus.PENDING
    created_at: datetime = Field(default_factory=utc_now, frozen=True)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("data", mode="before")
    @classmethod
    def _coerce_data(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("created_at", "started_at", "completed_at")
    @classmethod
    def _ensure_utc(cls, value: datetime | None) -> datetime | None:
        # Some backends (SQLite) hand back naive datetimes
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @property
    def tag_set(self) -> frozenset[str]:
        """Tags as a set, for overlap checks."""
        return frozenset(self.tags)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def job_type(self) -> str:
        """Handler name requested by the producer."""
        return str(self.data.get("job_type", DEFAULT_JOB_TYPE))

    def conflicts_with(self, tags: set[str] | frozenset[str]) -> frozenset[str]:
        """Return the tags this job shares with `tags`."""
        return self.tag_set & frozenset(tags)

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible representation."""
        return self.model_dump(mode="json")

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw: str | bytes) -> "Job":
        return cls.model_validate_json(raw)


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    """Check a status change against the transition table."""
    return target in ALLOWED_TRANSITIONS[current]


def transition(
    job: Job,
    target: JobStatus,
    error: str | None = None,
    *,
    at: datetime | None = None,
) -> Job:
    """
    Move a job to a new status, validating and timestamping the change.

    Args:
        job: The job to update in place.
        target: The status to move to.
        error: Failure message, recorded only when moving to FAILED.
        at: Timestamp to use instead of the current time.

    Returns:
        The same job, updated.

    Raises:
        InvalidTransitionError: If the table does not allow the change.
    """
    if not can_transition(job.status, target):
        raise InvalidTransitionError(
            f"Job {job.id} cannot move from {job.status} to {target}"
        )

    now = at or utc_now()
    job.status = target

    if target == JobStatus.PROCESSING:
        job.started_at = now
    else:
        job.completed_at = now

    if target == JobStatus.FAILED:
        job.error = error or DEFAULT_ERROR_MESSAGE

    return job


class JobResult(BaseModel):
    """
    Result of job execution.
    Returned by job handlers after processing.
    """

    success: bool
    output: dict[str, Any] | None = None
    error: str | None = None
    duration_ms: float | None = None


@dataclass
class JobContext:
    """
    Context passed to job handlers during execution.
    Contains job metadata and the opaque payload.
    """

    job_id: str
    worker_id: str
    tags: list[str]
    data: dict[str, Any]
    started_at: datetime | None = None

    @classmethod
    def for_job(cls, job: Job, worker_id: str) -> "JobContext":
        return cls(
            job_id=job.id,
            worker_id=worker_id,
            tags=list(job.tags),
            data=job.data,
            started_at=job.started_at,
        )

    @property
    def job_type(self) -> str:
        return str(self.data.get("job_type", DEFAULT_JOB_TYPE))


@dataclass
class ClaimResult:
    """
    Outcome of JobStore.claim.

    `job` is the claimed job for CLAIMED, the blocked job for CONFLICT
    (when known) and None for GONE.
    """

    status: ClaimStatus
    job: Job | None = None
    conflicting_tags: frozenset[str] = field(default_factory=frozenset)

    @property
    def claimed(self) -> bool:
        return self.status == ClaimStatus.CLAIMED
