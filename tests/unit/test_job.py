"""
Unit tests for the Job entity and its status transitions.
"""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from tagdispatch.constants import JobStatus
from tagdispatch.errors import InvalidTransitionError
from tagdispatch.types.job import Job, JobContext, can_transition, transition


class TestJob:
    """Tests for Job construction and serialization."""

    def test_new_job_defaults(self):
        """A new job is pending with no lifecycle timestamps."""
        job = Job(tags=["hotel", "flight"])

        assert job.status == JobStatus.PENDING
        assert job.started_at is None
        assert job.completed_at is None
        assert job.error is None
        assert job.data == {}
        assert job.created_at.tzinfo is not None

    def test_ids_are_unique(self):
        assert Job().id != Job().id

    def test_single_tag_string_is_coerced(self):
        assert Job(tags="hotel").tags == ["hotel"]

    def test_duplicate_tags_kept_but_compared_as_set(self):
        job = Job(tags=["hotel", "hotel", "flight"])

        assert job.tags == ["hotel", "hotel", "flight"]
        assert job.tag_set == frozenset({"hotel", "flight"})
        assert job.conflicts_with({"hotel", "car"}) == frozenset({"hotel"})

    def test_id_is_immutable(self):
        job = Job()

        with pytest.raises(ValidationError):
            job.id = "other"

    def test_json_round_trip(self):
        """Serialization preserves every field."""
        job = Job(tags=["payment"], data={"amount": 100, "nested": {"a": [1, 2]}})
        transition(job, JobStatus.PROCESSING)
        transition(job, JobStatus.FAILED, "card declined")

        restored = Job.from_json(job.to_json())

        assert restored == job
        assert restored.created_at == job.created_at
        assert restored.started_at == job.started_at
        assert restored.completed_at == job.completed_at

    def test_to_dict_is_json_compatible(self):
        job = Job(tags=["a"])
        data = job.to_dict()

        assert data["status"] == "pending"
        assert isinstance(data["created_at"], str)
        assert data["started_at"] is None

    def test_naive_datetimes_are_treated_as_utc(self):
        job = Job(created_at=datetime(2024, 1, 1, 12, 0, 0))
        assert job.created_at.tzinfo == UTC

    def test_job_type_defaults_to_sleep(self):
        assert Job().job_type == "sleep"
        assert Job(data={"job_type": "echo"}).job_type == "echo"


class TestTransitions:
    """Tests for the status machine."""

    def test_allowed_transitions(self):
        assert can_transition(JobStatus.PENDING, JobStatus.PROCESSING)
        assert can_transition(JobStatus.PROCESSING, JobStatus.COMPLETED)
        assert can_transition(JobStatus.PROCESSING, JobStatus.FAILED)

    @pytest.mark.parametrize(
        "current,target",
        [
            (JobStatus.PENDING, JobStatus.COMPLETED),
            (JobStatus.PENDING, JobStatus.FAILED),
            (JobStatus.PROCESSING, JobStatus.PENDING),
            (JobStatus.COMPLETED, JobStatus.PROCESSING),
            (JobStatus.COMPLETED, JobStatus.FAILED),
            (JobStatus.FAILED, JobStatus.COMPLETED),
            (JobStatus.FAILED, JobStatus.PENDING),
        ],
    )
    def test_disallowed_transitions(self, current: JobStatus, target: JobStatus):
        assert not can_transition(current, target)

    def test_processing_sets_started_at(self):
        job = Job()
        at = datetime(2024, 1, 1, tzinfo=UTC)

        transition(job, JobStatus.PROCESSING, at=at)

        assert job.status == JobStatus.PROCESSING
        assert job.started_at == at
        assert job.completed_at is None

    def test_completion_sets_completed_at(self):
        job = transition(Job(), JobStatus.PROCESSING)
        transition(job, JobStatus.COMPLETED)

        assert job.completed_at is not None
        assert job.completed_at >= job.started_at
        assert job.error is None

    def test_failure_records_error(self):
        job = transition(Job(), JobStatus.PROCESSING)
        transition(job, JobStatus.FAILED, "boom")

        assert job.error == "boom"

    def test_failure_without_message_uses_default(self):
        job = transition(Job(), JobStatus.PROCESSING)
        transition(job, JobStatus.FAILED)

        assert job.error == "Unknown error"

    def test_status_is_monotonic(self):
        """Terminal jobs cannot be moved again; the job is left untouched."""
        job = transition(Job(), JobStatus.PROCESSING)
        transition(job, JobStatus.COMPLETED)
        completed_at = job.completed_at

        with pytest.raises(InvalidTransitionError):
            transition(job, JobStatus.PROCESSING)
        with pytest.raises(InvalidTransitionError):
            transition(job, JobStatus.FAILED, "late")

        assert job.status == JobStatus.COMPLETED
        assert job.completed_at == completed_at
        assert job.error is None

    def test_is_terminal(self):
        job = Job()
        assert not job.is_terminal
        transition(job, JobStatus.PROCESSING)
        assert not job.is_terminal
        transition(job, JobStatus.COMPLETED)
        assert job.is_terminal


class TestJobContext:
    def test_for_job(self):
        job = transition(Job(tags=["a"], data={"job_type": "echo"}), JobStatus.PROCESSING)

        context = JobContext.for_job(job, "worker-1")

        assert context.job_id == job.id
        assert context.worker_id == "worker-1"
        assert context.tags == ["a"]
        assert context.started_at == job.started_at
        assert context.job_type == "echo"
