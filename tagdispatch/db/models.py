"""
SQLAlchemy database models.

The shared store is four co-located tables over the same job records:
the pending queue, the job records themselves, the processing set and
the active tag set.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from tagdispatch.constants import JobStatus
from tagdispatch.types.job import Job

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class JobRecord(Base):
    """
    Job record, the source of truth for status and timestamps.

    Records are never deleted; `seq` preserves enqueue order for listings.
    """

    __tablename__ = "jobs"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), nullable=False, unique=True, index=True)

    tags: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    status: Mapped[JobStatus] = mapped_column(
        Enum(JobStatus, name="job_status", create_constraint=True, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=JobStatus.PENDING,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    @classmethod
    def from_entity(cls, job: Job) -> "JobRecord":
        return cls(
            id=job.id,
            tags=list(job.tags),
            data=job.data,
            status=job.status,
            created_at=job.created_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
            error=job.error,
        )

    def to_entity(self) -> Job:
        return Job(
            id=self.id,
            tags=self.tags,
            data=self.data,
            status=self.status,
            created_at=self.created_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
            error=self.error,
        )

    def apply(self, job: Job) -> None:
        """Copy the mutable lifecycle fields from an entity."""
        self.status = job.status
        self.started_at = job.started_at
        self.completed_at = job.completed_at
        self.error = job.error

    def __repr__(self) -> str:
        return f"JobRecord(id={self.id}, status={self.status}, tags={self.tags})"


class QueueEntry(Base):
    """A job id waiting for admission. Lowest position is the head."""

    __tablename__ = "job_queue"

    position: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("jobs.id"),
        nullable=False,
        unique=True,
    )


class ProcessingEntry(Base):
    """A job currently executing on some worker."""

    __tablename__ = "jobs_processing"

    job_id: Mapped[str] = mapped_column(String(36), ForeignKey("jobs.id"), primary_key=True)
    worker_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    claimed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


class ActiveTag(Base):
    """
    A tag reserved by processing jobs.

    The primary key makes a reservation exclusive: two claims racing for
    the same tag cannot both insert it.
    """

    __tablename__ = "active_tags"

    tag: Mapped[str] = mapped_column(String(255), primary_key=True)
    reserved_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
