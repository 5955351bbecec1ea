"""
Shared job store.

Implements the queue, the job records, the processing set and the active
tag set over one SQL database. Every public operation runs in its own
transaction, so each call is atomic on its own; `claim` folds the whole
admission decision for one job into a single transaction.
"""

from collections.abc import AsyncIterator, Collection, Iterable
from contextlib import asynccontextmanager
from typing import Any

import structlog
from sqlalchemy import delete, func, insert, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from tagdispatch.constants import ClaimStatus, JobStatus
from tagdispatch.db.connection import create_engine, create_session_factory
from tagdispatch.db.models import ActiveTag, Base, JobRecord, ProcessingEntry, QueueEntry
from tagdispatch.errors import (
    JobNotFoundError,
    JobValidationError,
    StoreConflictError,
    StoreError,
)
from tagdispatch.observability.logging import get_logger
from tagdispatch.types.job import ClaimResult, Job, transition


class JobStore:
    """
    Concurrency-safe job store shared by producers and workers.

    Three indexes sit over the job records so that "what is next",
    "is this job claimed" and "is this tag busy" are each a single
    indexed lookup:
    - job_queue: pending ids in FIFO order
    - jobs_processing: ids currently executing
    - active_tags: tags reserved by executing jobs

    At quiescence active_tags equals the union of the tags of the
    processing jobs. It is reconciled after each completion or failure,
    so it may briefly hold extra tags, never fewer.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        owns_engine: bool = True,
        logger: structlog.stdlib.BoundLogger | None = None,
    ):
        """
        Initialize the store over an engine.

        Args:
            engine: The async engine to run transactions on.
            owns_engine: Dispose the engine on close().
            logger: Logger to report through. Defaults to this module's.
        """
        self._engine = engine
        self._owns_engine = owns_engine
        self._session_factory = create_session_factory(engine)
        self._closed = False
        self._logger = logger or get_logger(__name__)

    @classmethod
    def from_url(cls, database_url: str | None = None, **kwargs: Any) -> "JobStore":
        """Create a store with its own engine for `database_url`."""
        return cls(create_engine(database_url), owns_engine=True, **kwargs)

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @property
    def closed(self) -> bool:
        return self._closed

    async def create_schema(self) -> None:
        """Create the store tables if they do not exist."""
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as exc:
            raise StoreError(f"create_schema failed due to {type(exc).__name__}: {exc}") from exc

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        if self._closed:
            raise StoreError(f"{operation} failed: store is closed")

        try:
            async with self._session_factory() as session, session.begin():
                yield session
        except IntegrityError as exc:
            raise StoreConflictError(f"{operation} conflicted: {exc.orig}") from exc
        except SQLAlchemyError as exc:
            raise StoreError(f"{operation} failed due to {type(exc).__name__}: {exc}") from exc

    def _insert_ignoring_duplicates(self, model: type[Base]) -> Any:
        dialect = self._engine.dialect.name
        if dialect == "postgresql":
            return postgresql.insert(model).on_conflict_do_nothing()
        if dialect == "sqlite":
            return sqlite.insert(model).on_conflict_do_nothing()
        return insert(model)

    async def _get_record(
        self,
        session: AsyncSession,
        job_id: str,
        for_update: bool = False,
    ) -> JobRecord | None:
        stmt = select(JobRecord).where(JobRecord.id == job_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def _held_tags(self, session: AsyncSession, tags: Iterable[str]) -> frozenset[str]:
        tags = list(tags)
        if not tags:
            return frozenset()
        result = await session.execute(select(ActiveTag.tag).where(ActiveTag.tag.in_(tags)))
        return frozenset(result.scalars().all())

    async def _reconcile(self, session: AsyncSession) -> list[str]:
        result = await session.execute(
            select(JobRecord.tags).join(ProcessingEntry, ProcessingEntry.job_id == JobRecord.id)
        )
        held: set[str] = set()
        for tags in result.scalars():
            held.update(tags or ())

        stale_stmt = select(ActiveTag.tag)
        if held:
            stale_stmt = stale_stmt.where(ActiveTag.tag.not_in(sorted(held)))
        stale = sorted((await session.execute(stale_stmt)).scalars().all())

        if stale:
            await session.execute(delete(ActiveTag).where(ActiveTag.tag.in_(stale)))
        return stale

    @staticmethod
    def _sync(job: Job, persisted: Job) -> Job:
        job.status = persisted.status
        job.started_at = persisted.started_at
        job.completed_at = persisted.completed_at
        job.error = persisted.error
        return job

    # ------------------------------------------------------------------
    # Queue operations
    # ------------------------------------------------------------------

    async def enqueue(self, job: Job) -> Job:
        """
        Append a job to the queue and write its record.

        Args:
            job: A pending Job.

        Returns:
            The same job.

        Raises:
            JobValidationError: If `job` is not a pending Job or its id
                is already known.
        """
        if not isinstance(job, Job):
            raise JobValidationError("Job must be a Job instance")
        if job.status != JobStatus.PENDING:
            raise JobValidationError(f"Only pending jobs can be enqueued, got {job.status}")

        try:
            async with self._transaction("enqueue") as session:
                session.add(JobRecord.from_entity(job))
                await session.flush()
                session.add(QueueEntry(job_id=job.id))
        except StoreConflictError as exc:
            raise JobValidationError(f"Job {job.id} is already enqueued") from exc

        self._logger.info("Job enqueued", job_id=job.id, tags=job.tags)
        return job

    async def peek(self, exclude: Collection[str] = ()) -> Job | None:
        """
        Return the job at the head of the queue without removing it.

        Args:
            exclude: Job ids to look past, as if they were not queued.

        Returns:
            The head job, or None if the queue is empty.
        """
        async with self._transaction("peek") as session:
            stmt = (
                select(JobRecord)
                .join(QueueEntry, QueueEntry.job_id == JobRecord.id)
                .order_by(QueueEntry.position)
                .limit(1)
            )
            if exclude:
                stmt = stmt.where(QueueEntry.job_id.not_in(list(exclude)))
            record = (await session.execute(stmt)).scalar_one_or_none()
            return record.to_entity() if record else None

    async def dequeue(self) -> Job | None:
        """
        Atomically remove and return the head of the queue.

        Deletes the head entry by position and only counts it as taken
        when exactly one row went away, retrying on a lost race.

        Returns:
            The removed job, or None if the queue is empty.
        """
        while True:
            async with self._transaction("dequeue") as session:
                head = (
                    await session.execute(
                        select(QueueEntry).order_by(QueueEntry.position).limit(1)
                    )
                ).scalar_one_or_none()
                if head is None:
                    return None

                result = await session.execute(
                    delete(QueueEntry).where(QueueEntry.position == head.position)
                )
                if result.rowcount == 1:
                    record = await self._get_record(session, head.job_id)
                    return record.to_entity() if record else None

            self._logger.debug("Lost dequeue race, retrying", job_id=head.job_id)

    async def remove(self, job_id: str) -> bool:
        """Remove a job from the queue by id. Its record is kept."""
        async with self._transaction("remove") as session:
            result = await session.execute(delete(QueueEntry).where(QueueEntry.job_id == job_id))
            removed = result.rowcount == 1

        if removed:
            self._logger.info("Job removed from queue", job_id=job_id)
        return removed

    async def requeue(self, job_id: str) -> bool:
        """Move a queued job to the tail of the queue."""
        async with self._transaction("requeue") as session:
            result = await session.execute(delete(QueueEntry).where(QueueEntry.job_id == job_id))
            if result.rowcount != 1:
                return False
            session.add(QueueEntry(job_id=job_id))

        self._logger.info("Job moved to queue tail", job_id=job_id)
        return True

    async def claim(self, job_id: str, worker_id: str | None = None) -> ClaimResult:
        """
        Claim a queued job if none of its tags is active.

        In one transaction: the queue entry is deleted (exactly one row
        must go), the job's tags are inserted into active_tags, the job
        joins the processing set and its record moves to PROCESSING.

        Args:
            job_id: The queued job to claim.
            worker_id: Recorded on the processing entry.

        Returns:
            ClaimResult: CLAIMED with the updated job, CONFLICT if a tag
            is held (nothing changes, the job keeps its place), or GONE if
            the job is no longer queued.
        """
        try:
            async with self._transaction("claim") as session:
                entry = (
                    await session.execute(select(QueueEntry).where(QueueEntry.job_id == job_id))
                ).scalar_one_or_none()
                if entry is None:
                    return ClaimResult(ClaimStatus.GONE)

                record = await self._get_record(session, job_id, for_update=True)
                if record is None:
                    return ClaimResult(ClaimStatus.GONE)
                job = record.to_entity()

                held = await self._held_tags(session, job.tag_set)
                if held:
                    return ClaimResult(ClaimStatus.CONFLICT, job, held)

                result = await session.execute(
                    delete(QueueEntry).where(QueueEntry.position == entry.position)
                )
                if result.rowcount != 1:
                    return ClaimResult(ClaimStatus.GONE)

                # Plain insert: a concurrent reservation of the same tag
                # violates the primary key and aborts this claim.
                if job.tag_set:
                    await session.execute(
                        insert(ActiveTag), [{"tag": tag} for tag in sorted(job.tag_set)]
                    )
                session.add(ProcessingEntry(job_id=job.id, worker_id=worker_id))

                transition(job, JobStatus.PROCESSING)
                record.apply(job)
        except StoreConflictError:
            self._logger.debug("Claim lost a tag reservation race", job_id=job_id)
            return ClaimResult(ClaimStatus.CONFLICT)

        self._logger.info("Job claimed", job_id=job.id, worker_id=worker_id, tags=job.tags)
        return ClaimResult(ClaimStatus.CLAIMED, job)

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    async def mark_processing(self, job: Job, worker_id: str | None = None) -> Job:
        """
        Mark a job as processing and reserve its tags.

        Tags already present in the active set are left as they are.

        Raises:
            JobNotFoundError: If the store has no record of the job.
            InvalidTransitionError: If the job is not pending.
        """
        async with self._transaction("mark_processing") as session:
            record = await self._get_record(session, job.id, for_update=True)
            if record is None:
                raise JobNotFoundError(f"Job {job.id} not found")

            persisted = transition(record.to_entity(), JobStatus.PROCESSING)
            record.apply(persisted)

            await session.execute(
                self._insert_ignoring_duplicates(ProcessingEntry).values(
                    job_id=job.id, worker_id=worker_id
                )
            )
            for tag in sorted(persisted.tag_set):
                await session.execute(self._insert_ignoring_duplicates(ActiveTag).values(tag=tag))

        self._logger.info("Job started processing", job_id=job.id)
        return self._sync(job, persisted)

    async def _finish(self, job: Job, target: JobStatus, error: str | None = None) -> Job:
        async with self._transaction(f"mark_{target}") as session:
            record = await self._get_record(session, job.id, for_update=True)
            if record is None:
                raise JobNotFoundError(f"Job {job.id} not found")

            persisted = transition(record.to_entity(), target, error)
            record.apply(persisted)

            await session.execute(delete(ProcessingEntry).where(ProcessingEntry.job_id == job.id))
            await session.flush()
            released = await self._reconcile(session)

        self._logger.info(
            "Job finished",
            job_id=job.id,
            status=str(target),
            error=persisted.error,
            released_tags=released,
        )
        return self._sync(job, persisted)

    async def mark_completed(self, job: Job) -> Job:
        """
        Mark a processing job as completed and release its tags.

        Raises:
            JobNotFoundError: If the store has no record of the job.
            InvalidTransitionError: If the job is not processing.
        """
        return await self._finish(job, JobStatus.COMPLETED)

    async def mark_failed(self, job: Job, error_message: str) -> Job:
        """
        Mark a processing job as failed with `error_message` and release its tags.

        Raises:
            JobNotFoundError: If the store has no record of the job.
            InvalidTransitionError: If the job is not processing.
        """
        return await self._finish(job, JobStatus.FAILED, error_message)

    async def reconcile_active_tags(self) -> list[str]:
        """
        Drop active tags that no processing job holds.

        Returns:
            The tags that were released.
        """
        async with self._transaction("reconcile_active_tags") as session:
            released = await self._reconcile(session)

        if released:
            self._logger.info("Released stale active tags", tags=released)
        return released

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    async def get_job(self, job_id: str) -> Job | None:
        async with self._transaction("get_job") as session:
            record = await self._get_record(session, job_id)
            return record.to_entity() if record else None

    async def queue_size(self) -> int:
        async with self._transaction("queue_size") as session:
            result = await session.execute(select(func.count()).select_from(QueueEntry))
            return result.scalar() or 0

    async def processing_jobs(self) -> list[str]:
        async with self._transaction("processing_jobs") as session:
            result = await session.execute(
                select(ProcessingEntry.job_id).order_by(ProcessingEntry.claimed_at)
            )
            return list(result.scalars().all())

    async def active_tags(self) -> list[str]:
        async with self._transaction("active_tags") as session:
            result = await session.execute(select(ActiveTag.tag).order_by(ActiveTag.tag))
            return list(result.scalars().all())

    async def all_jobs(self) -> list[Job]:
        """Every job ever enqueued, in enqueue order."""
        async with self._transaction("all_jobs") as session:
            result = await session.execute(select(JobRecord).order_by(JobRecord.seq))
            return [record.to_entity() for record in result.scalars().all()]

    async def close(self) -> None:
        """Release the underlying engine. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._owns_engine:
            await self._engine.dispose()
        self._logger.debug("Job store closed")
