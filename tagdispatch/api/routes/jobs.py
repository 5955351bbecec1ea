"""
Job management routes.
"""

from fastapi import APIRouter, HTTPException, status

from tagdispatch.api.dependencies import Store
from tagdispatch.observability.logging import get_logger
from tagdispatch.observability.metrics import get_metrics
from tagdispatch.types.api import CreateJobRequest, ErrorResponse, JobResponse
from tagdispatch.types.job import Job

logger = get_logger(__name__)

router = APIRouter(prefix="/jobs", tags=["Jobs"])


def _job_to_response(job: Job) -> JobResponse:
    """Convert a Job to a JobResponse."""
    return JobResponse(
        id=job.id,
        tags=job.tags,
        status=job.status,
        created_at=job.created_at,
        started_at=job.started_at,
        completed_at=job.completed_at,
        error=job.error,
        data=job.data,
    )


@router.post(
    "",
    response_model=JobResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
    summary="Submit a job",
    description="Submit a new job to the queue. Both tags and data are optional.",
)
async def create_job(store: Store, request: CreateJobRequest | None = None) -> JobResponse:
    """
    Create a new pending job and append it to the queue.

    Args:
        store: The job store.
        request: Job creation request. An empty body creates a job with
            no tags and no data.

    Returns:
        JobResponse for the pending job.
    """
    request = request or CreateJobRequest()
    job = await store.enqueue(Job(tags=request.tags, data=request.data))

    get_metrics().record_job_enqueued()
    logger.info("Job submitted", job_id=job.id, tags=job.tags)

    return _job_to_response(job)


@router.get(
    "/{job_id}",
    response_model=JobResponse,
    summary="Get job details",
    responses={404: {"model": ErrorResponse}},
    description="Get the current record of a specific job.",
)
async def get_job(job_id: str, store: Store) -> JobResponse:
    """
    Get job details by ID.

    Raises:
        HTTPException: If the job is not found.
    """
    job = await store.get_job(job_id)

    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found",
        )

    return _job_to_response(job)


@router.get(
    "",
    response_model=list[JobResponse],
    summary="List jobs",
    description="List every job ever enqueued, in submission order.",
)
async def list_jobs(store: Store) -> list[JobResponse]:
    return [_job_to_response(job) for job in await store.all_jobs()]
