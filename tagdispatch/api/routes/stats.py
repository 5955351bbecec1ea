"""
Queue statistics routes.
"""

from fastapi import APIRouter

from tagdispatch.api.dependencies import Store
from tagdispatch.observability.metrics import get_metrics
from tagdispatch.types.api import StatsResponse

router = APIRouter(tags=["Stats"])


@router.get(
    "/stats",
    response_model=StatsResponse,
    summary="Queue statistics",
    description="Queue size, number of processing jobs and the active tags.",
)
async def get_stats(store: Store) -> StatsResponse:
    """
    Get a snapshot of the queue.

    Each figure is read separately, so under load they may not describe
    one single instant.
    """
    queue_size = await store.queue_size()
    processing = len(await store.processing_jobs())
    active_tags = await store.active_tags()

    get_metrics().update_store_gauges(queue_size, processing, len(active_tags))

    return StatsResponse(
        queue_size=queue_size,
        processing=processing,
        active_tags=active_tags,
    )
