"""
Health check routes.
"""

from fastapi import APIRouter
from fastapi.responses import Response

from tagdispatch.api.dependencies import Store
from tagdispatch.errors import StoreError
from tagdispatch.observability.metrics import get_metrics
from tagdispatch.types.api import HealthResponse

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check that the API process is alive.",
)
async def health_check() -> HealthResponse:
    return HealthResponse(status="ok")


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if the job store is reachable.",
)
async def readiness_check(store: Store) -> dict:
    """
    Kubernetes readiness probe endpoint.

    Returns:
        Ready status.
    """
    try:
        await store.queue_size()
    except StoreError:
        return {"ready": False}
    return {"ready": True}


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics.",
)
async def metrics() -> Response:
    """
    Expose Prometheus metrics.

    Returns:
        Prometheus-formatted metrics.
    """
    metrics_collector = get_metrics()
    return Response(
        content=metrics_collector.get_metrics(),
        media_type=metrics_collector.get_content_type(),
    )
