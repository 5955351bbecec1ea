"""
FastAPI application entry point.
"""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tagdispatch import __version__
from tagdispatch.api.routes import health_router, jobs_router, stats_router
from tagdispatch.config import get_settings
from tagdispatch.db.store import JobStore
from tagdispatch.errors import JobValidationError, StoreError
from tagdispatch.observability.logging import get_logger, setup_logging
from tagdispatch.observability.metrics import setup_metrics
from tagdispatch.observability.tracing import (
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_tracing,
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Opens a job store on startup unless one was supplied to create_app,
    and closes the store it opened on shutdown.
    """
    # Startup
    setup_logging()
    setup_metrics()
    setup_tracing()

    owned_store = None
    if getattr(app.state, "store", None) is None:
        owned_store = JobStore.from_url(get_settings().database_url)
        instrument_sqlalchemy(owned_store.engine)
        app.state.store = owned_store

    logger.info("Application started")

    yield

    # Shutdown
    if owned_store is not None:
        await owned_store.close()
    logger.info("Application shutdown")


def _jsonable_errors(errors: list[dict]) -> list[dict]:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in errors
    ]


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report unparseable or malformed request bodies as 400."""
    errors = exc.errors()
    if any(error.get("type") == "json_invalid" for error in errors):
        content = {"error": "Invalid JSON"}
    else:
        content = {"error": "Invalid request", "detail": _jsonable_errors(errors)}
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=content)


async def job_validation_exception_handler(
    request: Request, exc: JobValidationError
) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(exc)})


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render HTTP errors, including unknown routes, as {"error": ...}."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def store_exception_handler(request: Request, exc: StoreError) -> JSONResponse:
    logger.error("Job store error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": str(exc)},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error", path=request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": str(exc) or type(exc).__name__},
    )


def create_app(store: JobStore | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        store: Job store to serve. When omitted, one is opened from the
            configured database URL for the lifetime of the application.

    Returns:
        FastAPI: The configured application instance.
    """
    app = FastAPI(
        title="Tag Dispatch API",
        description="Tag-aware job dispatcher: submit and inspect jobs",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.store = store

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(JobValidationError, job_validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(StoreError, store_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Include routers
    app.include_router(health_router)
    app.include_router(stats_router)
    app.include_router(jobs_router)

    # Instrument with OpenTelemetry
    if get_settings().tracing_enabled:
        instrument_fastapi(app)

    return app


def run() -> None:
    """Run the API server."""
    settings = get_settings()
    app = create_app()

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    run()
