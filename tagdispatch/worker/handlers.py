"""
Job handlers registry and implementations.

A handler receives a JobContext and returns a JobResult. Handlers may
be coroutine functions or plain functions; plain functions run in a
thread so they cannot stall the worker's event loop.
"""

import asyncio
import inspect
import random
from typing import Awaitable, Callable

import httpx

from tagdispatch.observability.logging import get_logger
from tagdispatch.types.job import JobContext, JobResult

logger = get_logger(__name__)

# Type alias for job handler functions
JobHandler = Callable[[JobContext], Awaitable[JobResult]]

# Handler registry
_handlers: dict[str, Callable[[JobContext], Awaitable[JobResult] | JobResult]] = {}


def register_handler(job_type: str) -> Callable:
    """
    Decorator to register a job handler.

    Args:
        job_type: The value of `data["job_type"]` this handler processes.

    Returns:
        Decorator function.

    Example:
        @register_handler("send_email")
        async def handle_send_email(context: JobContext) -> JobResult:
            ...
    """
    def decorator(handler):
        _handlers[job_type] = handler
        logger.debug("Registered job handler", job_type=job_type)
        return handler
    return decorator


def get_handler(job_type: str) -> Callable | None:
    """
    Get the handler for a job type.

    Args:
        job_type: The job type.

    Returns:
        The handler function or None if not found.
    """
    return _handlers.get(job_type)


def list_handlers() -> list[str]:
    """List all registered job types."""
    return sorted(_handlers)


# ============================================================================
# Built-in job handlers
# ============================================================================


@register_handler("echo")
async def handle_echo(context: JobContext) -> JobResult:
    """Return the job data as output."""
    logger.info("Echo job executing", job_id=context.job_id)

    return JobResult(
        success=True,
        output={"echo": context.data},
    )


@register_handler("sleep")
async def handle_sleep(context: JobContext) -> JobResult:
    """
    Simulate work by sleeping.

    Data may contain:
    - duration_seconds: How long to sleep. A random 0-3 seconds if absent.
    """
    duration = context.data.get("duration_seconds")
    if duration is None:
        duration = random.randint(0, 3)

    logger.info("Sleep job starting", job_id=context.job_id, duration=duration)

    await asyncio.sleep(duration)

    return JobResult(
        success=True,
        output={"slept_for": duration},
    )


@register_handler("fail")
async def handle_fail(context: JobContext) -> JobResult:
    """
    Handler that always fails.

    Data may contain:
    - message: The error message to fail with.
    """
    message = context.data.get("message", "Intentional failure")
    logger.info("Failing job executing (will fail)", job_id=context.job_id)

    return JobResult(success=False, error=str(message))


@register_handler("http_request")
async def handle_http_request(context: JobContext) -> JobResult:
    """
    Make an HTTP request.

    Data should contain:
    - url: The URL to request
    - method: HTTP method (GET, POST, etc.)
    - headers: Optional headers
    - body: Optional JSON request body
    - timeout: Optional timeout in seconds (default 30)
    """
    url = context.data.get("url")
    method = str(context.data.get("method", "GET")).upper()
    headers = context.data.get("headers") or {}
    body = context.data.get("body")
    timeout = float(context.data.get("timeout", 30.0))

    if not url:
        return JobResult(
            success=False,
            error="Missing 'url' in job data",
        )

    logger.info("HTTP request job", job_id=context.job_id, method=method, url=url)

    try:
        async with httpx.AsyncClient() as client:
            response = await client.request(
                method=method,
                url=url,
                headers=headers,
                json=body if method in ("POST", "PUT", "PATCH") else None,
                timeout=timeout,
            )
    except httpx.HTTPError as e:
        return JobResult(
            success=False,
            error=f"HTTP request failed: {e}",
        )

    return JobResult(
        success=response.is_success,
        output={
            "status_code": response.status_code,
            "headers": dict(response.headers),
            "body": response.text[:1000],  # Truncate response
        },
        error=None if response.is_success else f"HTTP {response.status_code}",
    )


async def execute_job(context: JobContext) -> JobResult:
    """
    Execute a job using the handler registered for its job type.

    Args:
        context: The job context.

    Returns:
        JobResult from the handler, or a failed result if no handler is
        registered or the handler raised.
    """
    job_type = context.job_type
    handler = get_handler(job_type)

    if handler is None:
        logger.error("No handler for job type", job_type=job_type, job_id=context.job_id)
        return JobResult(
            success=False,
            error=f"No handler registered for job type: {job_type}",
        )

    try:
        if inspect.iscoroutinefunction(handler):
            return await handler(context)
        return await asyncio.to_thread(handler, context)
    except Exception as e:
        logger.exception("Handler raised exception", job_id=context.job_id, job_type=job_type)
        return JobResult(
            success=False,
            error=f"Handler exception: {e}",
        )
