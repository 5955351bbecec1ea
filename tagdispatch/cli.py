"""CLI entrypoint for tagdispatch."""

import asyncio
import json
from collections.abc import Awaitable, Callable

import rich_click as click
from pydantic import ValidationError

from tagdispatch import __version__
from tagdispatch.db.store import JobStore
from tagdispatch.errors import TagDispatchError
from tagdispatch.observability.logging import get_logger
from tagdispatch.types.job import Job

click.rich_click.USE_MARKDOWN = True
logger = get_logger(__name__)


@click.group()
@click.version_option(version=__version__, prog_name="tagdispatch")
@click.option(
    "--database-url",
    envvar="DATABASE_URL",
    default=None,
    help="Job store database URL. Defaults to the configured one.",
)
@click.pass_context
def tagdispatch(ctx: click.Context, database_url: str | None) -> None:
    """Tag-aware job dispatcher."""
    ctx.obj = {"database_url": database_url}


@tagdispatch.command("add")
@click.option("--tags", default="", help="Comma-separated tags, for example hotel,flight.")
@click.option("--data", "raw_data", default=None, help="Optional JSON object passed to the job.")
@click.pass_context
def add(ctx: click.Context, tags: str, raw_data: str | None) -> None:
    """Create a new job."""
    data = {}
    if raw_data:
        try:
            data = json.loads(raw_data)
        except json.JSONDecodeError:
            click.echo("Invalid JSON data")
            data = {}

    if not isinstance(data, dict):
        click.echo("Error: Job data must be a JSON object")
        return

    async def _add(store: JobStore) -> list[str]:
        job = await store.enqueue(Job(tags=_split_tags(tags), data=data))
        lines = [f"Job created: {job.id}"]
        if job.tags:
            lines.append(f"Tags: {', '.join(job.tags)}")
        return lines

    _emit_lines(_run_with_store(ctx, _add))


@tagdispatch.command("list")
@click.pass_context
def list_jobs(ctx: click.Context) -> None:
    """List all jobs ever submitted."""

    async def _list(store: JobStore) -> list[str]:
        jobs = await store.all_jobs()
        if not jobs:
            return ["No jobs in queue"]

        lines = ["", "Jobs in queue:", "-" * 80]
        for job in jobs:
            lines.append(f"ID: {job.id}")
            lines.append(f"  Status: {job.status}")
            if job.tags:
                lines.append(f"  Tags: {', '.join(job.tags)}")
            lines.append(f"  Created: {job.created_at.isoformat()}")
            lines.append("")
        return lines

    _emit_lines(_run_with_store(ctx, _list))


@tagdispatch.command("status")
@click.argument("job_id", required=False)
@click.pass_context
def status(ctx: click.Context, job_id: str | None) -> None:
    """Show the status of one job."""
    if not job_id:
        click.echo("Job ID required")
        return

    async def _status(store: JobStore) -> list[str]:
        job = await store.get_job(job_id)
        if job is None:
            return [f"Job not found: {job_id}"]

        lines = [f"Job: {job.id}", f"Status: {job.status}"]
        if job.tags:
            lines.append(f"Tags: {', '.join(job.tags)}")
        lines.append(f"Created: {job.created_at.isoformat()}")
        if job.started_at:
            lines.append(f"Started: {job.started_at.isoformat()}")
        if job.completed_at:
            lines.append(f"Completed: {job.completed_at.isoformat()}")
        if job.error:
            lines.append(f"Error: {job.error}")
        return lines

    _emit_lines(_run_with_store(ctx, _status))


@tagdispatch.command("help")
@click.pass_context
def show_help(ctx: click.Context) -> None:
    """Show this help message."""
    click.echo(ctx.parent.get_help())


@tagdispatch.command("init-db")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create the job store tables if they do not exist."""

    async def _init(store: JobStore) -> list[str]:
        await store.create_schema()
        return ["Job store initialized"]

    _emit_lines(_run_with_store(ctx, _init))


@tagdispatch.command("worker")
def worker() -> None:
    """Run a worker until SIGTERM or SIGINT."""
    from tagdispatch.worker.main import run

    run()


@tagdispatch.command("api")
def api() -> None:
    """Run the HTTP API server."""
    from tagdispatch.api.main import run

    run()


@tagdispatch.command("reconciler")
def reconciler() -> None:
    """Run the periodic active tag reconciler."""
    from tagdispatch.reconciler.main import run

    run()


def _split_tags(raw: str) -> list[str]:
    return [tag.strip() for tag in raw.split(",") if tag.strip()]


def _run_with_store(
    ctx: click.Context,
    operation: Callable[[JobStore], Awaitable[list[str]]],
) -> list[str]:
    """Open a store, run `operation` against it, and close the store again."""

    async def _run() -> list[str]:
        store = JobStore.from_url(ctx.obj["database_url"])
        try:
            return await operation(store)
        finally:
            await store.close()

    try:
        return asyncio.run(_run())
    except (TagDispatchError, ValidationError) as e:
        logger.error("CLI error", error=str(e))
        return [f"Error: {e}"]


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    tagdispatch()
