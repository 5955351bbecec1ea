"""
Pytest configuration and shared fixtures.
"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from tagdispatch.api.main import create_app
from tagdispatch.db.store import JobStore
from tagdispatch.types.job import Job


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """A fresh SQLite job store database per test."""
    return f"sqlite+aiosqlite:///{tmp_path / 'tagdispatch.db'}"


@pytest_asyncio.fixture
async def store(database_url: str) -> AsyncGenerator[JobStore]:
    """A job store with its tables created."""
    store = JobStore.from_url(database_url)
    await store.create_schema()

    yield store

    await store.close()


@pytest_asyncio.fixture
async def worker_store(store: JobStore, database_url: str) -> AsyncGenerator[JobStore]:
    """
    A second store on the same database, for a worker to own.

    The worker closes its store on shutdown; tests keep inspecting the
    database through `store`.
    """
    worker_store = JobStore.from_url(database_url)

    yield worker_store

    await worker_store.close()


@pytest_asyncio.fixture
async def app(store: JobStore) -> FastAPI:
    """Create a FastAPI app serving the test store."""
    return create_app(store=store)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def make_job():
    """Factory for pending jobs."""

    def _make_job(*tags: str, **data) -> Job:
        return Job(tags=list(tags), data=data)

    return _make_job
