"""
Integration tests for the API endpoints.
"""

import pytest
import pytest_asyncio
from httpx import AsyncClient

from tagdispatch.constants import JobStatus
from tagdispatch.db.store import JobStore


class TestJobAPI:
    """Integration tests for job API endpoints."""

    @pytest_asyncio.fixture
    async def created_job(self, client: AsyncClient) -> dict:
        """Create a job for testing."""
        response = await client.post(
            "/jobs",
            json={"tags": ["hotel", "flight"], "data": {"job_type": "echo", "amount": 100}},
        )
        return response.json()

    @pytest.mark.asyncio
    async def test_create_job_success(self, client: AsyncClient, store: JobStore):
        response = await client.post(
            "/jobs",
            json={"tags": ["hotel"], "data": {"guest": "Ada"}},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == JobStatus.PENDING.value
        assert data["tags"] == ["hotel"]
        assert data["data"] == {"guest": "Ada"}
        assert data["started_at"] is None
        assert data["completed_at"] is None
        assert data["error"] is None
        assert "id" in data
        assert "created_at" in data

        assert await store.queue_size() == 1

    @pytest.mark.asyncio
    async def test_create_job_coerces_single_tag(self, client: AsyncClient):
        response = await client.post("/jobs", json={"tags": "hotel"})

        assert response.status_code == 201
        assert response.json()["tags"] == ["hotel"]

    @pytest.mark.asyncio
    async def test_create_job_without_body(self, client: AsyncClient):
        response = await client.post("/jobs")

        assert response.status_code == 201
        data = response.json()
        assert data["tags"] == []
        assert data["data"] == {}

    @pytest.mark.asyncio
    async def test_create_job_invalid_json(self, client: AsyncClient, store: JobStore):
        response = await client.post(
            "/jobs",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid JSON"}
        assert await store.queue_size() == 0

    @pytest.mark.asyncio
    async def test_create_job_invalid_body(self, client: AsyncClient):
        response = await client.post("/jobs", json={"tags": ["a"], "data": "not an object"})

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request"

    @pytest.mark.asyncio
    async def test_get_job(self, client: AsyncClient, created_job: dict):
        response = await client.get(f"/jobs/{created_job['id']}")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == created_job["id"]
        assert data["tags"] == ["hotel", "flight"]
        assert data["data"] == {"job_type": "echo", "amount": 100}

    @pytest.mark.asyncio
    async def test_get_job_not_found(self, client: AsyncClient):
        response = await client.get("/jobs/does-not-exist")

        assert response.status_code == 404
        assert response.json() == {"error": "Job not found"}

    @pytest.mark.asyncio
    async def test_list_jobs(self, client: AsyncClient, created_job: dict, store: JobStore):
        second = (await client.post("/jobs", json={"tags": ["car"]})).json()
        await store.claim(created_job["id"])

        response = await client.get("/jobs")

        assert response.status_code == 200
        data = response.json()
        assert [job["id"] for job in data] == [created_job["id"], second["id"]]
        assert data[0]["status"] == JobStatus.PROCESSING.value

    @pytest.mark.asyncio
    async def test_list_jobs_empty(self, client: AsyncClient):
        response = await client.get("/jobs")

        assert response.status_code == 200
        assert response.json() == []

    @pytest.mark.asyncio
    async def test_unknown_endpoint(self, client: AsyncClient):
        response = await client.get("/nowhere")

        assert response.status_code == 404
        assert "error" in response.json()


class TestStatsAPI:
    @pytest.mark.asyncio
    async def test_stats(self, client: AsyncClient, created_job: dict, store: JobStore):
        await client.post("/jobs", json={"tags": ["car"]})
        await store.claim(created_job["id"])

        response = await client.get("/stats")

        assert response.status_code == 200
        assert response.json() == {
            "queue_size": 1,
            "processing": 1,
            "active_tags": ["flight", "hotel"],
        }

    @pytest_asyncio.fixture
    async def created_job(self, client: AsyncClient) -> dict:
        response = await client.post("/jobs", json={"tags": ["hotel", "flight"]})
        return response.json()

    @pytest.mark.asyncio
    async def test_store_error_is_500(self, client: AsyncClient, store: JobStore):
        await store.close()

        response = await client.get("/stats")

        assert response.status_code == 500
        assert "closed" in response.json()["error"]

    @pytest.mark.asyncio
    async def test_unexpected_error_is_500_with_message(
        self, monkeypatch, client: AsyncClient, store: JobStore
    ):
        async def broken_all_jobs():
            raise RuntimeError("database exploded")

        monkeypatch.setattr(store, "all_jobs", broken_all_jobs)

        response = await client.get("/jobs")

        assert response.status_code == 500
        assert response.json() == {"error": "database exploded"}


class TestHealthAPI:
    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_ready(self, client: AsyncClient):
        response = await client.get("/ready")

        assert response.json() == {"ready": True}

    @pytest.mark.asyncio
    async def test_metrics(self, client: AsyncClient):
        await client.post("/jobs", json={"tags": ["hotel"]})

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "tagdispatch_jobs_enqueued_total" in response.text
