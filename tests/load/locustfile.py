"""
Locust load testing for the tagdispatch API.

Run with:
    locust -f tests/load/locustfile.py --host=http://localhost:4567

Or headless:
    locust -f tests/load/locustfile.py --host=http://localhost:4567 \
        --headless -u 100 -r 10 --run-time 5m
"""

import random
from typing import Any

from locust import HttpUser, between, task

# A small tag pool so that submitted jobs contend for the same tags
TAG_POOL = ["hotel", "flight", "car", "payment", "insurance", "tour"]


class DispatcherUser(HttpUser):
    """
    Simulated producer for load testing the dispatcher.

    Simulates realistic traffic patterns:
    - Job submissions (most common)
    - Job status checks
    - Stats queries
    - Job listing (rare, it returns every job)
    """

    wait_time = between(0.5, 2)  # Wait 0.5-2 seconds between requests

    def on_start(self):
        """Called when a user starts."""
        self.created_job_ids: list[str] = []

    @task(10)  # Weight: most common operation
    def submit_job(self):
        """Submit a new job."""
        job_type = random.choice(["echo", "sleep"])
        data: dict[str, Any] = {"job_type": job_type}

        if job_type == "sleep":
            data["duration_seconds"] = random.uniform(0.1, 1.0)

        response = self.client.post(
            "/jobs",
            json={
                "tags": random.sample(TAG_POOL, k=random.randint(0, 2)),
                "data": data,
            },
            name="/jobs [POST]",
        )

        if response.status_code == 201:
            job_id = response.json().get("id")
            if job_id:
                self.created_job_ids.append(job_id)
                # Keep only recent job IDs
                if len(self.created_job_ids) > 100:
                    self.created_job_ids = self.created_job_ids[-100:]

    @task(5)
    def get_job_status(self):
        """Check status of a previously created job."""
        if not self.created_job_ids:
            return

        job_id = random.choice(self.created_job_ids)
        self.client.get(f"/jobs/{job_id}", name="/jobs/{job_id} [GET]")

    @task(3)
    def get_stats(self):
        """Get queue statistics."""
        self.client.get("/stats", name="/stats [GET]")

    @task(1)
    def list_jobs(self):
        self.client.get("/jobs", name="/jobs [GET]")

    @task(1)
    def health_check(self):
        """Check API health."""
        self.client.get("/health", name="/health [GET]")


class HotTagUser(HttpUser):
    """
    User that submits bursts of jobs sharing one tag, to exercise the
    exclusion path under load.
    """

    wait_time = between(5, 10)  # Wait between bursts

    @task
    def burst_submit(self):
        """Submit a burst of jobs on the same tag."""
        tag = random.choice(TAG_POOL)

        for _ in range(random.randint(10, 50)):
            self.client.post(
                "/jobs",
                json={"tags": [tag], "data": {"job_type": "echo", "burst": True}},
                name="/jobs [POST] (hot tag)",
            )
