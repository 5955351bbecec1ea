"""
Unit tests for logging setup and job context binding.
"""

import asyncio
import json
import logging

import pytest
import structlog

from tagdispatch.observability.logging import (
    add_service_name,
    get_logger,
    job_context,
    setup_logging,
)


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    root.handlers = handlers
    root.setLevel(level)


class TestJobContext:
    def test_binds_and_unbinds(self):
        with job_context("job-1", ["hotel", "flight"]):
            assert structlog.contextvars.get_contextvars() == {
                "job_id": "job-1",
                "tags": ["hotel", "flight"],
            }

        assert "job_id" not in structlog.contextvars.get_contextvars()

    @pytest.mark.asyncio
    async def test_concurrent_jobs_are_isolated(self):
        seen: dict[str, str] = {}

        async def run(job_id: str) -> None:
            with job_context(job_id):
                await asyncio.sleep(0.01)
                seen[job_id] = structlog.contextvars.get_contextvars()["job_id"]

        await asyncio.gather(run("a"), run("b"))

        assert seen == {"a": "a", "b": "b"}


class TestProcessors:
    def test_service_name(self):
        event = add_service_name(None, "info", {"event": "hello"})

        assert event["service"] == "tagdispatch"

    def test_service_name_does_not_override(self):
        event = add_service_name(None, "info", {"event": "hello", "service": "other"})

        assert event["service"] == "other"


class TestSetupLogging:
    def test_json_lines_carry_job_context(self, capsys, restore_logging):
        setup_logging(level="INFO", fmt="json")
        logger = get_logger("tagdispatch.tests")

        with job_context("job-1", ["hotel"]):
            logger.info("Handler step", step=1)

        line = capsys.readouterr().out.strip().splitlines()[-1]
        record = json.loads(line)

        assert record["event"] == "Handler step"
        assert record["job_id"] == "job-1"
        assert record["tags"] == ["hotel"]
        assert record["service"] == "tagdispatch"
        assert record["level"] == "info"

    def test_quiets_noisy_libraries(self, restore_logging):
        setup_logging(level="DEBUG", fmt="console")

        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
        assert logging.getLogger().level == logging.DEBUG
