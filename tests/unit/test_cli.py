"""
Unit tests for the command-line interface.
"""

import pytest
from click.testing import CliRunner

from tagdispatch.cli import tagdispatch


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def invoke(runner: CliRunner, database_url: str):
    """Invoke the CLI against a fresh, initialized store."""

    def _invoke(*args: str):
        return runner.invoke(tagdispatch, ["--database-url", database_url, *args])

    result = _invoke("init-db")
    assert result.exit_code == 0, result.output
    return _invoke


def created_id(output: str) -> str:
    for line in output.splitlines():
        if line.startswith("Job created: "):
            return line.removeprefix("Job created: ").strip()
    raise AssertionError(f"No job id in output: {output}")


class TestCli:
    def test_add_and_status(self, invoke):
        result = invoke("add", "--tags", "hotel,flight", "--data", '{"amount": 100}')

        assert result.exit_code == 0
        assert "Tags: hotel, flight" in result.output
        job_id = created_id(result.output)

        status = invoke("status", job_id)

        assert f"Job: {job_id}" in status.output
        assert "Status: pending" in status.output
        assert "Tags: hotel, flight" in status.output

    def test_add_with_invalid_data(self, invoke):
        result = invoke("add", "--tags", "hotel", "--data", "{not json")

        assert "Invalid JSON data" in result.output
        assert "Job created: " in result.output

    def test_add_with_non_object_data(self, invoke):
        result = invoke("add", "--tags", "hotel", "--data", "[1, 2]")

        assert result.exit_code == 0
        assert "Error: Job data must be a JSON object" in result.output
        assert "Job created: " not in result.output
        assert "No jobs in queue" in invoke("list").output

    def test_add_without_tags(self, invoke):
        result = invoke("add")

        assert "Job created: " in result.output
        assert "Tags:" not in result.output

    def test_list(self, invoke):
        assert "No jobs in queue" in invoke("list").output

        first = created_id(invoke("add", "--tags", "a").output)
        second = created_id(invoke("add", "--tags", "b").output)

        output = invoke("list").output

        assert "Jobs in queue:" in output
        assert output.index(f"ID: {first}") < output.index(f"ID: {second}")
        assert "Status: pending" in output

    def test_status_unknown_job(self, invoke):
        assert "Job not found: missing" in invoke("status", "missing").output

    def test_status_requires_id(self, invoke):
        assert "Job ID required" in invoke("status").output

    def test_help(self, invoke):
        output = invoke("help").output

        for command in ("add", "list", "status", "worker"):
            assert command in output

    def test_store_errors_are_printed(self, runner: CliRunner, tmp_path):
        """A store without tables reports the error instead of crashing."""
        url = f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}"

        result = runner.invoke(tagdispatch, ["--database-url", url, "list"])

        assert result.exit_code == 0
        assert "Error: " in result.output
