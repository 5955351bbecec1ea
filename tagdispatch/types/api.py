"""
API request and response type definitions.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from tagdispatch.constants import JobStatus


class CreateJobRequest(BaseModel):
    """Request body for creating a new job."""

    tags: list[str] = Field(default_factory=list, description="Resource tags for mutual exclusion")
    data: dict[str, Any] = Field(default_factory=dict, description="Opaque job payload")

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("data", mode="before")
    @classmethod
    def _coerce_data(cls, value: Any) -> Any:
        return {} if value is None else value


class JobResponse(BaseModel):
    """Full job record."""

    id: str
    tags: list[str]
    status: JobStatus
    created_at: datetime
    started_at: datetime | None
    completed_at: datetime | None
    error: str | None
    data: dict[str, Any]


class StatsResponse(BaseModel):
    """Queue statistics."""

    queue_size: int
    processing: int
    active_tags: list[str]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    detail: Any | None = None
