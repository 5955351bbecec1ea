"""
Type definitions for the dispatcher.
Contains the Job entity and input/output types, grouped by module.
"""

from tagdispatch.types.api import (
    CreateJobRequest,
    ErrorResponse,
    HealthResponse,
    JobResponse,
    StatsResponse,
)
from tagdispatch.types.job import (
    ALLOWED_TRANSITIONS,
    ClaimResult,
    Job,
    JobContext,
    JobResult,
    can_transition,
    transition,
)

__all__ = [
    # API types
    "CreateJobRequest",
    "JobResponse",
    "StatsResponse",
    "HealthResponse",
    "ErrorResponse",
    # Job types
    "Job",
    "JobContext",
    "JobResult",
    "ClaimResult",
    "ALLOWED_TRANSITIONS",
    "can_transition",
    "transition",
]
