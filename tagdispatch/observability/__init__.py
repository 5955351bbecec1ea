"""
Observability module.
Contains logging, metrics, and tracing setup.
"""

from tagdispatch.observability.logging import (
    bind_context,
    get_logger,
    job_context,
    setup_logging,
)
from tagdispatch.observability.metrics import (
    MetricsCollector,
    get_metrics,
    setup_metrics,
)
from tagdispatch.observability.tracing import (
    get_tracer,
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_tracing,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "bind_context",
    "job_context",
    "setup_metrics",
    "get_metrics",
    "MetricsCollector",
    "setup_tracing",
    "get_tracer",
    "instrument_fastapi",
    "instrument_sqlalchemy",
]
