"""
API routes module.
"""

from tagdispatch.api.routes.health import router as health_router
from tagdispatch.api.routes.jobs import router as jobs_router
from tagdispatch.api.routes.stats import router as stats_router

__all__ = ["jobs_router", "stats_router", "health_router"]
