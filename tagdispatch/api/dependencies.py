"""
FastAPI dependencies.
"""

from typing import Annotated

from fastapi import Depends, Request

from tagdispatch.db.store import JobStore


def get_store(request: Request) -> JobStore:
    """Get the job store attached to the application."""
    return request.app.state.store


Store = Annotated[JobStore, Depends(get_store)]
