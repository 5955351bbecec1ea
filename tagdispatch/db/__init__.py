"""
Database module.
Contains the connection helpers, table models and the shared JobStore.
"""

from tagdispatch.db.connection import create_engine, create_session_factory
from tagdispatch.db.models import ActiveTag, Base, JobRecord, ProcessingEntry, QueueEntry
from tagdispatch.db.store import JobStore

__all__ = [
    "create_engine",
    "create_session_factory",
    "JobStore",
    "JobRecord",
    "QueueEntry",
    "ProcessingEntry",
    "ActiveTag",
    "Base",
]
