"""
Database connection management.
Handles async SQLAlchemy engine and session factory creation.
"""

import logging
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from tagdispatch.config import get_settings

logger = logging.getLogger(__name__)


def _enable_immediate_transactions(engine: AsyncEngine) -> None:
    """
    Make every SQLite transaction take the write lock up front.

    With the driver's deferred BEGIN two processes can both read the queue
    head and then deadlock upgrading to a write lock. BEGIN IMMEDIATE makes
    them queue on the busy timeout instead.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        # stop the driver from emitting its own BEGIN
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine(database_url: str | None = None) -> AsyncEngine:
    """
    Create the async database engine for the job store.

    Args:
        database_url: Connection URL. Defaults to the configured one.

    Returns:
        AsyncEngine: The SQLAlchemy async engine instance.
    """
    settings = get_settings()
    url = make_url(database_url or settings.database_url)

    kwargs: dict[str, Any] = {
        "echo": settings.log_level == "DEBUG",
        "pool_pre_ping": True,
    }

    if url.get_backend_name() == "sqlite":
        engine = create_async_engine(url, **kwargs)
        _enable_immediate_transactions(engine)
    else:
        engine = create_async_engine(
            url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            **kwargs,
        )

    logger.info("Database engine created", extra={"backend": url.get_backend_name()})
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to `engine`, one session per store operation."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
