"""
Async database engine and session factory.

Every booking operation opens its own short-lived AsyncSession; sessions are
never shared between requests, so no ORM identity map outlives a transaction.

PostgreSQL runs every transaction at DATABASE_ISOLATION_LEVEL (SERIALIZABLE by
default). SQLite (tests, local development) opens transactions with
BEGIN IMMEDIATE, serializing writers so multi-row updates are just as atomic.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from shared.config import get_settings

logger = logging.getLogger(__name__)

# Seconds SQLite waits on a locked database before raising
SQLITE_BUSY_TIMEOUT = 30


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _engine_kwargs(url: str) -> dict[str, Any]:
    settings = get_settings()
    if _is_sqlite(url):
        return {"connect_args": {"timeout": SQLITE_BUSY_TIMEOUT}}
    return {
        "pool_size": settings.DATABASE_POOL_SIZE,
        "max_overflow": settings.DATABASE_MAX_OVERFLOW,
        "pool_pre_ping": True,
        "isolation_level": settings.DATABASE_ISOLATION_LEVEL,
    }


def _enable_sqlite_transactions(async_engine: AsyncEngine) -> None:
    """Let SQLAlchemy, not the driver, emit BEGIN so reads join the transaction."""

    @event.listens_for(async_engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(async_engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine_from_settings() -> AsyncEngine:
    settings = get_settings()
    url = settings.DATABASE_URL
    async_engine = create_async_engine(url, **_engine_kwargs(url))

    if _is_sqlite(url):
        _enable_sqlite_transactions(async_engine)

    logger.debug(f"Database engine created: dialect={async_engine.dialect.name}")
    return async_engine


engine = create_engine_from_settings()

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


@asynccontextmanager
async def get_async_session() -> AsyncIterator[AsyncSession]:
    """
    Yield a fresh AsyncSession and close it afterwards.

    Usage:
        async with get_async_session() as session:
            async with session.begin():
                ...
    """
    async with AsyncSessionLocal() as session:
        yield session
