from __future__ import annotations

"""
Asynchronous Database Utilities Module

This module provides the asynchronous engine and session factory shared by
every service that reads or writes the session and refresh-token tables.
Services receive an `async_sessionmaker` and open one transaction per
operation, so begin/commit/rollback is never split across operations.

PostgreSQL through asyncpg is the production target. SQLite through aiosqlite
is supported for development and tests; for SQLite every transaction is
started with ``BEGIN IMMEDIATE`` so concurrent writers are serialized for the
whole database file, which is the SQLite equivalent of the per-user row locks
taken on PostgreSQL.

Key Components:
    - build_async_engine: Creates an engine with dialect-specific setup.
    - create_session_factory: Creates the `async_sessionmaker` services use.
    - engine: Application default engine built from settings.
    - create_async_db_and_tables: Creates all tables on an engine.
    - check_database_health: Connectivity probe with retry.
    - apply_lock_timeout / is_lock_timeout_error: Bounded lock-wait helpers.
"""

from typing import Optional

import structlog
from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from sessionguard.core.config.settings import settings
import sessionguard.domain.entities  # noqa: F401  registers tables on SQLModel.metadata

logger = structlog.get_logger(__name__)

# SQLSTATE raised by PostgreSQL when ``lock_timeout`` expires or NOWAIT fails.
PG_LOCK_NOT_AVAILABLE = "55P03"


def is_sqlite_url(url: str) -> bool:
    return make_url(url).get_backend_name() == "sqlite"


def build_async_engine(
    url: str,
    echo: bool = False,
    busy_timeout_seconds: float = 5.0,
    **engine_kwargs,
) -> AsyncEngine:
    """
    Build an async engine for ``url`` with dialect-specific setup.

    For SQLite the pysqlite implicit transaction handling is disabled and
    replaced with an explicit ``BEGIN IMMEDIATE`` so that a transaction takes
    the write lock up front. Foreign keys are enabled on every connection.

    Args:
        url: Async database URL.
        echo: Echo SQL statements.
        busy_timeout_seconds: How long SQLite waits on a locked database.
        **engine_kwargs: Passed through to `create_async_engine`.

    Returns:
        AsyncEngine: The configured engine.
    """
    if not is_sqlite_url(url):
        return create_async_engine(url, echo=echo, pool_pre_ping=True, **engine_kwargs)

    engine = create_async_engine(
        url,
        echo=echo,
        connect_args={"timeout": busy_timeout_seconds},
        **engine_kwargs,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _sqlite_on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory injected into services."""
    return async_sessionmaker(bind=bind, class_=AsyncSession, expire_on_commit=False)


def _build_default_engine() -> AsyncEngine:
    extra = {}
    if not is_sqlite_url(settings.DATABASE_URL):
        extra = {
            "pool_size": settings.DATABASE_POOL_SIZE,
            "max_overflow": settings.DATABASE_MAX_OVERFLOW,
            "pool_timeout": settings.DATABASE_POOL_TIMEOUT,
        }
    return build_async_engine(
        settings.DATABASE_URL,
        echo=settings.DATABASE_ECHO,
        busy_timeout_seconds=settings.TERMINATION_LOCK_TIMEOUT_SECONDS,
        **extra,
    )


engine = _build_default_engine()


async def create_async_db_and_tables(bind: Optional[AsyncEngine] = None) -> None:
    """
    Create all tables on ``bind`` (the application engine by default).
    """
    target = bind or engine
    async with target.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("database_tables_created", tables=sorted(SQLModel.metadata.tables.keys()))


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=4),
    retry=retry_if_exception_type(OperationalError),
    reraise=True,
)
async def _ping(bind: AsyncEngine) -> None:
    async with bind.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def check_database_health(bind: Optional[AsyncEngine] = None) -> bool:
    """
    Performs a health check on the database connection.

    Connection failures are retried with exponential backoff before the
    check is reported as failed.

    Returns:
        bool: True if database is healthy and responsive, False otherwise.
    """
    try:
        await _ping(bind or engine)
    except SQLAlchemyError as e:
        logger.error("database_health_check_failed", error=str(e))
        return False
    logger.debug("database_health_check_success")
    return True


def dialect_name(db: AsyncSession) -> str:
    return db.get_bind().dialect.name


async def apply_lock_timeout(db: AsyncSession, seconds: float) -> None:
    """
    Bound how long row-lock acquisition may wait in the current transaction.

    PostgreSQL gets ``SET LOCAL lock_timeout``; SQLite relies on the busy
    timeout configured on the connection.
    """
    if dialect_name(db) == "postgresql":
        await db.execute(text(f"SET LOCAL lock_timeout = '{int(seconds * 1000)}ms'"))


def is_lock_timeout_error(exc: DBAPIError) -> bool:
    """Whether ``exc`` means a lock could not be acquired in time."""
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate == PG_LOCK_NOT_AVAILABLE:
        return True
    return "database is locked" in str(orig or exc).lower()
