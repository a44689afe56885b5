import pytest
from sqlalchemy.exc import DBAPIError, OperationalError

from sessionguard.domain.entities.session import Session
from sessionguard.infrastructure.database import check_database_health
from sessionguard.infrastructure.database.async_db import is_lock_timeout_error, is_sqlite_url


class _PgError(Exception):
    sqlstate = "55P03"


def test_is_sqlite_url():
    assert is_sqlite_url("sqlite+aiosqlite:///./app.db") is True
    assert is_sqlite_url("postgresql+asyncpg://user:pw@db/app") is False


@pytest.mark.parametrize(
    "error, expected",
    [
        (DBAPIError("SELECT", {}, _PgError("canceling statement due to lock timeout")), True),
        (OperationalError("BEGIN IMMEDIATE", {}, Exception("database is locked")), True),
        (OperationalError("SELECT", {}, Exception("no such table: users")), False),
    ],
)
def test_is_lock_timeout_error(error, expected):
    assert is_lock_timeout_error(error) is expected


@pytest.mark.asyncio
async def test_check_database_health(db_engine):
    assert await check_database_health(db_engine) is True


@pytest.mark.asyncio
async def test_sqlite_enforces_foreign_keys(session_factory):
    with pytest.raises(DBAPIError):
        async with session_factory() as db, db.begin():
            db.add(Session(user_id=999, token_id="orphan"))
