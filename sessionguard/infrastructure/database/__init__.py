from .async_db import (
    build_async_engine,
    check_database_health,
    create_async_db_and_tables,
    create_session_factory,
    engine,
)

__all__ = [
    "build_async_engine",
    "check_database_health",
    "create_async_db_and_tables",
    "create_session_factory",
    "engine",
]
