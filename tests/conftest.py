import os

# Settings are read at import time; the test environment must exist first.
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("JWT_SECRET_KEY", "test-signing-key-that-is-long-enough-0123456789")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("BCRYPT_WORK_FACTOR", "4")
os.environ.setdefault("LOG_JSON", "false")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from sessionguard.core.application import create_application
from sessionguard.core.config.settings import Settings
from sessionguard.domain.entities.user import Role, User
from sessionguard.infrastructure.database import (
    build_async_engine,
    create_async_db_and_tables,
    create_session_factory,
)
from sessionguard.infrastructure.dependency_injection.auth_dependencies import (
    AuthContainer,
    build_auth_container,
)
from tests.factories.device import create_fake_device
from tests.factories.user import DEFAULT_PASSWORD, create_fake_user
from tests.utils.helpers import MAX_SESSIONS


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        APP_ENV="test",
        JWT_SECRET_KEY="test-signing-key-that-is-long-enough-0123456789",
        MAX_SESSIONS_PER_USER=MAX_SESSIONS,
        BCRYPT_WORK_FACTOR=4,
        CLEANUP_FAILURE_THRESHOLD=3,
        TERMINATION_LOCK_TIMEOUT_SECONDS=5,
        LOG_JSON=False,
    )


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """A fresh SQLite database file per test, with all tables created."""
    engine = build_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'sessionguard.db'}", busy_timeout_seconds=5)
    await create_async_db_and_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest_asyncio.fixture
async def container(session_factory, test_settings) -> AuthContainer:
    container = build_auth_container(session_factory, test_settings)
    yield container
    await container.token_service.drain_activity_updates()


@pytest.fixture
def make_user(container):
    """Persist a user and return it; keyword arguments go to `create_fake_user`."""

    async def _make_user(**kwargs) -> User:
        return await container.user_repository.save(create_fake_user(**kwargs))

    return _make_user


@pytest_asyncio.fixture
async def user(make_user) -> User:
    return await make_user(username="alice")


@pytest_asyncio.fixture
async def admin_user(make_user) -> User:
    return await make_user(username="root", role=Role.ADMIN)


@pytest.fixture
def device():
    return create_fake_device()


@pytest.fixture
def password() -> str:
    return DEFAULT_PASSWORD


@pytest_asyncio.fixture
async def app(test_settings, db_engine):
    application = create_application(app_settings=test_settings, db_engine=db_engine)
    yield application
    await application.state.container.token_service.drain_activity_updates()


@pytest_asyncio.fixture
async def async_client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
