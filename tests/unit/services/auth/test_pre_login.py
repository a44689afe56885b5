import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from sessionguard.core.exceptions import (
    InvalidCredentialsError,
    InvalidRefreshTokenError,
    SessionLockTimeoutError,
    SessionNotFoundError,
)
from sessionguard.domain.entities.refresh_token import RefreshToken
from sessionguard.domain.entities.session import Session
from sessionguard.domain.services.auth.pre_login import (
    LoginFlowState,
    LoginRecoveryFlow,
    PreLoginTerminationService,
)
from sessionguard.infrastructure.database import build_async_engine, create_session_factory
from tests.utils.helpers import MAX_SESSIONS


@pytest.fixture
def pre_login_service(container):
    return container.pre_login_service


@pytest.fixture
def recovery_flow(container):
    return LoginRecoveryFlow(container.auth_service, container.pre_login_service)


@pytest_asyncio.fixture
async def short_wait_pre_login_service(db_engine, test_settings):
    """Termination service on a second engine that waits briefly for locks."""
    engine = build_async_engine(str(db_engine.url), busy_timeout_seconds=0.3)
    yield PreLoginTerminationService(create_session_factory(engine), test_settings)
    await engine.dispose()


async def _fill_sessions(container, user, device):
    return [await container.token_service.issue(user, device) for _ in range(MAX_SESSIONS)]


@pytest.mark.asyncio
async def test_terminate_hard_deletes_session_and_refresh_token(
    container, pre_login_service, session_factory, user, device
):
    # Arrange
    issued = await _fill_sessions(container, user, device)
    victim = issued[0]

    # Act
    result = await pre_login_service.terminate(user.id, victim.session_id, device)

    # Assert
    assert result.session_id == victim.session_id
    assert result.remaining_sessions == MAX_SESSIONS - 1
    async with session_factory() as db:
        assert await db.get(Session, victim.session_id) is None
        tokens = await db.execute(select(RefreshToken).where(RefreshToken.token_id == victim.token_id))
        assert tokens.scalars().first() is None
    with pytest.raises(SessionNotFoundError):
        await container.token_service.verify(victim.access_token)
    with pytest.raises(InvalidRefreshTokenError):
        await container.token_service.rotate(victim.refresh_token)


@pytest.mark.asyncio
async def test_terminate_then_login_succeeds(container, pre_login_service, user, device, password):
    # Arrange
    issued = await _fill_sessions(container, user, device)
    await pre_login_service.terminate(user.id, issued[1].session_id)

    # Act
    result = await container.auth_service.login(user.username, password, device)

    # Assert
    sessions = await container.lifecycle_service.get_user_sessions(user.id)
    assert len(sessions) == MAX_SESSIONS
    assert result.tokens.session_id in {s.id for s in sessions}


@pytest.mark.asyncio
async def test_terminate_unknown_or_foreign_session_is_not_found(
    container, pre_login_service, make_user, user, device
):
    # Arrange
    mallory = await make_user(username="mallory")
    tokens = await container.token_service.issue(user, device)

    # Act & Assert
    with pytest.raises(SessionNotFoundError):
        await pre_login_service.terminate(user.id, "00000000-0000-0000-0000-000000000000")
    with pytest.raises(SessionNotFoundError):
        await pre_login_service.terminate(mallory.id, tokens.session_id)


@pytest.mark.asyncio
async def test_terminate_marked_session_is_not_found(container, pre_login_service, user, device):
    tokens = await container.token_service.issue(user, device)
    await container.lifecycle_service.mark_for_deletion(tokens.session_id, user.id)

    with pytest.raises(SessionNotFoundError):
        await pre_login_service.terminate(user.id, tokens.session_id)


@pytest.mark.asyncio
async def test_terminate_maps_driver_lock_error_to_retriable_error(
    container, pre_login_service, mocker, user, device
):
    # Arrange
    tokens = await container.token_service.issue(user, device)
    mocker.patch(
        "sessionguard.domain.services.auth.pre_login.apply_lock_timeout",
        side_effect=OperationalError("BEGIN IMMEDIATE", {}, Exception("database is locked")),
    )

    # Act
    with pytest.raises(SessionLockTimeoutError) as exc_info:
        await pre_login_service.terminate(user.id, tokens.session_id)

    # Assert
    assert exc_info.value.retriable is True
    assert exc_info.value.code == "session_locked"


@pytest.mark.asyncio
async def test_terminate_gives_up_while_another_writer_holds_the_lock(
    container, short_wait_pre_login_service, db_engine, user, device
):
    # Arrange
    tokens = await container.token_service.issue(user, device)

    # Act
    async with db_engine.connect() as writer:
        await writer.begin()
        with pytest.raises(SessionLockTimeoutError) as exc_info:
            await short_wait_pre_login_service.terminate(user.id, tokens.session_id)
        await writer.rollback()

    # Assert
    assert exc_info.value.retriable is True
    sessions = await container.lifecycle_service.get_user_sessions(user.id)
    assert [s.id for s in sessions] == [tokens.session_id]


@pytest.mark.asyncio
async def test_recovery_flow_issues_tokens_after_termination(
    container, recovery_flow, user, device, password
):
    # Arrange
    issued = await _fill_sessions(container, user, device)
    offered = []

    async def choose_oldest(sessions):
        offered.append([s.id for s in sessions])
        return sessions[-1].id

    # Act
    outcome = await recovery_flow.run(user.username, password, device, choose_oldest)

    # Assert
    assert outcome.state is LoginFlowState.ISSUED
    assert outcome.tokens is not None
    assert outcome.history == [
        LoginFlowState.ATTEMPTING_LOGIN,
        LoginFlowState.AWAITING_SESSION_CHOICE,
        LoginFlowState.TERMINATING,
        LoginFlowState.RETRYING_LOGIN,
        LoginFlowState.ISSUED,
    ]
    assert set(offered[0]) == {t.session_id for t in issued}


@pytest.mark.asyncio
async def test_recovery_flow_without_limit_issues_directly(recovery_flow, user, device, password):
    async def never_called(sessions):
        raise AssertionError("chooser must not be called")

    outcome = await recovery_flow.run(user.username, password, device, never_called)

    assert outcome.state is LoginFlowState.ISSUED
    assert outcome.history == [LoginFlowState.ATTEMPTING_LOGIN, LoginFlowState.ISSUED]


@pytest.mark.asyncio
async def test_recovery_flow_cancelled_by_user(container, recovery_flow, user, device, password):
    # Arrange
    await _fill_sessions(container, user, device)

    async def cancel(sessions):
        return None

    # Act
    outcome = await recovery_flow.run(user.username, password, device, cancel)

    # Assert
    assert outcome.state is LoginFlowState.ABORTED
    assert outcome.tokens is None
    assert len(outcome.sessions) == MAX_SESSIONS
    assert len(await container.lifecycle_service.get_user_sessions(user.id)) == MAX_SESSIONS


@pytest.mark.asyncio
async def test_recovery_flow_reports_vanished_session(container, recovery_flow, user, device, password):
    # Arrange
    issued = await _fill_sessions(container, user, device)

    async def choose_then_lose_race(sessions):
        # Another device logs this session out before the termination lands.
        await container.token_service.revoke_for_logout(user.id, issued[0].token_id)
        return issued[0].session_id

    # Act
    outcome = await recovery_flow.run(user.username, password, device, choose_then_lose_race)

    # Assert
    assert outcome.state is LoginFlowState.SESSION_NOT_FOUND
    assert isinstance(outcome.error, SessionNotFoundError)
    assert outcome.history[-2:] == [LoginFlowState.TERMINATING, LoginFlowState.SESSION_NOT_FOUND]


@pytest.mark.asyncio
async def test_recovery_flow_rejects_bad_credentials(recovery_flow, user, device):
    async def chooser(sessions):
        return None

    with pytest.raises(InvalidCredentialsError):
        await recovery_flow.run(user.username, "wrong-password", device, chooser)
