import asyncio

import pytest
from sqlalchemy import func, select

from sessionguard.core.exceptions import InvalidCredentialsError, MaxSessionsReachedError
from sessionguard.domain.entities.session import Session
from sessionguard.domain.entities.user import User
from tests.utils.helpers import MAX_SESSIONS


async def _count_sessions(session_factory, user_id):
    async with session_factory() as db:
        result = await db.execute(select(func.count()).select_from(Session).where(Session.user_id == user_id))
        return result.scalar_one()


@pytest.mark.asyncio
async def test_login_beyond_limit_is_refused_with_session_list(container, session_factory, user, device):
    # Arrange
    issued = [await container.token_service.issue(user, device) for _ in range(MAX_SESSIONS)]

    # Act
    with pytest.raises(MaxSessionsReachedError) as exc_info:
        await container.token_service.issue(user, device)

    # Assert
    error = exc_info.value
    assert error.max_sessions == MAX_SESSIONS
    assert error.user_id == user.id
    assert {s.id for s in error.sessions} == {t.session_id for t in issued}
    assert await _count_sessions(session_factory, user.id) == MAX_SESSIONS


@pytest.mark.asyncio
async def test_check_and_reserve_reports_without_mutating(container, session_factory, user, device):
    # Arrange
    limit_service = container.limit_service
    first = await container.token_service.issue(user, device)

    # Act
    allowed = await limit_service.check_and_reserve(user.id)
    for _ in range(MAX_SESSIONS - 1):
        await container.token_service.issue(user, device)
    refused = await limit_service.check_and_reserve(user.id, current_token_id=first.token_id)

    # Assert
    assert allowed.allowed is True
    assert allowed.active_count == 1
    assert allowed.sessions == ()
    assert refused.allowed is False
    assert refused.active_count == MAX_SESSIONS
    assert [s.is_current for s in refused.sessions].count(True) == 1
    assert await _count_sessions(session_factory, user.id) == MAX_SESSIONS


@pytest.mark.asyncio
async def test_marked_sessions_do_not_count_toward_limit(container, user, device):
    # Arrange
    issued = [await container.token_service.issue(user, device) for _ in range(MAX_SESSIONS)]
    await container.lifecycle_service.mark_for_deletion(issued[0].session_id, user.id)

    # Act
    tokens = await container.token_service.issue(user, device)

    # Assert
    assert tokens.session_id not in {t.session_id for t in issued}


@pytest.mark.asyncio
async def test_limit_is_per_user(container, make_user, user, device):
    other = await make_user(username="bob")
    for _ in range(MAX_SESSIONS):
        await container.token_service.issue(user, device)

    tokens = await container.token_service.issue(other, device)

    assert tokens.session_id


@pytest.mark.asyncio
async def test_concurrent_logins_never_exceed_limit(container, session_factory, user, device):
    # Act
    results = await asyncio.gather(
        *(container.token_service.issue(user, device) for _ in range(MAX_SESSIONS + 2)),
        return_exceptions=True,
    )

    # Assert
    refused = [r for r in results if isinstance(r, MaxSessionsReachedError)]
    issued = [r for r in results if not isinstance(r, Exception)]
    assert len(issued) == MAX_SESSIONS
    assert len(refused) == 2
    assert await _count_sessions(session_factory, user.id) == MAX_SESSIONS


@pytest.mark.asyncio
async def test_reserve_for_missing_user_fails_as_invalid_credentials(container, session_factory, device):
    ghost = User(id=4242, username="ghost", hashed_password="x")

    with pytest.raises(InvalidCredentialsError):
        await container.token_service.issue(ghost, device)
