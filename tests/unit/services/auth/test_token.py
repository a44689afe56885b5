import asyncio
from datetime import timedelta

import jwt
import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from sessionguard.core.exceptions import (
    InvalidRefreshTokenError,
    InvalidTokenError,
    SessionNotFoundError,
    TokenExpiredError,
)
from sessionguard.domain.entities.refresh_token import RefreshToken
from sessionguard.domain.entities.session import Session
from sessionguard.domain.entities.user import Role
from sessionguard.domain.value_objects.jwt_token import TokenId


@pytest.fixture
def token_service(container):
    return container.token_service


async def _session_row(session_factory, session_id):
    async with session_factory() as db:
        return await db.get(Session, session_id)


async def _refresh_rows(session_factory, user_id):
    async with session_factory() as db:
        result = await db.execute(select(RefreshToken).where(RefreshToken.user_id == user_id))
        return list(result.scalars().all())


@pytest.mark.asyncio
async def test_issue_binds_token_pair_to_new_session(token_service, session_factory, user, device):
    # Act
    tokens = await token_service.issue(user, device)

    # Assert
    access = jwt.decode(tokens.access_token, options={"verify_signature": False})
    refresh = jwt.decode(tokens.refresh_token, options={"verify_signature": False})
    assert access["sub"] == str(user.id)
    assert access["tid"] == tokens.token_id == refresh["tid"]
    assert access["type"] == "access"
    assert refresh["type"] == "refresh"
    assert access["role"] == Role.USER.value
    assert len(tokens.token_id) == TokenId.TOKEN_ID_LENGTH

    session = await _session_row(session_factory, tokens.session_id)
    assert session.token_id == tokens.token_id
    assert session.device_name == device.friendly_name
    assert session.is_marked_for_deletion is False

    rows = await _refresh_rows(session_factory, user.id)
    assert [row.id for row in rows] == [refresh["jti"]]
    assert rows[0].is_revoked is False


@pytest.mark.asyncio
async def test_verify_returns_claims_and_records_activity(token_service, session_factory, user, device):
    # Arrange
    tokens = await token_service.issue(user, device)

    # Act
    claims = await token_service.verify(tokens.access_token, client_ip="10.0.0.7")
    await token_service.drain_activity_updates()

    # Assert
    assert claims.user_id == user.id
    assert claims.token_id == tokens.token_id
    assert claims.role is Role.USER
    session = await _session_row(session_factory, tokens.session_id)
    assert session.activity_count == 1
    assert session.last_ip == "10.0.0.7"


@pytest.mark.asyncio
async def test_failed_activity_update_does_not_fail_verify(
    token_service, session_factory, mocker, user, device
):
    # Arrange
    tokens = await token_service.issue(user, device)
    mocker.patch(
        "sessionguard.domain.services.auth.token.update",
        side_effect=OperationalError("UPDATE user_sessions", {}, Exception("disk I/O error")),
    )

    # Act
    claims = await token_service.verify(tokens.access_token, client_ip="10.0.0.7")
    await token_service.drain_activity_updates()

    # Assert
    assert claims.token_id == tokens.token_id
    session = await _session_row(session_factory, tokens.session_id)
    assert session.activity_count == 0
    assert session.last_ip == device.ip


@pytest.mark.asyncio
async def test_verify_rejects_tampered_and_wrong_type_tokens(token_service, user, device):
    # Arrange
    tokens = await token_service.issue(user, device)
    forged = jwt.encode(
        jwt.decode(tokens.access_token, options={"verify_signature": False}),
        "another-secret-key-that-is-long-enough-000",
        algorithm="HS256",
    )

    # Act & Assert
    with pytest.raises(InvalidTokenError):
        await token_service.verify(forged)
    with pytest.raises(InvalidTokenError):
        await token_service.verify(tokens.refresh_token)
    with pytest.raises(InvalidTokenError):
        await token_service.verify("not-a-jwt")


@pytest.mark.asyncio
async def test_rotate_moves_session_to_new_token_and_rejects_reuse(token_service, session_factory, user, device):
    # Arrange
    original = await token_service.issue(user, device)

    # Act
    rotated = await token_service.rotate(original.refresh_token)

    # Assert
    assert rotated.session_id == original.session_id
    assert rotated.token_id != original.token_id
    session = await _session_row(session_factory, original.session_id)
    assert session.token_id == rotated.token_id

    rows = {row.token_id: row for row in await _refresh_rows(session_factory, user.id)}
    assert rows[original.token_id].is_revoked is True
    assert rows[rotated.token_id].is_revoked is False

    with pytest.raises(InvalidRefreshTokenError):
        await token_service.rotate(original.refresh_token)
    # The old access token no longer maps to a live session.
    with pytest.raises(SessionNotFoundError):
        await token_service.verify(original.access_token)
    claims = await token_service.verify(rotated.access_token)
    assert claims.token_id == rotated.token_id


@pytest.mark.asyncio
async def test_concurrent_rotation_succeeds_exactly_once(token_service, user, device):
    # Arrange
    tokens = await token_service.issue(user, device)

    # Act
    results = await asyncio.gather(
        token_service.rotate(tokens.refresh_token),
        token_service.rotate(tokens.refresh_token),
        return_exceptions=True,
    )

    # Assert
    failures = [r for r in results if isinstance(r, Exception)]
    successes = [r for r in results if not isinstance(r, Exception)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], InvalidRefreshTokenError)


@pytest.mark.asyncio
async def test_rotate_rejects_access_token_and_garbage(token_service, user, device):
    tokens = await token_service.issue(user, device)

    with pytest.raises(InvalidRefreshTokenError):
        await token_service.rotate(tokens.access_token)
    with pytest.raises(InvalidRefreshTokenError):
        await token_service.rotate("garbage")


@pytest.mark.asyncio
async def test_expired_access_token_marks_session_and_revokes_refresh(
    token_service, session_factory, user, device
):
    # Arrange
    tokens = await token_service.issue(user, device)
    expired = token_service.create_access_token(
        user.id, tokens.token_id, user.role, expires_delta=timedelta(seconds=-30)
    )

    # Act
    with pytest.raises(TokenExpiredError):
        await token_service.verify(expired)

    # Assert
    session = await _session_row(session_factory, tokens.session_id)
    assert session.is_marked_for_deletion is True
    assert session.marked_at is not None
    rows = await _refresh_rows(session_factory, user.id)
    assert all(row.is_revoked for row in rows)
    with pytest.raises(InvalidRefreshTokenError):
        await token_service.rotate(tokens.refresh_token)


@pytest.mark.asyncio
async def test_logout_marks_session_and_revokes_refresh_token(token_service, session_factory, user, device):
    # Arrange
    tokens = await token_service.issue(user, device)
    other = await token_service.issue(user, device)

    # Act
    result = await token_service.revoke_for_logout(user.id, tokens.token_id)

    # Assert
    assert result is True
    assert token_service.logout_verification_failures == 0
    with pytest.raises(SessionNotFoundError):
        await token_service.verify(tokens.access_token)
    with pytest.raises(InvalidRefreshTokenError):
        await token_service.rotate(tokens.refresh_token)
    # Other sessions of the same user are untouched.
    claims = await token_service.verify(other.access_token)
    assert claims.token_id == other.token_id


@pytest.mark.asyncio
async def test_logout_is_idempotent(token_service, user, device):
    tokens = await token_service.issue(user, device)

    assert await token_service.revoke_for_logout(user.id, tokens.token_id) is True
    assert await token_service.revoke_for_logout(user.id, tokens.token_id) is True
    assert token_service.logout_verification_failures == 0


@pytest.mark.asyncio
async def test_logout_cannot_touch_another_users_session(token_service, make_user, user, device):
    # Arrange
    mallory = await make_user(username="mallory")
    tokens = await token_service.issue(user, device)

    # Act
    await token_service.revoke_for_logout(mallory.id, tokens.token_id)

    # Assert
    claims = await token_service.verify(tokens.access_token)
    assert claims.user_id == user.id
