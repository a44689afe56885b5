import pytest

from sessionguard.core.exceptions import (
    GENERIC_CREDENTIALS_MESSAGE,
    AccountInactiveError,
    InvalidCredentialsError,
    MaxSessionsReachedError,
)
from sessionguard.utils.security import pwd_context
from tests.utils.helpers import MAX_SESSIONS


@pytest.fixture
def auth_service(container):
    return container.auth_service


def test_pwd_context_work_factor(test_settings):
    """The bcrypt hash embeds the configured work factor."""
    hashed = pwd_context.hash("testpassword")
    assert pwd_context.schemes()[0] == "bcrypt"
    assert int(hashed.split("$")[2]) == test_settings.BCRYPT_WORK_FACTOR


@pytest.mark.asyncio
async def test_login_success_records_login(container, auth_service, user, device, password):
    # Act
    result = await auth_service.login(user.username.upper(), password, device)

    # Assert
    assert result.user.id == user.id
    stored = await container.user_repository.get_by_id(user.id)
    assert stored.last_login_at is not None
    assert stored.failed_login_attempts == 0


@pytest.mark.asyncio
async def test_credential_failures_are_indistinguishable(auth_service, make_user, user, password):
    # Arrange
    await make_user(username="dormant", is_active=False)

    # Act
    errors = []
    for username, secret in (("nobody", password), (user.username, "wrong"), ("dormant", password)):
        with pytest.raises(InvalidCredentialsError) as exc_info:
            await auth_service.authenticate_user(username, secret)
        errors.append(exc_info.value)

    # Assert
    assert {e.message for e in errors} == {GENERIC_CREDENTIALS_MESSAGE}
    assert {e.code for e in errors} == {"invalid_credentials"}
    assert isinstance(errors[2], AccountInactiveError)


@pytest.mark.asyncio
async def test_wrong_password_increments_failed_attempts(container, auth_service, user, device, password):
    # Arrange
    for _ in range(2):
        with pytest.raises(InvalidCredentialsError):
            await auth_service.authenticate_user(user.username, "wrong")

    # Assert
    stored = await container.user_repository.get_by_id(user.id)
    assert stored.failed_login_attempts == 2

    # A successful login resets the counter.
    await auth_service.login(user.username, password, device)
    stored = await container.user_repository.get_by_id(user.id)
    assert stored.failed_login_attempts == 0


@pytest.mark.asyncio
async def test_login_at_limit_raises_with_sessions(auth_service, user, device, password):
    for _ in range(MAX_SESSIONS):
        await auth_service.login(user.username, password, device)

    with pytest.raises(MaxSessionsReachedError) as exc_info:
        await auth_service.login(user.username, password, device)

    assert len(exc_info.value.sessions) == MAX_SESSIONS
    assert exc_info.value.user_id == user.id
