import pytest

from tests.utils.helpers import DEVICE_PAYLOAD


@pytest.fixture
def login(async_client, password):
    """POST /auth/login for a username, with the default password unless given."""

    async def _login(username, device=DEVICE_PAYLOAD, secret=None):
        return await async_client.post(
            "/api/v1/auth/login",
            json={"username": username, "password": secret or password, "device": device},
        )

    return _login
