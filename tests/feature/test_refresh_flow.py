import pytest

from tests.utils.helpers import bearer


@pytest.mark.feature
@pytest.mark.asyncio
async def test_refresh_rotates_and_rejects_reuse(async_client, login, user):
    # Arrange
    issued = (await login(user.username)).json()
    async_client.cookies.clear()

    # Act
    response = await async_client.post("/api/v1/auth/refresh", json={"refresh_token": issued["refresh_token"]})

    # Assert
    assert response.status_code == 200
    rotated = response.json()
    assert rotated["session_id"] == issued["session_id"]
    assert rotated["refresh_token"] != issued["refresh_token"]
    assert "refresh_token=" in response.headers["set-cookie"]

    async_client.cookies.clear()
    response = await async_client.post("/api/v1/auth/refresh", json={"refresh_token": issued["refresh_token"]})
    assert response.status_code == 401
    assert response.json()["code"] == "invalid_refresh_token"

    response = await async_client.get("/api/v1/auth/verify", headers=bearer(rotated["access_token"]))
    assert response.status_code == 200


@pytest.mark.feature
@pytest.mark.asyncio
async def test_refresh_without_token_is_unauthorized(async_client):
    async_client.cookies.clear()

    response = await async_client.post("/api/v1/auth/refresh")

    assert response.status_code == 401
    assert response.json()["code"] == "invalid_refresh_token"


@pytest.mark.feature
@pytest.mark.asyncio
async def test_refresh_after_logout_fails(async_client, login, user):
    issued = (await login(user.username)).json()
    await async_client.post("/api/v1/auth/logout", headers=bearer(issued["access_token"]))
    async_client.cookies.clear()

    response = await async_client.post("/api/v1/auth/refresh", json={"refresh_token": issued["refresh_token"]})

    assert response.status_code == 401
