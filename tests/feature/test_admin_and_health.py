import pytest

from tests.utils.helpers import bearer


@pytest.mark.feature
@pytest.mark.asyncio
async def test_health_reports_database_and_cleanup_state(async_client):
    response = await async_client.get("/api/v1/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["services"]["database"] == "healthy"
    assert body["services"]["sessions"]["status"] == "healthy"


@pytest.mark.feature
@pytest.mark.asyncio
async def test_health_is_unavailable_after_repeated_cleanup_failures(app, async_client):
    lifecycle = app.state.container.lifecycle_service
    lifecycle.consecutive_failures = app.state.container.settings.CLEANUP_FAILURE_THRESHOLD

    response = await async_client.get("/api/v1/health")

    assert response.status_code == 503
    assert response.json()["services"]["sessions"]["status"] == "unhealthy"


@pytest.mark.feature
@pytest.mark.asyncio
async def test_cleanup_and_metrics_require_admin(async_client, login, user, admin_user):
    user_token = (await login(user.username)).json()["access_token"]
    admin_token = (await login(admin_user.username)).json()["access_token"]

    # Regular users are refused.
    response = await async_client.post("/api/v1/admin/sessions/cleanup", headers=bearer(user_token))
    assert response.status_code == 403
    assert response.json()["code"] == "permission_denied"
    response = await async_client.get("/api/v1/metrics", headers=bearer(user_token))
    assert response.status_code == 403

    # Admins may run cleanup and read metrics.
    response = await async_client.post("/api/v1/admin/sessions/cleanup", headers=bearer(admin_token))
    assert response.status_code == 200
    assert set(response.json()) == {
        "expired_tokens",
        "expired_sessions",
        "marked_sessions",
        "evicted_sessions",
        "purged_tokens",
    }
    response = await async_client.get("/api/v1/metrics", headers=bearer(admin_token))
    assert response.status_code == 200
    metrics = response.json()
    assert metrics["active_sessions"] == 2
    assert metrics["cleanup_runs"] == 1


@pytest.mark.feature
@pytest.mark.asyncio
async def test_request_id_is_echoed(async_client):
    response = await async_client.get("/api/v1/health", headers={"X-Request-ID": "req-123"})

    assert response.headers["x-request-id"] == "req-123"
