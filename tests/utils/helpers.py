"""Shared constants and helpers for the test suite."""

MAX_SESSIONS = 3

DEVICE_PAYLOAD = {"deviceInfo": {"type": "desktop", "browser": "Firefox", "os": "Linux"}}


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
