"""Health endpoint tests."""

import pytest


@pytest.mark.asyncio
async def test_health_returns_ok(client):
    """Health endpoint should return server status and version."""
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["server"] == "ok"
    assert "version" in data


@pytest.mark.asyncio
async def test_health_degraded_without_redis(unauthenticated_client):
    """No relay in tests — the service still answers, single-process."""
    resp = await unauthenticated_client.get("/api/v1/health")
    data = resp.json()
    assert data["status"] == "degraded"
    assert data["redis"].startswith("error:")
    assert data["realtime"]["relay"] == "local"


@pytest.mark.asyncio
async def test_health_reports_open_streams(client, hub, subscriber):
    hub.cases.subscribe("case-1", subscriber())
    resp = await client.get("/api/v1/health")
    assert resp.json()["realtime"]["cases"] == {"keys": 1, "subscribers": 1}
