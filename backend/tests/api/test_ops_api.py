import pytest

from circl.settings import settings


@pytest.mark.asyncio
async def test_liveness(api_client):
    response = await api_client.get("/health/live")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_readiness_in_memory_mode(api_client):
    response = await api_client.get("/health/ready")
    assert response.status_code == 200
    checks = response.json()["checks"]
    assert checks["redis"]["ok"] is True
    assert checks["postgres"] == {"ok": True, "mode": "memory"}


@pytest.mark.asyncio
async def test_metrics_requires_admin_token(api_client, monkeypatch):
    monkeypatch.setattr(settings, "obs_metrics_public", False)
    monkeypatch.setattr(settings, "obs_admin_token", "s3cret")

    denied = await api_client.get("/metrics")
    assert denied.status_code == 403

    allowed = await api_client.get("/metrics", headers={"X-Admin-Token": "s3cret"})
    assert allowed.status_code == 200
    assert "circl_" in allowed.text
