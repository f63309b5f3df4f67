import pytest

from circl.infra.jwt import encode_access
from circl.settings import settings


@pytest.mark.asyncio
async def test_profile_lifecycle(api_client, headers):
    created = await api_client.post("/profile/me", json={"display_name": "Amy"}, headers=headers("amy"))
    assert created.status_code == 201
    body = created.json()
    assert body["id"] == "amy"
    assert body["email"] == "amy@example.com"
    assert body["proximity_distance_mi"] == 0.5

    duplicate = await api_client.post("/profile/me", json={"display_name": "Amy"}, headers=headers("amy"))
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == "profile_exists"

    patched = await api_client.patch("/profile/me", json={"display_name": "Amelia"}, headers=headers("amy"))
    assert patched.status_code == 200
    assert patched.json()["display_name"] == "Amelia"

    fetched = await api_client.get("/profile/me", headers=headers("amy"))
    assert fetched.json()["display_name"] == "Amelia"

    deleted = await api_client.delete("/profile/me", headers=headers("amy"))
    assert deleted.status_code == 204
    missing = await api_client.get("/profile/me", headers=headers("amy"))
    assert missing.status_code == 404
    assert missing.json()["detail"] == "profile_not_found"


@pytest.mark.asyncio
async def test_profile_requires_auth(api_client):
    response = await api_client.get("/profile/me")
    assert response.status_code == 401
    assert response.json()["detail"] == "invalid_token"
    assert response.headers["X-Request-Id"]


@pytest.mark.asyncio
async def test_profile_email_conflict(api_client, headers):
    await api_client.post("/profile/me", json={"display_name": "Amy"}, headers=headers("amy"))
    response = await api_client.post(
        "/profile/me",
        json={"display_name": "Copy", "email": "AMY@example.com"},
        headers=headers("copy"),
    )
    assert response.status_code == 409
    assert response.json()["detail"] == "email_taken"


@pytest.mark.asyncio
async def test_profile_validation_error_shape(api_client, headers):
    response = await api_client.post(
        "/profile/me",
        json={"display_name": ""},
        headers={**headers("amy"), "X-Request-Id": "req-123"},
    )
    assert response.status_code == 422
    body = response.json()
    assert body["detail"] == "validation_error"
    assert body["request_id"] == "req-123"
    assert body["errors"]


@pytest.mark.asyncio
async def test_avatar_upload(api_client, headers, tmp_path):
    await api_client.post("/profile/me", json={"display_name": "Amy"}, headers=headers("amy"))
    response = await api_client.post(
        "/profile/avatar",
        files={"file": ("me.png", b"\x89PNG\r\n\x1a\n", "image/png")},
        headers=headers("amy"),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["key"].startswith("avatars/amy/")
    assert body["url"] == f"/uploads/{body['key']}"
    assert body["profile"]["avatar_url"] == body["url"]
    assert (tmp_path / "uploads" / body["key"]).exists()


@pytest.mark.asyncio
async def test_avatar_upload_rejects_bad_type(api_client, headers):
    await api_client.post("/profile/me", json={"display_name": "Amy"}, headers=headers("amy"))
    response = await api_client.post(
        "/profile/avatar",
        files={"file": ("cv.pdf", b"%PDF-1.4", "application/pdf")},
        headers=headers("amy"),
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "mime_invalid"


@pytest.mark.asyncio
async def test_bearer_token_authenticates_outside_dev(api_client, monkeypatch):
    monkeypatch.setattr(settings, "environment", "production")
    token = encode_access({"sub": "amy", "sid": "session-1", "email": "amy@example.com"})
    bearer = {"Authorization": f"Bearer {token}"}

    created = await api_client.post("/profile/me", json={"display_name": "Amy"}, headers=bearer)
    assert created.status_code == 201
    assert created.json()["email"] == "amy@example.com"

    # dev headers are ignored in production
    header_only = await api_client.get("/profile/me", headers={"X-User-Id": "amy"})
    assert header_only.status_code == 401

    bad = await api_client.get("/profile/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert bad.status_code == 401
