import pytest

from circl.domain.social import service
from circl.domain.social.exceptions import FriendRequestRateLimitExceeded


async def _profiles(api_client, headers, *names):
    for name in names:
        response = await api_client.post("/profile/me", json={"display_name": name.title()}, headers=headers(name))
        assert response.status_code == 201


@pytest.mark.asyncio
async def test_request_flow(api_client, headers):
    await _profiles(api_client, headers, "amy", "bob")
    code = (await api_client.post("/friends/code", headers=headers("bob"))).json()["friend_code"]

    sent = await api_client.post("/friends/requests", json={"friend_code": code}, headers=headers("amy"))
    assert sent.status_code == 200
    request_id = sent.json()["id"]

    again = await api_client.post("/friends/requests", json={"friend_code": code}, headers=headers("amy"))
    assert again.status_code == 409
    assert again.json()["detail"] == "already_sent"

    incoming = await api_client.get("/friends/requests/incoming", headers=headers("bob"))
    assert [r["id"] for r in incoming.json()] == [request_id]

    forbidden = await api_client.post(f"/friends/requests/{request_id}/accept", headers=headers("amy"))
    assert forbidden.status_code == 403

    accepted = await api_client.post(f"/friends/requests/{request_id}/accept", headers=headers("bob"))
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "accepted"

    gone = await api_client.post(f"/friends/requests/{request_id}/deny", headers=headers("bob"))
    assert gone.status_code == 410

    friends = await api_client.get("/friends", headers=headers("amy"))
    assert [f["user_id"] for f in friends.json()] == ["bob"]

    removed = await api_client.delete("/friends/bob", headers=headers("amy"))
    assert removed.status_code == 204
    missing = await api_client.delete("/friends/bob", headers=headers("amy"))
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_send_requires_one_target(api_client, headers):
    await _profiles(api_client, headers, "amy")
    response = await api_client.post("/friends/requests", json={}, headers=headers("amy"))
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_send_unknown_user(api_client, headers):
    await _profiles(api_client, headers, "amy")
    response = await api_client.post("/friends/requests", json={"email": "nobody@example.com"}, headers=headers("amy"))
    assert response.status_code == 404
    assert response.json()["detail"] == "user_not_found"


@pytest.mark.asyncio
async def test_send_rate_limited(api_client, headers, monkeypatch):
    async def limited(auth_user, payload):
        raise FriendRequestRateLimitExceeded("per_minute")

    monkeypatch.setattr(service, "send_request", limited)
    response = await api_client.post("/friends/requests", json={"email": "bob@example.com"}, headers=headers("amy"))
    assert response.status_code == 429
    assert response.json()["detail"] == "per_minute"


@pytest.mark.asyncio
async def test_cancel_outgoing(api_client, headers):
    await _profiles(api_client, headers, "amy", "bob")
    sent = await api_client.post("/friends/requests", json={"email": "bob@example.com"}, headers=headers("amy"))
    request_id = sent.json()["id"]
    outgoing = await api_client.get("/friends/requests/outgoing", headers=headers("amy"))
    assert [r["id"] for r in outgoing.json()] == [request_id]
    cancelled = await api_client.post(f"/friends/requests/{request_id}/cancel", headers=headers("amy"))
    assert cancelled.json()["status"] == "cancelled"
