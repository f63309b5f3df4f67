import pytest


async def _profiles(api_client, headers, *names):
    for name in names:
        await api_client.post("/profile/me", json={"display_name": name.title()}, headers=headers(name))


@pytest.mark.asyncio
async def test_circle_flow(api_client, headers):
    await _profiles(api_client, headers, "owner", "member")
    created = await api_client.post("/circles", json={"name": "Hiking"}, headers=headers("owner"))
    assert created.status_code == 201
    circle = created.json()
    assert circle["role"] == "owner"

    joined = await api_client.post(
        "/circles/join/by-code",
        json={"invite_code": circle["invite_code"]},
        headers=headers("member"),
    )
    assert joined.status_code == 200
    assert joined.json()["members_count"] == 2

    detail = await api_client.get(f"/circles/{circle['id']}", headers=headers("member"))
    assert {m["user_id"] for m in detail.json()["members"]} == {"owner", "member"}

    rename = await api_client.patch(f"/circles/{circle['id']}", json={"name": "Mine"}, headers=headers("member"))
    assert rename.status_code == 403
    assert rename.json()["detail"] == "forbidden"

    rotated = await api_client.post(f"/circles/{circle['id']}/invite-code/rotate", headers=headers("owner"))
    assert rotated.status_code == 200
    assert rotated.json()["invite_code"] != circle["invite_code"]

    owner_leave = await api_client.post(f"/circles/{circle['id']}/leave", headers=headers("owner"))
    assert owner_leave.status_code == 400

    left = await api_client.post(f"/circles/{circle['id']}/leave", headers=headers("member"))
    assert left.status_code == 204
    listed = await api_client.get("/circles", headers=headers("member"))
    assert listed.json() == []

    deleted = await api_client.delete(f"/circles/{circle['id']}", headers=headers("owner"))
    assert deleted.status_code == 204
    gone = await api_client.get(f"/circles/{circle['id']}", headers=headers("owner"))
    assert gone.status_code == 404


@pytest.mark.asyncio
async def test_join_with_unknown_code(api_client, headers):
    await _profiles(api_client, headers, "member")
    response = await api_client.post("/circles/join/by-code", json={"invite_code": "ZZZZZZZZ"}, headers=headers("member"))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_add_member_needs_friendship(api_client, headers):
    await _profiles(api_client, headers, "owner", "stranger")
    circle = (await api_client.post("/circles", json={"name": "Crew"}, headers=headers("owner"))).json()
    response = await api_client.post(
        f"/circles/{circle['id']}/members",
        json={"user_id": "stranger"},
        headers=headers("owner"),
    )
    assert response.status_code == 403
    assert response.json()["detail"] == "not_friends"
