import pytest

from circl.settings import settings


async def _friends(api_client, headers, a: str, b: str):
    for name in (a, b):
        await api_client.post("/profile/me", json={"display_name": name.title()}, headers=headers(name))
    sent = await api_client.post("/friends/requests", json={"email": f"{b}@example.com"}, headers=headers(a))
    await api_client.post(f"/friends/requests/{sent.json()['id']}/accept", headers=headers(b))


@pytest.mark.asyncio
async def test_location_updates_raise_alert_once(api_client, headers, emitted):
    await _friends(api_client, headers, "amy", "bob")

    first = await api_client.post("/location", json={"lat": 40.0, "lon": -75.0}, headers=headers("amy"))
    assert first.status_code == 200
    assert first.json() == {"ok": True, "alerts": []}

    near = await api_client.post(
        "/location",
        json={"lat": 40.0072, "lon": -75.0, "accuracy_m": 5, "mode": "background"},
        headers=headers("bob"),
    )
    alerts = near.json()["alerts"]
    assert [a["peer_id"] for a in alerts] == ["amy"]
    assert alerts[0]["threshold_mi"] == 0.5

    repeat = await api_client.post("/location", json={"lat": 40.0072, "lon": -75.0}, headers=headers("bob"))
    assert repeat.json()["alerts"] == []
    assert len(emitted.for_event("proximity:nearby")) == 2


@pytest.mark.asyncio
async def test_location_validation(api_client, headers):
    await api_client.post("/profile/me", json={"display_name": "Amy"}, headers=headers("amy"))
    response = await api_client.post("/location", json={"lat": 91, "lon": 0}, headers=headers("amy"))
    assert response.status_code == 422
    response = await api_client.post("/location", json={"lat": 0, "lon": 0, "mode": "sprint"}, headers=headers("amy"))
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_location_without_profile(api_client, headers):
    response = await api_client.post("/location", json={"lat": 0, "lon": 0}, headers=headers("ghost"))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_location_rate_limited(api_client, headers, monkeypatch):
    await api_client.post("/profile/me", json={"display_name": "Amy"}, headers=headers("amy"))
    monkeypatch.setattr(settings, "location_updates_per_minute", 1)
    ok = await api_client.post("/location", json={"lat": 0, "lon": 0}, headers=headers("amy"))
    assert ok.status_code == 200
    limited = await api_client.post("/location", json={"lat": 0, "lon": 0}, headers=headers("amy"))
    assert limited.status_code == 429
    assert limited.json()["detail"] == "rate_limited"


@pytest.mark.asyncio
async def test_peers_and_offline(api_client, headers):
    await _friends(api_client, headers, "amy", "bob")
    await api_client.post("/location", json={"lat": 40.0, "lon": -75.0}, headers=headers("amy"))
    await api_client.post("/location", json={"lat": 40.0072, "lon": -75.0}, headers=headers("bob"))

    peers = await api_client.get("/location/peers", headers=headers("amy"))
    body = peers.json()
    assert body["scope"] == "friends"
    assert [p["user_id"] for p in body["items"]] == ["bob"]
    assert body["items"][0]["within_range"] is True

    offline = await api_client.post("/location/offline", headers=headers("bob"))
    assert offline.status_code == 204
    peers = await api_client.get("/location/peers", headers=headers("amy"))
    assert peers.json()["items"] == []


@pytest.mark.asyncio
async def test_cadence(api_client, headers):
    response = await api_client.get("/location/cadence", headers=headers("amy"))
    assert response.status_code == 200
    assert response.json()["foreground_distance_m"] == settings.location_foreground_distance_m


@pytest.mark.asyncio
async def test_settings_roundtrip(api_client, headers):
    await api_client.post("/profile/me", json={"display_name": "Amy"}, headers=headers("amy"))
    await api_client.post("/profile/me", json={"display_name": "Bob"}, headers=headers("bob"))

    current = await api_client.get("/proximity/settings", headers=headers("amy"))
    assert current.json() == {"proximity_enabled": True, "proximity_distance_mi": 0.5, "active_circle_id": None}

    patched = await api_client.patch(
        "/proximity/settings",
        json={"proximity_enabled": False, "proximity_distance_mi": 2},
        headers=headers("amy"),
    )
    assert patched.json()["proximity_enabled"] is False
    assert patched.json()["proximity_distance_mi"] == 2

    zero = await api_client.patch("/proximity/settings", json={"proximity_distance_mi": 0}, headers=headers("amy"))
    assert zero.status_code == 422

    foreign = (await api_client.post("/circles", json={"name": "Bob's"}, headers=headers("bob"))).json()
    denied = await api_client.patch(
        "/proximity/settings",
        json={"active_circle_id": foreign["id"]},
        headers=headers("amy"),
    )
    assert denied.status_code == 403

    own = (await api_client.post("/circles", json={"name": "Amy's"}, headers=headers("amy"))).json()
    selected = await api_client.patch("/proximity/settings", json={"active_circle_id": own["id"]}, headers=headers("amy"))
    assert selected.json()["active_circle_id"] == own["id"]
    cleared = await api_client.patch("/proximity/settings", json={"active_circle_id": None}, headers=headers("amy"))
    assert cleared.json()["active_circle_id"] is None
    assert cleared.json()["proximity_distance_mi"] == 2


@pytest.mark.asyncio
async def test_distance_limit_follows_configured_maximum(api_client, headers, monkeypatch):
    await api_client.post("/profile/me", json={"display_name": "Amy"}, headers=headers("amy"))

    too_far = await api_client.patch("/proximity/settings", json={"proximity_distance_mi": 75}, headers=headers("amy"))
    assert too_far.status_code == 400
    assert too_far.json()["detail"] == "distance_out_of_range"

    monkeypatch.setattr(settings, "proximity_max_distance_mi", 100.0)
    allowed = await api_client.patch("/proximity/settings", json={"proximity_distance_mi": 75}, headers=headers("amy"))
    assert allowed.status_code == 200
    assert allowed.json()["proximity_distance_mi"] == 75


@pytest.mark.asyncio
async def test_location_post_records_client_timestamp(api_client, headers, fake_redis):
    await api_client.post("/profile/me", json={"display_name": "Amy"}, headers=headers("amy"))
    response = await api_client.post(
        "/location",
        json={"lat": 40.0, "lon": -75.0, "ts_client": 1700000000123},
        headers=headers("amy"),
    )
    assert response.status_code == 200
    stored = await fake_redis.hgetall("location:amy")
    assert stored["client_ts"] == "1700000000123"
