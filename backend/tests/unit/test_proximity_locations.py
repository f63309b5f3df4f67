import pytest

from circl.domain.proximity import locations
from circl.domain.proximity.monitor import Position


@pytest.mark.asyncio
async def test_store_and_load_roundtrip(fake_redis):
    stored = await locations.store_location("u1", Position(45.5, -73.5), accuracy_m=12.5, mode="background", now=1000.0)
    assert stored.updated_at.timestamp() == 1000.0

    loaded = await locations.load_location("u1")
    assert loaded is not None
    assert loaded.position == Position(45.5, -73.5)
    assert loaded.accuracy_m == 12.5
    assert loaded.mode == "background"


@pytest.mark.asyncio
async def test_stream_entries_omit_coordinates(fake_redis):
    await locations.store_location("u1", Position(45.5, -73.5))
    entries = await fake_redis.xrange(locations.LOCATION_STREAM)
    assert len(entries) == 1
    _, fields = entries[0]
    assert fields["user_id"] == "u1"
    assert "lat" not in fields and "lon" not in fields


@pytest.mark.asyncio
async def test_load_positions_skips_unknown_and_malformed(fake_redis):
    await locations.store_location("u1", Position(1.0, 2.0))
    await fake_redis.hset("location:u2", mapping={"lat": "not-a-number", "lon": "2"})
    positions = await locations.load_positions(["u1", "u2", "u3"])
    assert positions == {"u1": Position(1.0, 2.0)}


@pytest.mark.asyncio
async def test_clear_location(fake_redis):
    await locations.store_location("u1", Position(1.0, 2.0))
    await locations.clear_location("u1")
    assert await locations.load_position("u1") is None


@pytest.mark.asyncio
async def test_client_timestamp_is_kept_beside_server_time(fake_redis):
    await locations.store_location("u1", Position(1.0, 2.0), client_ts=1_700_000_000_123, now=1000.0)
    loaded = await locations.load_location("u1")
    assert loaded is not None
    assert loaded.client_ts == 1_700_000_000_123
    assert loaded.updated_at.timestamp() == 1000.0

    await locations.store_location("u1", Position(1.0, 2.0))
    assert (await locations.load_location("u1")).client_ts is None
