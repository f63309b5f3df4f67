"""Last-known locations kept in Redis hashes."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

from circl.domain.proximity.monitor import Position
from circl.infra.redis import redis_client

LOCATION_STREAM = "x:location.updates"


@dataclass(slots=True)
class StoredLocation:
    position: Position
    accuracy_m: Optional[float]
    mode: str
    ts: float
    client_ts: Optional[int] = None

    @property
    def updated_at(self) -> datetime:
        return datetime.fromtimestamp(self.ts, tz=timezone.utc)


def _location_key(user_id: str) -> str:
    return f"location:{user_id}"


def _parse(raw: Dict[str, str]) -> Optional[StoredLocation]:
    if not raw:
        return None
    try:
        position = Position(float(raw["lat"]), float(raw["lon"]))
        ts = float(raw.get("ts") or 0.0)
        client_ts = int(raw["client_ts"]) if raw.get("client_ts") else None
    except (KeyError, TypeError, ValueError):
        return None
    accuracy = raw.get("accuracy_m")
    return StoredLocation(
        position=position,
        accuracy_m=float(accuracy) if accuracy else None,
        mode=raw.get("mode") or "foreground",
        ts=ts,
        client_ts=client_ts,
    )


async def store_location(
    user_id: str,
    position: Position,
    *,
    accuracy_m: Optional[float] = None,
    mode: str = "foreground",
    client_ts: Optional[int] = None,
    now: Optional[float] = None,
) -> StoredLocation:
    """Overwrite the user's last-known location; positions never expire.

    ``ts`` is always server time. ``client_ts`` keeps the device clock reading
    (epoch milliseconds) as reported, without trusting it for ordering.
    """
    ts = now if now is not None else time.time()
    mapping = {
        "lat": repr(float(position.latitude)),
        "lon": repr(float(position.longitude)),
        "accuracy_m": "" if accuracy_m is None else repr(float(accuracy_m)),
        "mode": mode,
        "ts": repr(ts),
        "client_ts": "" if client_ts is None else str(int(client_ts)),
    }
    await redis_client.hset(_location_key(user_id), mapping=mapping)
    await redis_client.xadd_capped(
        LOCATION_STREAM,
        {"user_id": user_id, "mode": mode, "accuracy_m": mapping["accuracy_m"], "ts": mapping["ts"]},
    )
    return StoredLocation(position=position, accuracy_m=accuracy_m, mode=mode, ts=ts, client_ts=client_ts)


async def load_location(user_id: str) -> Optional[StoredLocation]:
    return _parse(await redis_client.hgetall(_location_key(user_id)))


async def load_position(user_id: str) -> Optional[Position]:
    stored = await load_location(user_id)
    return stored.position if stored else None


async def load_locations(user_ids: Iterable[str]) -> Dict[str, StoredLocation]:
    ids = list(dict.fromkeys(user_ids))
    if not ids:
        return {}
    async with redis_client.pipeline(transaction=False) as pipe:
        for user_id in ids:
            pipe.hgetall(_location_key(user_id))
        rows = await pipe.execute()
    result: Dict[str, StoredLocation] = {}
    for user_id, raw in zip(ids, rows):
        parsed = _parse(raw)
        if parsed is not None:
            result[user_id] = parsed
    return result


async def load_positions(user_ids: Iterable[str]) -> Dict[str, Position]:
    return {uid: stored.position for uid, stored in (await load_locations(user_ids)).items()}


async def clear_location(user_id: str) -> None:
    await redis_client.delete(_location_key(user_id))
