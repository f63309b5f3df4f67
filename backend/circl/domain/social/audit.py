"""Audit helpers for friend requests & friendships."""

from __future__ import annotations

from typing import Dict

from circl.infra.redis import redis_client
from circl.obs import metrics as obs_metrics

REQUEST_STREAM = "x:friend_requests.events"
FRIENDSHIP_STREAM = "x:friendships.events"


async def log_request_event(event: str, fields: Dict[str, str]) -> None:
	await redis_client.xadd_capped(REQUEST_STREAM, {"event": event, **fields})


async def log_friend_event(event: str, fields: Dict[str, str]) -> None:
	await redis_client.xadd_capped(FRIENDSHIP_STREAM, {"event": event, **fields})


def inc_request(action: str) -> None:
	obs_metrics.inc_friend_request(action)
