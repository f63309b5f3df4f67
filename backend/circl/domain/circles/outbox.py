"""Outbox helpers for circle-domain events."""

from __future__ import annotations

from typing import Any

from circl.infra.redis import redis_client

CIRCLE_EVENT_STREAM = "x:circles.events"


async def append_circle_event(event: str, circle_id: str, *, user_id: str | None = None) -> None:
	fields: dict[str, Any] = {
		"event": event,
		"circle_id": circle_id,
	}
	if user_id:
		fields["user_id"] = str(user_id)
	await redis_client.xadd_capped(CIRCLE_EVENT_STREAM, fields)
