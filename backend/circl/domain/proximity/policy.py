"""Guards for location ingestion and proximity settings."""

from __future__ import annotations

from circl.infra.rate_limit import allow
from circl.obs import metrics as obs_metrics
from circl.settings import settings


class ProximityError(Exception):
	"""Raised for proximity-level issues with HTTP status mapping."""

	def __init__(self, reason: str, *, status_code: int = 400):
		super().__init__(reason)
		self.reason = reason
		self.status_code = status_code


async def enforce_location_limit(user_id: str) -> None:
	allowed = await allow(
		"location_update",
		user_id,
		limit=settings.location_updates_per_minute,
		window_seconds=60,
	)
	if not allowed:
		obs_metrics.inc_location_reject("rate_limited")
		raise ProximityError("rate_limited", status_code=429)


def validate_distance(distance_mi: float) -> float:
	if not distance_mi > 0 or distance_mi > settings.proximity_max_distance_mi:
		raise ProximityError("distance_out_of_range")
	return float(distance_mi)
