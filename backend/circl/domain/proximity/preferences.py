"""Per-user proximity settings stored on the user record."""

from __future__ import annotations

from typing import Any, Dict

from circl.domain.circles import service as circles_service
from circl.domain.identity import models as identity_models
from circl.domain.identity.service import ProfileNotFound, require_user, users
from circl.domain.proximity import policy, schemas
from circl.domain.proximity.monitor import ProximityConfig


def config_for(user: identity_models.User) -> ProximityConfig:
	return ProximityConfig(
		enabled=user.proximity_enabled,
		threshold_miles=user.proximity_distance_mi,
	)


async def get_config(user_id: str) -> ProximityConfig:
	"""Monitor configuration for ``user_id``; defaults apply when no profile exists."""
	user = await users.get(user_id)
	if user is None:
		return ProximityConfig()
	return config_for(user)


def _to_settings(user: identity_models.User) -> schemas.ProximitySettings:
	return schemas.ProximitySettings(
		proximity_enabled=user.proximity_enabled,
		proximity_distance_mi=user.proximity_distance_mi,
		active_circle_id=user.active_circle_id,
	)


async def get_settings(user_id: str) -> schemas.ProximitySettings:
	return _to_settings(await require_user(user_id))


async def update_settings(user_id: str, patch: schemas.ProximitySettingsPatch) -> schemas.ProximitySettings:
	await require_user(user_id)
	changes: Dict[str, Any] = {}
	if patch.proximity_enabled is not None:
		changes["proximity_enabled"] = patch.proximity_enabled
	if patch.proximity_distance_mi is not None:
		changes["proximity_distance_mi"] = policy.validate_distance(patch.proximity_distance_mi)
	if "active_circle_id" in patch.model_fields_set:
		circle_id = patch.active_circle_id or None
		if circle_id is not None and not await circles_service.is_member(circle_id, user_id):
			raise policy.ProximityError("not_member", status_code=403)
		changes["active_circle_id"] = circle_id
	user = await users.update(user_id, **changes)
	if user is None:
		raise ProfileNotFound()
	return _to_settings(user)
