"""Account deletion cascading across every domain that references a user."""

from __future__ import annotations

import logging

from circl.domain.circles import service as circles_service
from circl.domain.identity.service import ProfileNotFound, users
from circl.domain.proximity import locations
from circl.domain.proximity.tracker import tracker
from circl.domain.social import service as social_service
from circl.infra.auth import AuthenticatedUser
from circl.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


async def delete_account(auth_user: AuthenticatedUser) -> None:
	user_id = auth_user.id
	if await users.get(user_id) is None:
		raise ProfileNotFound()
	await circles_service.purge_user(user_id)
	await social_service.purge_user(user_id)
	await locations.clear_location(user_id)
	await tracker.forget(user_id)
	await users.delete(user_id)
	obs_metrics.inc_profile_event("deleted")
	logger.info("account deleted", extra={"user_id": user_id})
