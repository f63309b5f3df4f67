"""Policy helpers and guard checks for friend requests."""

from __future__ import annotations

import re
from datetime import datetime, timezone

from circl.domain.social.exceptions import FriendRequestRateLimitExceeded, SelfRequestError
from circl.domain.social.models import FRIEND_CODE_LENGTH, REQUEST_PER_DAY, REQUEST_PER_MINUTE
from circl.infra.rate_limit import touch_limit

FRIEND_CODE_RE = re.compile(rf"^[0-9A-F]{{{FRIEND_CODE_LENGTH}}}$")


async def enforce_request_limits(user_id: str) -> None:
	now = datetime.now(timezone.utc)
	per_min_key = f"rl:friend_request:send:{user_id}:{now.strftime('%Y%m%d%H%M')}"
	if await touch_limit(per_min_key, 60) > REQUEST_PER_MINUTE:
		raise FriendRequestRateLimitExceeded("per_minute")
	per_day_key = f"rl:friend_request:daily:{user_id}:{now.strftime('%Y%m%d')}"
	if await touch_limit(per_day_key, 86_400) > REQUEST_PER_DAY:
		raise FriendRequestRateLimitExceeded("per_day")


def guard_not_self(user_id: str, target_id: str) -> None:
	if str(user_id) == str(target_id):
		raise SelfRequestError()


def normalise_friend_code(raw: str) -> str | None:
	"""Upper-case and validate a friend code; None when malformed."""
	code = (raw or "").strip().upper()
	return code if FRIEND_CODE_RE.match(code) else None
