"""Policy helpers for circles."""

from __future__ import annotations

import secrets
from datetime import datetime, timezone
from typing import Optional

from circl.domain.circles import models
from circl.infra.rate_limit import touch_limit


class CirclePolicyError(RuntimeError):
	def __init__(self, code: str, *, status_code: int = 400, message: str | None = None) -> None:
		super().__init__(message or code)
		self.code = code
		self.status_code = status_code
		self.detail = message or code


def generate_invite_code() -> str:
	return "".join(secrets.choice(models.INVITE_ALPHABET) for _ in range(models.INVITE_CODE_LENGTH))


def normalise_invite_code(raw: str) -> str:
	return (raw or "").strip().upper()


def normalise_name(raw: str) -> str:
	name = " ".join((raw or "").split())
	if not name:
		raise CirclePolicyError("name_required")
	if len(name) > models.NAME_MAX_LEN:
		raise CirclePolicyError("name_too_long")
	return name


async def enforce_create_limit(user_id: str) -> None:
	bucket = datetime.now(timezone.utc).strftime("%Y%m%d")
	key = f"rl:circle:create:{user_id}:{bucket}"
	if await touch_limit(key, 86_400) > models.CIRCLE_CREATE_PER_DAY:
		raise CirclePolicyError("rate_limited:create", status_code=429)


def ensure_member(member: Optional[models.CircleMember]) -> models.CircleMember:
	if member is None:
		raise CirclePolicyError("not_member", status_code=403)
	return member


def ensure_owner(member: Optional[models.CircleMember]) -> models.CircleMember:
	member = ensure_member(member)
	if not member.is_owner():
		raise CirclePolicyError("forbidden", status_code=403)
	return member


def ensure_not_member(member: Optional[models.CircleMember]) -> None:
	if member is not None:
		raise CirclePolicyError("already_member", status_code=409)


def ensure_can_leave(member: models.CircleMember) -> None:
	if member.is_owner():
		raise CirclePolicyError("owner_cannot_leave", status_code=400)
