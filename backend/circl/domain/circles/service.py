"""Circle lifecycle service layer."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

import asyncpg
import ulid

from circl.domain.circles import models, outbox, policy, schemas
from circl.domain.identity.service import users
from circl.domain.social import service as social_service
from circl.domain.social import sockets
from circl.infra.auth import AuthenticatedUser
from circl.infra.postgres import get_pool_or_none
from circl.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

_INVITE_CODE_ATTEMPTS = 8


def _now() -> datetime:
	return datetime.now(timezone.utc)


class _MemoryStore:
	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self.circles: Dict[str, models.Circle] = {}
		self.members: Dict[str, Dict[str, models.CircleMember]] = {}

	def _copy(self, circle: models.Circle) -> models.Circle:
		return dataclasses.replace(circle, members_count=len(self.members.get(circle.id, {})))

	async def create(self, circle: models.Circle, owner: models.CircleMember) -> None:
		async with self._lock:
			self.circles[circle.id] = dataclasses.replace(circle)
			self.members[circle.id] = {owner.user_id: dataclasses.replace(owner)}

	async def get(self, circle_id: str) -> Optional[models.Circle]:
		async with self._lock:
			circle = self.circles.get(circle_id)
			return self._copy(circle) if circle else None

	async def get_by_code(self, invite_code: str) -> Optional[models.Circle]:
		async with self._lock:
			for circle in self.circles.values():
				if circle.invite_code == invite_code:
					return self._copy(circle)
			return None

	async def list_for_user(self, user_id: str) -> List[models.Circle]:
		async with self._lock:
			items = [
				self._copy(circle)
				for circle in self.circles.values()
				if user_id in self.members.get(circle.id, {})
			]
			return sorted(items, key=lambda c: c.created_at)

	async def list_members(self, circle_id: str) -> List[models.CircleMember]:
		async with self._lock:
			items = [dataclasses.replace(m) for m in self.members.get(circle_id, {}).values()]
			return sorted(items, key=lambda m: m.joined_at)

	async def get_member(self, circle_id: str, user_id: str) -> Optional[models.CircleMember]:
		async with self._lock:
			member = self.members.get(circle_id, {}).get(user_id)
			return dataclasses.replace(member) if member else None

	async def add_member(self, member: models.CircleMember) -> None:
		async with self._lock:
			self.members.setdefault(member.circle_id, {})[member.user_id] = dataclasses.replace(member)

	async def remove_member(self, circle_id: str, user_id: str) -> bool:
		async with self._lock:
			return self.members.get(circle_id, {}).pop(user_id, None) is not None

	async def update(self, circle_id: str, **fields: object) -> Optional[models.Circle]:
		async with self._lock:
			circle = self.circles.get(circle_id)
			if circle is None:
				return None
			for key, value in fields.items():
				setattr(circle, key, value)
			circle.updated_at = _now()
			return self._copy(circle)

	async def code_exists(self, invite_code: str) -> bool:
		async with self._lock:
			return any(c.invite_code == invite_code for c in self.circles.values())

	async def delete(self, circle_id: str) -> None:
		async with self._lock:
			self.circles.pop(circle_id, None)
			self.members.pop(circle_id, None)


_MEMORY = _MemoryStore()

_CIRCLE_WITH_COUNT_SQL = """
SELECT c.*, (SELECT COUNT(*) FROM circle_members m WHERE m.circle_id = c.id) AS members_count
FROM circles c
"""


class CircleRepository:
	async def create(self, circle: models.Circle, owner: models.CircleMember) -> None:
		pool = await get_pool_or_none()
		if pool is None:
			await _MEMORY.create(circle, owner)
			return
		async with pool.acquire() as conn:
			async with conn.transaction():
				await conn.execute(
					"""
					INSERT INTO circles (id, owner_id, name, invite_code, created_at, updated_at)
					VALUES ($1, $2, $3, $4, $5, $6)
					""",
					circle.id,
					circle.owner_id,
					circle.name,
					circle.invite_code,
					circle.created_at,
					circle.updated_at,
				)
				await conn.execute(
					"INSERT INTO circle_members (circle_id, user_id, role, joined_at) VALUES ($1, $2, $3, $4)",
					owner.circle_id,
					owner.user_id,
					owner.role,
					owner.joined_at,
				)

	async def get(self, circle_id: str) -> Optional[models.Circle]:
		pool = await get_pool_or_none()
		if pool is None:
			return await _MEMORY.get(circle_id)
		async with pool.acquire() as conn:
			row = await conn.fetchrow(_CIRCLE_WITH_COUNT_SQL + " WHERE c.id = $1", circle_id)
		return models.Circle.from_record(row) if row else None

	async def get_by_code(self, invite_code: str) -> Optional[models.Circle]:
		pool = await get_pool_or_none()
		if pool is None:
			return await _MEMORY.get_by_code(invite_code)
		async with pool.acquire() as conn:
			row = await conn.fetchrow(_CIRCLE_WITH_COUNT_SQL + " WHERE c.invite_code = $1", invite_code)
		return models.Circle.from_record(row) if row else None

	async def code_exists(self, invite_code: str) -> bool:
		pool = await get_pool_or_none()
		if pool is None:
			return await _MEMORY.code_exists(invite_code)
		async with pool.acquire() as conn:
			value = await conn.fetchval("SELECT 1 FROM circles WHERE invite_code = $1", invite_code)
		return value is not None

	async def list_for_user(self, user_id: str) -> List[models.Circle]:
		pool = await get_pool_or_none()
		if pool is None:
			return await _MEMORY.list_for_user(user_id)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				_CIRCLE_WITH_COUNT_SQL
				+ " JOIN circle_members me ON me.circle_id = c.id AND me.user_id = $1 ORDER BY c.created_at",
				user_id,
			)
		return [models.Circle.from_record(row) for row in rows]

	async def list_members(self, circle_id: str) -> List[models.CircleMember]:
		pool = await get_pool_or_none()
		if pool is None:
			return await _MEMORY.list_members(circle_id)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"SELECT * FROM circle_members WHERE circle_id = $1 ORDER BY joined_at",
				circle_id,
			)
		return [models.CircleMember.from_record(row) for row in rows]

	async def get_member(self, circle_id: str, user_id: str) -> Optional[models.CircleMember]:
		pool = await get_pool_or_none()
		if pool is None:
			return await _MEMORY.get_member(circle_id, user_id)
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"SELECT * FROM circle_members WHERE circle_id = $1 AND user_id = $2",
				circle_id,
				user_id,
			)
		return models.member_or_none(row)

	async def add_member(self, member: models.CircleMember) -> None:
		pool = await get_pool_or_none()
		if pool is None:
			await _MEMORY.add_member(member)
			return
		try:
			async with pool.acquire() as conn:
				await conn.execute(
					"INSERT INTO circle_members (circle_id, user_id, role, joined_at) VALUES ($1, $2, $3, $4)",
					member.circle_id,
					member.user_id,
					member.role,
					member.joined_at,
				)
		except asyncpg.UniqueViolationError as exc:
			raise policy.CirclePolicyError("already_member", status_code=409) from exc

	async def remove_member(self, circle_id: str, user_id: str) -> bool:
		pool = await get_pool_or_none()
		if pool is None:
			return await _MEMORY.remove_member(circle_id, user_id)
		async with pool.acquire() as conn:
			result = await conn.execute(
				"DELETE FROM circle_members WHERE circle_id = $1 AND user_id = $2",
				circle_id,
				user_id,
			)
		return result.endswith(" 1")

	async def rename(self, circle_id: str, name: str) -> Optional[models.Circle]:
		pool = await get_pool_or_none()
		if pool is None:
			return await _MEMORY.update(circle_id, name=name)
		async with pool.acquire() as conn:
			await conn.execute("UPDATE circles SET name = $2, updated_at = NOW() WHERE id = $1", circle_id, name)
		return await self.get(circle_id)

	async def set_invite_code(self, circle_id: str, invite_code: str) -> None:
		pool = await get_pool_or_none()
		if pool is None:
			await _MEMORY.update(circle_id, invite_code=invite_code)
			return
		async with pool.acquire() as conn:
			await conn.execute(
				"UPDATE circles SET invite_code = $2, updated_at = NOW() WHERE id = $1",
				circle_id,
				invite_code,
			)

	async def delete(self, circle_id: str) -> None:
		pool = await get_pool_or_none()
		if pool is None:
			await _MEMORY.delete(circle_id)
			return
		async with pool.acquire() as conn:
			await conn.execute("DELETE FROM circles WHERE id = $1", circle_id)


repository = CircleRepository()


async def _emit_update(user_ids: List[str], circle_id: str, event: str, **extra: object) -> None:
	payload = {"circle_id": circle_id, "event": event, **extra}
	for user_id in user_ids:
		await sockets.emit_circle_update(user_id, payload)


async def _unique_invite_code() -> str:
	for _ in range(_INVITE_CODE_ATTEMPTS):
		code = policy.generate_invite_code()
		if not await repository.code_exists(code):
			return code
	raise RuntimeError("invite code space exhausted")


async def _require_circle(circle_id: str) -> models.Circle:
	circle = await repository.get(circle_id)
	if circle is None:
		raise policy.CirclePolicyError("circle_not_found", status_code=404)
	return circle


async def member_ids(circle_id: str) -> List[str]:
	return [m.user_id for m in await repository.list_members(circle_id)]


async def is_member(circle_id: str, user_id: str) -> bool:
	return await repository.get_member(circle_id, user_id) is not None


async def create_circle(auth_user: AuthenticatedUser, payload: schemas.CircleCreateRequest) -> schemas.CircleSummary:
	name = policy.normalise_name(payload.name)
	await policy.enforce_create_limit(auth_user.id)
	now = _now()
	circle = models.Circle(
		id=str(ulid.new()),
		owner_id=auth_user.id,
		name=name,
		invite_code=await _unique_invite_code(),
		created_at=now,
		updated_at=now,
		members_count=1,
	)
	owner = models.CircleMember(circle_id=circle.id, user_id=auth_user.id, role="owner", joined_at=now)
	await repository.create(circle, owner)
	await outbox.append_circle_event("circle_created", circle.id, user_id=auth_user.id)
	obs_metrics.inc_circle_event("created")
	return schemas.CircleSummary(**circle.to_summary("owner", include_invite_code=True))


async def list_my_circles(auth_user: AuthenticatedUser) -> List[schemas.CircleSummary]:
	circles = await repository.list_for_user(auth_user.id)
	return [
		schemas.CircleSummary(
			**circle.to_summary(
				"owner" if circle.owner_id == auth_user.id else "member",
				include_invite_code=circle.owner_id == auth_user.id,
			)
		)
		for circle in circles
	]


async def get_circle(auth_user: AuthenticatedUser, circle_id: str) -> schemas.CircleDetail:
	circle = await _require_circle(circle_id)
	member = policy.ensure_member(await repository.get_member(circle_id, auth_user.id))
	members = await repository.list_members(circle_id)
	profiles = await users.get_many(m.user_id for m in members)
	items = [
		schemas.CircleMemberOut(
			user_id=m.user_id,
			display_name=profiles[m.user_id].display_name,
			avatar_url=profiles[m.user_id].avatar_url,
			role=m.role,
			joined_at=m.joined_at,
		)
		for m in members
		if m.user_id in profiles
	]
	return schemas.CircleDetail(
		**circle.to_summary(member.role, include_invite_code=member.is_owner()),
		members=items,
	)


async def rename_circle(
	auth_user: AuthenticatedUser,
	circle_id: str,
	payload: schemas.CircleRenameRequest,
) -> schemas.CircleSummary:
	await _require_circle(circle_id)
	policy.ensure_owner(await repository.get_member(circle_id, auth_user.id))
	circle = await repository.rename(circle_id, policy.normalise_name(payload.name))
	if circle is None:
		raise policy.CirclePolicyError("circle_not_found", status_code=404)
	await outbox.append_circle_event("circle_renamed", circle_id, user_id=auth_user.id)
	await _emit_update(await member_ids(circle_id), circle_id, "renamed", name=circle.name)
	return schemas.CircleSummary(**circle.to_summary("owner", include_invite_code=True))


async def delete_circle(auth_user: AuthenticatedUser, circle_id: str) -> None:
	await _require_circle(circle_id)
	policy.ensure_owner(await repository.get_member(circle_id, auth_user.id))
	await _delete(circle_id)
	await outbox.append_circle_event("circle_deleted", circle_id, user_id=auth_user.id)


async def _delete(circle_id: str) -> None:
	affected = await member_ids(circle_id)
	await users.clear_active_circle(circle_id)
	await repository.delete(circle_id)
	logger.info("circle deleted", extra={"circle_id": circle_id})
	obs_metrics.inc_circle_event("deleted")
	await _emit_update(affected, circle_id, "deleted")


async def _resolve_member_target(payload: schemas.AddMemberRequest) -> str:
	if payload.user_id is not None:
		target = await users.get(payload.user_id)
	else:
		target = await users.get_by_email(str(payload.email))
	if target is None:
		raise policy.CirclePolicyError("user_not_found", status_code=404)
	return target.id


async def add_member(
	auth_user: AuthenticatedUser,
	circle_id: str,
	payload: schemas.AddMemberRequest,
) -> schemas.CircleDetail:
	await _require_circle(circle_id)
	policy.ensure_owner(await repository.get_member(circle_id, auth_user.id))
	target_id = await _resolve_member_target(payload)
	policy.ensure_not_member(await repository.get_member(circle_id, target_id))
	if not await social_service.are_friends(auth_user.id, target_id):
		raise policy.CirclePolicyError("not_friends", status_code=403)
	await repository.add_member(
		models.CircleMember(circle_id=circle_id, user_id=target_id, role="member", joined_at=_now())
	)
	await outbox.append_circle_event("member_added", circle_id, user_id=target_id)
	obs_metrics.inc_circle_event("member_added")
	await _emit_update(await member_ids(circle_id), circle_id, "member_added", user_id=target_id)
	return await get_circle(auth_user, circle_id)


async def _drop_member(circle_id: str, user_id: str, event: str) -> None:
	remaining = await member_ids(circle_id)
	await repository.remove_member(circle_id, user_id)
	await users.clear_active_circle(circle_id, [user_id])
	await outbox.append_circle_event(event, circle_id, user_id=user_id)
	obs_metrics.inc_circle_event(event)
	await _emit_update(remaining, circle_id, event, user_id=user_id)


async def remove_member(auth_user: AuthenticatedUser, circle_id: str, user_id: str) -> None:
	await _require_circle(circle_id)
	policy.ensure_owner(await repository.get_member(circle_id, auth_user.id))
	if user_id == auth_user.id:
		raise policy.CirclePolicyError("owner_cannot_leave", status_code=400)
	if await repository.get_member(circle_id, user_id) is None:
		raise policy.CirclePolicyError("member_not_found", status_code=404)
	await _drop_member(circle_id, user_id, "member_removed")


async def leave_circle(auth_user: AuthenticatedUser, circle_id: str) -> None:
	await _require_circle(circle_id)
	member = policy.ensure_member(await repository.get_member(circle_id, auth_user.id))
	policy.ensure_can_leave(member)
	await _drop_member(circle_id, auth_user.id, "member_left")


async def join_by_code(auth_user: AuthenticatedUser, payload: schemas.JoinByCodeRequest) -> schemas.CircleSummary:
	circle = await repository.get_by_code(policy.normalise_invite_code(payload.invite_code))
	if circle is None:
		raise policy.CirclePolicyError("circle_not_found", status_code=404)
	policy.ensure_not_member(await repository.get_member(circle.id, auth_user.id))
	await repository.add_member(
		models.CircleMember(circle_id=circle.id, user_id=auth_user.id, role="member", joined_at=_now())
	)
	circle.members_count += 1
	await outbox.append_circle_event("member_joined", circle.id, user_id=auth_user.id)
	obs_metrics.inc_circle_event("member_joined")
	await _emit_update(await member_ids(circle.id), circle.id, "member_joined", user_id=auth_user.id)
	return schemas.CircleSummary(**circle.to_summary("member"))


async def rotate_invite_code(auth_user: AuthenticatedUser, circle_id: str) -> schemas.RotateInviteResponse:
	await _require_circle(circle_id)
	policy.ensure_owner(await repository.get_member(circle_id, auth_user.id))
	code = await _unique_invite_code()
	await repository.set_invite_code(circle_id, code)
	await outbox.append_circle_event("invite_rotated", circle_id, user_id=auth_user.id)
	return schemas.RotateInviteResponse(invite_code=code)


async def purge_user(user_id: str) -> None:
	"""Delete circles owned by ``user_id`` and remove them from all others."""
	for circle in await repository.list_for_user(user_id):
		if circle.owner_id == user_id:
			await _delete(circle.id)
		else:
			await _drop_member(circle.id, user_id, "member_left")


async def reset_memory_state() -> None:
	"""Test helper to clear in-memory store state."""
	async with _MEMORY._lock:
		_MEMORY.circles.clear()
		_MEMORY.members.clear()
