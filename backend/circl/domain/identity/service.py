"""User directory and profile service."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import asyncpg

from circl.domain.identity import models, policy, schemas
from circl.infra.auth import AuthenticatedUser
from circl.infra.postgres import get_pool_or_none
from circl.obs import metrics as obs_metrics
from circl.settings import settings

logger = logging.getLogger(__name__)

_UPDATABLE_COLUMNS = frozenset(
	{
		"display_name",
		"avatar_url",
		"friend_code",
		"friend_code_generated_at",
		"proximity_enabled",
		"proximity_distance_mi",
		"active_circle_id",
	}
)


class IdentityServiceError(Exception):
	"""Raised for service-level issues with optional HTTP status mapping."""

	def __init__(self, reason: str, *, status_code: int = 400):
		super().__init__(reason)
		self.reason = reason
		self.status_code = status_code


class ProfileNotFound(IdentityServiceError):
	def __init__(self) -> None:
		super().__init__("profile_not_found", status_code=404)


class ProfileExists(IdentityServiceError):
	def __init__(self) -> None:
		super().__init__("profile_exists", status_code=409)


def _now() -> datetime:
	return datetime.now(timezone.utc)


class _MemoryStore:
	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self.users: Dict[str, models.User] = {}

	async def get(self, user_id: str) -> Optional[models.User]:
		async with self._lock:
			user = self.users.get(user_id)
			return dataclasses.replace(user) if user else None

	async def get_many(self, user_ids: Iterable[str]) -> Dict[str, models.User]:
		async with self._lock:
			return {
				uid: dataclasses.replace(self.users[uid])
				for uid in user_ids
				if uid in self.users
			}

	async def find(self, **criteria: Any) -> Optional[models.User]:
		async with self._lock:
			for user in self.users.values():
				if all(getattr(user, key) == value for key, value in criteria.items()):
					return dataclasses.replace(user)
			return None

	async def find_by_email(self, email: str) -> Optional[models.User]:
		async with self._lock:
			for user in self.users.values():
				if policy.normalise_email(user.email) == email:
					return dataclasses.replace(user)
			return None

	async def insert(self, user: models.User) -> models.User:
		async with self._lock:
			email = policy.normalise_email(user.email)
			if any(policy.normalise_email(u.email) == email for u in self.users.values()):
				raise policy.EmailConflict("email_taken")
			self.users[user.id] = dataclasses.replace(user)
			return user

	async def update(self, user_id: str, fields: Dict[str, Any]) -> Optional[models.User]:
		async with self._lock:
			user = self.users.get(user_id)
			if user is None:
				return None
			for key, value in fields.items():
				setattr(user, key, value)
			user.updated_at = _now()
			return dataclasses.replace(user)

	async def clear_active_circle(self, circle_id: str, user_ids: Optional[Iterable[str]]) -> None:
		async with self._lock:
			targets = set(user_ids) if user_ids is not None else set(self.users)
			for uid in targets:
				user = self.users.get(uid)
				if user and user.active_circle_id == circle_id:
					user.active_circle_id = None

	async def delete(self, user_id: str) -> bool:
		async with self._lock:
			return self.users.pop(user_id, None) is not None


_MEMORY = _MemoryStore()


class UserRepository:
	"""Reads and writes user records, in Postgres when available."""

	async def get(self, user_id: str) -> Optional[models.User]:
		pool = await get_pool_or_none()
		if pool is None:
			return await _MEMORY.get(user_id)
		async with pool.acquire() as conn:
			row = await conn.fetchrow("SELECT * FROM users WHERE id = $1", user_id)
		return models.User.from_record(dict(row)) if row else None

	async def get_many(self, user_ids: Iterable[str]) -> Dict[str, models.User]:
		ids = list(dict.fromkeys(user_ids))
		if not ids:
			return {}
		pool = await get_pool_or_none()
		if pool is None:
			return await _MEMORY.get_many(ids)
		async with pool.acquire() as conn:
			rows = await conn.fetch("SELECT * FROM users WHERE id = ANY($1::text[])", ids)
		return {str(row["id"]): models.User.from_record(dict(row)) for row in rows}

	async def get_by_email(self, email: str) -> Optional[models.User]:
		value = policy.normalise_email(email)
		pool = await get_pool_or_none()
		if pool is None:
			return await _MEMORY.find_by_email(value)
		async with pool.acquire() as conn:
			row = await conn.fetchrow("SELECT * FROM users WHERE LOWER(email) = $1", value)
		return models.User.from_record(dict(row)) if row else None

	async def get_by_friend_code(self, code: str) -> Optional[models.User]:
		pool = await get_pool_or_none()
		if pool is None:
			return await _MEMORY.find(friend_code=code)
		async with pool.acquire() as conn:
			row = await conn.fetchrow("SELECT * FROM users WHERE friend_code = $1", code)
		return models.User.from_record(dict(row)) if row else None

	async def insert(self, user: models.User) -> models.User:
		pool = await get_pool_or_none()
		if pool is None:
			return await _MEMORY.insert(user)
		try:
			async with pool.acquire() as conn:
				await conn.execute(
					"""
					INSERT INTO users (id, email, display_name, avatar_url, proximity_enabled,
						proximity_distance_mi, created_at, updated_at)
					VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
					""",
					user.id,
					user.email,
					user.display_name,
					user.avatar_url,
					user.proximity_enabled,
					user.proximity_distance_mi,
					user.created_at,
					user.updated_at,
				)
		except asyncpg.UniqueViolationError as exc:
			raise policy.EmailConflict("email_taken") from exc
		return user

	async def update(self, user_id: str, **fields: Any) -> Optional[models.User]:
		unknown = set(fields) - _UPDATABLE_COLUMNS
		if unknown:
			raise ValueError(f"unknown user fields: {sorted(unknown)}")
		if not fields:
			return await self.get(user_id)
		pool = await get_pool_or_none()
		if pool is None:
			return await _MEMORY.update(user_id, fields)
		columns = list(fields)
		assignments = ", ".join(f"{col} = ${idx + 2}" for idx, col in enumerate(columns))
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				f"UPDATE users SET {assignments}, updated_at = NOW() WHERE id = $1 RETURNING *",
				user_id,
				*[fields[col] for col in columns],
			)
		return models.User.from_record(dict(row)) if row else None

	async def clear_active_circle(self, circle_id: str, user_ids: Optional[Iterable[str]] = None) -> None:
		"""Unset ``active_circle_id`` for users pointing at ``circle_id``."""
		pool = await get_pool_or_none()
		if pool is None:
			await _MEMORY.clear_active_circle(circle_id, user_ids)
			return
		async with pool.acquire() as conn:
			if user_ids is None:
				await conn.execute(
					"UPDATE users SET active_circle_id = NULL WHERE active_circle_id = $1",
					circle_id,
				)
			else:
				await conn.execute(
					"UPDATE users SET active_circle_id = NULL WHERE active_circle_id = $1 AND id = ANY($2::text[])",
					circle_id,
					list(user_ids),
				)

	async def delete(self, user_id: str) -> bool:
		pool = await get_pool_or_none()
		if pool is None:
			return await _MEMORY.delete(user_id)
		async with pool.acquire() as conn:
			result = await conn.execute("DELETE FROM users WHERE id = $1", user_id)
		return result.endswith(" 1")


users = UserRepository()


async def require_user(user_id: str) -> models.User:
	user = await users.get(user_id)
	if user is None:
		raise ProfileNotFound()
	return user


async def create_profile(auth_user: AuthenticatedUser, payload: schemas.ProfileCreate) -> schemas.ProfileOut:
	if await users.get(auth_user.id) is not None:
		raise ProfileExists()
	raw_email = str(payload.email) if payload.email else auth_user.email
	if not raw_email:
		raise policy.IdentityPolicyError("email_required")
	user = models.User(
		id=auth_user.id,
		email=policy.validate_email(raw_email),
		display_name=policy.validate_display_name(payload.display_name),
		proximity_distance_mi=settings.proximity_default_distance_mi,
	)
	await users.insert(user)
	obs_metrics.inc_profile_event("created")
	logger.info("profile created", extra={"user_id": user.id})
	return schemas.ProfileOut.from_user(user)


async def get_profile(user_id: str) -> schemas.ProfileOut:
	return schemas.ProfileOut.from_user(await require_user(user_id))


async def update_profile(auth_user: AuthenticatedUser, payload: schemas.ProfilePatch) -> schemas.ProfileOut:
	await require_user(auth_user.id)
	changes: Dict[str, Any] = {}
	if payload.display_name is not None:
		changes["display_name"] = policy.validate_display_name(payload.display_name)
	if "avatar_url" in payload.model_fields_set:
		changes["avatar_url"] = payload.avatar_url or None
	user = await users.update(auth_user.id, **changes)
	if user is None:
		raise ProfileNotFound()
	obs_metrics.inc_profile_event("updated")
	return schemas.ProfileOut.from_user(user)


async def set_avatar_url(user_id: str, url: str) -> models.User:
	user = await users.update(user_id, avatar_url=url)
	if user is None:
		raise ProfileNotFound()
	obs_metrics.inc_profile_event("avatar")
	return user


async def list_briefs(user_ids: Iterable[str]) -> List[Dict[str, Optional[str]]]:
	"""Public identities for ``user_ids`` in input order; unknown ids are dropped."""
	ids = list(user_ids)
	found = await users.get_many(ids)
	return [found[uid].brief() for uid in ids if uid in found]


async def reset_memory_state() -> None:
	"""Test helper to clear in-memory store state."""
	async with _MEMORY._lock:
		_MEMORY.users.clear()
