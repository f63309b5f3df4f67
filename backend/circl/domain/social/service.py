"""Service layer for friend codes, friend requests and friendships."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import secrets
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import asyncpg
import ulid

from circl.domain.identity import models as identity_models
from circl.domain.identity.service import require_user, users
from circl.domain.social import audit, policy, sockets
from circl.domain.social.exceptions import (
	AlreadyFriends,
	RequestAlreadySent,
	RequestForbidden,
	RequestGone,
	RequestNotFound,
)
from circl.domain.social.models import FriendRequest, FriendRequestStatus, Friendship
from circl.domain.social.schemas import (
	FriendCodeOut,
	FriendRequestSend,
	FriendRequestSummary,
	FriendRequestUpdatePayload,
	FriendRow,
	FriendUpdatePayload,
)
from circl.infra.auth import AuthenticatedUser
from circl.infra.postgres import get_pool_or_none

logger = logging.getLogger(__name__)

_FRIEND_CODE_ATTEMPTS = 8


def _now() -> datetime:
	return datetime.now(timezone.utc)


class _MemoryStore:
	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self.requests: Dict[str, FriendRequest] = {}
		self.friendships: Dict[Tuple[str, str], Friendship] = {}

	async def get_request(self, request_id: str) -> Optional[FriendRequest]:
		async with self._lock:
			req = self.requests.get(request_id)
			return dataclasses.replace(req) if req else None

	async def find_pending(self, from_user_id: str, to_user_id: str) -> Optional[FriendRequest]:
		async with self._lock:
			for req in self.requests.values():
				if req.is_pending and req.from_user_id == from_user_id and req.to_user_id == to_user_id:
					return dataclasses.replace(req)
			return None

	async def insert_request(self, req: FriendRequest) -> None:
		async with self._lock:
			self.requests[req.id] = dataclasses.replace(req)

	async def set_status(self, request_id: str, status: FriendRequestStatus) -> Optional[FriendRequest]:
		async with self._lock:
			req = self.requests.get(request_id)
			if req is None:
				return None
			req.status = status
			req.updated_at = _now()
			return dataclasses.replace(req)

	async def list_pending(self, user_id: str, *, incoming: bool) -> List[FriendRequest]:
		async with self._lock:
			field = "to_user_id" if incoming else "from_user_id"
			items = [
				dataclasses.replace(req)
				for req in self.requests.values()
				if req.is_pending and getattr(req, field) == user_id
			]
			return sorted(items, key=lambda r: r.created_at, reverse=True)

	async def add_friendship(self, user_a: str, user_b: str) -> None:
		async with self._lock:
			now = _now()
			self.friendships.setdefault((user_a, user_b), Friendship(user_a, user_b, now))
			self.friendships.setdefault((user_b, user_a), Friendship(user_b, user_a, now))

	async def remove_friendship(self, user_a: str, user_b: str) -> bool:
		async with self._lock:
			removed = self.friendships.pop((user_a, user_b), None)
			self.friendships.pop((user_b, user_a), None)
			return removed is not None

	async def list_friendships(self, user_id: str) -> List[Friendship]:
		async with self._lock:
			items = [dataclasses.replace(f) for (uid, _), f in self.friendships.items() if uid == user_id]
			return sorted(items, key=lambda f: f.created_at)

	async def is_friend(self, user_a: str, user_b: str) -> bool:
		async with self._lock:
			return (user_a, user_b) in self.friendships

	async def purge_user(self, user_id: str) -> None:
		async with self._lock:
			for request_id in [rid for rid, req in self.requests.items() if req.involves(user_id)]:
				del self.requests[request_id]
			for key in [key for key in self.friendships if user_id in key]:
				del self.friendships[key]


_MEMORY = _MemoryStore()


class SocialRepository:
	async def get_request(self, request_id: str) -> Optional[FriendRequest]:
		pool = await get_pool_or_none()
		if pool is None:
			return await _MEMORY.get_request(request_id)
		async with pool.acquire() as conn:
			row = await conn.fetchrow("SELECT * FROM friend_requests WHERE id = $1", request_id)
		return FriendRequest.from_record(row) if row else None

	async def find_pending(self, from_user_id: str, to_user_id: str) -> Optional[FriendRequest]:
		pool = await get_pool_or_none()
		if pool is None:
			return await _MEMORY.find_pending(from_user_id, to_user_id)
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				SELECT * FROM friend_requests
				WHERE from_user_id = $1 AND to_user_id = $2 AND status = 'pending'
				ORDER BY created_at DESC
				LIMIT 1
				""",
				from_user_id,
				to_user_id,
			)
		return FriendRequest.from_record(row) if row else None

	async def insert_request(self, req: FriendRequest) -> None:
		pool = await get_pool_or_none()
		if pool is None:
			await _MEMORY.insert_request(req)
			return
		async with pool.acquire() as conn:
			await conn.execute(
				"""
				INSERT INTO friend_requests (id, from_user_id, to_user_id, status, created_at, updated_at)
				VALUES ($1, $2, $3, $4, $5, $6)
				""",
				req.id,
				req.from_user_id,
				req.to_user_id,
				req.status.value,
				req.created_at,
				req.updated_at,
			)

	async def set_status(self, request_id: str, status: FriendRequestStatus) -> Optional[FriendRequest]:
		pool = await get_pool_or_none()
		if pool is None:
			return await _MEMORY.set_status(request_id, status)
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"UPDATE friend_requests SET status = $2, updated_at = NOW() WHERE id = $1 RETURNING *",
				request_id,
				status.value,
			)
		return FriendRequest.from_record(row) if row else None

	async def list_pending(self, user_id: str, *, incoming: bool) -> List[FriendRequest]:
		pool = await get_pool_or_none()
		if pool is None:
			return await _MEMORY.list_pending(user_id, incoming=incoming)
		column = "to_user_id" if incoming else "from_user_id"
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				f"""
				SELECT * FROM friend_requests
				WHERE {column} = $1 AND status = 'pending'
				ORDER BY created_at DESC
				""",
				user_id,
			)
		return [FriendRequest.from_record(row) for row in rows]

	async def accept(self, req: FriendRequest) -> FriendRequest:
		"""Mark ``req`` accepted and record the friendship in both directions."""
		pool = await get_pool_or_none()
		if pool is None:
			updated = await _MEMORY.set_status(req.id, FriendRequestStatus.ACCEPTED)
			await _MEMORY.add_friendship(req.from_user_id, req.to_user_id)
			assert updated is not None
			return updated
		async with pool.acquire() as conn:
			async with conn.transaction():
				row = await conn.fetchrow(
					"UPDATE friend_requests SET status = 'accepted', updated_at = NOW() WHERE id = $1 RETURNING *",
					req.id,
				)
				await _insert_friendship_pair(conn, req.from_user_id, req.to_user_id)
		return FriendRequest.from_record(row)

	async def remove_friendship(self, user_a: str, user_b: str) -> bool:
		pool = await get_pool_or_none()
		if pool is None:
			return await _MEMORY.remove_friendship(user_a, user_b)
		async with pool.acquire() as conn:
			result = await conn.execute(
				"""
				DELETE FROM friendships
				WHERE (user_id = $1 AND friend_id = $2) OR (user_id = $2 AND friend_id = $1)
				""",
				user_a,
				user_b,
			)
		return not result.endswith(" 0")

	async def list_friendships(self, user_id: str) -> List[Friendship]:
		pool = await get_pool_or_none()
		if pool is None:
			return await _MEMORY.list_friendships(user_id)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"SELECT * FROM friendships WHERE user_id = $1 ORDER BY created_at",
				user_id,
			)
		return [Friendship.from_record(row) for row in rows]

	async def is_friend(self, user_a: str, user_b: str) -> bool:
		pool = await get_pool_or_none()
		if pool is None:
			return await _MEMORY.is_friend(user_a, user_b)
		async with pool.acquire() as conn:
			value = await conn.fetchval(
				"SELECT 1 FROM friendships WHERE user_id = $1 AND friend_id = $2",
				user_a,
				user_b,
			)
		return value is not None

	async def purge_user(self, user_id: str) -> None:
		pool = await get_pool_or_none()
		if pool is None:
			await _MEMORY.purge_user(user_id)
			return
		async with pool.acquire() as conn:
			async with conn.transaction():
				await conn.execute(
					"DELETE FROM friend_requests WHERE from_user_id = $1 OR to_user_id = $1",
					user_id,
				)
				await conn.execute(
					"DELETE FROM friendships WHERE user_id = $1 OR friend_id = $1",
					user_id,
				)


async def _insert_friendship_pair(conn: asyncpg.Connection, user_a: str, user_b: str) -> None:
	await conn.executemany(
		"""
		INSERT INTO friendships (user_id, friend_id)
		VALUES ($1, $2)
		ON CONFLICT (user_id, friend_id) DO NOTHING
		""",
		[(user_a, user_b), (user_b, user_a)],
	)


repository = SocialRepository()


def _summary(
	req: FriendRequest,
	profiles: Dict[str, identity_models.User],
) -> FriendRequestSummary:
	sender = profiles.get(req.from_user_id)
	recipient = profiles.get(req.to_user_id)
	return FriendRequestSummary(
		id=req.id,
		from_user_id=req.from_user_id,
		to_user_id=req.to_user_id,
		status=req.status.value,
		created_at=req.created_at,
		updated_at=req.updated_at,
		from_display_name=sender.display_name if sender else None,
		from_avatar_url=sender.avatar_url if sender else None,
		to_display_name=recipient.display_name if recipient else None,
		to_avatar_url=recipient.avatar_url if recipient else None,
	)


async def _summarize(req: FriendRequest) -> FriendRequestSummary:
	profiles = await users.get_many([req.from_user_id, req.to_user_id])
	return _summary(req, profiles)


async def _emit_request_update(req: FriendRequest) -> None:
	payload = FriendRequestUpdatePayload(id=req.id, status=req.status.value).model_dump(mode="json")
	await sockets.emit_friend_request_update(req.from_user_id, payload)
	await sockets.emit_friend_request_update(req.to_user_id, payload)


async def _emit_friend_update_pair(user_a: str, user_b: str, status: str) -> None:
	payload_a = FriendUpdatePayload(user_id=user_a, friend_id=user_b, status=status).model_dump(mode="json")
	payload_b = FriendUpdatePayload(user_id=user_b, friend_id=user_a, status=status).model_dump(mode="json")
	await sockets.emit_friend_update(user_a, payload_a)
	await sockets.emit_friend_update(user_b, payload_b)


async def _accept(req: FriendRequest) -> FriendRequest:
	accepted = await repository.accept(req)
	await audit.log_request_event(
		"accepted",
		{"request_id": accepted.id, "from_user_id": accepted.from_user_id, "to_user_id": accepted.to_user_id},
	)
	await audit.log_friend_event(
		"friendship_created",
		{"user_a": accepted.from_user_id, "user_b": accepted.to_user_id},
	)
	audit.inc_request("accepted")
	await _emit_request_update(accepted)
	await _emit_friend_update_pair(accepted.from_user_id, accepted.to_user_id, "accepted")
	return accepted


async def generate_friend_code(auth_user: AuthenticatedUser) -> FriendCodeOut:
	"""Issue a fresh friend code; the previous one stops resolving immediately."""
	await require_user(auth_user.id)
	for _ in range(_FRIEND_CODE_ATTEMPTS):
		code = secrets.token_hex(4).upper()
		if await users.get_by_friend_code(code) is None:
			break
	else:
		raise RuntimeError("friend code space exhausted")
	generated_at = _now()
	await users.update(auth_user.id, friend_code=code, friend_code_generated_at=generated_at)
	logger.info("friend code regenerated", extra={"user_id": auth_user.id})
	return FriendCodeOut(friend_code=code, generated_at=generated_at)


async def _resolve_target(payload: FriendRequestSend) -> identity_models.User:
	if payload.friend_code is not None:
		code = policy.normalise_friend_code(payload.friend_code)
		target = await users.get_by_friend_code(code) if code else None
	else:
		target = await users.get_by_email(str(payload.email))
	if target is None:
		raise RequestNotFound("user_not_found")
	return target


async def send_request(auth_user: AuthenticatedUser, payload: FriendRequestSend) -> FriendRequestSummary:
	sender_id = auth_user.id
	await require_user(sender_id)
	target = await _resolve_target(payload)
	policy.guard_not_self(sender_id, target.id)
	await policy.enforce_request_limits(sender_id)

	if await repository.is_friend(sender_id, target.id):
		raise AlreadyFriends()
	if await repository.find_pending(sender_id, target.id) is not None:
		raise RequestAlreadySent()

	reverse = await repository.find_pending(target.id, sender_id)
	if reverse is not None:
		accepted = await _accept(reverse)
		return await _summarize(accepted)

	now = _now()
	req = FriendRequest(
		id=str(ulid.new()),
		from_user_id=sender_id,
		to_user_id=target.id,
		status=FriendRequestStatus.PENDING,
		created_at=now,
		updated_at=now,
	)
	await repository.insert_request(req)
	await audit.log_request_event(
		"sent",
		{"request_id": req.id, "from_user_id": req.from_user_id, "to_user_id": req.to_user_id},
	)
	audit.inc_request("sent")
	summary = await _summarize(req)
	await sockets.emit_friend_request(target.id, summary.model_dump(mode="json"))
	return summary


async def _require_pending(request_id: str) -> FriendRequest:
	req = await repository.get_request(request_id)
	if req is None:
		raise RequestNotFound()
	if not req.is_pending:
		raise RequestGone()
	return req


async def accept_request(auth_user: AuthenticatedUser, request_id: str) -> FriendRequestSummary:
	req = await _require_pending(request_id)
	if req.to_user_id != auth_user.id:
		raise RequestForbidden()
	accepted = await _accept(req)
	return await _summarize(accepted)


async def _close(req: FriendRequest, status: FriendRequestStatus) -> FriendRequestSummary:
	updated = await repository.set_status(req.id, status)
	if updated is None:
		raise RequestNotFound()
	await audit.log_request_event(
		status.value,
		{"request_id": updated.id, "from_user_id": updated.from_user_id, "to_user_id": updated.to_user_id},
	)
	audit.inc_request(status.value)
	await _emit_request_update(updated)
	return await _summarize(updated)


async def deny_request(auth_user: AuthenticatedUser, request_id: str) -> FriendRequestSummary:
	req = await _require_pending(request_id)
	if req.to_user_id != auth_user.id:
		raise RequestForbidden()
	return await _close(req, FriendRequestStatus.DENIED)


async def cancel_request(auth_user: AuthenticatedUser, request_id: str) -> FriendRequestSummary:
	req = await _require_pending(request_id)
	if req.from_user_id != auth_user.id:
		raise RequestForbidden()
	return await _close(req, FriendRequestStatus.CANCELLED)


async def _list_pending(user_id: str, *, incoming: bool) -> List[FriendRequestSummary]:
	requests = await repository.list_pending(user_id, incoming=incoming)
	ids = [r.from_user_id for r in requests] + [r.to_user_id for r in requests]
	profiles = await users.get_many(ids)
	counterpart = "from_user_id" if incoming else "to_user_id"
	return [_summary(r, profiles) for r in requests if getattr(r, counterpart) in profiles]


async def list_incoming(auth_user: AuthenticatedUser) -> List[FriendRequestSummary]:
	return await _list_pending(auth_user.id, incoming=True)


async def list_outgoing(auth_user: AuthenticatedUser) -> List[FriendRequestSummary]:
	return await _list_pending(auth_user.id, incoming=False)


async def friend_ids(user_id: str) -> List[str]:
	return [f.friend_id for f in await repository.list_friendships(user_id)]


async def are_friends(user_a: str, user_b: str) -> bool:
	return await repository.is_friend(user_a, user_b)


async def list_friends(auth_user: AuthenticatedUser) -> List[FriendRow]:
	friendships = await repository.list_friendships(auth_user.id)
	profiles = await users.get_many(f.friend_id for f in friendships)
	rows: List[FriendRow] = []
	for friendship in friendships:
		profile = profiles.get(friendship.friend_id)
		if profile is None:
			continue
		rows.append(
			FriendRow(
				user_id=profile.id,
				display_name=profile.display_name,
				avatar_url=profile.avatar_url,
				since=friendship.created_at,
			)
		)
	return rows


async def remove_friend(auth_user: AuthenticatedUser, friend_id: str) -> None:
	if not await repository.remove_friendship(auth_user.id, friend_id):
		raise RequestNotFound("not_friends")
	await audit.log_friend_event("friendship_removed", {"user_a": auth_user.id, "user_b": friend_id})
	audit.inc_request("removed")
	await _emit_friend_update_pair(auth_user.id, friend_id, "none")


async def purge_user(user_id: str) -> List[str]:
	"""Drop every request and friendship involving ``user_id``; return former friend ids."""
	former = await friend_ids(user_id)
	await repository.purge_user(user_id)
	for friend_id in former:
		await sockets.emit_friend_update(
			friend_id,
			FriendUpdatePayload(user_id=friend_id, friend_id=user_id, status="none").model_dump(mode="json"),
		)
	return former


async def reset_memory_state() -> None:
	"""Test helper to clear in-memory store state."""
	async with _MEMORY._lock:
		_MEMORY.requests.clear()
		_MEMORY.friendships.clear()

