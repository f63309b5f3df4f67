"""Socket.IO namespace for social updates (friend requests, friendships, circles)."""

from __future__ import annotations

from typing import Optional

import socketio

from circl.infra.auth import AuthenticatedUser, parse_socket_identity
from circl.obs import metrics as obs_metrics

_namespace: "SocialNamespace" | None = None


def _header(scope: dict, name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


class SocialNamespace(socketio.AsyncNamespace):
	"""Namespace that keeps each client in their personal room."""

	def __init__(self) -> None:
		super().__init__("/social")
		self._sessions: dict[str, AuthenticatedUser] = {}

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		obs_metrics.socket_connected(self.namespace)
		scope = environ.get("asgi.scope", environ)
		try:
			user = parse_socket_identity(auth or {}, _header(scope, "x-user-id"))
		except Exception:
			obs_metrics.socket_disconnected(self.namespace)
			raise ConnectionRefusedError("unauthorized") from None
		self._sessions[sid] = user
		await self.enter_room(sid, self.user_room(user.id))
		await self.emit("social:ack", {"ok": True}, room=sid)

	async def on_disconnect(self, sid: str) -> None:
		obs_metrics.socket_disconnected(self.namespace)
		user = self._sessions.pop(sid, None)
		if user:
			await self.leave_room(sid, self.user_room(user.id))

	@staticmethod
	def user_room(user_id: str) -> str:
		return f"user:{user_id}"


def set_namespace(ns: Optional[SocialNamespace]) -> None:
	global _namespace
	_namespace = ns


async def _emit(event: str, user_id: str, payload: dict) -> None:
	if _namespace is None:
		return
	obs_metrics.socket_event(_namespace.namespace, event)
	await _namespace.emit(event, payload, room=SocialNamespace.user_room(user_id))


async def emit_friend_request(user_id: str, payload: dict) -> None:
	await _emit("friend:request", user_id, payload)


async def emit_friend_request_update(user_id: str, payload: dict) -> None:
	await _emit("friend:request_update", user_id, payload)


async def emit_friend_update(user_id: str, payload: dict) -> None:
	await _emit("friend:update", user_id, payload)


async def emit_circle_update(user_id: str, payload: dict) -> None:
	await _emit("circle:update", user_id, payload)
