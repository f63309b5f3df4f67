"""Socket.IO namespace pushing peer locations and proximity alerts."""

from __future__ import annotations

import logging
from typing import Dict, Optional

import socketio

from circl.infra.auth import AuthenticatedUser, parse_socket_identity
from circl.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

_namespace: "ProximityNamespace" | None = None


def _header(scope: dict, name: str) -> Optional[str]:
    target = name.encode().lower()
    for key, value in scope.get("headers", []):
        if key.lower() == target:
            return value.decode()
    return None


class ProximityNamespace(socketio.AsyncNamespace):
    def __init__(self) -> None:
        super().__init__("/proximity")
        self.users: Dict[str, AuthenticatedUser] = {}

    async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
        obs_metrics.socket_connected(self.namespace)
        scope = environ.get("asgi.scope", environ)
        try:
            user = parse_socket_identity(auth or {}, _header(scope, "x-user-id"))
        except Exception:
            obs_metrics.socket_disconnected(self.namespace)
            raise ConnectionRefusedError("unauthorized") from None
        self.users[sid] = user
        await self.enter_room(sid, self.user_room(user.id))
        logger.info("proximity connect sid=%s user=%s", sid, user.id)
        await self.emit("sys.ok", {"me": {"id": user.id}}, room=sid)

    async def on_disconnect(self, sid: str) -> None:
        obs_metrics.socket_disconnected(self.namespace)
        user = self.users.pop(sid, None)
        if not user:
            return
        try:
            await self.leave_room(sid, self.user_room(user.id))
        except ValueError:
            pass
        logger.info("proximity disconnect sid=%s user=%s", sid, user.id)

    @staticmethod
    def user_room(user_id: str) -> str:
        return f"user:{user_id}"


def set_namespace(ns: Optional[ProximityNamespace]) -> None:
    global _namespace
    _namespace = ns


async def _emit(event: str, user_id: str, payload: dict) -> None:
    if _namespace is None:
        return
    obs_metrics.socket_event(_namespace.namespace, event)
    await _namespace.emit(event, payload, room=ProximityNamespace.user_room(user_id))


async def emit_location_update(user_id: str, payload: dict) -> None:
    await _emit("location:update", user_id, payload)


async def emit_location_offline(user_id: str, payload: dict) -> None:
    await _emit("location:offline", user_id, payload)


async def emit_nearby(user_id: str, payload: dict) -> None:
    await _emit("proximity:nearby", user_id, payload)
