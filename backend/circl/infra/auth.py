"""Authentication helpers for FastAPI endpoints.

Credentials are issued by the identity provider; this service only verifies
HS256 access JWTs. Dev headers are honoured in development only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from circl.infra import jwt as jwt_helper
from circl.settings import settings


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	email: Optional[str] = None
	display_name: Optional[str] = None
	session_id: Optional[str] = None


_bearer_scheme = HTTPBearer(auto_error=False)


def verify_access_jwt(token: str) -> AuthenticatedUser:
	"""Decode and validate an access JWT and return an AuthenticatedUser.

	Requirements:
	- issuer="circl-api", audience="circl-app"
	- required claims: sub, sid, exp, iat
	"""
	try:
		payload = jwt_helper.decode_access(token)
	except Exception:
		# Normalise all decode failures to invalid_token for the API surface
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")

	sub = str(payload.get("sub") or "").strip()
	if not sub:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")

	email = payload.get("email")
	display_name = payload.get("name") or payload.get("display_name")
	session_id = payload.get("sid")

	return AuthenticatedUser(
		id=sub,
		email=str(email) if email is not None else None,
		display_name=str(display_name) if display_name is not None else None,
		session_id=str(session_id).strip() if session_id is not None else None,
	)


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_email: Optional[str] = Header(default=None, alias="X-User-Email"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	"""Resolve the authenticated user.

	In development we allow simple headers. In all other environments, headers are
	ignored and a valid Bearer JWT is required.
	"""
	if credentials and credentials.scheme.lower() == "bearer":
		return verify_access_jwt(credentials.credentials)

	if settings.is_dev() and x_user_id:
		return AuthenticatedUser(id=x_user_id.strip(), email=x_user_email)

	raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")


def parse_socket_identity(auth_payload: dict, header_user_id: Optional[str]) -> AuthenticatedUser:
	"""Resolve a Socket.IO client from its auth payload (token) or dev header."""
	token = str(auth_payload.get("token") or "").strip()
	if token:
		return verify_access_jwt(token)
	user_id = auth_payload.get("userId") or header_user_id
	if settings.is_dev() and user_id:
		return AuthenticatedUser(id=str(user_id))
	raise ConnectionRefusedError("unauthorized")
