"""Avatar validation and local storage."""

from __future__ import annotations

from pathlib import Path

import ulid

from circl.domain.identity.policy import AvatarValidationError
from circl.settings import settings

AVATAR_PREFIX = "avatars"
ALLOWED_MIME_TYPES = {"image/jpeg", "image/png", "image/webp"}
MAX_AVATAR_BYTES = 5 * 1024 * 1024

_EXTENSIONS = {
	"image/jpeg": ".jpg",
	"image/png": ".png",
	"image/webp": ".webp",
}


def validate_avatar(content_type: str | None, size: int) -> str:
	mime = (content_type or "").lower()
	if mime not in ALLOWED_MIME_TYPES:
		raise AvatarValidationError("mime_invalid")
	if size <= 0:
		raise AvatarValidationError("size_invalid")
	if size > MAX_AVATAR_BYTES:
		raise AvatarValidationError("size_exceeded")
	return mime


def build_avatar_key(user_id: str, mime: str) -> str:
	return f"{AVATAR_PREFIX}/{user_id}/{ulid.new()}{_EXTENSIONS[mime]}"


def public_url(key: str) -> str:
	base = (settings.upload_base_url or "/uploads").rstrip("/")
	return f"{base}/{key}"


def store_avatar(user_id: str, content_type: str | None, content: bytes) -> tuple[str, str]:
	"""Persist the image under the upload directory and return ``(key, url)``."""
	mime = validate_avatar(content_type, len(content))
	key = build_avatar_key(user_id, mime)
	path = Path(settings.upload_dir) / key
	path.parent.mkdir(parents=True, exist_ok=True)
	path.write_bytes(content)
	return key, public_url(key)
