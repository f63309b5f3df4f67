"""Validation helpers for profile flows."""

from __future__ import annotations

import re

DISPLAY_MAX_LEN = 80
EMAIL_REGEX = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class IdentityPolicyError(ValueError):
	"""Raised when a profile constraint is violated."""

	def __init__(self, reason: str):
		super().__init__(reason)
		self.reason = reason


class EmailConflict(IdentityPolicyError):
	"""Raised when an email already belongs to another user."""


class AvatarValidationError(IdentityPolicyError):
	"""Raised when an uploaded avatar is rejected."""


def normalise_email(email: str) -> str:
	return email.strip().lower()


def validate_email(email: str) -> str:
	value = normalise_email(email)
	if not EMAIL_REGEX.match(value):
		raise IdentityPolicyError("email_invalid")
	return value


def validate_display_name(name: str) -> str:
	value = (name or "").strip()
	if not value:
		raise IdentityPolicyError("display_name_required")
	if len(value) > DISPLAY_MAX_LEN:
		raise IdentityPolicyError("display_name_too_long")
	return value
