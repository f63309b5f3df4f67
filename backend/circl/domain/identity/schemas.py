"""Pydantic schemas for profile flows."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Optional

from pydantic import BaseModel, EmailStr, Field

from circl.domain.identity.models import User


class ProfileCreate(BaseModel):
	display_name: Annotated[str, Field(min_length=1, max_length=80)]
	email: Optional[EmailStr] = None


class ProfilePatch(BaseModel):
	display_name: Optional[Annotated[str, Field(min_length=1, max_length=80)]] = None
	avatar_url: Optional[str] = Field(default=None, max_length=2048)


class ProfileOut(BaseModel):
	id: str
	email: str
	display_name: str
	avatar_url: Optional[str] = None
	friend_code: Optional[str] = None
	proximity_enabled: bool
	proximity_distance_mi: float
	active_circle_id: Optional[str] = None
	created_at: datetime

	@classmethod
	def from_user(cls, user: User) -> "ProfileOut":
		return cls(
			id=user.id,
			email=user.email,
			display_name=user.display_name,
			avatar_url=user.avatar_url,
			friend_code=user.friend_code,
			proximity_enabled=user.proximity_enabled,
			proximity_distance_mi=user.proximity_distance_mi,
			active_circle_id=user.active_circle_id,
			created_at=user.created_at,
		)


class AvatarUploadResponse(BaseModel):
	key: str
	url: str
	profile: ProfileOut
