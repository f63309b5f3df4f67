"""Pydantic schemas for friend requests and friendships."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field, model_validator


class FriendRequestSend(BaseModel):
	friend_code: Optional[str] = Field(default=None, min_length=8, max_length=8)
	email: Optional[EmailStr] = None

	@model_validator(mode="after")
	def _exactly_one_target(self) -> "FriendRequestSend":
		if (self.friend_code is None) == (self.email is None):
			raise ValueError("provide exactly one of friend_code or email")
		return self


class FriendRequestSummary(BaseModel):
	id: str
	from_user_id: str
	to_user_id: str
	status: Literal["pending", "accepted", "denied", "cancelled"]
	created_at: datetime
	updated_at: datetime
	from_display_name: Optional[str] = None
	from_avatar_url: Optional[str] = None
	to_display_name: Optional[str] = None
	to_avatar_url: Optional[str] = None


class FriendRequestUpdatePayload(BaseModel):
	id: str
	status: Literal["accepted", "denied", "cancelled"]


class FriendRow(BaseModel):
	user_id: str
	display_name: str
	avatar_url: Optional[str] = None
	since: datetime


class FriendUpdatePayload(BaseModel):
	user_id: str
	friend_id: str
	status: Literal["accepted", "none"]


class FriendCodeOut(BaseModel):
	friend_code: str
	generated_at: datetime
