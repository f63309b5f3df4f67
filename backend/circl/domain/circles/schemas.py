"""Pydantic schemas for circles API."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, model_validator


class CircleCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=60)


class CircleRenameRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=60)


class AddMemberRequest(BaseModel):
    email: Optional[EmailStr] = None
    user_id: Optional[str] = Field(default=None, min_length=1)

    @model_validator(mode="after")
    def _exactly_one_target(self) -> "AddMemberRequest":
        if (self.email is None) == (self.user_id is None):
            raise ValueError("provide exactly one of email or user_id")
        return self


class JoinByCodeRequest(BaseModel):
    invite_code: str = Field(..., min_length=8, max_length=8)


class CircleSummary(BaseModel):
    id: str
    name: str
    owner_id: str
    members_count: int
    role: str
    invite_code: Optional[str] = None
    created_at: datetime


class CircleMemberOut(BaseModel):
    user_id: str
    display_name: str
    avatar_url: Optional[str] = None
    role: str
    joined_at: datetime


class CircleDetail(CircleSummary):
    members: List[CircleMemberOut] = Field(default_factory=list)


class RotateInviteResponse(BaseModel):
    invite_code: str
