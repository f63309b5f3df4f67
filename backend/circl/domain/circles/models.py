"""Domain models for circles."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional

CircleRole = str

INVITE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
INVITE_CODE_LENGTH = 8
NAME_MAX_LEN = 60
CIRCLE_CREATE_PER_DAY = 20


@dataclass(slots=True)
class Circle:
    """A named group of users whose members see each other's locations."""

    id: str
    owner_id: str
    name: str
    invite_code: str
    created_at: datetime
    updated_at: datetime
    members_count: int = 0

    def to_summary(self, role: CircleRole, *, include_invite_code: bool = False) -> dict:
        """Return a dictionary payload suitable for the CircleSummary schema."""
        return {
            "id": self.id,
            "name": self.name,
            "owner_id": self.owner_id,
            "members_count": self.members_count,
            "role": role,
            "invite_code": self.invite_code if include_invite_code else None,
            "created_at": self.created_at,
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Circle":
        return cls(
            id=str(record["id"]),
            owner_id=str(record["owner_id"]),
            name=str(record["name"]),
            invite_code=str(record["invite_code"]),
            created_at=record["created_at"],
            updated_at=record["updated_at"],
            members_count=int(record.get("members_count") or 0),
        )


@dataclass(slots=True)
class CircleMember:
    circle_id: str
    user_id: str
    role: CircleRole
    joined_at: datetime

    def is_owner(self) -> bool:
        return self.role == "owner"

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "CircleMember":
        return cls(
            circle_id=str(record["circle_id"]),
            user_id=str(record["user_id"]),
            role=str(record["role"]),
            joined_at=record["joined_at"],
        )


def member_or_none(record: Optional[Mapping[str, Any]]) -> Optional[CircleMember]:
    return CircleMember.from_record(record) if record else None
