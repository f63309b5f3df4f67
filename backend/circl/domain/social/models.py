"""Domain models for friend requests and friendships."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping


class FriendRequestStatus(str, Enum):
	PENDING = "pending"
	ACCEPTED = "accepted"
	DENIED = "denied"
	CANCELLED = "cancelled"


REQUEST_PER_MINUTE = 10
REQUEST_PER_DAY = 100
FRIEND_CODE_LENGTH = 8


@dataclass(slots=True)
class FriendRequest:
	"""A directional request from one user to another."""

	id: str
	from_user_id: str
	to_user_id: str
	status: FriendRequestStatus
	created_at: datetime
	updated_at: datetime

	@property
	def is_pending(self) -> bool:
		return self.status is FriendRequestStatus.PENDING

	def involves(self, user_id: str) -> bool:
		return user_id in (self.from_user_id, self.to_user_id)

	@classmethod
	def from_record(cls, record: Mapping[str, Any]) -> "FriendRequest":
		return cls(
			id=str(record["id"]),
			from_user_id=str(record["from_user_id"]),
			to_user_id=str(record["to_user_id"]),
			status=FriendRequestStatus(record["status"]),
			created_at=record["created_at"],
			updated_at=record["updated_at"],
		)


@dataclass(slots=True)
class Friendship:
	"""One direction of a mutual friendship; both directions are always stored."""

	user_id: str
	friend_id: str
	created_at: datetime

	@classmethod
	def from_record(cls, record: Mapping[str, Any]) -> "Friendship":
		return cls(
			user_id=str(record["user_id"]),
			friend_id=str(record["friend_id"]),
			created_at=record["created_at"],
		)
