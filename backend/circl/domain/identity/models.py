"""Domain models for CircL user records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from circl.settings import settings


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


@dataclass(slots=True)
class User:
	id: str
	email: str
	display_name: str
	avatar_url: Optional[str] = None
	friend_code: Optional[str] = None
	friend_code_generated_at: Optional[datetime] = None
	proximity_enabled: bool = True
	proximity_distance_mi: float = 0.5
	active_circle_id: Optional[str] = None
	created_at: datetime = field(default_factory=_utcnow)
	updated_at: datetime = field(default_factory=_utcnow)

	@classmethod
	def from_record(cls, record: Mapping[str, Any]) -> "User":
		return cls(
			id=str(record["id"]),
			email=str(record["email"]),
			display_name=str(record["display_name"]),
			avatar_url=record.get("avatar_url"),
			friend_code=record.get("friend_code"),
			friend_code_generated_at=record.get("friend_code_generated_at"),
			proximity_enabled=bool(record.get("proximity_enabled", True)),
			proximity_distance_mi=float(record.get("proximity_distance_mi") or settings.proximity_default_distance_mi),
			active_circle_id=record.get("active_circle_id"),
			created_at=record.get("created_at") or _utcnow(),
			updated_at=record.get("updated_at") or _utcnow(),
		)

	def brief(self) -> dict[str, Optional[str]]:
		"""Public identity used in friend, circle and proximity payloads."""
		return {
			"user_id": self.id,
			"display_name": self.display_name,
			"avatar_url": self.avatar_url,
		}
