"""Pydantic schemas for location and proximity endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class LocationUpdatePayload(BaseModel):
	"""Payload emitted by the client when reporting its current location."""

	lat: float = Field(..., ge=-90.0, le=90.0)
	lon: float = Field(..., ge=-180.0, le=180.0)
	accuracy_m: Optional[float] = Field(default=None, ge=0)
	mode: Literal["foreground", "background"] = "foreground"
	ts_client: Optional[int] = Field(default=None, ge=0, description="Epoch milliseconds from the client device")


class ProximityAlert(BaseModel):
	"""A peer that just came within the observer's notification distance."""

	peer_id: str
	display_name: str
	avatar_url: Optional[str] = None
	distance_km: float
	distance_mi: float
	threshold_mi: float
	at: datetime


class LocationAck(BaseModel):
	ok: bool = True
	alerts: List[ProximityAlert] = Field(default_factory=list)


class PeerLocation(BaseModel):
	user_id: str
	display_name: str
	avatar_url: Optional[str] = None
	lat: float
	lon: float
	accuracy_m: Optional[float] = None
	updated_at: datetime
	distance_km: Optional[float] = None
	within_range: bool = False


class PeerLocationsResponse(BaseModel):
	scope: Literal["circle", "friends"]
	circle_id: Optional[str] = None
	items: List[PeerLocation] = Field(default_factory=list)


class ProximitySettings(BaseModel):
	proximity_enabled: bool
	proximity_distance_mi: float
	active_circle_id: Optional[str] = None


class ProximitySettingsPatch(BaseModel):
	"""Partial update; an explicit ``active_circle_id: null`` clears the selection."""

	proximity_enabled: Optional[bool] = None
	proximity_distance_mi: Optional[float] = Field(default=None, gt=0)
	active_circle_id: Optional[str] = None


class CadenceOut(BaseModel):
	foreground_interval_seconds: float
	foreground_distance_m: float
	background_interval_seconds: float
	max_updates_per_minute: int
