"""Edge-triggered proximity detection.

Given the observer's position, the peers they can see and the notification
state from the previous evaluation, decide which peers just came within the
configured distance. A peer is reported once per contiguous in-range episode;
it becomes eligible again only after it has been observed out of range (or
has disappeared from the peer list).

Everything here is pure and synchronous; callers own the state between calls.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, NamedTuple, Optional

EARTH_RADIUS_KM = 6371.0
KM_PER_MILE = 1.60934
DEFAULT_THRESHOLD_MILES = 0.5

ProximityState = Dict[str, bool]


@dataclass(frozen=True)
class Position:
	latitude: float
	longitude: float


@dataclass(frozen=True)
class Peer:
	id: str
	display_name: str
	last_known_position: Optional[Position]
	avatar_url: Optional[str] = None


@dataclass(frozen=True)
class ProximityConfig:
	enabled: bool = True
	threshold_miles: float = DEFAULT_THRESHOLD_MILES

	def __post_init__(self) -> None:
		if not self.threshold_miles > 0:
			raise ValueError("threshold_miles must be positive")


class ProximityResult(NamedTuple):
	notifications: List[Peer]
	state: ProximityState


def haversine_km(a: Position, b: Position) -> float:
	"""Great-circle distance between two positions, in kilometres."""
	lat1 = math.radians(a.latitude)
	lat2 = math.radians(b.latitude)
	dlat = lat2 - lat1
	dlon = math.radians(b.longitude - a.longitude)
	h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
	# rounding can push h marginally past 1 for antipodal points
	h = min(1.0, max(0.0, h))
	return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))


def miles_to_km(miles: float) -> float:
	return miles * KM_PER_MILE


def within_range(distance_km: float, threshold_miles: float) -> bool:
	"""Inclusive range check; a peer exactly on the threshold counts as near."""
	return distance_km <= miles_to_km(threshold_miles)


def evaluate(
	self_position: Position,
	peers: Iterable[Peer],
	config: ProximityConfig,
	state: Mapping[str, bool],
) -> ProximityResult:
	"""Return the peers that just entered range and the updated state.

	``state`` is never mutated. When the monitor is disabled the state is
	handed back unchanged so that re-enabling resumes where it left off.
	"""
	if not config.enabled:
		return ProximityResult([], dict(state))

	peer_list = list(peers)
	present = {peer.id for peer in peer_list}
	next_state: ProximityState = {peer_id: flag for peer_id, flag in state.items() if peer_id in present}
	notifications: List[Peer] = []

	for peer in peer_list:
		position = peer.last_known_position
		if position is None:
			continue
		distance = haversine_km(self_position, position)
		if within_range(distance, config.threshold_miles):
			if not next_state.get(peer.id, False):
				notifications.append(peer)
				next_state[peer.id] = True
		else:
			next_state[peer.id] = False

	return ProximityResult(notifications, next_state)


__all__ = [
	"DEFAULT_THRESHOLD_MILES",
	"EARTH_RADIUS_KM",
	"KM_PER_MILE",
	"Peer",
	"Position",
	"ProximityConfig",
	"ProximityResult",
	"ProximityState",
	"evaluate",
	"haversine_km",
	"miles_to_km",
	"within_range",
]
