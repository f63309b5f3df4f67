"""Location ingestion and proximity orchestration."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from time import perf_counter
from typing import Any, Dict, List, Optional, Set

from circl.domain.circles import service as circles_service
from circl.domain.identity import models as identity_models
from circl.domain.identity.service import require_user, users
from circl.domain.proximity import dispatch, locations, monitor, policy, preferences, schemas, sockets
from circl.domain.proximity.monitor import KM_PER_MILE, Peer, Position
from circl.domain.proximity.tracker import tracker
from circl.domain.social import service as social_service
from circl.infra.auth import AuthenticatedUser
from circl.obs import metrics as obs_metrics
from circl.settings import settings

logger = logging.getLogger(__name__)


async def _peer_ids(user: identity_models.User) -> List[str]:
	if user.active_circle_id:
		members = await circles_service.member_ids(user.active_circle_id)
		return [uid for uid in members if uid != user.id]
	return await social_service.friend_ids(user.id)


async def _peers_for(user: identity_models.User) -> List[Peer]:
	ids = await _peer_ids(user)
	profiles = await users.get_many(ids)
	positions = await locations.load_positions(profiles)
	return [
		Peer(
			id=uid,
			display_name=profiles[uid].display_name,
			last_known_position=positions.get(uid),
			avatar_url=profiles[uid].avatar_url,
		)
		for uid in ids
		if uid in profiles
	]


async def load_peers(user_id: str) -> List[Peer]:
	"""Members of the user's active circle, or their friends when none is selected."""
	user = await users.get(user_id)
	if user is None:
		return []
	return await _peers_for(user)


async def load_watchers(user_id: str) -> List[identity_models.User]:
	"""Users whose peer list currently includes ``user_id``."""
	friends: Set[str] = set(await social_service.friend_ids(user_id))
	circle_ids: Set[str] = set()
	co_members: Set[str] = set()
	for circle in await circles_service.repository.list_for_user(user_id):
		circle_ids.add(circle.id)
		co_members.update(await circles_service.member_ids(circle.id))
	candidates = (friends | co_members) - {user_id}
	profiles = await users.get_many(candidates)
	watchers: List[identity_models.User] = []
	for candidate in profiles.values():
		if candidate.active_circle_id:
			if candidate.active_circle_id in circle_ids:
				watchers.append(candidate)
		elif candidate.id in friends:
			watchers.append(candidate)
	return watchers


def _alert(observer: Position, peer: Peer, threshold_mi: float, at: datetime) -> schemas.ProximityAlert:
	assert peer.last_known_position is not None
	distance_km = monitor.haversine_km(observer, peer.last_known_position)
	return schemas.ProximityAlert(
		peer_id=peer.id,
		display_name=peer.display_name,
		avatar_url=peer.avatar_url,
		distance_km=round(distance_km, 4),
		distance_mi=round(distance_km / KM_PER_MILE, 4),
		threshold_mi=threshold_mi,
		at=at,
	)


async def evaluate_for_user(user_id: str, *, trigger: str = "self") -> List[schemas.ProximityAlert]:
	"""Run one edge-triggered evaluation for ``user_id`` and dispatch its alerts.

	Settings, peers and positions are read while holding the user's tracker lock
	so that concurrent triggers are applied one after another against fresh data.
	"""
	if await users.get(user_id) is None:
		return []
	observed: Dict[str, Any] = {}

	async def step(state: monitor.ProximityState):
		own = await locations.load_position(user_id)
		if own is None:
			return [], state
		config = await preferences.get_config(user_id)
		observed["own"], observed["config"] = own, config
		peers = await load_peers(user_id)
		result = monitor.evaluate(own, peers, config, state)
		return result.notifications, result.state

	start = perf_counter()
	notified = await tracker.run(user_id, step)
	obs_metrics.observe_proximity_evaluation(perf_counter() - start)
	if "own" not in observed:
		return []
	obs_metrics.inc_proximity_evaluation(trigger)
	if not notified:
		return []
	now = datetime.now(timezone.utc)
	alerts = [_alert(observed["own"], peer, observed["config"].threshold_miles, now) for peer in notified]
	obs_metrics.inc_proximity_alerts(len(alerts))
	logger.info("proximity alerts", extra={"observer_id": user_id, "count": len(alerts), "trigger": trigger})
	await dispatch.dispatch(user_id, alerts)
	return alerts


def _location_event(user: identity_models.User, stored: locations.StoredLocation) -> dict:
	return {
		**user.brief(),
		"lat": stored.position.latitude,
		"lon": stored.position.longitude,
		"accuracy_m": stored.accuracy_m,
		"updated_at": stored.updated_at.isoformat(),
	}


async def handle_location_update(
	auth_user: AuthenticatedUser,
	payload: schemas.LocationUpdatePayload,
) -> schemas.LocationAck:
	user = await require_user(auth_user.id)
	await policy.enforce_location_limit(user.id)
	stored = await locations.store_location(
		user.id,
		Position(payload.lat, payload.lon),
		accuracy_m=payload.accuracy_m,
		mode=payload.mode,
		client_ts=payload.ts_client,
	)
	obs_metrics.inc_location_update(payload.mode)

	alerts = await evaluate_for_user(user.id, trigger="self")

	event = _location_event(user, stored)
	for watcher in await load_watchers(user.id):
		try:
			await sockets.emit_location_update(watcher.id, event)
		except Exception:
			logger.warning("location fanout failed", extra={"watcher_id": watcher.id}, exc_info=True)
		await evaluate_for_user(watcher.id, trigger="peer")
	return schemas.LocationAck(alerts=alerts)


async def list_peer_locations(
	auth_user: AuthenticatedUser,
	circle_id: Optional[str] = None,
) -> schemas.PeerLocationsResponse:
	user = await require_user(auth_user.id)
	if circle_id is not None:
		if not await circles_service.is_member(circle_id, user.id):
			raise policy.ProximityError("not_member", status_code=403)
		ids = [uid for uid in await circles_service.member_ids(circle_id) if uid != user.id]
		scope = "circle"
	else:
		ids = await _peer_ids(user)
		circle_id = user.active_circle_id
		scope = "circle" if circle_id else "friends"

	config = preferences.config_for(user)
	own = await locations.load_position(user.id)
	profiles = await users.get_many(ids)
	stored = await locations.load_locations(profiles)
	items: List[schemas.PeerLocation] = []
	for uid in ids:
		profile = profiles.get(uid)
		loc = stored.get(uid)
		if profile is None or loc is None:
			continue
		distance_km = monitor.haversine_km(own, loc.position) if own else None
		items.append(
			schemas.PeerLocation(
				user_id=uid,
				display_name=profile.display_name,
				avatar_url=profile.avatar_url,
				lat=loc.position.latitude,
				lon=loc.position.longitude,
				accuracy_m=loc.accuracy_m,
				updated_at=loc.updated_at,
				distance_km=round(distance_km, 4) if distance_km is not None else None,
				within_range=distance_km is not None and monitor.within_range(distance_km, config.threshold_miles),
			)
		)
	return schemas.PeerLocationsResponse(scope=scope, circle_id=circle_id, items=items)


async def go_offline(auth_user: AuthenticatedUser) -> None:
	"""Forget the caller's location and their notification state."""
	await locations.clear_location(auth_user.id)
	await tracker.forget(auth_user.id)
	for watcher in await load_watchers(auth_user.id):
		try:
			await sockets.emit_location_offline(watcher.id, {"user_id": auth_user.id})
		except Exception:
			logger.warning("offline fanout failed", extra={"watcher_id": watcher.id}, exc_info=True)


def cadence() -> schemas.CadenceOut:
	return schemas.CadenceOut(
		foreground_interval_seconds=settings.location_foreground_interval_seconds,
		foreground_distance_m=settings.location_foreground_distance_m,
		background_interval_seconds=settings.location_background_interval_seconds,
		max_updates_per_minute=settings.location_updates_per_minute,
	)
