"""Location ingestion and proximity settings endpoints."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from circl.domain.identity.service import IdentityServiceError
from circl.domain.proximity import preferences, schemas, service
from circl.domain.proximity.policy import ProximityError
from circl.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(tags=["proximity"])


def _map_error(exc: Exception) -> HTTPException:
	if isinstance(exc, (ProximityError, IdentityServiceError)):
		return HTTPException(exc.status_code, detail=exc.reason)
	return HTTPException(status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.post("/location", response_model=schemas.LocationAck)
async def post_location(
	payload: schemas.LocationUpdatePayload,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.LocationAck:
	try:
		return await service.handle_location_update(auth_user, payload)
	except (ProximityError, IdentityServiceError) as exc:
		raise _map_error(exc) from None


@router.get("/location/cadence", response_model=schemas.CadenceOut)
async def get_cadence(auth_user: AuthenticatedUser = Depends(get_current_user)) -> schemas.CadenceOut:
	return service.cadence()


@router.post("/location/offline", status_code=status.HTTP_204_NO_CONTENT)
async def post_offline(auth_user: AuthenticatedUser = Depends(get_current_user)) -> None:
	await service.go_offline(auth_user)


@router.get("/location/peers", response_model=schemas.PeerLocationsResponse)
async def get_peers(
	circle_id: Optional[str] = Query(default=None),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.PeerLocationsResponse:
	try:
		return await service.list_peer_locations(auth_user, circle_id)
	except (ProximityError, IdentityServiceError) as exc:
		raise _map_error(exc) from None


@router.get("/proximity/settings", response_model=schemas.ProximitySettings)
async def get_settings(auth_user: AuthenticatedUser = Depends(get_current_user)) -> schemas.ProximitySettings:
	try:
		return await preferences.get_settings(auth_user.id)
	except IdentityServiceError as exc:
		raise _map_error(exc) from None


@router.patch("/proximity/settings", response_model=schemas.ProximitySettings)
async def patch_settings(
	payload: schemas.ProximitySettingsPatch,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.ProximitySettings:
	try:
		return await preferences.update_settings(auth_user.id, payload)
	except (ProximityError, IdentityServiceError) as exc:
		raise _map_error(exc) from None
