"""REST API surface for friend codes, friend requests & friendships."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from circl.domain.identity.service import IdentityServiceError
from circl.domain.social import audit, service
from circl.domain.social.exceptions import (
	FriendRequestRateLimitExceeded,
	RequestConflict,
	RequestForbidden,
	RequestGone,
	RequestNotFound,
	SocialError,
)
from circl.domain.social.schemas import FriendCodeOut, FriendRequestSend, FriendRequestSummary, FriendRow
from circl.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter()


def _map_error(exc: Exception) -> HTTPException:
	if isinstance(exc, FriendRequestRateLimitExceeded):
		return HTTPException(status.HTTP_429_TOO_MANY_REQUESTS, detail=exc.reason)
	if isinstance(exc, RequestConflict):
		return HTTPException(status.HTTP_409_CONFLICT, detail=exc.reason)
	if isinstance(exc, RequestForbidden):
		return HTTPException(status.HTTP_403_FORBIDDEN, detail=exc.reason)
	if isinstance(exc, RequestGone):
		return HTTPException(status.HTTP_410_GONE, detail=exc.reason)
	if isinstance(exc, RequestNotFound):
		return HTTPException(status.HTTP_404_NOT_FOUND, detail=exc.reason)
	if isinstance(exc, IdentityServiceError):
		return HTTPException(exc.status_code, detail=exc.reason)
	return HTTPException(status.HTTP_400_BAD_REQUEST, detail=getattr(exc, "reason", str(exc)))


_HANDLED = (SocialError, FriendRequestRateLimitExceeded, IdentityServiceError)


@router.post("/friends/code", response_model=FriendCodeOut)
async def generate_code(auth_user: AuthenticatedUser = Depends(get_current_user)) -> FriendCodeOut:
	try:
		return await service.generate_friend_code(auth_user)
	except _HANDLED as exc:
		raise _map_error(exc) from None


@router.post("/friends/requests", response_model=FriendRequestSummary)
async def send_request(
	payload: FriendRequestSend,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> FriendRequestSummary:
	try:
		return await service.send_request(auth_user, payload)
	except (SocialError, FriendRequestRateLimitExceeded) as exc:
		audit.inc_request(f"rejected:{exc.reason}")
		raise _map_error(exc) from None
	except IdentityServiceError as exc:
		raise _map_error(exc) from None


@router.post("/friends/requests/{request_id}/accept", response_model=FriendRequestSummary)
async def accept_request(
	request_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> FriendRequestSummary:
	try:
		return await service.accept_request(auth_user, request_id)
	except _HANDLED as exc:
		raise _map_error(exc) from None


@router.post("/friends/requests/{request_id}/deny", response_model=FriendRequestSummary)
async def deny_request(
	request_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> FriendRequestSummary:
	try:
		return await service.deny_request(auth_user, request_id)
	except _HANDLED as exc:
		raise _map_error(exc) from None


@router.post("/friends/requests/{request_id}/cancel", response_model=FriendRequestSummary)
async def cancel_request(
	request_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> FriendRequestSummary:
	try:
		return await service.cancel_request(auth_user, request_id)
	except _HANDLED as exc:
		raise _map_error(exc) from None


@router.get("/friends/requests/incoming", response_model=List[FriendRequestSummary])
async def incoming(auth_user: AuthenticatedUser = Depends(get_current_user)) -> List[FriendRequestSummary]:
	return await service.list_incoming(auth_user)


@router.get("/friends/requests/outgoing", response_model=List[FriendRequestSummary])
async def outgoing(auth_user: AuthenticatedUser = Depends(get_current_user)) -> List[FriendRequestSummary]:
	return await service.list_outgoing(auth_user)


@router.get("/friends", response_model=List[FriendRow])
async def friends_list(auth_user: AuthenticatedUser = Depends(get_current_user)) -> List[FriendRow]:
	return await service.list_friends(auth_user)


@router.delete("/friends/{friend_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_friend(
	friend_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
	try:
		await service.remove_friend(auth_user, friend_id)
	except _HANDLED as exc:
		raise _map_error(exc) from None
