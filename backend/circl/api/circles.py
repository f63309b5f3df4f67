"""FastAPI routes for circles."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from circl.domain.circles import policy, schemas, service
from circl.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/circles", tags=["circles"])


def _as_http_error(exc: policy.CirclePolicyError) -> HTTPException:
	return HTTPException(status_code=exc.status_code, detail=exc.detail)


@router.post("", response_model=schemas.CircleSummary, status_code=status.HTTP_201_CREATED)
async def create_circle_endpoint(
	payload: schemas.CircleCreateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.CircleSummary:
	try:
		return await service.create_circle(auth_user, payload)
	except policy.CirclePolicyError as exc:
		raise _as_http_error(exc) from None


@router.get("", response_model=List[schemas.CircleSummary])
async def list_circles_endpoint(auth_user: AuthenticatedUser = Depends(get_current_user)) -> List[schemas.CircleSummary]:
	return await service.list_my_circles(auth_user)


@router.post("/join/by-code", response_model=schemas.CircleSummary)
async def join_by_code_endpoint(
	payload: schemas.JoinByCodeRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.CircleSummary:
	try:
		return await service.join_by_code(auth_user, payload)
	except policy.CirclePolicyError as exc:
		raise _as_http_error(exc) from None


@router.get("/{circle_id}", response_model=schemas.CircleDetail)
async def get_circle_endpoint(
	circle_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.CircleDetail:
	try:
		return await service.get_circle(auth_user, circle_id)
	except policy.CirclePolicyError as exc:
		raise _as_http_error(exc) from None


@router.patch("/{circle_id}", response_model=schemas.CircleSummary)
async def rename_circle_endpoint(
	circle_id: str,
	payload: schemas.CircleRenameRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.CircleSummary:
	try:
		return await service.rename_circle(auth_user, circle_id, payload)
	except policy.CirclePolicyError as exc:
		raise _as_http_error(exc) from None


@router.delete("/{circle_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_circle_endpoint(
	circle_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
	try:
		await service.delete_circle(auth_user, circle_id)
	except policy.CirclePolicyError as exc:
		raise _as_http_error(exc) from None


@router.post("/{circle_id}/members", response_model=schemas.CircleDetail)
async def add_member_endpoint(
	circle_id: str,
	payload: schemas.AddMemberRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.CircleDetail:
	try:
		return await service.add_member(auth_user, circle_id, payload)
	except policy.CirclePolicyError as exc:
		raise _as_http_error(exc) from None


@router.delete("/{circle_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member_endpoint(
	circle_id: str,
	user_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
	try:
		await service.remove_member(auth_user, circle_id, user_id)
	except policy.CirclePolicyError as exc:
		raise _as_http_error(exc) from None


@router.post("/{circle_id}/leave", status_code=status.HTTP_204_NO_CONTENT)
async def leave_circle_endpoint(
	circle_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
	try:
		await service.leave_circle(auth_user, circle_id)
	except policy.CirclePolicyError as exc:
		raise _as_http_error(exc) from None


@router.post("/{circle_id}/invite-code/rotate", response_model=schemas.RotateInviteResponse)
async def rotate_code_endpoint(
	circle_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.RotateInviteResponse:
	try:
		return await service.rotate_invite_code(auth_user, circle_id)
	except policy.CirclePolicyError as exc:
		raise _as_http_error(exc) from None
