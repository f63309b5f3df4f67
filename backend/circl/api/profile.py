"""Profile API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from circl.domain.identity import deletion, policy, schemas, service
from circl.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/profile", tags=["profile"])


def _map_policy_error(exc: policy.IdentityPolicyError) -> HTTPException:
	if isinstance(exc, policy.EmailConflict):
		return HTTPException(status.HTTP_409_CONFLICT, detail=exc.reason)
	return HTTPException(status.HTTP_400_BAD_REQUEST, detail=exc.reason)


@router.post("/me", response_model=schemas.ProfileOut, status_code=status.HTTP_201_CREATED)
async def create_me(
	payload: schemas.ProfileCreate,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.ProfileOut:
	try:
		return await service.create_profile(auth_user, payload)
	except policy.IdentityPolicyError as exc:
		raise _map_policy_error(exc) from None
	except service.IdentityServiceError as exc:
		raise HTTPException(exc.status_code, detail=exc.reason) from None


@router.get("/me", response_model=schemas.ProfileOut)
async def get_me(auth_user: AuthenticatedUser = Depends(get_current_user)) -> schemas.ProfileOut:
	try:
		return await service.get_profile(auth_user.id)
	except service.IdentityServiceError as exc:
		raise HTTPException(exc.status_code, detail=exc.reason) from None


@router.patch("/me", response_model=schemas.ProfileOut)
async def patch_me(
	payload: schemas.ProfilePatch,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.ProfileOut:
	try:
		return await service.update_profile(auth_user, payload)
	except policy.IdentityPolicyError as exc:
		raise _map_policy_error(exc) from None
	except service.IdentityServiceError as exc:
		raise HTTPException(exc.status_code, detail=exc.reason) from None


@router.delete("/me", status_code=status.HTTP_204_NO_CONTENT)
async def delete_me(auth_user: AuthenticatedUser = Depends(get_current_user)) -> None:
	try:
		await deletion.delete_account(auth_user)
	except service.IdentityServiceError as exc:
		raise HTTPException(exc.status_code, detail=exc.reason) from None
