"""Avatar upload endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from circl.domain.identity import avatars, policy, schemas, service
from circl.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/profile", tags=["profile"])


@router.post("/avatar", response_model=schemas.AvatarUploadResponse)
async def upload_avatar(
	file: UploadFile = File(...),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.AvatarUploadResponse:
	try:
		await service.require_user(auth_user.id)
		content = await file.read(avatars.MAX_AVATAR_BYTES + 1)
		key, url = avatars.store_avatar(auth_user.id, file.content_type, content)
		user = await service.set_avatar_url(auth_user.id, url)
	except policy.AvatarValidationError as exc:
		raise HTTPException(status.HTTP_400_BAD_REQUEST, detail=exc.reason) from None
	except service.IdentityServiceError as exc:
		raise HTTPException(exc.status_code, detail=exc.reason) from None
	return schemas.AvatarUploadResponse(key=key, url=url, profile=schemas.ProfileOut.from_user(user))
