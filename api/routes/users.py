"""
api/routes/users.py -- Profile and password endpoints for signed-in users.

Routes:
  POST /api/users/password     -- change own password
  GET  /api/users/{username}   -- own profile (full) or another public profile (reduced)
  PUT  /api/users              -- update own profile
  POST /api/users-avatar       -- multipart upload, field "avatar"

Auth policy: every route here depends on get_current_user, which answers
403 "Forbidden." without a session. The dependency runs before the body is
read, so an anonymous upload is rejected without touching the file.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

from api.models import ChangePasswordRequest, MessageResponse, ProfileUpdate, PublicUserResponse, UserResponse
from auth.dependencies import get_auth_service, get_current_user, get_profile_service
from auth.service import AuthService
from core.exceptions import ValidationError
from users.models import User
from users.service import ProfileService

AVATAR_FIELD = "avatar"

router = APIRouter()


@router.post("/users/password", response_model=MessageResponse)
def change_password(
    body: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    auth: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    auth.change_password(current_user, body.current_password, body.new_password, body.verify_password)
    return MessageResponse(message="Password changed successfully!")


@router.get("/users/{username}")
def get_user(
    username: str,
    current_user: User = Depends(get_current_user),
    profiles: ProfileService = Depends(get_profile_service),
) -> JSONResponse:
    """Own profile in full (even while non-public); other users only once public."""
    user, is_own = profiles.get_profile(current_user, username)
    model = UserResponse.from_user(user) if is_own else PublicUserResponse.from_user(user)
    return JSONResponse(content=model.model_dump(by_alias=True, exclude_none=True))


@router.put("/users", response_model=UserResponse, response_model_exclude_none=True)
def update_user(
    body: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    profiles: ProfileService = Depends(get_profile_service),
) -> UserResponse:
    """Update whitelisted profile fields. roles and other server fields are ignored."""
    updated = profiles.update_profile(current_user, body.model_dump(exclude_unset=True))
    return UserResponse.from_user(updated)


@router.post("/users-avatar", response_model=MessageResponse)
async def upload_avatar(
    request: Request,
    current_user: User = Depends(get_current_user),
    profiles: ProfileService = Depends(get_profile_service),
) -> MessageResponse:
    """Accept a JPEG, GIF or PNG under the "avatar" form field."""
    form = await request.form()
    upload = form.get(AVATAR_FIELD)
    if not isinstance(upload, UploadFile):
        raise ValidationError("Missing avatar image.", code="avatar_missing")
    data = await upload.read(profiles.avatar_max_bytes + 1)
    await upload.close()
    profiles.upload_avatar(current_user, data)
    return MessageResponse(message="Avatar image uploaded.")
