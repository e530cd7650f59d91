"""
Bird Feed Backend — Settings & Profile Route Handlers
======================================================

What:  The signed-in user's profile (username, public gallery, location)
       and device settings (Haikubox serial).
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from birdfeed.auth import get_current_user
from birdfeed.database import get_db_session
from birdfeed.models.user import User
from birdfeed.schemas.common import ErrorResponse, SuccessResponse
from birdfeed.schemas.user import (
    ProfileResponse,
    ProfileUpdate,
    ProfileUpdateResponse,
    SettingsResponse,
    SettingsUpdate,
    UsernameCheckResponse,
)
from birdfeed.services.user_service import user_service

router = APIRouter(prefix="/api/settings", tags=["Settings"])


@router.get("", response_model=SettingsResponse, summary="Get device settings")
async def get_settings(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> SettingsResponse:
    return await user_service.get_settings(db, user)


@router.post(
    "",
    response_model=SuccessResponse,
    responses={400: {"description": "Missing or invalid serial", "model": ErrorResponse}},
    summary="Save the Haikubox serial number",
)
async def save_settings(
    data: SettingsUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    await user_service.save_haikubox_serial(db, user, data.haikubox_serial)
    return SuccessResponse(success=True, message="Settings saved")


@router.get("/profile", response_model=ProfileResponse, summary="Get profile")
async def get_profile(user: User = Depends(get_current_user)) -> ProfileResponse:
    return user_service.profile_of(user)


@router.patch(
    "/profile",
    response_model=ProfileUpdateResponse,
    responses={
        400: {"description": "Invalid update", "model": ErrorResponse},
        409: {"description": "Username taken", "model": ErrorResponse},
    },
    summary="Update profile",
)
async def update_profile(
    data: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> ProfileUpdateResponse:
    return await user_service.update_profile(db, user, data)


@router.get(
    "/profile/check-username",
    response_model=UsernameCheckResponse,
    summary="Is a username valid and free?",
)
async def check_username(
    username: str = Query(default=""),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> UsernameCheckResponse:
    return await user_service.check_username(db, user, username)
