"""
Bird Feed Backend — Bookmark Route Handlers
============================================

What:  The signed-in user's bookmarked public galleries.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from birdfeed.auth import get_current_user
from birdfeed.database import get_db_session
from birdfeed.models.user import User
from birdfeed.schemas.common import ErrorResponse, SuccessResponse
from birdfeed.schemas.gallery import BookmarkCheckResponse, BookmarkCreate, BookmarkListResponse
from birdfeed.services.bookmark_service import bookmark_service

router = APIRouter(prefix="/api/bookmarks", tags=["Bookmarks"])


@router.get("", response_model=BookmarkListResponse, summary="List bookmarked galleries")
async def list_bookmarks(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> BookmarkListResponse:
    return await bookmark_service.list_bookmarks(db, user.id)


@router.post(
    "",
    status_code=201,
    response_model=SuccessResponse,
    responses={
        400: {"description": "Own gallery", "model": ErrorResponse},
        404: {"description": "Gallery not found", "model": ErrorResponse},
        409: {"description": "Already bookmarked", "model": ErrorResponse},
    },
    summary="Bookmark a public gallery",
)
async def add_bookmark(
    data: BookmarkCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    return await bookmark_service.add_bookmark(db, user, data.username)


@router.get(
    "/check/{username}",
    response_model=BookmarkCheckResponse,
    summary="Is this gallery bookmarked?",
)
async def check_bookmark(
    username: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> BookmarkCheckResponse:
    return await bookmark_service.is_bookmarked(db, user.id, username)


@router.delete(
    "/{username}",
    response_model=SuccessResponse,
    responses={404: {"description": "Not bookmarked", "model": ErrorResponse}},
    summary="Remove a bookmark",
)
async def remove_bookmark(
    username: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    return await bookmark_service.remove_bookmark(db, user.id, username)
