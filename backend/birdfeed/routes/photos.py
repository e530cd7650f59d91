"""
Bird Feed Backend — Photo Route Handlers
=========================================

What:  Listing, viewing, editing and deleting the signed-in user's photos.
Who:   The gallery grid, the inbox and the photo detail sheet.

/api/photos/unassigned is declared before /api/photos/{photo_id} so the
literal path wins.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from birdfeed.auth import get_current_user
from birdfeed.database import get_db_session
from birdfeed.models.species import RARITIES
from birdfeed.models.user import User
from birdfeed.schemas.common import ErrorResponse
from birdfeed.schemas.photo import (
    PhotoDeleteResponse,
    PhotoListResponse,
    PhotoResponse,
    PhotoUpdate,
    PhotoUpdateResponse,
    UnassignedPhotosResponse,
)
from birdfeed.services.photo_service import photo_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Photos"])


def parse_rarity_filter(rarity: Optional[str]) -> Optional[List[str]]:
    """'common,rare' → ['common', 'rare']; unknown values are dropped."""
    if not rarity:
        return None
    values = [r.strip().lower() for r in rarity.split(",")]
    return [r for r in values if r in RARITIES] or None


@router.get(
    "/photos",
    response_model=PhotoListResponse,
    summary="List photos with filters and pagination",
)
async def list_photos(
    species_id: Optional[int] = Query(default=None, description="Only photos of this species"),
    favorites: bool = Query(default=False, description="Only favorites"),
    rarity: Optional[str] = Query(default=None, description="Comma-separated rarities, e.g. 'uncommon,rare'"),
    sort: str = Query(
        default="recent_upload",
        description="recent_upload, oldest_upload, species_alpha or recent_taken",
    ),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> PhotoListResponse:
    return await photo_service.list_photos(
        db,
        user.id,
        species_id=species_id,
        favorites=favorites,
        rarities=parse_rarity_filter(rarity),
        sort=sort,
        page=page,
        limit=limit,
    )


@router.get(
    "/photos/unassigned",
    response_model=UnassignedPhotosResponse,
    summary="Photos waiting for a species (the inbox)",
)
async def list_unassigned(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> UnassignedPhotosResponse:
    return await photo_service.list_unassigned(db, user.id)


@router.get(
    "/photos/{photo_id}",
    response_model=PhotoResponse,
    responses={404: {"description": "Photo not found", "model": ErrorResponse}},
    summary="Get one photo",
)
async def get_photo(
    photo_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> PhotoResponse:
    return await photo_service.get_photo(db, user.id, photo_id)


@router.patch(
    "/photos/{photo_id}",
    response_model=PhotoUpdateResponse,
    responses={
        400: {"description": "Invalid update", "model": ErrorResponse},
        404: {"description": "Photo or species not found", "model": ErrorResponse},
        409: {"description": "Species gallery or inbox full", "model": ErrorResponse},
    },
    summary="Update a photo (species, favorite, notes, date taken)",
)
async def update_photo(
    photo_id: int,
    data: PhotoUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> PhotoUpdateResponse:
    """
    Moving the photo into a full species gallery needs `replace_photo_id`
    naming the photo to swap out; the swap commits as one transaction.
    """
    return await photo_service.update_photo(db, user.id, photo_id, data)


@router.delete(
    "/photos/{photo_id}",
    response_model=PhotoDeleteResponse,
    responses={404: {"description": "Photo not found", "model": ErrorResponse}},
    summary="Delete a photo",
)
async def delete_photo(
    photo_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> PhotoDeleteResponse:
    return await photo_service.delete_photo(db, user.id, photo_id)
