"""
Bird Feed Backend — Public Gallery & Discover Route Handlers
=============================================================

What:  Anonymous, read-only access to galleries their owners made public.
Who:   /u/<username> pages and the Discover directory.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from birdfeed.database import get_db_session
from birdfeed.routes.photos import parse_rarity_filter
from birdfeed.schemas.common import ErrorResponse
from birdfeed.schemas.gallery import (
    DiscoverResponse,
    PublicPhotoListResponse,
    PublicProfileResponse,
    PublicSpeciesDetailResponse,
    PublicSpeciesListResponse,
)
from birdfeed.services.gallery_service import gallery_service

router = APIRouter(prefix="/api/public", tags=["Public"])

GALLERY_NOT_FOUND = {404: {"description": "Gallery not found", "model": ErrorResponse}}


@router.get(
    "/gallery/{username}",
    response_model=PublicProfileResponse,
    responses=GALLERY_NOT_FOUND,
    summary="Public gallery profile",
)
async def gallery_profile(
    username: str,
    db: AsyncSession = Depends(get_db_session),
) -> PublicProfileResponse:
    return await gallery_service.get_profile(db, username)


@router.get(
    "/gallery/{username}/species",
    response_model=PublicSpeciesListResponse,
    responses=GALLERY_NOT_FOUND,
    summary="Species in a public gallery",
)
async def gallery_species(
    username: str,
    sort: str = Query(default="alpha"),
    db: AsyncSession = Depends(get_db_session),
) -> PublicSpeciesListResponse:
    return await gallery_service.list_species(db, username, sort)


@router.get(
    "/gallery/{username}/species/{species_id}",
    response_model=PublicSpeciesDetailResponse,
    responses=GALLERY_NOT_FOUND,
    summary="One species and its photos in a public gallery",
)
async def gallery_species_detail(
    username: str,
    species_id: int,
    db: AsyncSession = Depends(get_db_session),
) -> PublicSpeciesDetailResponse:
    return await gallery_service.get_species(db, username, species_id)


@router.get(
    "/gallery/{username}/photos",
    response_model=PublicPhotoListResponse,
    responses=GALLERY_NOT_FOUND,
    summary="Photos in a public gallery",
)
async def gallery_photos(
    username: str,
    species_id: Optional[int] = Query(default=None),
    favorites: bool = Query(default=False),
    rarity: Optional[str] = Query(default=None),
    sort: str = Query(default="recent_upload"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100),
    db: AsyncSession = Depends(get_db_session),
) -> PublicPhotoListResponse:
    return await gallery_service.list_photos(
        db,
        username,
        species_id=species_id,
        favorites=favorites,
        rarities=parse_rarity_filter(rarity),
        sort=sort,
        page=page,
        limit=limit,
    )


@router.get(
    "/discover",
    response_model=DiscoverResponse,
    responses={400: {"description": "Invalid state code", "model": ErrorResponse}},
    summary="Browse listed public galleries",
)
async def discover(
    state: Optional[str] = Query(default=None, description="Two-letter US state code"),
    sort: str = Query(default="alpha", description="alpha or random"),
    page: int = Query(default=1),
    limit: int = Query(default=20),
    db: AsyncSession = Depends(get_db_session),
) -> DiscoverResponse:
    return await gallery_service.discover(db, state=state, sort=sort, page=page, limit=limit)
