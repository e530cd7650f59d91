"""
Bird Feed Backend — Species Route Handlers
===========================================

What:  The signed-in user's species galleries.
Who:   The species grid, species page and the add-species form.
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from birdfeed.auth import get_current_user
from birdfeed.database import get_db_session
from birdfeed.models.user import User
from birdfeed.schemas.common import ErrorResponse
from birdfeed.schemas.species import (
    SpeciesCreate,
    SpeciesDeleteResponse,
    SpeciesListResponse,
    SpeciesRefreshResponse,
    SpeciesResponse,
    SpeciesUpdate,
)
from birdfeed.services.species_service import species_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Species"])

NOT_FOUND = {404: {"description": "Species not found", "model": ErrorResponse}}


@router.get(
    "/species",
    response_model=SpeciesListResponse,
    summary="List species with photo counts",
)
async def list_species(
    sort: str = Query(
        default="alpha",
        description="alpha, photo_count, recent_added or recent_taken",
    ),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> SpeciesListResponse:
    return await species_service.list_species(db, user.id, sort)


@router.post(
    "/species",
    status_code=201,
    response_model=SpeciesResponse,
    summary="Create a species gallery",
)
async def create_species(
    data: SpeciesCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> SpeciesResponse:
    return await species_service.create_species(db, user.id, data)


@router.post(
    "/species/refresh",
    response_model=SpeciesRefreshResponse,
    summary="Refresh every species from Wikipedia",
)
async def refresh_species(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> SpeciesRefreshResponse:
    """
    Looks every species up again and fills in scientific names and
    descriptions. Stored values are kept where Wikipedia has nothing.
    """
    return await species_service.refresh_from_wikipedia(db, user.id)


@router.get(
    "/species/{species_id}",
    response_model=SpeciesResponse,
    responses=NOT_FOUND,
    summary="Get one species",
)
async def get_species(
    species_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> SpeciesResponse:
    return await species_service.get_species(db, user.id, species_id)


@router.patch(
    "/species/{species_id}",
    response_model=SpeciesResponse,
    responses={**NOT_FOUND, 400: {"description": "Invalid update", "model": ErrorResponse}},
    summary="Update a species",
)
async def update_species(
    species_id: int,
    data: SpeciesUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> SpeciesResponse:
    return await species_service.update_species(db, user.id, species_id, data)


@router.delete(
    "/species/{species_id}",
    response_model=SpeciesDeleteResponse,
    responses=NOT_FOUND,
    summary="Delete a species and its photos",
)
async def delete_species(
    species_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> SpeciesDeleteResponse:
    return await species_service.delete_species(db, user.id, species_id)
