"""
Bird Feed Backend — Activity Route Handlers
============================================

What:  Hour-of-day activity built from stored Haikubox detections.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from birdfeed.auth import get_current_user
from birdfeed.database import get_db_session
from birdfeed.models.user import User
from birdfeed.schemas.activity import CurrentActivityResponse, HeatmapResponse, SpeciesActivityResponse
from birdfeed.schemas.common import ErrorResponse
from birdfeed.services.activity_service import activity_service

router = APIRouter(prefix="/api/activity", tags=["Activity"])


@router.get(
    "/current",
    response_model=CurrentActivityResponse,
    summary="Species usually active around this hour",
)
async def current_activity(
    window: int = Query(default=1, ge=0, le=12, description="Hours either side of now"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> CurrentActivityResponse:
    return await activity_service.get_active_now(db, user.id, window)


@router.get(
    "/heatmap",
    response_model=HeatmapResponse,
    summary="Detections per hour of day for every species",
)
async def heatmap(
    days: int = Query(default=30, ge=1, le=365),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> HeatmapResponse:
    return await activity_service.get_heatmap(db, user.id, days)


@router.get(
    "/species/{name}",
    response_model=SpeciesActivityResponse,
    responses={404: {"description": "No activity data for this species", "model": ErrorResponse}},
    summary="Hourly pattern and peak hours for one species",
)
async def species_activity(
    name: str,
    days: int = Query(default=90, ge=1, le=365),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> SpeciesActivityResponse:
    return await activity_service.get_species_pattern(db, user.id, name, days)
