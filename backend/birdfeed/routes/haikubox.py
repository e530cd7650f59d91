"""
Bird Feed Backend — Haikubox Route Handlers
============================================

What:  Sync with the user's Haikubox detector and browse what it heard.

POST /api/haikubox/sync has two callers:
    - the scheduler, with `Authorization: Bearer <CRON_SECRET>`: syncs
      every user with a serial, each in its own transaction
    - a signed-in user: syncs their own Haikubox in this request's
      transaction; an upstream failure answers with its own status (502,
      or 503 with Retry-After while the circuit is open) and the error
      sync-log row still commits

POST /api/haikubox/test checks a serial against the device API before
it is saved.
"""

import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from birdfeed import database
from birdfeed.auth import get_current_user, is_cron_request
from birdfeed.database import get_db_session
from birdfeed.exceptions import HaikuboxServiceError
from birdfeed.models.user import User
from birdfeed.schemas.common import ErrorResponse
from birdfeed.schemas.haikubox import (
    ConnectionTestRequest,
    ConnectionTestResponse,
    DetectionListResponse,
    HaikuboxStatsResponse,
    LinkDetectionRequest,
    LinkDetectionResponse,
    SyncAllResponse,
    SyncResult,
    SyncStatusResponse,
)
from birdfeed.services.haikubox_service import haikubox_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/haikubox", tags=["Haikubox"])


@router.post(
    "/sync",
    response_model=Union[SyncAllResponse, SyncResult],
    responses={
        400: {"description": "No Haikubox serial configured", "model": ErrorResponse},
        401: {"description": "Not signed in", "model": ErrorResponse},
        502: {"description": "Haikubox API failed", "model": ErrorResponse},
        503: {"description": "Haikubox circuit open", "model": ErrorResponse},
    },
    summary="Sync Haikubox detections",
)
async def sync(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
):
    if is_cron_request(request):
        logger.info("Haikubox cron sync started")
        # Resolved at call time so tests can swap the factory.
        return await haikubox_service.sync_all(database.async_session_factory)

    user = await get_current_user(request, db)
    result = await haikubox_service.sync_user(db, user.id)
    if not result.success:
        details = {"year": result.year}
        headers = {}
        if result.retry_after:
            details["retry_after"] = result.retry_after
            headers["Retry-After"] = str(result.retry_after)
        return JSONResponse(
            status_code=result.status_code or HaikuboxServiceError.status_code,
            content={
                "error": result.error_code or HaikuboxServiceError.error_code,
                "message": result.error or "Sync failed",
                "details": details,
                "request_id": getattr(request.state, "request_id", None),
            },
            headers=headers,
        )
    logger.info("Haikubox sync completed for %s: %d records", user.id, result.processed)
    return result


@router.get(
    "/sync",
    response_model=SyncStatusResponse,
    summary="Last sync and detection counts",
)
async def sync_status(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> SyncStatusResponse:
    return await haikubox_service.get_sync_status(db, user.id)


@router.get(
    "/detections",
    response_model=DetectionListResponse,
    summary="Detections, most heard first",
)
async def list_detections(
    limit: int = Query(default=50, ge=1, le=500),
    recent: bool = Query(default=False, description="Only birds heard in the last 7 days"),
    unmatched: bool = Query(default=False, description="Only birds not linked to a gallery species"),
    species: Optional[str] = Query(default=None, description="Detections for one species name"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> DetectionListResponse:
    return await haikubox_service.list_detections(
        db,
        user.id,
        limit=limit,
        recent=recent,
        unmatched=unmatched,
        species=species,
    )


@router.post(
    "/detections/link",
    response_model=LinkDetectionResponse,
    responses={404: {"description": "Species not found", "model": ErrorResponse}},
    summary="Link a detected bird to a gallery species",
)
async def link_detection(
    data: LinkDetectionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> LinkDetectionResponse:
    return await haikubox_service.link_detection(db, user.id, data)


@router.get(
    "/stats",
    response_model=HaikuboxStatsResponse,
    summary="Heard vs photographed for this year",
)
async def stats(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> HaikuboxStatsResponse:
    return await haikubox_service.get_stats(db, user.id)


@router.post(
    "/test",
    response_model=ConnectionTestResponse,
    responses={
        400: {"description": "Missing serial, bad format or device not found", "model": ErrorResponse},
        502: {"description": "Haikubox API unreachable", "model": ErrorResponse},
        503: {"description": "Haikubox circuit open", "model": ErrorResponse},
    },
    summary="Check a Haikubox serial before saving it",
)
async def test_connection(
    data: ConnectionTestRequest,
    user: User = Depends(get_current_user),
) -> ConnectionTestResponse:
    result = await haikubox_service.check_connection(data.serial)
    logger.info("Haikubox connection test for %s: %s", user.id, result.device_name)
    return result
