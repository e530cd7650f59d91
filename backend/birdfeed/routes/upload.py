"""
Bird Feed Backend — Upload Route Handlers
==========================================

What:  POST /api/upload/browser (signed-in user) and POST /api/upload
       (device or shortcut with X-API-Key).
How:   Both read the multipart `photo` into memory and hand it to
       PhotoService.upload_photo, which validates, checks limits, stores
       the file and inserts the row (swapping out `replace_photo_id` when
       the species gallery is full).

The whole upload is one transaction: if anything fails after the file is
written, the row rolls back and the new file is removed.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from birdfeed.auth import get_current_user, require_upload_api_key
from birdfeed.database import get_db_session
from birdfeed.exceptions import ValidationError
from birdfeed.models.user import User
from birdfeed.schemas.common import ErrorResponse
from birdfeed.schemas.photo import UploadResponse
from birdfeed.services.photo_service import photo_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Upload"])

UPLOAD_RESPONSES = {
    201: {"description": "Photo stored", "model": UploadResponse},
    400: {"description": "Invalid file or fields", "model": ErrorResponse},
    401: {"description": "Not signed in / bad API key", "model": ErrorResponse},
    404: {"description": "Species not found", "model": ErrorResponse},
    409: {"description": "Species gallery or inbox full", "model": ErrorResponse},
    429: {"description": "Rate limit exceeded", "model": ErrorResponse},
}


def _optional_int(value: Optional[str], field: str) -> Optional[int]:
    """Form fields arrive as strings; empty means absent."""
    if value is None or not value.strip():
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError(message=f"{field} must be an integer", field=field)


async def _handle_upload(
    user: User,
    db: AsyncSession,
    photo: UploadFile,
    species_id: Optional[str],
    notes: Optional[str],
    replace_photo_id: Optional[str],
) -> UploadResponse:
    content = await photo.read()
    return await photo_service.upload_photo(
        db,
        user.id,
        filename=photo.filename or "",
        content=content,
        content_length=photo.size,
        species_id=_optional_int(species_id, "species_id"),
        notes=notes,
        replace_photo_id=_optional_int(replace_photo_id, "replace_photo_id"),
    )


@router.post(
    "/upload/browser",
    status_code=201,
    response_model=UploadResponse,
    responses=UPLOAD_RESPONSES,
    summary="Upload a photo from the web app",
)
async def upload_from_browser(
    photo: UploadFile = File(..., description="JPEG, PNG or HEIC photo"),
    species_id: Optional[str] = Form(default=None),
    notes: Optional[str] = Form(default=None),
    replace_photo_id: Optional[str] = Form(default=None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> UploadResponse:
    return await _handle_upload(user, db, photo, species_id, notes, replace_photo_id)


@router.post(
    "/upload",
    status_code=201,
    response_model=UploadResponse,
    responses=UPLOAD_RESPONSES,
    summary="Upload a photo from a device (API key)",
)
async def upload_from_device(
    photo: UploadFile = File(..., description="JPEG, PNG or HEIC photo"),
    species_id: Optional[str] = Form(default=None),
    notes: Optional[str] = Form(default=None),
    replace_photo_id: Optional[str] = Form(default=None),
    user: User = Depends(require_upload_api_key),
    db: AsyncSession = Depends(get_db_session),
) -> UploadResponse:
    return await _handle_upload(user, db, photo, species_id, notes, replace_photo_id)
