"""
Bird Feed Backend — Stored File Route
======================================

What:  GET /api/files/{path} serves a stored photo by its relative path.

Paths resolving outside the storage root are reported as 404, the same as
missing files. Stored filenames are random UUIDs, so files are served
without an ownership check (public galleries link to them directly) and
cached as immutable.
"""

from fastapi import APIRouter
from fastapi.responses import FileResponse

from birdfeed.schemas.common import ErrorResponse
from birdfeed.services.file_service import file_service

router = APIRouter(prefix="/api", tags=["Files"])


@router.get(
    "/files/{file_path:path}",
    response_class=FileResponse,
    responses={404: {"description": "File not found", "model": ErrorResponse}},
    summary="Serve a stored photo",
)
async def get_file(file_path: str) -> FileResponse:
    path = file_service.resolve_path(file_path)
    return FileResponse(
        path,
        media_type=file_service.content_type_for(path),
        headers={"Cache-Control": "public, max-age=31536000, immutable"},
    )
