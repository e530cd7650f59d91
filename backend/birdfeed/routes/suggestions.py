"""Bird Feed Backend — GET /api/suggestions: what to photograph next."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from birdfeed.auth import get_current_user
from birdfeed.database import get_db_session
from birdfeed.models.user import User
from birdfeed.schemas.common import ErrorResponse
from birdfeed.schemas.haikubox import SuggestionListResponse
from birdfeed.services.suggestion_service import suggestion_service

router = APIRouter(prefix="/api", tags=["Suggestions"])


@router.get(
    "/suggestions",
    response_model=SuggestionListResponse,
    responses={400: {"description": "Limit out of range", "model": ErrorResponse}},
    summary="Species heard often but photographed little",
)
async def suggestions(
    limit: int = Query(default=10),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> SuggestionListResponse:
    return await suggestion_service.get_suggestions(db, user.id, limit)
