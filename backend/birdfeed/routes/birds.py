"""
Bird Feed Backend — Bird Lookup Route
======================================

What:  GET /api/birds/lookup?name= fills in the add-species form from
       Wikipedia (scientific name and a short description).
"""

from fastapi import APIRouter, Depends, Query

from birdfeed.auth import get_current_user
from birdfeed.exceptions import NotFoundError, ValidationError
from birdfeed.models.user import User
from birdfeed.schemas.common import ErrorResponse
from birdfeed.schemas.species import BirdLookupResponse
from birdfeed.services.wikipedia_service import wikipedia_service

router = APIRouter(prefix="/api", tags=["Birds"])


@router.get(
    "/birds/lookup",
    response_model=BirdLookupResponse,
    responses={
        400: {"description": "Name too short", "model": ErrorResponse},
        404: {"description": "No Wikipedia article", "model": ErrorResponse},
    },
    summary="Look up a bird on Wikipedia",
)
async def lookup_bird(
    name: str = Query(default=""),
    user: User = Depends(get_current_user),
) -> BirdLookupResponse:
    name = name.strip()
    if len(name) < 2:
        raise ValidationError(message="Name parameter is required (min 2 characters)", field="name")

    result = await wikipedia_service.lookup(name)
    if result is None:
        raise NotFoundError(resource="bird", context={"name": name}, message="Bird not found")
    return BirdLookupResponse(**result)
