"""
Bird Feed Backend — Photo Curation Limits
==========================================

What:  Counts and limit checks for species galleries and the inbox.
Who:   PhotoService, before inserting or moving a photo.

Limits (per user, from settings):
    species_photo_limit      photos per species gallery (default 8); a full
                             gallery only accepts a photo as a swap
    unassigned_photo_limit   photos waiting for a species (default 24); no
                             swap, photos must be assigned first

The counts run inside the request's transaction, so the check and the
following insert/delete commit or roll back together.
"""

from typing import NamedTuple, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from birdfeed.config import settings
from birdfeed.exceptions import PhotoLimitError
from birdfeed.models.photo import Photo


class LimitCheck(NamedTuple):
    allowed: bool
    current_count: int
    limit: int
    error: Optional[str] = None


def species_limit_message(limit: int) -> str:
    return f"This gallery is curated to {limit} photos. Choose one to swap out."


def unassigned_limit_message(limit: int) -> str:
    return (
        f"Your inbox has {limit} photos waiting for a species. "
        "Assign some to make room for new uploads."
    )


async def get_species_photo_count(db: AsyncSession, species_id: int, user_id: str) -> int:
    result = await db.execute(
        select(func.count(Photo.id)).where(
            Photo.species_id == species_id,
            Photo.user_id == user_id,
        )
    )
    return int(result.scalar() or 0)


async def get_unassigned_photo_count(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        select(func.count(Photo.id)).where(
            Photo.user_id == user_id,
            Photo.species_id.is_(None),
        )
    )
    return int(result.scalar() or 0)


async def check_species_limit(
    db: AsyncSession,
    species_id: int,
    user_id: str,
    replace_photo_id: Optional[int] = None,
) -> LimitCheck:
    """
    Room for one more photo in a species gallery?

    Allowed below the limit, or at/over it when a photo to swap out is named.
    Whether that photo is valid is checked by the caller.
    """
    limit = settings.species_photo_limit
    current = await get_species_photo_count(db, species_id, user_id)
    if current < limit or replace_photo_id:
        return LimitCheck(allowed=True, current_count=current, limit=limit)
    return LimitCheck(
        allowed=False,
        current_count=current,
        limit=limit,
        error=species_limit_message(limit),
    )


async def check_unassigned_limit(db: AsyncSession, user_id: str) -> LimitCheck:
    """Room for one more photo in the inbox?"""
    limit = settings.unassigned_photo_limit
    current = await get_unassigned_photo_count(db, user_id)
    if current < limit:
        return LimitCheck(allowed=True, current_count=current, limit=limit)
    return LimitCheck(
        allowed=False,
        current_count=current,
        limit=limit,
        error=unassigned_limit_message(limit),
    )


async def ensure_species_capacity(
    db: AsyncSession,
    species_id: int,
    user_id: str,
    replace_photo_id: Optional[int] = None,
) -> LimitCheck:
    """check_species_limit, raising PhotoLimitError (409) when full."""
    check = await check_species_limit(db, species_id, user_id, replace_photo_id)
    if not check.allowed:
        raise PhotoLimitError(
            message=check.error,
            limit=check.limit,
            current_count=check.current_count,
            species_id=species_id,
        )
    return check


async def ensure_unassigned_capacity(db: AsyncSession, user_id: str) -> LimitCheck:
    """check_unassigned_limit, raising PhotoLimitError (409) when full."""
    check = await check_unassigned_limit(db, user_id)
    if not check.allowed:
        raise PhotoLimitError(
            message=check.error,
            limit=check.limit,
            current_count=check.current_count,
            species_id=None,
        )
    return check
