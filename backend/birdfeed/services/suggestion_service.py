"""
Bird Feed Backend — Photo Suggestions
======================================

What:  Ranks gallery species that the Haikubox hears often but that are
       under-photographed.
Who:   GET /api/suggestions.

Score (0-100, rounded):
    detection   min(yearly_count / 250, 1) * 40
    deficit     max(0, (yearly_count - photos * 10) / yearly_count) * 40
    recency     +15 / +10 / +5 when last heard within 8 / 24 / 48 hours
    difficulty  +5 common, -5 rare

Only species matched to this year's detections with at least
MIN_DETECTIONS yearly detections are considered.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from birdfeed.exceptions import ValidationError
from birdfeed.models.haikubox import HaikuboxDetection
from birdfeed.models.photo import Photo
from birdfeed.models.species import Species
from birdfeed.schemas.haikubox import PhotoSuggestion, SuggestionListResponse
from birdfeed.timeutil import ensure_utc, utc_now

logger = logging.getLogger(__name__)

MIN_DETECTIONS = 10
MAX_LIMIT = 50


def _hours_since(moment: Optional[datetime], now: datetime) -> Optional[float]:
    if moment is None:
        return None
    return (now - ensure_utc(moment)).total_seconds() / 3600


def calculate_priority_score(
    yearly_count: int,
    photo_count: int,
    last_heard: Optional[datetime],
    rarity: str,
    now: Optional[datetime] = None,
) -> int:
    now = now or utc_now()
    detection = min(yearly_count / 250, 1) * 40

    deficit = 0.0
    if yearly_count > 0:
        deficit = max(0.0, (yearly_count - photo_count * 10) / yearly_count) * 40

    recency = 0
    hours = _hours_since(last_heard, now)
    if hours is not None:
        if hours <= 8:
            recency = 15
        elif hours <= 24:
            recency = 10
        elif hours <= 48:
            recency = 5

    difficulty = {"common": 5, "rare": -5}.get(rarity, 0)

    total = detection + deficit + recency + difficulty
    return int(round(max(0, min(100, total))))


def generate_reason(
    yearly_count: int,
    photo_count: int,
    last_heard: Optional[datetime],
    now: Optional[datetime] = None,
) -> str:
    """Short explanation shown under a suggestion."""
    if photo_count == 0:
        return "Not photographed yet - add to your collection!"

    # photos per 10 detections, as a percentage
    capture_rate = photo_count / (yearly_count / 10) * 100 if yearly_count else 100
    if capture_rate < 5:
        plural = "" if photo_count == 1 else "s"
        return f"Heard {yearly_count:,}x but only {photo_count} photo{plural}"

    hours = _hours_since(last_heard, now or utc_now())
    if hours is not None:
        if hours <= 8:
            return "Active right now - go for it!"
        if hours <= 24:
            return "Heard recently - good chance to find it!"

    return f"Frequent visitor ({yearly_count:,} detections this year)"


class SuggestionService:

    async def get_suggestions(self, db: AsyncSession, user_id: str, limit: int = 10) -> SuggestionListResponse:
        if limit < 1 or limit > MAX_LIMIT:
            raise ValidationError(message=f"Limit must be between 1 and {MAX_LIMIT}", field="limit")

        now = utc_now()
        photo_count = func.count(func.distinct(Photo.id))
        result = await db.execute(
            select(
                Species.id,
                Species.common_name,
                Species.rarity,
                HaikuboxDetection.yearly_count,
                HaikuboxDetection.last_heard_at,
                photo_count,
            )
            .join(
                HaikuboxDetection,
                and_(
                    HaikuboxDetection.species_id == Species.id,
                    HaikuboxDetection.user_id == user_id,
                    HaikuboxDetection.data_year == now.year,
                ),
            )
            .outerjoin(Photo, and_(Photo.species_id == Species.id, Photo.user_id == user_id))
            .where(
                Species.user_id == user_id,
                HaikuboxDetection.yearly_count >= MIN_DETECTIONS,
            )
            .group_by(
                Species.id,
                Species.common_name,
                Species.rarity,
                HaikuboxDetection.id,
                HaikuboxDetection.yearly_count,
                HaikuboxDetection.last_heard_at,
            )
        )

        suggestions = []
        for species_id, name, rarity, yearly, last_heard, photos in result.all():
            photos = int(photos or 0)
            last_heard = ensure_utc(last_heard)
            suggestions.append(
                PhotoSuggestion(
                    common_name=name,
                    species_id=species_id,
                    score=calculate_priority_score(yearly, photos, last_heard, rarity, now),
                    reason=generate_reason(yearly, photos, last_heard, now),
                    yearly_count=yearly,
                    photo_count=photos,
                    last_heard_at=last_heard,
                    rarity=rarity,
                )
            )

        suggestions.sort(key=lambda s: (-s.score, s.common_name))
        suggestions = suggestions[:limit]
        return SuggestionListResponse(
            suggestions=suggestions,
            top_suggestion=suggestions[0] if suggestions else None,
            generated_at=now,
        )


suggestion_service = SuggestionService()
