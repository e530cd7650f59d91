"""
Bird Feed Backend — Activity Timeline Service
==============================================

What:  Stores individual Haikubox detections and turns them into
       hour-of-day activity patterns.
Who:   HaikuboxService (store + prune during a sync) and /api/activity/*.

Hours are bucketed in the configured ACTIVITY_TIMEZONE when a detection is
stored, so every query below works on plain hour numbers. Day of week
follows the Sunday = 0 convention.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy import delete, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from birdfeed.config import settings
from birdfeed.exceptions import NotFoundError
from birdfeed.models.haikubox import HaikuboxActivityLog
from birdfeed.schemas.activity import (
    ActiveSpecies,
    ActivityPattern,
    CurrentActivityResponse,
    DateRange,
    HeatmapResponse,
    HourlyActivity,
    SpeciesActivityResponse,
    SpeciesHeatmap,
)
from birdfeed.services.haikubox_client import normalize_common_name
from birdfeed.timeutil import ensure_utc, parse_iso_datetime, utc_now

logger = logging.getLogger(__name__)

# Hours at or above this share of the busiest hour count as peak hours.
PEAK_THRESHOLD = 0.6
MAX_PEAK_HOURS = 4
ACTIVE_NOW_DAYS = 30
ACTIVE_NOW_LIMIT = 10


def _zone() -> ZoneInfo:
    return ZoneInfo(settings.activity_timezone)


def local_hour_and_weekday(moment: datetime) -> Tuple[int, int]:
    """(hour 0-23, weekday with Sunday = 0) of a UTC moment in the activity zone."""
    local = ensure_utc(moment).astimezone(_zone())
    return local.hour, (local.weekday() + 1) % 7


class ActivityService:
    """Activity log storage and timeline queries."""

    async def store_activity_logs(
        self,
        db: AsyncSession,
        user_id: str,
        detections: Iterable[Mapping[str, object]],
        species_map: Mapping[str, int],
    ) -> int:
        """
        Inserts recent detections not already logged.

        Args:
            detections: normalized detections from HaikuboxClient.fetch_recent
            species_map: normalized common name → gallery species id

        Returns:
            Number of new rows.

        Duplicates (same user, name and timestamp) are skipped, both against
        existing rows and within the batch. Entries with unparseable
        timestamps are skipped and logged.
        """
        parsed: List[Tuple[str, datetime]] = []
        for detection in detections:
            name = str(detection.get("species") or "").strip()
            raw_time = detection.get("timestamp")
            if not name or not raw_time:
                continue
            try:
                parsed.append((name, parse_iso_datetime(str(raw_time))))
            except ValueError:
                logger.debug("Skipping detection with bad timestamp: %s %r", name, raw_time)

        if not parsed:
            return 0

        earliest = min(moment for _, moment in parsed)
        latest = max(moment for _, moment in parsed)
        existing = await db.execute(
            select(HaikuboxActivityLog.species_common_name, HaikuboxActivityLog.detected_at).where(
                HaikuboxActivityLog.user_id == user_id,
                HaikuboxActivityLog.detected_at >= earliest,
                HaikuboxActivityLog.detected_at <= latest,
            )
        )
        seen: Set[Tuple[str, datetime]] = {
            (name, ensure_utc(moment)) for name, moment in existing.all()
        }

        stored = 0
        for name, moment in parsed:
            key = (name, moment)
            if key in seen:
                continue
            seen.add(key)
            hour, weekday = local_hour_and_weekday(moment)
            db.add(
                HaikuboxActivityLog(
                    user_id=user_id,
                    species_common_name=name,
                    species_id=species_map.get(normalize_common_name(name)),
                    detected_at=moment,
                    hour_of_day=hour,
                    day_of_week=weekday,
                )
            )
            stored += 1

        await db.flush()
        return stored

    async def prune_activity_logs(
        self,
        db: AsyncSession,
        user_id: str,
        retention_days: Optional[int] = None,
    ) -> int:
        """Deletes the user's activity rows older than the retention period."""
        days = retention_days or settings.activity_retention_days
        cutoff = utc_now() - timedelta(days=days)
        result = await db.execute(
            delete(HaikuboxActivityLog).where(
                HaikuboxActivityLog.user_id == user_id,
                HaikuboxActivityLog.detected_at < cutoff,
            )
        )
        return result.rowcount or 0

    async def get_active_now(
        self,
        db: AsyncSession,
        user_id: str,
        hour_window: int = 1,
    ) -> CurrentActivityResponse:
        """
        Species most often heard around this hour of day over the last
        30 days, busiest first (top 10).
        """
        now = utc_now()
        current_hour, _ = local_hour_and_weekday(now)
        hours = sorted({(current_hour + offset) % 24 for offset in range(-hour_window, hour_window + 1)})

        count = func.count(HaikuboxActivityLog.id)
        result = await db.execute(
            select(HaikuboxActivityLog.species_common_name, count)
            .where(
                HaikuboxActivityLog.user_id == user_id,
                HaikuboxActivityLog.hour_of_day.in_(hours),
                HaikuboxActivityLog.detected_at >= now - timedelta(days=ACTIVE_NOW_DAYS),
            )
            .group_by(HaikuboxActivityLog.species_common_name)
            .order_by(desc(count), HaikuboxActivityLog.species_common_name)
            .limit(ACTIVE_NOW_LIMIT)
        )

        return CurrentActivityResponse(
            active_species=[
                ActiveSpecies(species_name=name, activity_score=int(n), recent_count=int(n))
                for name, n in result.all()
            ],
            current_hour=current_hour,
            timestamp=now,
        )

    async def get_heatmap(self, db: AsyncSession, user_id: str, days: int = 30) -> HeatmapResponse:
        """Per species, detections per hour of day (24 slots)."""
        now = utc_now()
        result = await db.execute(
            select(
                HaikuboxActivityLog.species_common_name,
                HaikuboxActivityLog.hour_of_day,
                func.count(HaikuboxActivityLog.id),
            )
            .where(
                HaikuboxActivityLog.user_id == user_id,
                HaikuboxActivityLog.detected_at >= now - timedelta(days=days),
            )
            .group_by(HaikuboxActivityLog.species_common_name, HaikuboxActivityLog.hour_of_day)
            .order_by(HaikuboxActivityLog.species_common_name)
        )

        slots: Dict[str, List[int]] = defaultdict(lambda: [0] * 24)
        for name, hour, n in result.all():
            slots[name][hour] = int(n)

        return HeatmapResponse(
            heatmap=[SpeciesHeatmap(species_name=name, hourly_data=data) for name, data in slots.items()],
            days_analyzed=days,
            generated_at=now,
        )

    async def get_species_pattern(
        self,
        db: AsyncSession,
        user_id: str,
        species_name: str,
        days: int = 90,
    ) -> SpeciesActivityResponse:
        """
        Hourly breakdown for one species (matched by normalized name).

        Peak hours: hours with at least 60% of the busiest hour's count,
        the four busiest of those, returned in clock order.

        Raises:
            NotFoundError: no detections for the species in the period
        """
        wanted = normalize_common_name(species_name)
        result = await db.execute(
            select(
                HaikuboxActivityLog.species_common_name,
                HaikuboxActivityLog.hour_of_day,
                HaikuboxActivityLog.detected_at,
            ).where(
                HaikuboxActivityLog.user_id == user_id,
                HaikuboxActivityLog.detected_at >= utc_now() - timedelta(days=days),
            )
        )
        logs = [row for row in result.all() if normalize_common_name(row[0]) == wanted]
        if not logs:
            raise NotFoundError(
                resource="activity data",
                context={"species": species_name},
                message="No activity data found for this species",
            )

        counts = [0] * 24
        for _, hour, _ in logs:
            counts[hour] += 1
        total = len(logs)

        busiest = max(counts)
        candidates = [
            (hour, n) for hour, n in enumerate(counts) if n > 0 and n >= busiest * PEAK_THRESHOLD
        ]
        candidates.sort(key=lambda item: item[1], reverse=True)
        peak_hours = sorted(hour for hour, _ in candidates[:MAX_PEAK_HOURS])

        moments = [ensure_utc(moment) for _, _, moment in logs]
        return SpeciesActivityResponse(
            pattern=ActivityPattern(
                species_name=logs[0][0],
                total_detections=total,
                hourly_breakdown=[
                    HourlyActivity(hour=hour, count=n, percentage=n / total * 100)
                    for hour, n in enumerate(counts)
                ],
                peak_hours=peak_hours,
                data_date_range=DateRange(start=min(moments), end=max(moments)),
            )
        )


# ── Singleton Instance ────────────────────────────────────────────────────
activity_service = ActivityService()
