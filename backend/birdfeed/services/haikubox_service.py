"""
Bird Feed Backend — Haikubox Sync Service
==========================================

What:  Pulls a user's Haikubox detections into the database and answers
       questions about them (sync status, detections, linking, stats).
How:   HaikuboxClient fetches from the device API; this service matches
       names to gallery species, stores activity logs, upserts yearly
       detection rows and writes a sync-log row for every attempt.
Who:   /api/haikubox/* routes; the scheduled (cron) sync.

Sync Flow (one user):
    1. yearly counts for the current year     (empty → logged error)
    2. recent detections (HAIKUBOX_RECENT_HOURS) → last-heard per species
    3. gallery species by normalized name     → species_id matches
    4. activity logs: store new, prune expired
    5. upsert one detection row per (user, name, year)
    6. sync-log row: success with records processed

An upstream failure is recorded as an error sync-log row and reported in
the result instead of raised, so the log row commits with the request.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from sqlalchemy import and_, desc, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from birdfeed.config import settings
from birdfeed.exceptions import (
    BirdFeedError,
    HaikuboxServiceError,
    NotFoundError,
    ValidationError,
    retry_after_seconds,
)
from birdfeed.models.haikubox import HaikuboxActivityLog, HaikuboxDetection, HaikuboxSyncLog
from birdfeed.models.photo import Photo
from birdfeed.models.species import Species
from birdfeed.models.user import AppSetting
from birdfeed.schemas.haikubox import (
    ConnectionTestResponse,
    DetectionListResponse,
    DetectionResponse,
    HaikuboxStatsResponse,
    HeardNotPhotographed,
    LinkDetectionRequest,
    LinkDetectionResponse,
    RecentlyHeard,
    SyncAllResponse,
    SyncLogResponse,
    SyncResult,
    SyncStatusResponse,
    UserSyncResult,
)
from birdfeed.services.activity_service import activity_service
from birdfeed.services.haikubox_client import HaikuboxClient, haikubox_client, normalize_common_name
from birdfeed.services.user_service import HAIKUBOX_SERIAL_KEY, SERIAL_RE, user_service
from birdfeed.timeutil import ensure_utc, parse_iso_datetime, utc_now

logger = logging.getLogger(__name__)

NO_DATA_MESSAGE = "No data returned from Haikubox API"
DEFAULT_DEVICE_NAME = "Haikubox Device"
RECENT_DAYS = 7


def _to_detection_response(detection: HaikuboxDetection, species_name: Optional[str]) -> DetectionResponse:
    return DetectionResponse(
        id=detection.id,
        species_common_name=detection.species_common_name,
        yearly_count=detection.yearly_count,
        last_heard_at=ensure_utc(detection.last_heard_at),
        data_year=detection.data_year,
        matched_species_id=detection.species_id,
        matched_species_name=species_name,
    )


class HaikuboxService:
    """Haikubox sync and detection queries."""

    def __init__(self, client: Optional[HaikuboxClient] = None):
        self.client = client or haikubox_client

    # ── Sync ──────────────────────────────────────────────────────────────

    async def _log_sync(
        self,
        db: AsyncSession,
        user_id: str,
        status: str,
        processed: int = 0,
        error_message: Optional[str] = None,
    ) -> None:
        db.add(
            HaikuboxSyncLog(
                user_id=user_id,
                sync_type="yearly",
                status=status,
                records_processed=processed,
                error_message=error_message,
            )
        )
        await db.flush()

    async def sync_user(self, db: AsyncSession, user_id: str) -> SyncResult:
        """
        Syncs one user's Haikubox for the current year.

        Raises:
            ValidationError: the user has no Haikubox serial configured
        """
        serial = await user_service.get_setting(db, user_id, HAIKUBOX_SERIAL_KEY)
        if not serial:
            raise ValidationError(
                message="Haikubox serial not configured. Add it in Settings first.",
                field="haikubox_serial",
            )

        year = utc_now().year
        try:
            yearly = await self.client.fetch_yearly(serial, year)
            recent = await self.client.fetch_recent(serial, settings.haikubox_recent_hours) if yearly else []
        except BirdFeedError as e:
            logger.warning("Haikubox sync failed for %s: %s", user_id, e.message)
            await self._log_sync(db, user_id, "error", error_message=e.message)
            return SyncResult(
                success=False,
                year=year,
                error=e.message,
                error_code=e.error_code,
                status_code=e.status_code,
                retry_after=retry_after_seconds(e),
            )

        if not yearly:
            await self._log_sync(db, user_id, "error", error_message=NO_DATA_MESSAGE)
            return SyncResult(success=False, year=year, error=NO_DATA_MESSAGE)

        last_heard: Dict[str, datetime] = {}
        for detection in recent:
            try:
                moment = parse_iso_datetime(str(detection["timestamp"]))
            except ValueError:
                continue
            key = normalize_common_name(detection["species"])
            if key not in last_heard or moment > last_heard[key]:
                last_heard[key] = moment

        species_rows = await db.execute(
            select(Species.id, Species.common_name).where(Species.user_id == user_id)
        )
        species_map = {normalize_common_name(name): sid for sid, name in species_rows.all()}

        logged = await activity_service.store_activity_logs(db, user_id, recent, species_map)
        pruned = await activity_service.prune_activity_logs(db, user_id)
        if pruned:
            logger.info("Pruned %d old activity rows for %s", pruned, user_id)

        existing_rows = await db.execute(
            select(HaikuboxDetection).where(
                HaikuboxDetection.user_id == user_id,
                HaikuboxDetection.data_year == year,
            )
        )
        existing = {row.species_common_name: row for row in existing_rows.scalars().all()}

        processed = 0
        now = utc_now()
        for entry in yearly:
            name = entry["bird"]
            key = normalize_common_name(name)
            row = existing.get(name)
            if row is None:
                row = HaikuboxDetection(user_id=user_id, species_common_name=name, data_year=year)
                db.add(row)
                existing[name] = row
            row.yearly_count = entry["count"]
            row.species_id = species_map.get(key)
            row.last_heard_at = last_heard.get(key)
            row.synced_at = now
            processed += 1

        await db.flush()
        await self._log_sync(db, user_id, "success", processed)

        logger.info(
            "Haikubox sync for %s: %d detections, %d activity rows, year %d",
            user_id,
            processed,
            logged,
            year,
        )
        return SyncResult(
            success=True,
            processed=processed,
            year=year,
            matched=len(species_map),
            activity_logged=logged,
            activity_pruned=pruned,
        )

    async def check_connection(self, serial: Optional[str]) -> ConnectionTestResponse:
        """
        Confirms a serial reaches a device before the user saves it.

        Raises:
            ValidationError: missing or malformed serial, unknown device, or
                             any other error status from the device API
            HaikuboxServiceError / CircuitBreakerOpenError: API unreachable
        """
        serial = (serial or "").strip()
        if not serial:
            raise ValidationError(message="Serial number required", field="serial")
        if not SERIAL_RE.match(serial):
            raise ValidationError(message="Invalid serial format (alphanumeric only)", field="serial")

        try:
            device = await self.client.fetch_device(serial)
        except HaikuboxServiceError as e:
            status = e.context.get("status")
            if status == 404:
                raise ValidationError(message="Device not found. Check your serial number.", field="serial")
            if status is not None:
                raise ValidationError(message="Unable to connect to device", field="serial")
            raise

        return ConnectionTestResponse(
            device_name=device.get("name") or DEFAULT_DEVICE_NAME,
            serial=serial,
        )

    async def sync_all(self, session_factory: Callable[[], AsyncSession]) -> SyncAllResponse:
        """
        Scheduled sync of every user with a serial configured.

        Each user runs in its own session and transaction, so one user's
        failure neither rolls back nor blocks the others. Unexpected errors
        are recorded as error sync-log rows.
        """
        async with session_factory() as db:
            result = await db.execute(
                select(AppSetting.user_id)
                .where(AppSetting.key == HAIKUBOX_SERIAL_KEY, AppSetting.value != "")
                .distinct()
            )
            user_ids: List[str] = list(result.scalars().all())

        if not user_ids:
            logger.info("Haikubox cron: no users with configured serials")
            return SyncAllResponse(synced=0, message="No users with Haikubox serials")

        results: List[UserSyncResult] = []
        for user_id in user_ids:
            async with session_factory() as db:
                try:
                    outcome = await self.sync_user(db, user_id)
                    await db.commit()
                    results.append(
                        UserSyncResult(
                            user_id=user_id,
                            success=outcome.success,
                            processed=outcome.processed,
                            error=outcome.error,
                        )
                    )
                except Exception as e:
                    await db.rollback()
                    message = e.message if isinstance(e, BirdFeedError) else str(e) or type(e).__name__
                    logger.error("Haikubox cron sync error for %s: %s", user_id, message, exc_info=True)
                    try:
                        await self._log_sync(db, user_id, "error", error_message=message)
                        await db.commit()
                    except Exception as log_error:
                        logger.error("Failed to record sync error for %s: %s", user_id, str(log_error))
                    results.append(UserSyncResult(user_id=user_id, success=False, error=message))

        success_count = sum(1 for r in results if r.success)
        total_processed = sum(r.processed for r in results)
        logger.info(
            "Haikubox cron completed: %d users, %d succeeded, %d records",
            len(results),
            success_count,
            total_processed,
        )
        return SyncAllResponse(
            synced=len(results),
            success_count=success_count,
            total_processed=total_processed,
            results=results,
        )

    async def get_sync_status(self, db: AsyncSession, user_id: str) -> SyncStatusResponse:
        last = await db.execute(
            select(HaikuboxSyncLog)
            .where(HaikuboxSyncLog.user_id == user_id)
            .order_by(desc(HaikuboxSyncLog.synced_at), desc(HaikuboxSyncLog.id))
            .limit(1)
        )
        last_sync = last.scalar_one_or_none()

        total = await db.execute(
            select(func.count(HaikuboxDetection.id)).where(HaikuboxDetection.user_id == user_id)
        )
        matched = await db.execute(
            select(func.count(HaikuboxDetection.id)).where(
                HaikuboxDetection.user_id == user_id,
                HaikuboxDetection.species_id.is_not(None),
            )
        )

        return SyncStatusResponse(
            last_sync=(
                SyncLogResponse(
                    id=last_sync.id,
                    sync_type=last_sync.sync_type,
                    status=last_sync.status,
                    records_processed=last_sync.records_processed,
                    error_message=last_sync.error_message,
                    synced_at=ensure_utc(last_sync.synced_at),
                )
                if last_sync
                else None
            ),
            total_detections=int(total.scalar() or 0),
            matched_to_gallery=int(matched.scalar() or 0),
        )

    # ── Detections ────────────────────────────────────────────────────────

    async def list_detections(
        self,
        db: AsyncSession,
        user_id: str,
        limit: int = 50,
        recent: bool = False,
        unmatched: bool = False,
        species: Optional[str] = None,
    ) -> DetectionListResponse:
        """
        The user's detections, most detected first.

        With `species`, returns every detection whose normalized name (or
        matched gallery species name) equals the normalized query; the
        other filters and the limit do not apply then.
        """
        query = (
            select(HaikuboxDetection, Species.common_name)
            .outerjoin(
                Species,
                and_(HaikuboxDetection.species_id == Species.id, Species.user_id == user_id),
            )
            .where(HaikuboxDetection.user_id == user_id)
            .order_by(desc(HaikuboxDetection.yearly_count), HaikuboxDetection.species_common_name)
        )

        if species:
            wanted = normalize_common_name(species)
            rows = (await db.execute(query)).all()
            return DetectionListResponse(
                detections=[
                    _to_detection_response(detection, name)
                    for detection, name in rows
                    if normalize_common_name(detection.species_common_name) == wanted
                    or (name is not None and normalize_common_name(name) == wanted)
                ]
            )

        if recent:
            query = query.where(HaikuboxDetection.last_heard_at > utc_now() - timedelta(days=RECENT_DAYS))
        if unmatched:
            query = query.where(HaikuboxDetection.species_id.is_(None))

        rows = (await db.execute(query.limit(limit))).all()
        return DetectionListResponse(
            detections=[_to_detection_response(detection, name) for detection, name in rows]
        )

    async def link_detection(
        self,
        db: AsyncSession,
        user_id: str,
        data: LinkDetectionRequest,
    ) -> LinkDetectionResponse:
        """
        Points every detection and activity row with the same normalized
        name at one of the user's species, or unlinks them (species_id null).
        """
        if data.species_id is not None:
            owned = await db.execute(
                select(Species.id).where(Species.id == data.species_id, Species.user_id == user_id)
            )
            if owned.scalar_one_or_none() is None:
                raise NotFoundError(resource="species", resource_id=str(data.species_id))

        wanted = normalize_common_name(data.detection_common_name)
        counts = []
        for model in (HaikuboxDetection, HaikuboxActivityLog):
            rows = await db.execute(
                select(model.id, model.species_common_name).where(model.user_id == user_id)
            )
            ids = [row_id for row_id, name in rows.all() if normalize_common_name(name) == wanted]
            if ids:
                await db.execute(
                    update(model).where(model.id.in_(ids)).values(species_id=data.species_id)
                )
            counts.append(len(ids))

        await db.flush()
        logger.info(
            "Linked '%s' to species %s for %s (%d detections, %d activity rows)",
            data.detection_common_name,
            data.species_id,
            user_id,
            counts[0],
            counts[1],
        )
        return LinkDetectionResponse(updated_detections=counts[0], updated_activity_logs=counts[1])

    # ── Stats ─────────────────────────────────────────────────────────────

    async def get_stats(self, db: AsyncSession, user_id: str) -> HaikuboxStatsResponse:
        """Heard vs photographed summary for the current year."""
        year = utc_now().year

        heard = await db.execute(
            select(func.count(func.distinct(HaikuboxDetection.species_common_name))).where(
                HaikuboxDetection.user_id == user_id,
                HaikuboxDetection.data_year == year,
            )
        )
        photographed = await db.execute(
            select(func.count(func.distinct(Photo.species_id))).where(
                Photo.user_id == user_id,
                Photo.species_id.is_not(None),
            )
        )

        photo_count = func.count(Photo.id)
        rows = (
            await db.execute(
                select(HaikuboxDetection, Species.rarity, photo_count)
                .outerjoin(
                    Species,
                    and_(HaikuboxDetection.species_id == Species.id, Species.user_id == user_id),
                )
                .outerjoin(
                    Photo,
                    and_(Photo.species_id == Species.id, Photo.user_id == user_id),
                )
                .where(
                    HaikuboxDetection.user_id == user_id,
                    HaikuboxDetection.data_year == year,
                )
                .group_by(HaikuboxDetection.id, Species.rarity)
                .order_by(desc(HaikuboxDetection.yearly_count), HaikuboxDetection.species_common_name)
            )
        ).all()

        heard_not_photographed = []
        recently_heard = []
        photographed_ids = set()
        for detection, rarity, n_photos in rows:
            has_photo = bool(n_photos)
            last_heard = ensure_utc(detection.last_heard_at)
            if has_photo and detection.species_id is not None:
                photographed_ids.add(detection.species_id)
            if not has_photo:
                heard_not_photographed.append(
                    HeardNotPhotographed(
                        common_name=detection.species_common_name,
                        yearly_count=detection.yearly_count,
                        last_heard_at=last_heard,
                    )
                )
            recently_heard.append(
                RecentlyHeard(
                    common_name=detection.species_common_name,
                    yearly_count=detection.yearly_count,
                    last_heard_at=last_heard,
                    has_photo=has_photo,
                    species_id=detection.species_id,
                    rarity=rarity,
                )
            )

        return HaikuboxStatsResponse(
            total_heard=int(heard.scalar() or 0),
            total_photographed=int(photographed.scalar() or 0),
            heard_and_photographed=len(photographed_ids),
            heard_not_photographed=heard_not_photographed,
            recently_heard=recently_heard,
            year=year,
        )


# ── Singleton Instance ────────────────────────────────────────────────────
haikubox_service = HaikuboxService()
