"""
Bird Feed Backend — Photo Service (Upload & Curation Orchestrator)
===================================================================

What:  Photo listing, editing, deletion and the upload pipeline with
       species-limit swaps.
Who:   Called by the photo and upload routes.
When:  Every photo read or write.

Upload Flow (POST /api/upload/browser, POST /api/upload):
    ┌──────────┐   ┌──────────────┐   ┌─────────────┐   ┌──────────────┐
    │ Validate │──▶│ Check target │──▶│ Store file  │──▶│ Delete swap  │
    │  bytes   │   │ + limit      │   │ (FileServ)  │   │ + insert row │
    └──────────┘   └──────────────┘   └─────────────┘   └──────────────┘

    Everything after validation runs in the request's transaction:
    - the limit count, the delete of the swapped-out photo and the insert
      of the new one commit together or not at all
    - the swapped-out photo's file is removed only after the commit
    - the newly stored file is removed if the transaction rolls back

Ownership:
    Every lookup is scoped to the requesting user. A photo or species that
    belongs to someone else is reported as not found.
"""

import logging
import math
from datetime import datetime
from typing import List, Optional

from sqlalchemy import asc, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from birdfeed.config import settings
from birdfeed.exceptions import BirdFeedError, DatabaseError, NotFoundError, ValidationError
from birdfeed.models.photo import Photo
from birdfeed.models.species import Species
from birdfeed.schemas.photo import (
    PhotoDeleteResponse,
    PhotoListResponse,
    PhotoResponse,
    PhotoUpdate,
    PhotoUpdateResponse,
    SpeciesSummary,
    UnassignedPhotosResponse,
    UploadResponse,
)
from birdfeed.services import photo_limits
from birdfeed.services.file_service import file_service
from birdfeed.timeutil import ensure_utc, parse_iso_datetime, utc_now

logger = logging.getLogger(__name__)

PHOTO_SORTS = ("recent_upload", "oldest_upload", "species_alpha", "recent_taken")

UPLOAD_MESSAGE_ASSIGNED = "Photo uploaded successfully"
UPLOAD_MESSAGE_INBOX = "Photo uploaded - species assignment needed"


def to_photo_response(
    photo: Photo,
    species: Optional[Species] = None,
    include_description: bool = False,
) -> PhotoResponse:
    summary = None
    if species is not None:
        summary = SpeciesSummary(
            id=species.id,
            common_name=species.common_name,
            scientific_name=species.scientific_name,
            rarity=species.rarity,
            description=species.description if include_description else None,
        )
    return PhotoResponse(
        id=photo.id,
        filename=photo.filename,
        url=file_service.public_url(photo.filename),
        upload_date=ensure_utc(photo.upload_date),
        original_date_taken=ensure_utc(photo.original_date_taken),
        date_taken_source=photo.date_taken_source,
        is_favorite=photo.is_favorite,
        notes=photo.notes,
        species_id=photo.species_id,
        species=summary,
    )


def _clean_notes(notes: Optional[str]) -> Optional[str]:
    if notes is None:
        return None
    return notes.strip() or None


def _parse_date_taken(value: str) -> datetime:
    """
    ISO 8601 → aware UTC datetime, rejecting future dates and pre-1900.

    Raises:
        ValidationError
    """
    try:
        parsed = parse_iso_datetime(value)
    except (TypeError, ValueError):
        raise ValidationError(message="Invalid date format", field="original_date_taken")
    if parsed > utc_now():
        raise ValidationError(message="Date cannot be in the future", field="original_date_taken")
    if parsed.year < 1900:
        raise ValidationError(message="Date cannot be before 1900", field="original_date_taken")
    return parsed


class PhotoService:
    """
    Business logic for photos.

    Methods that delete files return nothing extra: file removal is queued
    on the session (FileService.schedule_delete) and runs after the commit.
    """

    # ── Lookups ───────────────────────────────────────────────────────────

    async def _get_owned_photo(self, db: AsyncSession, user_id: str, photo_id: int) -> Photo:
        result = await db.execute(
            select(Photo).where(Photo.id == photo_id, Photo.user_id == user_id)
        )
        photo = result.scalar_one_or_none()
        if photo is None:
            raise NotFoundError(resource="photo", resource_id=str(photo_id))
        return photo

    async def _get_owned_species(self, db: AsyncSession, user_id: str, species_id: int) -> Species:
        result = await db.execute(
            select(Species).where(Species.id == species_id, Species.user_id == user_id)
        )
        species = result.scalar_one_or_none()
        if species is None:
            raise NotFoundError(resource="species", resource_id=str(species_id))
        return species

    async def _get_swap_target(
        self,
        db: AsyncSession,
        user_id: str,
        species_id: int,
        replace_photo_id: int,
    ) -> Photo:
        """
        The photo being swapped out must be the user's and sit in the
        target species gallery.
        """
        result = await db.execute(
            select(Photo).where(Photo.id == replace_photo_id, Photo.user_id == user_id)
        )
        replaced = result.scalar_one_or_none()
        if replaced is None or replaced.species_id != species_id:
            raise ValidationError(
                message="The photo to replace must belong to the selected species",
                field="replace_photo_id",
                context={"replace_photo_id": replace_photo_id, "species_id": species_id},
            )
        return replaced

    async def _remove_photo(self, db: AsyncSession, photo: Photo) -> None:
        """
        Deletes a photo row and queues its file for removal after commit.

        Species using it as their cover fall back to their latest photo.
        """
        covered = await db.execute(
            select(Species).where(
                Species.user_id == photo.user_id,
                Species.cover_photo_id == photo.id,
            )
        )
        for species in covered.scalars().all():
            species.cover_photo_id = None

        file_service.schedule_delete(db, photo.filename)
        await db.delete(photo)

    # ── Listing ───────────────────────────────────────────────────────────

    async def list_photos(
        self,
        db: AsyncSession,
        user_id: str,
        species_id: Optional[int] = None,
        favorites: bool = False,
        rarities: Optional[List[str]] = None,
        sort: str = "recent_upload",
        page: int = 1,
        limit: int = 50,
    ) -> PhotoListResponse:
        """
        Paginated photo list with filters.

        Sorts:
            recent_upload (default), oldest_upload, species_alpha
            (inbox photos last), recent_taken (undated photos last).
            Ties fall back to newest upload, then id.
        """
        try:
            conditions = [Photo.user_id == user_id]
            if species_id is not None:
                conditions.append(Photo.species_id == species_id)
            if favorites:
                conditions.append(Photo.is_favorite.is_(True))
            if rarities:
                conditions.append(Species.rarity.in_(rarities))

            base = (
                select(Photo, Species)
                .outerjoin(Species, Photo.species_id == Species.id)
                .where(*conditions)
            )

            if sort == "oldest_upload":
                order = [asc(Photo.upload_date), asc(Photo.id)]
            elif sort == "species_alpha":
                order = [
                    Species.common_name.is_(None),
                    asc(Species.common_name),
                    desc(Photo.upload_date),
                    desc(Photo.id),
                ]
            elif sort == "recent_taken":
                order = [
                    Photo.original_date_taken.is_(None),
                    desc(Photo.original_date_taken),
                    desc(Photo.upload_date),
                    desc(Photo.id),
                ]
            else:
                order = [desc(Photo.upload_date), desc(Photo.id)]

            count_query = (
                select(func.count(Photo.id))
                .select_from(Photo)
                .outerjoin(Species, Photo.species_id == Species.id)
                .where(*conditions)
            )
            total = int((await db.execute(count_query)).scalar() or 0)

            rows = await db.execute(
                base.order_by(*order).limit(limit).offset((page - 1) * limit)
            )
            photos = [to_photo_response(photo, species) for photo, species in rows.all()]

            return PhotoListResponse(
                photos=photos,
                total=total,
                page=page,
                limit=limit,
                total_pages=math.ceil(total / limit) if limit else 0,
            )
        except Exception as e:
            logger.error("Database error listing photos: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve photos. Please try again.",
                context={"error_type": type(e).__name__},
            )

    async def list_unassigned(self, db: AsyncSession, user_id: str) -> UnassignedPhotosResponse:
        """The user's inbox, newest upload first."""
        result = await db.execute(
            select(Photo)
            .where(Photo.user_id == user_id, Photo.species_id.is_(None))
            .order_by(desc(Photo.upload_date), desc(Photo.id))
        )
        photos = [to_photo_response(p) for p in result.scalars().all()]
        return UnassignedPhotosResponse(
            count=len(photos),
            limit=settings.unassigned_photo_limit,
            photos=photos,
        )

    async def get_photo(self, db: AsyncSession, user_id: str, photo_id: int) -> PhotoResponse:
        photo = await self._get_owned_photo(db, user_id, photo_id)
        species = None
        if photo.species_id is not None:
            species = await db.get(Species, photo.species_id)
        return to_photo_response(photo, species, include_description=True)

    # ── Editing ───────────────────────────────────────────────────────────

    async def update_photo(
        self,
        db: AsyncSession,
        user_id: str,
        photo_id: int,
        data: PhotoUpdate,
    ) -> PhotoUpdateResponse:
        """
        Partial update of a photo.

        Moving to a species runs the same limit/swap rule as an upload;
        moving to the inbox (species_id null) checks the inbox limit.
        Setting or clearing original_date_taken marks it 'manual'.

        Raises:
            ValidationError: empty update, bad date, bad swap target
            NotFoundError: photo or target species not the user's
            PhotoLimitError: target gallery or inbox is full
        """
        fields = data.model_dump(exclude_unset=True)
        replace_photo_id = fields.pop("replace_photo_id", None)
        if not fields:
            raise ValidationError(message="No valid fields to update")

        photo = await self._get_owned_photo(db, user_id, photo_id)
        replaced_id: Optional[int] = None

        if "species_id" in fields:
            target = fields["species_id"]
            if target is not None and target != photo.species_id:
                await self._get_owned_species(db, user_id, target)
                if replace_photo_id is not None:
                    replaced = await self._get_swap_target(db, user_id, target, replace_photo_id)
                else:
                    replaced = None
                await photo_limits.ensure_species_capacity(db, target, user_id, replace_photo_id)
                if replaced is not None:
                    await self._remove_photo(db, replaced)
                    replaced_id = replaced.id
                photo.species_id = target
            elif target is None and photo.species_id is not None:
                await photo_limits.ensure_unassigned_capacity(db, user_id)
                photo.species_id = None

        if fields.get("is_favorite") is not None:
            photo.is_favorite = bool(fields["is_favorite"])

        if "notes" in fields:
            photo.notes = _clean_notes(fields["notes"])

        if "original_date_taken" in fields:
            raw = fields["original_date_taken"]
            photo.original_date_taken = _parse_date_taken(raw) if raw is not None else None
            photo.date_taken_source = "manual"

        try:
            await db.flush()
        except Exception as e:
            logger.error("Failed to update photo %s: %s", photo_id, str(e), exc_info=True)
            raise DatabaseError(
                message="Could not update the photo. Please try again.",
                context={"photo_id": photo_id},
            )

        species = await db.get(Species, photo.species_id) if photo.species_id else None
        if replaced_id is not None:
            logger.info("Photo %s moved to species %s, replacing photo %s", photo.id, photo.species_id, replaced_id)
        return PhotoUpdateResponse(
            photo=to_photo_response(photo, species),
            replaced_photo_id=replaced_id,
        )

    async def delete_photo(self, db: AsyncSession, user_id: str, photo_id: int) -> PhotoDeleteResponse:
        photo = await self._get_owned_photo(db, user_id, photo_id)
        await self._remove_photo(db, photo)
        await db.flush()
        logger.info("Photo %s deleted (file removal queued)", photo_id)
        return PhotoDeleteResponse(success=True, deleted_id=photo_id)

    # ── Upload ────────────────────────────────────────────────────────────

    async def upload_photo(
        self,
        db: AsyncSession,
        user_id: str,
        filename: str,
        content: bytes,
        content_length: Optional[int] = None,
        species_id: Optional[int] = None,
        notes: Optional[str] = None,
        replace_photo_id: Optional[int] = None,
    ) -> UploadResponse:
        """
        Validate → check limits → store → (swap out) → insert.

        Args:
            db: The request's session; nothing is committed here
            user_id: Owner of the new photo
            filename: Original client filename (only its extension is used)
            content: Raw file bytes, stored as-is
            species_id: Target species, or None for the inbox
            replace_photo_id: Photo to swap out of a full species gallery

        Raises:
            ValidationError: bad file, or bad swap target
            NotFoundError: species not the user's
            PhotoLimitError: target gallery or inbox full
            FileStorageError / DatabaseError
        """
        # ── Step 1: Validate bytes (no I/O yet) ──────────────────────────
        extension = file_service.validate_upload(filename, content, content_length)

        # ── Step 2: Target + limit ────────────────────────────────────────
        replaced: Optional[Photo] = None
        if species_id is not None:
            await self._get_owned_species(db, user_id, species_id)
            if replace_photo_id is not None:
                replaced = await self._get_swap_target(db, user_id, species_id, replace_photo_id)
            await photo_limits.ensure_species_capacity(db, species_id, user_id, replace_photo_id)
        else:
            if replace_photo_id is not None:
                raise ValidationError(
                    message="replace_photo_id requires a species_id",
                    field="replace_photo_id",
                )
            await photo_limits.ensure_unassigned_capacity(db, user_id)

        # ── Step 3: Store file ────────────────────────────────────────────
        absolute_path, relative_path = await file_service.store_file(content, extension)
        file_service.track_new_file(db, absolute_path)

        # ── Step 4: Swap + insert in one flush ────────────────────────────
        try:
            if replaced is not None:
                await self._remove_photo(db, replaced)

            photo = Photo(
                user_id=user_id,
                species_id=species_id,
                filename=relative_path,
                notes=_clean_notes(notes),
                date_taken_source="exif",
            )
            db.add(photo)
            await db.flush()
        except Exception as e:
            if isinstance(e, BirdFeedError):
                raise
            logger.error("Failed to save uploaded photo: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="An error occurred while saving your photo. Please try again.",
                context={"original_error": type(e).__name__},
            )

        logger.info(
            "Photo %s uploaded for user %s (species=%s, replaced=%s)",
            photo.id,
            user_id,
            species_id,
            replaced.id if replaced is not None else None,
        )
        return UploadResponse(
            success=True,
            photo_id=photo.id,
            needs_species=species_id is None,
            replaced_photo_id=replaced.id if replaced is not None else None,
            message=UPLOAD_MESSAGE_ASSIGNED if species_id is not None else UPLOAD_MESSAGE_INBOX,
        )


# ── Singleton Instance ────────────────────────────────────────────────────
photo_service = PhotoService()
