"""
Bird Feed Backend — Species Service
====================================

What:  CRUD for a user's species galleries, with photo counts and the
       photo shown on each species card.
Who:   /api/species routes and the public gallery.

Card photo:
    latest_photo is the most recently uploaded photo of the species;
    cover_photo is the user's explicit pick (cover_photo_id), when set.
    The frontend shows the cover when present, else the latest.

Deleting a species deletes its photos too (their files are removed after
the commit) and unlinks any Haikubox detections matched to it.

refresh_from_wikipedia re-fills scientific names and descriptions for
every species, one lookup at a time with a short pause in between.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import asc, delete, desc, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from birdfeed.config import settings
from birdfeed.exceptions import BirdFeedError, DatabaseError, NotFoundError, ValidationError
from birdfeed.models.haikubox import HaikuboxActivityLog, HaikuboxDetection
from birdfeed.models.photo import Photo
from birdfeed.models.species import Species
from birdfeed.schemas.species import (
    PhotoThumb,
    SpeciesCreate,
    SpeciesDeleteResponse,
    SpeciesListResponse,
    SpeciesRefreshResponse,
    SpeciesRefreshResult,
    SpeciesResponse,
    SpeciesUpdate,
)
from birdfeed.services.file_service import file_service
from birdfeed.services.wikipedia_service import wikipedia_service
from birdfeed.timeutil import ensure_utc

logger = logging.getLogger(__name__)

SPECIES_SORTS = ("alpha", "photo_count", "recent_added", "recent_taken")


def _thumb(photo_id: Optional[int], filename: Optional[str]) -> Optional[PhotoThumb]:
    if photo_id is None or filename is None:
        return None
    return PhotoThumb(id=photo_id, url=file_service.public_url(filename))


def to_species_response(
    species: Species,
    photo_count: int = 0,
    latest: Optional[Tuple[int, str]] = None,
    cover: Optional[Tuple[int, str]] = None,
) -> SpeciesResponse:
    return SpeciesResponse(
        id=species.id,
        common_name=species.common_name,
        scientific_name=species.scientific_name,
        description=species.description,
        rarity=species.rarity,
        cover_photo_id=species.cover_photo_id,
        created_at=ensure_utc(species.created_at),
        photo_count=photo_count,
        latest_photo=_thumb(*latest) if latest else None,
        cover_photo=_thumb(*cover) if cover else None,
    )


class SpeciesService:
    """Species gallery business logic; writes flush only."""

    async def _get_owned(self, db: AsyncSession, user_id: str, species_id: int) -> Species:
        result = await db.execute(
            select(Species).where(Species.id == species_id, Species.user_id == user_id)
        )
        species = result.scalar_one_or_none()
        if species is None:
            raise NotFoundError(resource="species", resource_id=str(species_id))
        return species

    async def _photo_index(
        self,
        db: AsyncSession,
        user_id: str,
        species_id: Optional[int] = None,
    ) -> Tuple[Dict[int, Tuple[int, str]], Dict[int, Tuple[int, str]]]:
        """
        (latest photo per species, every photo by id) for the user's
        assigned photos, from one query ordered newest upload first.
        """
        query = select(Photo.id, Photo.species_id, Photo.filename).where(
            Photo.user_id == user_id,
            Photo.species_id.is_not(None),
        )
        if species_id is not None:
            query = query.where(Photo.species_id == species_id)
        rows = await db.execute(query.order_by(desc(Photo.upload_date), desc(Photo.id)))

        latest: Dict[int, Tuple[int, str]] = {}
        by_id: Dict[int, Tuple[int, str]] = {}
        for photo_id, sp_id, filename in rows.all():
            by_id[photo_id] = (photo_id, filename)
            latest.setdefault(sp_id, (photo_id, filename))
        return latest, by_id

    async def list_species(
        self,
        db: AsyncSession,
        user_id: str,
        sort: str = "alpha",
    ) -> SpeciesListResponse:
        """
        All of a user's species with photo counts.

        Sorts (ties always broken by common name A→Z):
            alpha         common name
            photo_count   most photos first
            recent_added  newest species first
            recent_taken  most recent original_date_taken first, undated last
        """
        try:
            photo_count = func.count(Photo.id)
            last_taken = func.max(Photo.original_date_taken)
            query = (
                select(Species, photo_count, last_taken)
                .outerjoin(
                    Photo,
                    (Photo.species_id == Species.id) & (Photo.user_id == user_id),
                )
                .where(Species.user_id == user_id)
                .group_by(Species.id)
            )

            if sort == "photo_count":
                order = [desc(photo_count), asc(Species.common_name)]
            elif sort == "recent_added":
                order = [desc(Species.created_at), asc(Species.common_name)]
            elif sort == "recent_taken":
                order = [last_taken.is_(None), desc(last_taken), asc(Species.common_name)]
            else:
                order = [asc(Species.common_name)]

            rows = (await db.execute(query.order_by(*order))).all()
            latest, by_id = await self._photo_index(db, user_id)

            return SpeciesListResponse(
                species=[
                    to_species_response(
                        species,
                        photo_count=int(count or 0),
                        latest=latest.get(species.id),
                        cover=by_id.get(species.cover_photo_id) if species.cover_photo_id else None,
                    )
                    for species, count, _ in rows
                ]
            )
        except Exception as e:
            logger.error("Database error listing species: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve species. Please try again.",
                context={"error_type": type(e).__name__},
            )

    async def get_species(self, db: AsyncSession, user_id: str, species_id: int) -> SpeciesResponse:
        species = await self._get_owned(db, user_id, species_id)
        latest, by_id = await self._photo_index(db, user_id, species_id)
        return to_species_response(
            species,
            photo_count=len(by_id),
            latest=latest.get(species.id),
            cover=by_id.get(species.cover_photo_id) if species.cover_photo_id else None,
        )

    async def create_species(self, db: AsyncSession, user_id: str, data: SpeciesCreate) -> SpeciesResponse:
        species = Species(
            user_id=user_id,
            common_name=data.common_name,
            scientific_name=data.scientific_name,
            description=data.description,
            rarity=data.rarity,
        )
        try:
            db.add(species)
            await db.flush()
        except Exception as e:
            logger.error("Failed to create species: %s", str(e), exc_info=True)
            raise DatabaseError(message="Could not create the species. Please try again.")

        logger.info("Species %s '%s' created for %s", species.id, species.common_name, user_id)
        return to_species_response(species)

    async def update_species(
        self,
        db: AsyncSession,
        user_id: str,
        species_id: int,
        data: SpeciesUpdate,
    ) -> SpeciesResponse:
        """
        Partial update.

        Raises:
            ValidationError: empty update, or cover_photo_id is not a photo
                             of this species owned by the user
            NotFoundError: species not the user's
        """
        fields = data.model_dump(exclude_unset=True)
        if not fields:
            raise ValidationError(message="No valid fields to update")

        species = await self._get_owned(db, user_id, species_id)

        if "common_name" in fields and fields["common_name"] is None:
            raise ValidationError(message="Common name cannot be empty", field="common_name")
        if "rarity" in fields and fields["rarity"] is None:
            raise ValidationError(message="Rarity cannot be null", field="rarity")

        if fields.get("cover_photo_id") is not None:
            result = await db.execute(
                select(Photo.id).where(
                    Photo.id == fields["cover_photo_id"],
                    Photo.user_id == user_id,
                    Photo.species_id == species_id,
                )
            )
            if result.scalar_one_or_none() is None:
                raise ValidationError(
                    message="Cover photo must be a photo of this species",
                    field="cover_photo_id",
                )

        for key, value in fields.items():
            setattr(species, key, value)

        try:
            await db.flush()
        except Exception as e:
            logger.error("Failed to update species %s: %s", species_id, str(e), exc_info=True)
            raise DatabaseError(message="Could not update the species. Please try again.")

        return await self.get_species(db, user_id, species_id)

    async def delete_species(self, db: AsyncSession, user_id: str, species_id: int) -> SpeciesDeleteResponse:
        """Deletes the species and its photos; files go after the commit."""
        species = await self._get_owned(db, user_id, species_id)

        try:
            result = await db.execute(
                select(Photo.filename).where(
                    Photo.species_id == species_id,
                    Photo.user_id == user_id,
                )
            )
            filenames: List[str] = list(result.scalars().all())
            for filename in filenames:
                file_service.schedule_delete(db, filename)

            await db.execute(
                delete(Photo).where(Photo.species_id == species_id, Photo.user_id == user_id)
            )
            for model in (HaikuboxDetection, HaikuboxActivityLog):
                await db.execute(
                    update(model)
                    .where(model.user_id == user_id, model.species_id == species_id)
                    .values(species_id=None)
                )
            await db.delete(species)
            await db.flush()
        except Exception as e:
            if isinstance(e, BirdFeedError):
                raise
            logger.error("Failed to delete species %s: %s", species_id, str(e), exc_info=True)
            raise DatabaseError(message="Could not delete the species. Please try again.")

        logger.info("Species %s deleted with %d photos", species_id, len(filenames))
        return SpeciesDeleteResponse(success=True, deleted_photos=len(filenames))

    # ── Wikipedia Refresh ─────────────────────────────────────────────────

    async def refresh_from_wikipedia(self, db: AsyncSession, user_id: str) -> SpeciesRefreshResponse:
        """
        Re-runs the Wikipedia lookup for every species the user has.

        A lookup that finds nothing leaves the species untouched; a value
        missing from a found article keeps the stored one. One species
        failing is reported and the rest carry on.
        """
        result = await db.execute(
            select(Species).where(Species.user_id == user_id).order_by(Species.id)
        )
        all_species = list(result.scalars().all())

        results: List[SpeciesRefreshResult] = []
        for index, species in enumerate(all_species):
            if index and settings.wikipedia_refresh_delay:
                await asyncio.sleep(settings.wikipedia_refresh_delay)

            try:
                article = await wikipedia_service.lookup(species.common_name)
            except Exception as e:
                logger.error("Wikipedia refresh failed for '%s': %s", species.common_name, str(e), exc_info=True)
                results.append(
                    SpeciesRefreshResult(id=species.id, common_name=species.common_name, status="error")
                )
                continue

            if article is None:
                results.append(
                    SpeciesRefreshResult(id=species.id, common_name=species.common_name, status="not_found")
                )
                continue

            species.scientific_name = article.get("scientific_name") or species.scientific_name
            species.description = article.get("description") or species.description
            results.append(
                SpeciesRefreshResult(
                    id=species.id,
                    common_name=species.common_name,
                    status="updated",
                    scientific_name=species.scientific_name,
                    description=species.description,
                )
            )

        try:
            await db.flush()
        except Exception as e:
            logger.error("Failed to save refreshed species for %s: %s", user_id, str(e), exc_info=True)
            raise DatabaseError(message="Could not refresh species. Please try again.")

        updated = sum(1 for r in results if r.status == "updated")
        not_found = sum(1 for r in results if r.status == "not_found")
        errors = sum(1 for r in results if r.status == "error")
        logger.info(
            "Species refresh for %s: %d updated, %d not found, %d errors",
            user_id,
            updated,
            not_found,
            errors,
        )
        return SpeciesRefreshResponse(
            message=f"Refreshed {updated} species, {not_found} not found, {errors} errors",
            total=len(all_species),
            updated=updated,
            not_found=not_found,
            errors=errors,
            results=results,
        )


# ── Singleton Instance ────────────────────────────────────────────────────
species_service = SpeciesService()
