"""
Bird Feed Backend — Public Gallery & Discover Service
======================================================

What:  Read-only views of galleries their owners made public, and the
       Discover directory of listed galleries.
Who:   /api/public/* routes and BookmarkService.

A gallery is visible only while its owner has a username and
is_public_gallery_enabled is set; anything else is reported as
"Gallery not found". Discover additionally requires is_directory_listed.
"""

import logging
import math
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from birdfeed.exceptions import NotFoundError, ValidationError
from birdfeed.models.photo import Photo
from birdfeed.models.species import Species
from birdfeed.models.user import User
from birdfeed.schemas.gallery import (
    DiscoverResponse,
    GalleryCard,
    Pagination,
    PublicPhotoListResponse,
    PublicProfileResponse,
    PublicSpeciesDetailResponse,
    PublicSpeciesListResponse,
)
from birdfeed.services.photo_service import photo_service
from birdfeed.services.species_service import species_service
from birdfeed.services.user_service import US_STATE_CODES, user_service

logger = logging.getLogger(__name__)

DISCOVER_SORTS = ("alpha", "random")
DISCOVER_MAX_LIMIT = 50


def gallery_not_found(username: str) -> NotFoundError:
    return NotFoundError(resource="gallery", context={"username": username}, message="Gallery not found")


async def gallery_counts(db: AsyncSession, user_ids: Iterable[str]) -> Dict[str, Tuple[int, int]]:
    """user id → (species count, photo count)."""
    ids = list(user_ids)
    if not ids:
        return {}

    species_rows = await db.execute(
        select(Species.user_id, func.count(Species.id)).where(Species.user_id.in_(ids)).group_by(Species.user_id)
    )
    photo_rows = await db.execute(
        select(Photo.user_id, func.count(Photo.id)).where(Photo.user_id.in_(ids)).group_by(Photo.user_id)
    )
    species_counts = {uid: int(n) for uid, n in species_rows.all()}
    photo_counts = {uid: int(n) for uid, n in photo_rows.all()}
    return {uid: (species_counts.get(uid, 0), photo_counts.get(uid, 0)) for uid in ids}


def gallery_card(user: User, counts: Tuple[int, int]) -> GalleryCard:
    return GalleryCard(
        username=user.username,
        display_name=user.display_name,
        city=user.city,
        state=user.state,
        species_count=counts[0],
        photo_count=counts[1],
    )


class GalleryService:

    async def get_public_owner(self, db: AsyncSession, username: str) -> User:
        """
        The owner of a public gallery.

        Raises:
            NotFoundError: unknown username or gallery not public
        """
        owner = await user_service.get_user_by_username(db, username)
        if owner is None or not owner.is_public_gallery_enabled:
            raise gallery_not_found(username)
        return owner

    async def get_profile(self, db: AsyncSession, username: str) -> PublicProfileResponse:
        owner = await self.get_public_owner(db, username)
        species_count, photo_count = (await gallery_counts(db, [owner.id]))[owner.id]
        return PublicProfileResponse(
            username=owner.username,
            display_name=owner.display_name,
            photo_count=photo_count,
            species_count=species_count,
        )

    async def list_species(self, db: AsyncSession, username: str, sort: str = "alpha") -> PublicSpeciesListResponse:
        owner = await self.get_public_owner(db, username)
        listing = await species_service.list_species(db, owner.id, sort)
        return PublicSpeciesListResponse(species=listing.species)

    async def get_species(self, db: AsyncSession, username: str, species_id: int) -> PublicSpeciesDetailResponse:
        owner = await self.get_public_owner(db, username)
        species = await species_service.get_species(db, owner.id, species_id)
        photos = await photo_service.list_photos(db, owner.id, species_id=species_id, limit=100)
        return PublicSpeciesDetailResponse(species=species, photos=photos.photos)

    async def list_photos(
        self,
        db: AsyncSession,
        username: str,
        species_id: Optional[int] = None,
        favorites: bool = False,
        rarities: Optional[List[str]] = None,
        sort: str = "recent_upload",
        page: int = 1,
        limit: int = 50,
    ) -> PublicPhotoListResponse:
        owner = await self.get_public_owner(db, username)
        listing = await photo_service.list_photos(
            db,
            owner.id,
            species_id=species_id,
            favorites=favorites,
            rarities=rarities,
            sort=sort,
            page=page,
            limit=limit,
        )
        return PublicPhotoListResponse(
            photos=listing.photos,
            pagination=Pagination(
                page=listing.page,
                limit=listing.limit,
                total=listing.total,
                total_pages=listing.total_pages,
            ),
        )

    async def discover(
        self,
        db: AsyncSession,
        state: Optional[str] = None,
        sort: str = "alpha",
        page: int = 1,
        limit: int = 20,
    ) -> DiscoverResponse:
        """
        Public, directory-listed galleries.

        Out-of-range page/limit values are clamped rather than rejected:
        page ≥ 1, 1 ≤ limit ≤ 50.

        Raises:
            ValidationError: `state` is not a US state code
        """
        page = max(1, page)
        limit = min(DISCOVER_MAX_LIMIT, max(1, limit))

        conditions = [
            User.is_public_gallery_enabled.is_(True),
            User.is_directory_listed.is_(True),
            User.username.is_not(None),
        ]
        if state:
            state = state.upper()
            if state not in US_STATE_CODES:
                raise ValidationError(message="Invalid state code", field="state")
            conditions.append(User.state == state)

        total = int((await db.execute(select(func.count(User.id)).where(*conditions))).scalar() or 0)

        if sort == "random":
            order = [func.random()]
        else:
            order = [User.first_name, User.username]

        result = await db.execute(
            select(User).where(*conditions).order_by(*order).offset((page - 1) * limit).limit(limit)
        )
        users = list(result.scalars().all())
        counts = await gallery_counts(db, [u.id for u in users])

        return DiscoverResponse(
            galleries=[gallery_card(u, counts[u.id]) for u in users],
            pagination=Pagination(
                page=page,
                limit=limit,
                total=total,
                total_pages=math.ceil(total / limit) if total else 0,
            ),
        )


gallery_service = GalleryService()
