"""
Bird Feed Backend — Bookmark Service
=====================================

What:  Lets a signed-in user keep a list of other users' public galleries.

Bookmarks survive the target hiding their gallery; they are simply left
out of the list until the gallery is public again.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from birdfeed.exceptions import ConflictError, NotFoundError, ValidationError
from birdfeed.models.bookmark import Bookmark
from birdfeed.models.user import User
from birdfeed.schemas.gallery import BookmarkCard, BookmarkCheckResponse, BookmarkListResponse
from birdfeed.schemas.common import SuccessResponse
from birdfeed.services.gallery_service import gallery_counts, gallery_service
from birdfeed.services.user_service import user_service
from birdfeed.timeutil import ensure_utc

logger = logging.getLogger(__name__)


class BookmarkService:

    async def list_bookmarks(self, db: AsyncSession, user_id: str) -> BookmarkListResponse:
        result = await db.execute(
            select(User, Bookmark.created_at)
            .join(Bookmark, Bookmark.bookmarked_user_id == User.id)
            .where(
                Bookmark.user_id == user_id,
                User.is_public_gallery_enabled.is_(True),
                User.username.is_not(None),
            )
            .order_by(User.first_name, User.username)
        )
        rows = result.all()
        counts = await gallery_counts(db, [owner.id for owner, _ in rows])

        return BookmarkListResponse(
            bookmarks=[
                BookmarkCard(
                    username=owner.username,
                    display_name=owner.display_name,
                    city=owner.city,
                    state=owner.state,
                    species_count=counts[owner.id][0],
                    photo_count=counts[owner.id][1],
                    bookmarked_at=ensure_utc(created_at),
                )
                for owner, created_at in rows
            ]
        )

    async def add_bookmark(self, db: AsyncSession, user: User, username: str) -> SuccessResponse:
        """
        Raises:
            NotFoundError: unknown username or gallery not public
            ValidationError: bookmarking your own gallery
            ConflictError: already bookmarked
        """
        target = await gallery_service.get_public_owner(db, username)
        if target.id == user.id:
            raise ValidationError(message="You cannot bookmark your own gallery", field="username")

        existing = await db.execute(
            select(Bookmark.id).where(Bookmark.user_id == user.id, Bookmark.bookmarked_user_id == target.id)
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError(message="Already bookmarked")

        db.add(Bookmark(user_id=user.id, bookmarked_user_id=target.id))
        await db.flush()
        logger.info("User %s bookmarked gallery %s", user.id, target.username)
        return SuccessResponse(success=True, message="Bookmarked")

    async def _find(self, db: AsyncSession, user_id: str, username: str):
        target = await user_service.get_user_by_username(db, username)
        if target is None:
            return None
        result = await db.execute(
            select(Bookmark).where(Bookmark.user_id == user_id, Bookmark.bookmarked_user_id == target.id)
        )
        return result.scalar_one_or_none()

    async def remove_bookmark(self, db: AsyncSession, user_id: str, username: str) -> SuccessResponse:
        bookmark = await self._find(db, user_id, username)
        if bookmark is None:
            raise NotFoundError(resource="bookmark", message="Bookmark not found")
        await db.delete(bookmark)
        await db.flush()
        return SuccessResponse(success=True, message="Bookmark removed")

    async def is_bookmarked(self, db: AsyncSession, user_id: str, username: str) -> BookmarkCheckResponse:
        return BookmarkCheckResponse(bookmarked=await self._find(db, user_id, username) is not None)


bookmark_service = BookmarkService()
