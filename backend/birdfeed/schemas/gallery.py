"""
Bird Feed Backend — Public Gallery, Discover & Bookmark Schemas
================================================================

What:  Read-only views of other users' public galleries.

Public responses never include user ids or emails;
galleries are addressed by username only.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from birdfeed.schemas.photo import PhotoResponse
from birdfeed.schemas.species import SpeciesResponse


class PublicProfileResponse(BaseModel):
    username: str
    display_name: str
    photo_count: int
    species_count: int


class PublicSpeciesListResponse(BaseModel):
    species: List[SpeciesResponse]


class PublicSpeciesDetailResponse(BaseModel):
    species: SpeciesResponse
    photos: List[PhotoResponse]


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class PublicPhotoListResponse(BaseModel):
    photos: List[PhotoResponse]
    pagination: Pagination


class GalleryCard(BaseModel):
    """A gallery tile in Discover and the bookmarks list."""
    username: Optional[str] = None
    display_name: str
    city: Optional[str] = None
    state: Optional[str] = None
    species_count: int
    photo_count: int


class DiscoverResponse(BaseModel):
    galleries: List[GalleryCard]
    pagination: Pagination


class BookmarkCard(GalleryCard):
    bookmarked_at: datetime


class BookmarkListResponse(BaseModel):
    bookmarks: List[BookmarkCard]


class BookmarkCreate(BaseModel):
    username: str = Field(min_length=1, max_length=100)


class BookmarkCheckResponse(BaseModel):
    bookmarked: bool
