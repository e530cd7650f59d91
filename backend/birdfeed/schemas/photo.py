"""
Bird Feed Backend — Photo Schemas
==================================

What:  Request/response models for /api/photos and the upload endpoints.
Who:   Returned by photo routes; PhotoUpdate is the PATCH body.

Field notes:
    - url: where the frontend loads the image (/api/files/<relative path>)
    - species: compact summary of the assigned species, null for inbox photos
    - original_date_taken: accepted as an ISO 8601 string and validated by
      the service (not in the future, year >= 1900)
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class SpeciesSummary(BaseModel):
    id: int
    common_name: str
    scientific_name: Optional[str] = None
    rarity: Optional[str] = None
    description: Optional[str] = None


class PhotoResponse(BaseModel):
    id: int
    filename: str
    url: str
    upload_date: datetime
    original_date_taken: Optional[datetime] = None
    date_taken_source: str
    is_favorite: bool
    notes: Optional[str] = None
    species_id: Optional[int] = None
    species: Optional[SpeciesSummary] = None


class PhotoListResponse(BaseModel):
    """
    Offset-paginated photo list.

    Page numbers rather than cursors: the gallery grid jumps between pages
    and filters, and totals are shown to the user.
    """
    photos: List[PhotoResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class UnassignedPhotosResponse(BaseModel):
    count: int
    limit: int
    photos: List[PhotoResponse]


class PhotoUpdate(BaseModel):
    species_id: Optional[int] = None
    is_favorite: Optional[bool] = None
    notes: Optional[str] = Field(default=None, max_length=500)
    original_date_taken: Optional[str] = Field(
        default=None,
        description="ISO 8601 datetime; null clears it",
    )
    replace_photo_id: Optional[int] = Field(
        default=None,
        description="Photo to swap out when the target species is full",
    )


class PhotoUpdateResponse(BaseModel):
    photo: PhotoResponse
    replaced_photo_id: Optional[int] = None


class PhotoDeleteResponse(BaseModel):
    success: bool = True
    deleted_id: int


class UploadResponse(BaseModel):
    success: bool = True
    photo_id: int
    needs_species: bool
    replaced_photo_id: Optional[int] = None
    message: str
