"""
Bird Feed Backend — Species Schemas
====================================

What:  Request/response models for /api/species and /api/birds/lookup.

PATCH semantics:
    SpeciesUpdate fields default to None, and the service reads
    `model_dump(exclude_unset=True)` so "absent" and "explicit null" stay
    distinguishable (null clears cover_photo_id; absent leaves it alone).
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

Rarity = Literal["common", "uncommon", "rare"]


class SpeciesCreate(BaseModel):
    common_name: str = Field(min_length=1, max_length=255)
    scientific_name: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    rarity: Rarity = "common"

    @field_validator("common_name")
    @classmethod
    def strip_common_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Common name is required")
        return v

    @field_validator("scientific_name", "description")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class SpeciesUpdate(BaseModel):
    common_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    scientific_name: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    rarity: Optional[Rarity] = None
    cover_photo_id: Optional[int] = None

    @field_validator("common_name")
    @classmethod
    def strip_common_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if not v:
            raise ValueError("Common name cannot be empty")
        return v

    @field_validator("scientific_name", "description")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class PhotoThumb(BaseModel):
    """The photo shown on a species card."""
    id: int
    url: str


class SpeciesResponse(BaseModel):
    id: int
    common_name: str
    scientific_name: Optional[str] = None
    description: Optional[str] = None
    rarity: str
    cover_photo_id: Optional[int] = None
    created_at: datetime
    photo_count: int = 0
    latest_photo: Optional[PhotoThumb] = None
    cover_photo: Optional[PhotoThumb] = None


class SpeciesListResponse(BaseModel):
    species: List[SpeciesResponse]


class SpeciesDeleteResponse(BaseModel):
    success: bool = True
    deleted_photos: int = Field(description="Photos removed together with the species")


class BirdLookupResponse(BaseModel):
    common_name: str
    scientific_name: Optional[str] = None
    description: Optional[str] = None
    source: str = "wikipedia"


class SpeciesRefreshResult(BaseModel):
    id: int
    common_name: str
    status: Literal["updated", "not_found", "error"]
    scientific_name: Optional[str] = None
    description: Optional[str] = None


class SpeciesRefreshResponse(BaseModel):
    """Bulk Wikipedia refresh of every species the user has."""
    message: str
    total: int
    updated: int
    not_found: int
    errors: int
    results: List[SpeciesRefreshResult]
