"""
Bird Feed Backend — Haikubox & Suggestion Schemas
==================================================

What:  Response models for /api/haikubox/* and /api/suggestions.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


# ══════════════════════════════════════════════════════════════════════════
# Sync
# ══════════════════════════════════════════════════════════════════════════


class SyncResult(BaseModel):
    """Outcome of syncing one user's Haikubox."""
    success: bool
    processed: int = 0
    year: int
    matched: int = Field(default=0, description="Gallery species available for matching")
    activity_logged: int = 0
    activity_pruned: int = 0
    error: Optional[str] = None

    # How a failed sync is reported over HTTP; never serialized
    error_code: Optional[str] = Field(default=None, exclude=True)
    status_code: Optional[int] = Field(default=None, exclude=True)
    retry_after: Optional[int] = Field(default=None, exclude=True)


class ConnectionTestRequest(BaseModel):
    serial: Optional[str] = Field(default=None, max_length=64)


class ConnectionTestResponse(BaseModel):
    success: bool = True
    device_name: str
    serial: str


class UserSyncResult(BaseModel):
    user_id: str
    success: bool
    processed: int = 0
    error: Optional[str] = None


class SyncAllResponse(BaseModel):
    """Scheduled sync across every user with a serial configured."""
    success: bool = True
    synced: int
    success_count: int = 0
    total_processed: int = 0
    message: Optional[str] = None
    results: List[UserSyncResult] = Field(default_factory=list)


class SyncLogResponse(BaseModel):
    id: int
    sync_type: str
    status: str
    records_processed: int
    error_message: Optional[str] = None
    synced_at: datetime


class SyncStatusResponse(BaseModel):
    last_sync: Optional[SyncLogResponse] = None
    total_detections: int
    matched_to_gallery: int


# ══════════════════════════════════════════════════════════════════════════
# Detections
# ══════════════════════════════════════════════════════════════════════════


class DetectionResponse(BaseModel):
    id: int
    species_common_name: str
    yearly_count: int
    last_heard_at: Optional[datetime] = None
    data_year: int
    matched_species_id: Optional[int] = None
    matched_species_name: Optional[str] = None


class DetectionListResponse(BaseModel):
    detections: List[DetectionResponse]


class LinkDetectionRequest(BaseModel):
    detection_common_name: str = Field(min_length=1, max_length=255)
    species_id: Optional[int] = Field(
        default=None,
        description="Gallery species to link; null unlinks",
    )


class LinkDetectionResponse(BaseModel):
    success: bool = True
    updated_detections: int
    updated_activity_logs: int


# ══════════════════════════════════════════════════════════════════════════
# Stats
# ══════════════════════════════════════════════════════════════════════════


class HeardNotPhotographed(BaseModel):
    common_name: str
    yearly_count: int
    last_heard_at: Optional[datetime] = None


class RecentlyHeard(BaseModel):
    common_name: str
    yearly_count: int
    last_heard_at: Optional[datetime] = None
    has_photo: bool
    species_id: Optional[int] = None
    rarity: Optional[str] = None


class HaikuboxStatsResponse(BaseModel):
    total_heard: int
    total_photographed: int
    heard_and_photographed: int
    heard_not_photographed: List[HeardNotPhotographed]
    recently_heard: List[RecentlyHeard]
    year: int


# ══════════════════════════════════════════════════════════════════════════
# Suggestions
# ══════════════════════════════════════════════════════════════════════════


class PhotoSuggestion(BaseModel):
    common_name: str
    species_id: Optional[int] = None
    score: int = Field(ge=0, le=100)
    reason: str
    yearly_count: int
    photo_count: int
    last_heard_at: Optional[datetime] = None
    rarity: Optional[str] = None


class SuggestionListResponse(BaseModel):
    suggestions: List[PhotoSuggestion]
    top_suggestion: Optional[PhotoSuggestion] = None
    generated_at: datetime
