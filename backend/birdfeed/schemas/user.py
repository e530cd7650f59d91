"""
Bird Feed Backend — Profile & Settings Schemas
===============================================

What:  Models for /api/settings and /api/settings/profile.

Username and state rules are enforced by UserService (400 responses with
a readable message) rather than by Field constraints here, so that the
check-username endpoint and PATCH report the same errors.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ProfileResponse(BaseModel):
    username: Optional[str] = None
    is_public_gallery_enabled: bool
    is_directory_listed: bool
    city: Optional[str] = None
    state: Optional[str] = None
    display_name: str


class ProfileUpdate(BaseModel):
    username: Optional[str] = Field(default=None, max_length=100)
    is_public_gallery_enabled: Optional[bool] = None
    is_directory_listed: Optional[bool] = None
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[str] = Field(default=None, max_length=10)


class ProfileUpdateResponse(ProfileResponse):
    success: bool = True


class UsernameCheckResponse(BaseModel):
    available: bool
    error: Optional[str] = None


class SettingsResponse(BaseModel):
    haikubox_serial: Optional[str] = None


class SettingsUpdate(BaseModel):
    haikubox_serial: Optional[str] = Field(default=None, max_length=64)
