"""
Bird Feed Backend — Shared Response Schemas
============================================

What:  Response models used across every router: the error envelope and
       the health check.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standardized error body for all API errors.

    Example:
        {
            "error": "photo_limit_reached",
            "message": "This gallery is curated to 8 photos. Choose one to swap out.",
            "details": {"limit": 8, "current_count": 8, "species_id": 12},
            "request_id": "550e8400-e29b-41d4-a716-446655440000"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class SuccessResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


class HealthResponse(BaseModel):
    """Service and dependency status returned by GET /health."""
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    haikubox: str = Field(description="Haikubox circuit state: available, recovering, circuit_open")
    uptime_seconds: float = Field(description="Seconds since service started")
