"""
Bird Feed Backend — Custom Exception Hierarchy
===============================================

What:  Application-specific exceptions for each error scenario.
How:   Each exception carries a user-safe message and an optional context
       dict. Global exception handlers (registered in main.py) map them to
       HTTP status codes and structured JSON bodies.
Who:   Raised by services, dependencies and middleware; caught by handlers.

Exception Hierarchy:
    BirdFeedError (base)
    ├── ValidationError          → 400 Bad Request
    ├── AuthenticationError      → 401 Unauthorized
    ├── NotFoundError            → 404 Not Found
    ├── ConflictError            → 409 Conflict
    │   └── PhotoLimitError      → 409 Conflict (gallery/inbox full)
    ├── RateLimitExceededError   → 429 Too Many Requests
    ├── FileStorageError         → 500 Internal Server Error
    ├── DatabaseError            → 500 Internal Server Error
    ├── HaikuboxServiceError     → 502 Bad Gateway
    └── CircuitBreakerOpenError  → 503 Service Unavailable

Response body shape (all handlers):
    {"error": "<code>", "message": "...", "details": {...}, "request_id": "..."}
"""

from typing import Any, Dict, Optional


class BirdFeedError(Exception):
    """
    Base exception for all Bird Feed application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info
    """

    error_code = "server_error"
    status_code = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(BirdFeedError):
    """
    Raised when client input fails a business rule.

    When:    Bad file type, bad rarity, a date in the future, an empty update.
    HTTP:    400 Bad Request (schema-level problems stay FastAPI's 422).

    Example response:
        {
            "error": "validation_error",
            "message": "Date cannot be in the future",
            "details": {"field": "original_date_taken"}
        }
    """

    error_code = "validation_error"
    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationError(BirdFeedError):
    """Raised when a route needs a signed-in user (or API key) and has none."""

    error_code = "unauthorized"
    status_code = 401

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(BirdFeedError):
    """
    Raised when a requested resource does not exist.

    Resources owned by another user are reported the same way, so ids
    cannot be probed across accounts.
    """

    error_code = "not_found"
    status_code = 404

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        message: Optional[str] = None,
    ):
        if message is None:
            message = f"The requested {resource} was not found"
            if resource_id:
                message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ConflictError(BirdFeedError):
    """
    Raised when a write collides with existing state.

    When:    Username already taken, gallery already bookmarked.
    HTTP:    409 Conflict
    """

    error_code = "conflict"
    status_code = 409

    def __init__(
        self,
        message: str = "The request conflicts with existing data",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PhotoLimitError(ConflictError):
    """
    Raised when a species gallery or the inbox is full.

    A species at its limit only accepts a photo together with a
    `replace_photo_id` naming the photo to swap out. The inbox has no swap;
    photos must be assigned to make room.

    Context carries `limit`, `current_count` and `species_id` (None for the
    inbox) so the client can open its swap picker.
    """

    error_code = "photo_limit_reached"

    def __init__(
        self,
        message: str,
        limit: int,
        current_count: int,
        species_id: Optional[int] = None,
    ):
        super().__init__(
            message=message,
            context={
                "limit": limit,
                "current_count": current_count,
                "species_id": species_id,
            },
        )
        self.limit = limit
        self.current_count = current_count
        self.species_id = species_id


class RateLimitExceededError(BirdFeedError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    Response includes a Retry-After header.
    """

    error_code = "rate_limit_exceeded"
    status_code = 429

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class FileStorageError(BirdFeedError):
    """
    Raised when photo file operations fail (disk full, permission denied).

    The client gets a generic message; the path and OS error are logged.
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(BirdFeedError):
    """
    Raised when database operations fail unexpectedly.

    The message returned to the client is always generic; query details
    are logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class HaikuboxServiceError(BirdFeedError):
    """
    Raised when the Haikubox API fails after all retries or returns garbage.

    HTTP:    502 Bad Gateway (the upstream device API is at fault)
    """

    error_code = "haikubox_unavailable"
    status_code = 502

    def __init__(
        self,
        message: str = "The Haikubox service is temporarily unavailable",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class CircuitBreakerOpenError(BirdFeedError):
    """
    Raised when the Haikubox circuit breaker is OPEN.

    State machine:
        CLOSED (normal) → failures increment counter
        → threshold reached → OPEN (reject calls for recovery_timeout seconds)
        → timeout elapsed → HALF-OPEN (allow one test call)
        → test succeeds → CLOSED; test fails → OPEN again
    """

    error_code = "service_unavailable"
    status_code = 503

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            "The Haikubox service is temporarily unavailable due to repeated failures. "
            f"Retrying automatically in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


def retry_after_seconds(exc: BirdFeedError) -> Optional[int]:
    """Seconds for a Retry-After header, when the error carries one."""
    if isinstance(exc, RateLimitExceededError):
        return exc.retry_after
    if isinstance(exc, CircuitBreakerOpenError):
        return exc.recovery_time
    if isinstance(exc, HaikuboxServiceError):
        return exc.retry_after
    return None
