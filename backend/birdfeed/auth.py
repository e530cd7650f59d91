"""
Bird Feed Backend — Authentication Dependencies
================================================

What:  FastAPI dependencies that identify the caller.
How:   Sign-in is handled by an identity proxy in front of the API, which
       forwards the signed-in user's id in IDENTITY_HEADER (default
       X-User-Id) plus optional X-User-Email / X-User-First-Name /
       X-User-Last-Name. The first request from a new id creates its
       local account.

Other callers:
    Scheduled sync   `Authorization: Bearer <CRON_SECRET>`
    Device uploads   `X-API-Key: <UPLOAD_API_KEY>`, acting as
                     UPLOAD_API_USER_ID

Secrets are compared with hmac.compare_digest; an unset secret never
matches.
"""

import hmac
import logging
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from birdfeed.config import settings
from birdfeed.database import get_db_session
from birdfeed.exceptions import AuthenticationError
from birdfeed.models.user import User
from birdfeed.services.user_service import user_service

logger = logging.getLogger(__name__)


def _secret_matches(provided: Optional[str], expected: str) -> bool:
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


async def _user_from_headers(request: Request, db: AsyncSession) -> Optional[User]:
    user_id = (request.headers.get(settings.identity_header) or "").strip()
    if not user_id:
        return None
    return await user_service.get_or_create_user(
        db,
        user_id,
        email=request.headers.get("X-User-Email"),
        first_name=request.headers.get("X-User-First-Name"),
        last_name=request.headers.get("X-User-Last-Name"),
    )


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
) -> User:
    """
    The signed-in user.

    Raises:
        AuthenticationError: no identity header
    """
    user = await _user_from_headers(request, db)
    if user is None:
        raise AuthenticationError()
    return user


async def get_optional_user(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
) -> Optional[User]:
    """The signed-in user, or None for anonymous requests."""
    return await _user_from_headers(request, db)


def is_cron_request(request: Request) -> bool:
    """True when the request carries the configured cron bearer token."""
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return False
    return _secret_matches(header[len("Bearer "):].strip(), settings.cron_secret)


async def require_upload_api_key(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
) -> User:
    """
    The account device uploads land in.

    Raises:
        AuthenticationError: missing/wrong X-API-Key, or no owning account
                             configured
    """
    if not _secret_matches(request.headers.get("X-API-Key"), settings.upload_api_key):
        logger.warning("Rejected upload with invalid API key")
        raise AuthenticationError(message="Invalid or missing API key")

    if not settings.upload_api_user_id:
        logger.error("UPLOAD_API_KEY is set but UPLOAD_API_USER_ID is empty")
        raise AuthenticationError(message="Device uploads are not configured")

    return await user_service.get_or_create_user(db, settings.upload_api_user_id)
