"""
Bird Feed Backend — User, Profile & Settings Service
=====================================================

What:  Account bootstrap (get-or-create from identity headers), public
       profile management (username, gallery visibility, location) and
       per-user key/value settings.
Who:   Called by auth dependencies and the /api/settings routes; the
       public gallery and bookmark services use `get_user_by_username`.

Username Rules:
    - 3-30 characters: lowercase letters, digits, hyphen, underscore
    - must start with a letter or digit
    - stored lowercase (input is case-folded before validation)
    - names that collide with app routes are reserved
"""

import logging
import re
from typing import Dict, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from birdfeed.exceptions import BirdFeedError, ConflictError, DatabaseError, ValidationError
from birdfeed.models.user import AppSetting, User
from birdfeed.schemas.user import (
    ProfileResponse,
    ProfileUpdate,
    ProfileUpdateResponse,
    SettingsResponse,
    UsernameCheckResponse,
)
from birdfeed.timeutil import utc_now

logger = logging.getLogger(__name__)

USERNAME_RE = re.compile(r"^[a-z0-9][a-z0-9_-]{2,29}$")
SERIAL_RE = re.compile(r"^[A-Za-z0-9]+$")

HAIKUBOX_SERIAL_KEY = "haikubox_serial"

RESERVED_USERNAMES = frozenset({
    "about", "account", "activity", "admin", "api", "app", "auth",
    "birdfeed", "bookmarks", "discover", "favorites", "gallery", "health",
    "help", "inbox", "login", "logout", "me", "null", "public", "resources",
    "root", "settings", "sign-in", "sign-up", "species", "support",
    "system", "u", "undefined", "upload", "user", "users",
})

US_STATE_CODES = frozenset({
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "DC", "FL", "GA", "HI",
    "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD", "MA", "MI", "MN",
    "MS", "MO", "MT", "NE", "NV", "NH", "NJ", "NM", "NY", "NC", "ND", "OH",
    "OK", "OR", "PA", "RI", "SC", "SD", "TN", "TX", "UT", "VT", "VA", "WA",
    "WV", "WI", "WY",
})


def validate_username(username: str) -> Tuple[bool, Optional[str]]:
    """
    Checks a candidate username against the format rules.

    Returns:
        (valid, error_message); error_message is None when valid
    """
    candidate = (username or "").strip().lower()
    if len(candidate) < 3:
        return False, "Username must be at least 3 characters"
    if len(candidate) > 30:
        return False, "Username must be at most 30 characters"
    if not USERNAME_RE.match(candidate):
        return False, (
            "Username can only contain lowercase letters, numbers, hyphens and "
            "underscores, and must start with a letter or number"
        )
    if candidate in RESERVED_USERNAMES:
        return False, "This username is reserved"
    return True, None


class UserService:
    """
    Users, public profiles and settings.

    Writes only flush; the request's session commits.
    """

    # ── Accounts ──────────────────────────────────────────────────────────

    async def get_or_create_user(
        self,
        db: AsyncSession,
        user_id: str,
        email: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> User:
        """
        Returns the local account for an identity-provider user id,
        creating it on first sight.
        """
        try:
            user = await db.get(User, user_id)
            if user is not None:
                return user

            user = User(
                id=user_id,
                email=email or "",
                first_name=first_name or None,
                last_name=last_name or None,
            )
            db.add(user)
            await db.flush()
            logger.info("Created user record for %s", user_id)
            return user
        except Exception as e:
            logger.error("Failed to load or create user %s: %s", user_id, str(e), exc_info=True)
            raise DatabaseError(
                message="Could not load your account. Please try again.",
                context={"error_type": type(e).__name__},
            )

    async def get_user_by_username(self, db: AsyncSession, username: str) -> Optional[User]:
        result = await db.execute(
            select(User).where(User.username == (username or "").strip().lower())
        )
        return result.scalar_one_or_none()

    async def is_username_available(
        self,
        db: AsyncSession,
        username: str,
        exclude_user_id: Optional[str] = None,
    ) -> bool:
        query = select(func.count(User.id)).where(User.username == username.lower())
        if exclude_user_id:
            query = query.where(User.id != exclude_user_id)
        count = (await db.execute(query)).scalar() or 0
        return count == 0

    # ── Profile ───────────────────────────────────────────────────────────

    def profile_of(self, user: User) -> ProfileResponse:
        return ProfileResponse(
            username=user.username,
            is_public_gallery_enabled=user.is_public_gallery_enabled,
            is_directory_listed=user.is_directory_listed,
            city=user.city,
            state=user.state,
            display_name=user.display_name,
        )

    async def check_username(
        self,
        db: AsyncSession,
        user: User,
        username: str,
    ) -> UsernameCheckResponse:
        """Availability check for the username field as the user types."""
        valid, error = validate_username(username)
        if not valid:
            return UsernameCheckResponse(available=False, error=error)

        normalized = username.strip().lower()
        if not await self.is_username_available(db, normalized, exclude_user_id=user.id):
            return UsernameCheckResponse(available=False, error="This username is already taken")
        return UsernameCheckResponse(available=True)

    async def update_profile(
        self,
        db: AsyncSession,
        user: User,
        data: ProfileUpdate,
    ) -> ProfileUpdateResponse:
        """
        Partial profile update.

        Rules:
            - username null or "" clears it; otherwise validated + must be free
            - enabling the public gallery requires a username (after this update)
            - state must be a two-letter US state code (null or "" clears it)

        Raises:
            ValidationError: nothing to update, or a rule above is violated
            ConflictError: username taken by another account
        """
        fields = data.model_dump(exclude_unset=True)
        updates: Dict[str, object] = {}

        if "username" in fields:
            raw = fields["username"]
            if raw is None or raw.strip() == "":
                updates["username"] = None
            else:
                valid, error = validate_username(raw)
                if not valid:
                    raise ValidationError(message=error, field="username")
                normalized = raw.strip().lower()
                if not await self.is_username_available(db, normalized, exclude_user_id=user.id):
                    raise ConflictError(
                        message="This username is already taken",
                        context={"field": "username"},
                    )
                updates["username"] = normalized

        if fields.get("is_public_gallery_enabled") is not None:
            enabled = fields["is_public_gallery_enabled"]
            if enabled:
                final_username = updates["username"] if "username" in updates else user.username
                if not final_username:
                    raise ValidationError(
                        message="You must set a username before enabling your public gallery",
                        field="is_public_gallery_enabled",
                    )
            updates["is_public_gallery_enabled"] = enabled

        if fields.get("is_directory_listed") is not None:
            updates["is_directory_listed"] = fields["is_directory_listed"]

        if "city" in fields:
            city = (fields["city"] or "").strip()
            updates["city"] = city or None

        if "state" in fields:
            state = (fields["state"] or "").strip().upper()
            if state and state not in US_STATE_CODES:
                raise ValidationError(message="Invalid state code", field="state")
            updates["state"] = state or None

        if not updates:
            raise ValidationError(message="No valid updates provided")

        # Clearing the username also hides the gallery; it has no URL anymore.
        if "username" in updates and updates["username"] is None:
            updates["is_public_gallery_enabled"] = False

        try:
            for key, value in updates.items():
                setattr(user, key, value)
            user.updated_at = utc_now()
            await db.flush()
        except Exception as e:
            logger.error("Failed to update profile for %s: %s", user.id, str(e), exc_info=True)
            raise DatabaseError(message="Could not update your profile. Please try again.")

        logger.info("Profile updated for %s: %s", user.id, sorted(updates))
        profile = self.profile_of(user)
        return ProfileUpdateResponse(success=True, **profile.model_dump())

    # ── Key/Value Settings ────────────────────────────────────────────────

    async def get_setting(self, db: AsyncSession, user_id: str, key: str) -> Optional[str]:
        result = await db.execute(
            select(AppSetting.value).where(
                AppSetting.user_id == user_id,
                AppSetting.key == key,
            )
        )
        return result.scalar_one_or_none()

    async def set_setting(self, db: AsyncSession, user_id: str, key: str, value: str) -> None:
        """Insert-or-update on (user_id, key)."""
        try:
            result = await db.execute(
                select(AppSetting).where(
                    AppSetting.user_id == user_id,
                    AppSetting.key == key,
                )
            )
            setting = result.scalar_one_or_none()
            if setting is None:
                db.add(AppSetting(user_id=user_id, key=key, value=value))
            else:
                setting.value = value
                setting.updated_at = utc_now()
            await db.flush()
        except Exception as e:
            if isinstance(e, BirdFeedError):
                raise
            logger.error("Failed to save setting %s for %s: %s", key, user_id, str(e))
            raise DatabaseError(message="Could not save settings. Please try again.")

    async def get_settings(self, db: AsyncSession, user: User) -> SettingsResponse:
        serial = await self.get_setting(db, user.id, HAIKUBOX_SERIAL_KEY)
        return SettingsResponse(haikubox_serial=serial or None)

    async def save_haikubox_serial(self, db: AsyncSession, user: User, serial: Optional[str]) -> None:
        """
        Stores the user's Haikubox serial number.

        Raises:
            ValidationError: missing or not alphanumeric
        """
        serial = (serial or "").strip()
        if not serial:
            raise ValidationError(message="Serial number required", field="haikubox_serial")
        if not SERIAL_RE.match(serial):
            raise ValidationError(
                message="Invalid serial format (alphanumeric only)",
                field="haikubox_serial",
            )
        await self.set_setting(db, user.id, HAIKUBOX_SERIAL_KEY, serial)
        logger.info("Haikubox serial saved for %s", user.id)


# ── Singleton Instance ────────────────────────────────────────────────────
user_service = UserService()
