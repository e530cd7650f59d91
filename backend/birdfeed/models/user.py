"""
Bird Feed Backend — User and Settings Models
=============================================

What:  ORM models for the `users` and `app_settings` tables.
How:   The user's primary key is the identity provider's user id (a string),
       so no mapping table is needed between provider and local account.
Who:   Used by auth dependencies, profile/settings services, public
       gallery lookups and bookmarks.

Table Design Rationale:
    - username: optional, unique, lowercase; required before a gallery can
      be made public (it becomes the /u/<username> URL)
    - is_public_gallery_enabled / is_directory_listed: a public gallery can
      be shared by link without appearing in Discover
    - app_settings: per-user key/value rows (e.g. "haikubox_serial"),
      unique on (user_id, key) so writes are upserts
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Integer,
    String,
    Text,
    TIMESTAMP,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from birdfeed.database import Base
from birdfeed.timeutil import utc_now


class User(Base):
    """
    A Bird Feed account.

    Lifecycle:
        1. Created on the first authenticated request (get-or-create)
        2. Profile fields updated through PATCH /api/settings/profile
        3. Deleting a user cascades to species, photos, detections, bookmarks
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        comment="Identity provider user id",
    )
    email: Mapped[str] = mapped_column(String(320), nullable=False, default="")
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # ── Public Gallery ────────────────────────────────────────────────────
    username: Mapped[Optional[str]] = mapped_column(
        String(30),
        unique=True,
        nullable=True,
        comment="Lowercase public handle; NULL until the user picks one",
    )
    is_public_gallery_enabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    is_directory_listed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
        comment="Whether the public gallery appears in Discover",
    )
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(
        String(2),
        nullable=True,
        comment="Two-letter US state code",
    )

    # ── Timestamps ────────────────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    @property
    def display_name(self) -> str:
        """'First Last', 'First', the username, or a generic fallback."""
        if self.first_name:
            if self.last_name:
                return f"{self.first_name} {self.last_name}"
            return self.first_name
        return self.username or "Bird Feed User"

    def __repr__(self) -> str:
        return f"<User(id='{self.id}', username='{self.username}')>"


class AppSetting(Base):
    """Per-user key/value setting (e.g. the Haikubox serial number)."""

    __tablename__ = "app_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    key: Mapped[str] = mapped_column(String(100), nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        UniqueConstraint("user_id", "key", name="uq_app_settings_user_key"),
    )

    def __repr__(self) -> str:
        return f"<AppSetting(user_id='{self.user_id}', key='{self.key}')>"
