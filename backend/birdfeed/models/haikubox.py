"""
Bird Feed Backend — Haikubox Models
====================================

What:  ORM models for data synced from a user's Haikubox detector.

Tables:
    haikubox_detections    One row per (user, species name, year): the
                           yearly detection count and last-heard time.
                           Upserted on every sync.
    haikubox_sync_log      One row per sync attempt, success or error.
    haikubox_activity_log  Individual detections (deduplicated on
                           user + name + timestamp) for the hourly
                           activity timeline. Pruned after the retention
                           period.

species_id on detections/activity is the matched gallery species (by
normalized common name), or NULL when the bird isn't in the gallery yet.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    ForeignKey,
    Index,
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


class HaikuboxDetection(Base):
    """Yearly detection total for one species heard by a user's Haikubox."""

    __tablename__ = "haikubox_detections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    species_common_name: Mapped[str] = mapped_column(String(255), nullable=False)
    species_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("species.id", ondelete="SET NULL"),
        nullable=True,
    )
    yearly_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )
    last_heard_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=True,
    )
    data_year: Mapped[int] = mapped_column(Integer, nullable=False)
    synced_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "species_common_name",
            "data_year",
            name="uq_haikubox_detection_user_name_year",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<HaikuboxDetection(name='{self.species_common_name}', "
            f"year={self.data_year}, count={self.yearly_count})>"
        )


class HaikuboxSyncLog(Base):
    """Outcome of one Haikubox sync attempt."""

    __tablename__ = "haikubox_sync_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    sync_type: Mapped[str] = mapped_column(String(20), nullable=False)  # yearly | daily | recent
    status: Mapped[str] = mapped_column(String(20), nullable=False)  # success | error
    records_processed: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    synced_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_haikubox_sync_log_user_synced", "user_id", "synced_at"),
    )


class HaikuboxActivityLog(Base):
    """A single detection, kept for the hour-of-day activity timeline."""

    __tablename__ = "haikubox_activity_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    species_common_name: Mapped[str] = mapped_column(String(255), nullable=False)
    species_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("species.id", ondelete="SET NULL"),
        nullable=True,
    )
    detected_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    hour_of_day: Mapped[int] = mapped_column(Integer, nullable=False)  # 0-23
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)  # 0 = Sunday

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "species_common_name",
            "detected_at",
            name="uq_haikubox_activity_user_name_time",
        ),
        Index("idx_haikubox_activity_user_detected", "user_id", "detected_at"),
    )
