"""
Bird Feed Backend — Photo Model
================================

What:  ORM model for the `photos` table.
Who:   Used by PhotoService (CRUD, limits, swaps), SpeciesService (counts,
       latest photo) and the public gallery.

Table Design Rationale:
    - species_id NULL means the photo sits in the user's inbox, waiting
      for a species assignment
    - filename: path relative to the storage root (YYYY/MM/DD/<uuid>.<ext>)
    - date_taken_source: 'exif' when the date came with the upload,
      'manual' once the user edits it
    - (user_id, species_id) index: every limit check is a count over it
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, TIMESTAMP, text
from sqlalchemy.orm import Mapped, mapped_column

from birdfeed.database import Base
from birdfeed.timeutil import utc_now


class Photo(Base):
    """
    A stored bird photo.

    Lifecycle:
        1. Uploaded, optionally straight into a species (limit permitting)
        2. Assigned or re-assigned to a species via PATCH
        3. Deleted explicitly, swapped out by a newer photo, or removed
           together with its species
    """

    __tablename__ = "photos"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    species_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("species.id", ondelete="CASCADE"),
        nullable=True,
        comment="NULL = unassigned (inbox)",
    )
    filename: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Relative path from storage root to the stored image",
    )
    upload_date: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    original_date_taken: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=True,
    )
    date_taken_source: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="exif",
        server_default=text("'exif'"),
        comment="exif or manual",
    )
    is_favorite: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_photos_user_species", "user_id", "species_id"),
        Index("idx_photos_upload_date", "upload_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<Photo(id={self.id}, species_id={self.species_id}, "
            f"filename='{self.filename}')>"
        )
