"""
Bird Feed Backend — Species Model
==================================

What:  ORM model for the `species` table: one row per species in a
       user's gallery.
Who:   Used by SpeciesService, PhotoService (limit checks), the Haikubox
       sync (name matching) and the public gallery.

Table Design Rationale:
    - user_id: species are per-user; two users can both have "Blue Jay"
    - rarity: 'common' | 'uncommon' | 'rare', user-assigned
    - cover_photo_id: optional photo shown on the species card; a plain
      integer (no FK) because photos already reference species, and a
      cycle of FKs would complicate deletes. The service checks it points
      at a photo of this species.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, Index, Integer, String, Text, TIMESTAMP, text
from sqlalchemy.orm import Mapped, mapped_column

from birdfeed.database import Base
from birdfeed.timeutil import utc_now

RARITIES = ("common", "uncommon", "rare")


class Species(Base):
    """A bird species in one user's gallery."""

    __tablename__ = "species"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    common_name: Mapped[str] = mapped_column(String(255), nullable=False)
    scientific_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rarity: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="common",
        server_default=text("'common'"),
        comment="common, uncommon, rare",
    )
    cover_photo_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_species_user_id", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<Species(id={self.id}, common_name='{self.common_name}')>"
