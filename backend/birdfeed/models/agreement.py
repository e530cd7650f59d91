"""
Bird Feed Backend — User Agreement Model
=========================================

What:  One row per user per agreement version they accepted.

Publishing a new version (AGREEMENT_VERSION) leaves old rows in place;
users are asked again because no row matches the new version.
"""

from datetime import datetime

from sqlalchemy import ForeignKey, Integer, String, TIMESTAMP, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from birdfeed.database import Base
from birdfeed.timeutil import utc_now


class UserAgreement(Base):
    __tablename__ = "user_agreements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    agreement_version: Mapped[str] = mapped_column(String(20), nullable=False)
    accepted_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        UniqueConstraint("user_id", "agreement_version", name="uq_user_agreements_user_version"),
    )
