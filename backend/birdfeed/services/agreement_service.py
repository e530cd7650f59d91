"""
Bird Feed Backend — User Agreement Service
===========================================

What:  Records which version of the user agreement each user accepted.

Only the current version (AGREEMENT_VERSION) counts; accepting it twice
keeps the first acceptance.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from birdfeed.config import settings
from birdfeed.exceptions import DatabaseError
from birdfeed.models.agreement import UserAgreement
from birdfeed.schemas.agreement import AgreementAcceptResponse, AgreementStatusResponse
from birdfeed.timeutil import ensure_utc

logger = logging.getLogger(__name__)


class AgreementService:

    async def _current(self, db: AsyncSession, user_id: str) -> Optional[UserAgreement]:
        result = await db.execute(
            select(UserAgreement).where(
                UserAgreement.user_id == user_id,
                UserAgreement.agreement_version == settings.agreement_version,
            )
        )
        return result.scalar_one_or_none()

    async def has_accepted(self, db: AsyncSession, user_id: str) -> bool:
        return await self._current(db, user_id) is not None

    async def get_status(self, db: AsyncSession, user_id: str) -> AgreementStatusResponse:
        row = await self._current(db, user_id)
        return AgreementStatusResponse(
            accepted=row is not None,
            current_version=settings.agreement_version,
            accepted_at=ensure_utc(row.accepted_at) if row else None,
        )

    async def accept(self, db: AsyncSession, user_id: str) -> AgreementAcceptResponse:
        """Accepts the current version; a repeat is a no-op."""
        row = await self._current(db, user_id)
        if row is None:
            row = UserAgreement(user_id=user_id, agreement_version=settings.agreement_version)
            try:
                db.add(row)
                await db.flush()
            except Exception as e:
                logger.error("Failed to record agreement for %s: %s", user_id, str(e), exc_info=True)
                raise DatabaseError(message="Could not record your acceptance. Please try again.")
            logger.info("User %s accepted agreement v%s", user_id, settings.agreement_version)

        return AgreementAcceptResponse(
            success=True,
            agreement=AgreementStatusResponse(
                accepted=True,
                current_version=settings.agreement_version,
                accepted_at=ensure_utc(row.accepted_at),
            ),
        )


# ── Singleton Instance ────────────────────────────────────────────────────
agreement_service = AgreementService()
