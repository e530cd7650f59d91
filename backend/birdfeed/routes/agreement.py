"""
Bird Feed Backend — User Agreement Route Handlers
==================================================

What:  GET tells the frontend whether to show the agreement;
       POST records that the user accepted it.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from birdfeed.auth import get_current_user
from birdfeed.database import get_db_session
from birdfeed.models.user import User
from birdfeed.schemas.agreement import AgreementAcceptResponse, AgreementStatusResponse
from birdfeed.services.agreement_service import agreement_service

router = APIRouter(prefix="/api/agreement", tags=["Agreement"])


@router.get("", response_model=AgreementStatusResponse, summary="Has the current agreement been accepted?")
async def agreement_status(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> AgreementStatusResponse:
    return await agreement_service.get_status(db, user.id)


@router.post("", response_model=AgreementAcceptResponse, summary="Accept the current agreement")
async def accept_agreement(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> AgreementAcceptResponse:
    return await agreement_service.accept(db, user.id)
