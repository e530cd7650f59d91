"""
Bird Feed Backend — User Agreement Schemas
===========================================
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class AgreementStatusResponse(BaseModel):
    accepted: bool
    current_version: str
    accepted_at: Optional[datetime] = None


class AgreementAcceptResponse(BaseModel):
    success: bool = True
    agreement: AgreementStatusResponse
