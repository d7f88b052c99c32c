"""
Settlement Agreement Schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from payup.app.models.ledger_enums import AgreementStatus


class MutualDebtResponse(BaseModel):
    counterparty_id: int
    counterparty_name: Optional[str] = None
    user_owes: Decimal
    counterparty_owes: Decimal
    user_settlement_ids: List[int]
    counterparty_settlement_ids: List[int]
    settlement_ids: List[int]


class AgreementPropose(BaseModel):
    responder_id: int
    proposer_owes: Decimal = Field(..., gt=0)
    responder_owes: Decimal = Field(..., gt=0)
    settlement_ids: List[int] = Field(..., min_length=2)


class AgreementRespond(BaseModel):
    accept: bool


class AgreementResponse(BaseModel):
    id: int
    team_id: int
    proposer_id: int
    responder_id: int
    proposer_owes: Decimal
    responder_owes: Decimal
    settlement_ids: List[int]
    status: AgreementStatus
    resolution_note: Optional[str]
    proposed_at: datetime
    responded_at: Optional[datetime]
    
    class Config:
        from_attributes = True
