"""
Settlement Schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from payup.app.models.ledger_enums import PaymentMethod, SettlementStatus, SettlementEventType


class SettlementResponse(BaseModel):
    """Schema for displaying a settlement row."""
    id: int
    expense_id: int
    owed_by: int
    amount_owed: Decimal
    netted_amount: Decimal
    status: SettlementStatus
    payment_method: Optional[PaymentMethod]
    proof_url: Optional[str]
    paid_at: Optional[datetime]
    created_at: datetime
    
    class Config:
        from_attributes = True


class TeamSettlementView(BaseModel):
    """A settlement annotated for the viewing member."""
    id: int
    expense_id: int
    expense_description: str
    owed_by_id: int
    owed_by_name: str
    owed_to_id: int
    owed_to_name: str
    amount: Decimal
    status: SettlementStatus
    payment_method: Optional[PaymentMethod]
    due_date: Optional[date] = None
    paid_at: Optional[datetime]
    is_current_user_owing: bool
    is_current_user_owed: bool


class MarkPaidRequest(BaseModel):
    payment_method: PaymentMethod = PaymentMethod.CASH
    proof_url: Optional[str] = Field(None, max_length=500)


class SubmitPaymentRequest(BaseModel):
    payment_method: PaymentMethod
    proof_url: Optional[str] = Field(None, max_length=500)


class RejectPaymentRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class BatchTransitionRequest(BaseModel):
    settlement_ids: List[int] = Field(..., min_length=1)
    payment_method: Optional[PaymentMethod] = None
    proof_url: Optional[str] = Field(None, max_length=500)
    reason: Optional[str] = Field(None, max_length=500)


class SettlementEventResponse(BaseModel):
    id: int
    settlement_id: int
    actor_id: Optional[int]
    event_type: SettlementEventType
    from_status: Optional[SettlementStatus]
    to_status: Optional[SettlementStatus]
    amount: Optional[Decimal]
    payment_method: Optional[PaymentMethod]
    proof_url: Optional[str]
    note: Optional[str]
    created_at: datetime
    
    class Config:
        from_attributes = True
