"""
Settlement database models.

One settlement per (expense, owing member); the payer of the expense is
the creditor and never owes on their own expense.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum, UniqueConstraint
from payup.app.db.session import Base
from payup.app.models.base import SHARE, utcnow
from payup.app.models.ledger_enums import SettlementStatus, PaymentMethod, SettlementEventType


class Settlement(Base):
    """
    Settlement model.
    
    Follows the confirmation workflow: pending -> unconfirmed -> paid,
    with reject returning unconfirmed to pending. amount_owed is what is
    still outstanding; netted_amount is the part already cleared by a
    partially-applied netting agreement.
    """
    __tablename__ = "settlements"
    __table_args__ = (
        UniqueConstraint("expense_id", "owed_by", name="uq_settlement_expense_member"),
    )
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Parties (creditor is the expense payer)
    expense_id = Column(Integer, ForeignKey("expenses.id"), nullable=False, index=True)
    owed_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)  # Debtor
    
    # Financials
    amount_owed = Column(SHARE, nullable=False)
    netted_amount = Column(SHARE, nullable=False, default=0)
    
    # Status
    status = Column(Enum(SettlementStatus), default=SettlementStatus.PENDING, nullable=False, index=True)
    
    # Payment Flow
    payment_method = Column(Enum(PaymentMethod), nullable=True)
    proof_url = Column(String(500), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    
    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)
    
    def __repr__(self):
        return f"<Settlement(id={self.id}, status='{self.status.value}', amount={self.amount_owed})>"


class SettlementEvent(Base):
    """
    Settlement history entry.
    
    Append-only. Keeps rejected proofs and earlier amounts visible after
    the settlement row itself has been overwritten.
    """
    __tablename__ = "settlement_events"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    settlement_id = Column(Integer, ForeignKey("settlements.id"), nullable=False, index=True)
    actor_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    
    event_type = Column(Enum(SettlementEventType), nullable=False)
    from_status = Column(Enum(SettlementStatus), nullable=True)
    to_status = Column(Enum(SettlementStatus), nullable=True)
    
    amount = Column(SHARE, nullable=True)
    payment_method = Column(Enum(PaymentMethod), nullable=True)
    proof_url = Column(String(500), nullable=True)
    note = Column(Text, nullable=True)
    
    # Immutable - no updated_at
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    
    def __repr__(self):
        return f"<SettlementEvent(id={self.id}, settlement={self.settlement_id}, type='{self.event_type.value}')>"
