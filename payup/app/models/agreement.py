"""
Settlement agreement database model.

A netting proposal between two members covering a pinned set of
settlements. Resolved exactly once by the responder.
"""

from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey, Enum, JSON
from payup.app.db.session import Base
from payup.app.models.base import SHARE, utcnow
from payup.app.models.ledger_enums import AgreementStatus


class SettlementAgreement(Base):
    __tablename__ = "settlement_agreements"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)
    
    # Parties
    proposer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    responder_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    
    # Snapshot of the reciprocal obligations
    proposer_owes = Column(SHARE, nullable=False)
    responder_owes = Column(SHARE, nullable=False)
    settlement_ids = Column(JSON, nullable=False)
    
    status = Column(Enum(AgreementStatus), default=AgreementStatus.PROPOSED, nullable=False, index=True)
    resolution_note = Column(Text, nullable=True)
    
    proposed_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    responded_at = Column(DateTime(timezone=True), nullable=True)
    
    def __repr__(self):
        return f"<SettlementAgreement(id={self.id}, status='{self.status.value}')>"
