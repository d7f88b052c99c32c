"""
Activity Log Database Model.

Append-only audit trail of ledger mutations, written in the same
transaction as the change it describes.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON
from payup.app.db.session import Base
from payup.app.models.base import utcnow


class ActivityLog(Base):
    """
    Activity log model.
    
    Events logged:
    - ADDED_EXPENSE / ADDED_INSTALLMENT_PLAN / UPDATED_EXPENSE / DELETED_EXPENSE
    - JOINED_TEAM / ADDED_MEMBER / LEFT_TEAM / REMOVED_MEMBER
    - RECALCULATED_SETTLEMENTS
    - PAID_SETTLEMENT / SUBMITTED_PAYMENT / VERIFIED_PAYMENT / REJECTED_PAYMENT
    - PROPOSED_AGREEMENT / ACCEPTED_AGREEMENT / REJECTED_AGREEMENT
    """
    __tablename__ = "activity_logs"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)
    
    # Who performed the action (None for system actions)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_username = Column(String(100), nullable=True)
    
    # What action was performed
    action = Column(String(100), nullable=False, index=True)
    details = Column(Text, nullable=False)
    
    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)
    
    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    
    def __repr__(self):
        return f"<ActivityLog(id={self.id}, team={self.team_id}, action='{self.action}')>"
