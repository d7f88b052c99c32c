"""
In-app notices telling a member what happened to their share of the ledger.
"""

import enum

from sqlalchemy import JSON, Boolean, Column, DateTime, Enum, ForeignKey, Integer, String, Text

from payup.app.db.session import Base
from payup.app.models.base import utcnow


class NotificationType(str, enum.Enum):
    INFO = "INFO"
    EXPENSE_ADDED = "EXPENSE_ADDED"
    PAYMENT_UPDATE = "PAYMENT_UPDATE"
    AGREEMENT_UPDATE = "AGREEMENT_UPDATE"
    MEMBERSHIP_UPDATE = "MEMBERSHIP_UPDATE"


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    # Copied at send time; users may change their address later
    recipient_email = Column(String(255), nullable=True)

    type = Column(Enum(NotificationType), default=NotificationType.INFO, nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    # Ids of the team, expense or settlement the notice refers to
    metadata_payload = Column(JSON, nullable=True)

    is_read = Column(Boolean, default=False, nullable=False, index=True)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<Notification {self.id} to={self.user_id} type={self.type}>"
