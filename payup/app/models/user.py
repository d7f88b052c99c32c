"""
User database model.

Users are owned by the identity provider; the ledger keeps the fields it
needs to address people (name, email) and to check they are still active.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from payup.app.db.session import Base
from payup.app.models.base import utcnow


class User(Base):
    """User known to the ledger."""
    __tablename__ = "users"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(100), unique=True, index=True, nullable=False)
    display_name = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    
    @property
    def name(self) -> str:
        return self.display_name or self.username
    
    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', email='{self.email}')>"
