"""
Team and membership database models.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, UniqueConstraint
from payup.app.db.session import Base
from payup.app.models.base import utcnow
from payup.app.models.enums import MemberRole


class Team(Base):
    """
    Team model.
    
    A group of users sharing expenses. New members join with the invite code.
    """
    __tablename__ = "teams"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    invite_code = Column(String(12), unique=True, index=True, nullable=False)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    
    def __repr__(self):
        return f"<Team(id={self.id}, name='{self.name}')>"


class TeamMember(Base):
    """
    Membership of one user in one team.
    
    Invariant: while a team has members, at least one of them is ADMIN.
    """
    __tablename__ = "team_members"
    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="uq_team_member"),
    )
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(Enum(MemberRole), default=MemberRole.MEMBER, nullable=False)
    
    joined_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    
    def __repr__(self):
        return f"<TeamMember(team={self.team_id}, user={self.user_id}, role='{self.role.value}')>"
