"""
Team and membership Schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from payup.app.models.enums import MemberRole


class TeamCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)


class TeamJoin(BaseModel):
    invite_code: str = Field(..., min_length=4, max_length=12)


class MemberAdd(BaseModel):
    user_id: int


class TeamResponse(BaseModel):
    id: int
    name: str
    invite_code: str
    created_by: int
    created_at: datetime
    
    class Config:
        from_attributes = True


class MemberResponse(BaseModel):
    user_id: int
    name: str
    email: str
    role: MemberRole
    joined_at: datetime


class MembershipChange(BaseModel):
    """Result of a membership event and the recalculation it triggered."""
    team_id: int
    user_id: int
    role: MemberRole
    expenses_recalculated: int
    settlements_updated: int
    settlements_created: int


class RecalculationReport(BaseModel):
    """Outcome of a maintenance recalculation."""
    team_id: int
    member_count: int
    expenses_processed: int
    removed: int
    updated: int
    created: int


class ActivityEntry(BaseModel):
    id: int
    action: str
    details: str
    actor_id: Optional[int]
    actor_name: str
    timestamp: datetime


class ActivityPage(BaseModel):
    entries: List[ActivityEntry]
    next_cursor: Optional[int]
