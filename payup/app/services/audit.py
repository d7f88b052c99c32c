"""
Audit logging service for ledger activity.

Entries are added to the caller's session and flushed, never committed
here: they belong to the same transaction as the mutation they describe.
"""

from typing import Optional, Dict, Any, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from payup.app.models.activity_log import ActivityLog
from payup.app.models.user import User


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    # Expenses
    ADDED_EXPENSE = "ADDED_EXPENSE"
    ADDED_INSTALLMENT_PLAN = "ADDED_INSTALLMENT_PLAN"
    UPDATED_EXPENSE = "UPDATED_EXPENSE"
    DELETED_EXPENSE = "DELETED_EXPENSE"
    
    # Membership
    CREATED_TEAM = "CREATED_TEAM"
    JOINED_TEAM = "JOINED_TEAM"
    ADDED_MEMBER = "ADDED_MEMBER"
    LEFT_TEAM = "LEFT_TEAM"
    REMOVED_MEMBER = "REMOVED_MEMBER"
    RECALCULATED_SETTLEMENTS = "RECALCULATED_SETTLEMENTS"
    
    # Settlements
    PAID_SETTLEMENT = "PAID_SETTLEMENT"
    SUBMITTED_PAYMENT = "SUBMITTED_PAYMENT"
    VERIFIED_PAYMENT = "VERIFIED_PAYMENT"
    REJECTED_PAYMENT = "REJECTED_PAYMENT"
    
    # Agreements
    PROPOSED_AGREEMENT = "PROPOSED_AGREEMENT"
    ACCEPTED_AGREEMENT = "ACCEPTED_AGREEMENT"
    REJECTED_AGREEMENT = "REJECTED_AGREEMENT"


async def log_activity(
    db: AsyncSession,
    team_id: int,
    action: str,
    details: str,
    actor: Optional[User] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> ActivityLog:
    """
    Append an activity entry to the team's audit trail.
    
    Args:
        db: Database session (the mutation's transaction)
        team_id: Team the activity belongs to
        action: Action being performed (use AuditAction constants)
        details: Human-readable description
        actor: User performing the action (None for system actions)
        metadata: Additional context as JSON
        
    Returns:
        Created ActivityLog instance
    """
    entry = ActivityLog(
        team_id=team_id,
        actor_id=actor.id if actor else None,
        actor_username=actor.name if actor else None,
        action=action,
        details=details,
        meta_data=metadata
    )
    
    db.add(entry)
    await db.flush()
    
    return entry


async def get_audit_trail(
    db: AsyncSession,
    team_id: int,
    before_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> List[ActivityLog]:
    """
    Retrieve a team's audit trail, most recent first.
    
    Args:
        db: Database session
        team_id: Team to read
        before_id: Cursor; only entries with a smaller id are returned
        action: Filter by action type
        limit: Maximum number of records to return
    """
    query = select(ActivityLog).where(ActivityLog.team_id == team_id).order_by(desc(ActivityLog.id))
    
    if before_id:
        query = query.where(ActivityLog.id < before_id)
    
    if action:
        query = query.where(ActivityLog.action == action)
    
    query = query.limit(limit)
    
    result = await db.execute(query)
    return list(result.scalars().all())
