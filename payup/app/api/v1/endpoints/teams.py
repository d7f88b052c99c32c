"""
Team API Endpoints.

Team bootstrap, membership, recalculation and the team-level read views
(balance, stats, activity).
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Path, Query, status

from payup.app.core.dependencies import get_ledger_context
from payup.app.schemas.balance import TeamBalance
from payup.app.schemas.expense import CategoryTotal, ExpenseStats
from payup.app.schemas.team import (
    ActivityPage, MemberAdd, MemberResponse, MembershipChange, RecalculationReport,
    TeamCreate, TeamJoin, TeamResponse,
)
from payup.app.services.activity_feed import ActivityFeed
from payup.app.services.balance_service import BalanceService
from payup.app.services.context import LedgerContext
from payup.app.services.expense_ledger import ExpenseLedger
from payup.app.services.membership import MembershipService

router = APIRouter(prefix="/teams", tags=["Teams"])


@router.post("", response_model=TeamResponse, status_code=status.HTTP_201_CREATED)
async def create_team(req: TeamCreate, ctx: LedgerContext = Depends(get_ledger_context)):
    """Create a team. The caller becomes its admin."""
    return await MembershipService.create_team(ctx, req.name)


@router.get("", response_model=List[TeamResponse])
async def list_my_teams(ctx: LedgerContext = Depends(get_ledger_context)):
    return await MembershipService.list_teams(ctx)


@router.post("/join", response_model=MembershipChange)
async def join_team(req: TeamJoin, ctx: LedgerContext = Depends(get_ledger_context)):
    """
    Join a team by invite code.
    
    Open expenses are re-split to include the new member.
    """
    return await MembershipService.join_team(ctx, req.invite_code)


@router.get("/{team_id}", response_model=TeamResponse)
async def get_team(team_id: int = Path(...), ctx: LedgerContext = Depends(get_ledger_context)):
    return await MembershipService.get_team(ctx, team_id)


@router.get("/{team_id}/members", response_model=List[MemberResponse])
async def list_members(team_id: int = Path(...), ctx: LedgerContext = Depends(get_ledger_context)):
    return await MembershipService.list_members(ctx, team_id)


@router.post("/{team_id}/members", response_model=MembershipChange, status_code=status.HTTP_201_CREATED)
async def add_member(req: MemberAdd, team_id: int = Path(...), ctx: LedgerContext = Depends(get_ledger_context)):
    """Admin adds a user to the team."""
    return await MembershipService.add_member(ctx, team_id, req.user_id)


@router.delete("/{team_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    team_id: int = Path(...),
    user_id: int = Path(...),
    ctx: LedgerContext = Depends(get_ledger_context)
):
    await MembershipService.remove_member(ctx, team_id, user_id)


@router.post("/{team_id}/leave", status_code=status.HTTP_204_NO_CONTENT)
async def leave_team(team_id: int = Path(...), ctx: LedgerContext = Depends(get_ledger_context)):
    await MembershipService.leave_team(ctx, team_id)


@router.post("/{team_id}/recalculate", response_model=RecalculationReport)
async def recalculate(team_id: int = Path(...), ctx: LedgerContext = Depends(get_ledger_context)):
    """Admin-only maintenance recalculation of every open expense."""
    return await MembershipService.maintenance_recalculate(ctx, team_id)


@router.get("/{team_id}/balance", response_model=TeamBalance)
async def get_balance(team_id: int = Path(...), ctx: LedgerContext = Depends(get_ledger_context)):
    return await BalanceService.team_balance(ctx, team_id)


@router.get("/{team_id}/stats", response_model=ExpenseStats)
async def get_stats(team_id: int = Path(...), ctx: LedgerContext = Depends(get_ledger_context)):
    return await ExpenseLedger.expense_stats(ctx, team_id)


@router.get("/{team_id}/stats/categories", response_model=List[CategoryTotal])
async def get_category_totals(team_id: int = Path(...), ctx: LedgerContext = Depends(get_ledger_context)):
    return await ExpenseLedger.category_totals(ctx, team_id)


@router.get("/{team_id}/activity", response_model=ActivityPage)
async def get_activity(
    team_id: int = Path(...),
    cursor: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    ctx: LedgerContext = Depends(get_ledger_context)
):
    """Team activity, newest first. Pass next_cursor back to page."""
    return await ActivityFeed.get_team_activity(ctx, team_id, cursor=cursor, limit=limit)
