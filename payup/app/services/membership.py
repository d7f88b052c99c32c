"""
Membership Service.

Team bootstrap, joins, removals and the recalculation that keeps pending
settlement amounts in line with the team size.
"""

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Sequence

from sqlalchemy import select

from payup.app.core.exceptions import ConflictError, ResourceNotFoundError
from payup.app.db.session import atomic
from payup.app.domain.ledger.recalculation import (
    ExpenseFacts, MutationKind, PlannedMutation, SettlementSnapshot,
    plan_expense_recalculation, validate_plan,
)
from payup.app.models.enums import MemberRole
from payup.app.models.expense import Expense
from payup.app.models.ledger_enums import SettlementEventType, SettlementStatus
from payup.app.models.notification import NotificationType
from payup.app.models.settlement import Settlement
from payup.app.models.team import Team, TeamMember
from payup.app.models.user import User
from payup.app.schemas.team import MemberResponse, MembershipChange, RecalculationReport
from payup.app.services.audit import AuditAction, log_activity
from payup.app.services.context import LedgerContext
from payup.app.services.notification_service import Notice

logger = logging.getLogger(__name__)

INVITE_CODE_LENGTH = 6
INVITE_CODE_ALPHABET = string.ascii_uppercase + string.digits


@dataclass
class RecalculationCounts:
    expenses: int = 0
    updated: int = 0
    created: int = 0
    removed: int = 0


def generate_invite_code() -> str:
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


async def recalculate_settlements(
    ctx: LedgerContext,
    expenses: Sequence[Expense],
    member_ids: Iterable[int],
    ensure_member_ids: Iterable[int],
    remove_departed: bool = False,
) -> RecalculationCounts:
    """
    Re-split the given expenses over member_ids.
    
    Plans every expense first and validates the whole batch before a
    single row is written. Must run inside the caller's transaction.
    """
    member_ids = list(member_ids)
    ensure_member_ids = list(ensure_member_ids)
    rows = await ctx.store.settlement_rows_including_deleted([e.id for e in expenses])
    by_id = {s.id: s for group in rows.values() for s in group}
    
    plan: List[PlannedMutation] = []
    for expense in expenses:
        snapshots = [
            SettlementSnapshot(
                id=s.id,
                expense_id=s.expense_id,
                owed_by=s.owed_by,
                amount_owed=Decimal(s.amount_owed),
                netted_amount=Decimal(s.netted_amount or 0),
                status=s.status,
                is_deleted=s.deleted_at is not None,
            )
            for s in rows[expense.id]
        ]
        plan.extend(plan_expense_recalculation(
            ExpenseFacts(expense.id, expense.paid_by, Decimal(expense.amount)),
            snapshots, member_ids, ensure_member_ids, remove_departed=remove_departed,
        ))
    
    live_pairs = [(s.expense_id, s.owed_by) for s in by_id.values() if s.deleted_at is None]
    validate_plan(plan, live_pairs)
    
    counts = RecalculationCounts(expenses=len(expenses))
    now = datetime.now(timezone.utc)
    created = []
    for mutation in plan:
        if mutation.kind == MutationKind.CREATE:
            settlement = Settlement(
                expense_id=mutation.expense_id,
                owed_by=mutation.owed_by,
                amount_owed=mutation.new_amount,
                netted_amount=Decimal(0),
                status=SettlementStatus.PENDING,
            )
            ctx.db.add(settlement)
            created.append(settlement)
            counts.created += 1
            continue
        
        settlement = by_id[mutation.settlement_id]
        if mutation.kind == MutationKind.UPDATE:
            settlement.amount_owed = mutation.new_amount
            ctx.store.add_event(
                settlement, SettlementEventType.RECALCULATED, ctx.actor.id,
                from_status=settlement.status, note=f"{mutation.old_amount} -> {mutation.new_amount}",
            )
            counts.updated += 1
        elif mutation.kind == MutationKind.REVIVE:
            previous_status = settlement.status
            settlement.deleted_at = None
            settlement.status = SettlementStatus.PENDING
            settlement.amount_owed = mutation.new_amount
            settlement.netted_amount = Decimal(0)
            settlement.payment_method = None
            settlement.proof_url = None
            settlement.paid_at = None
            ctx.store.add_event(settlement, SettlementEventType.REVIVED, ctx.actor.id, from_status=previous_status)
            counts.created += 1
        elif mutation.kind == MutationKind.REMOVE:
            settlement.deleted_at = now
            ctx.store.add_event(settlement, SettlementEventType.REMOVED, ctx.actor.id, from_status=settlement.status)
            counts.removed += 1
    
    if created:
        await ctx.db.flush()
        for settlement in created:
            ctx.store.add_event(settlement, SettlementEventType.CREATED, ctx.actor.id, note="recalculation")
    await ctx.db.flush()
    return counts


class MembershipService:
    
    @staticmethod
    async def create_team(ctx: LedgerContext, name: str) -> Team:
        """Create a team with a fresh invite code; the creator becomes its ADMIN."""
        async with atomic(ctx.db):
            invite_code = generate_invite_code()
            while await ctx.store.get_team_by_code(invite_code):
                invite_code = generate_invite_code()
            
            team = Team(name=name, invite_code=invite_code, created_by=ctx.actor.id)
            ctx.db.add(team)
            await ctx.db.flush()
            ctx.db.add(TeamMember(team_id=team.id, user_id=ctx.actor.id, role=MemberRole.ADMIN))
            
            await log_activity(
                ctx.db, team.id, AuditAction.CREATED_TEAM,
                f"Created team '{name}'", actor=ctx.actor,
            )
        
        logger.info("Team %s created by user %s", team.id, ctx.actor.id)
        return team
    
    @staticmethod
    async def join_team(ctx: LedgerContext, invite_code: str) -> MembershipChange:
        """
        Join a team by invite code and re-split its open expenses.
        
        Expenses the joiner paid are skipped: a payer never owes on their
        own expense.
        """
        team = await ctx.store.get_team_by_code(invite_code.strip().upper())
        if not team:
            raise ResourceNotFoundError("Team")
        return await MembershipService._admit(
            ctx, team.id, ctx.actor, MemberRole.MEMBER, AuditAction.JOINED_TEAM, exclude_own_expenses=True
        )
    
    @staticmethod
    async def add_member(ctx: LedgerContext, team_id: int, user_id: int) -> MembershipChange:
        """Add a user to the team on an admin's behalf and re-split open expenses."""
        await ctx.store.require_admin(team_id, ctx.actor.id)
        user = await ctx.store.get_user(user_id)
        return await MembershipService._admit(
            ctx, team_id, user, MemberRole.MEMBER, AuditAction.ADDED_MEMBER, exclude_own_expenses=False
        )
    
    @staticmethod
    async def _admit(
        ctx: LedgerContext,
        team_id: int,
        user: User,
        role: MemberRole,
        action: str,
        exclude_own_expenses: bool,
    ) -> MembershipChange:
        async with atomic(ctx.db):
            team = await ctx.store.lock_team(team_id)
            if await ctx.store.get_membership(team_id, user.id):
                raise ConflictError("User is already a member of this team")
            
            ctx.db.add(TeamMember(team_id=team_id, user_id=user.id, role=role))
            await ctx.db.flush()
            member_ids = await ctx.store.member_ids(team_id)
            
            expenses = await ctx.store.expenses_with_pending(
                team_id, exclude_payer_id=user.id if exclude_own_expenses else None
            )
            counts = await recalculate_settlements(ctx, expenses, member_ids, ensure_member_ids=[user.id])
            
            if action == AuditAction.JOINED_TEAM:
                details = f"{user.name} joined the team"
            else:
                details = f"{ctx.actor.name} added {user.name} to the team"
            await log_activity(
                ctx.db, team_id, action,
                f"{details}; recalculated {counts.expenses} expense(s) for {len(member_ids)} members",
                actor=ctx.actor,
                metadata={
                    "user_id": user.id,
                    "member_count": len(member_ids),
                    "expenses_recalculated": counts.expenses,
                    "settlements_updated": counts.updated,
                    "settlements_created": counts.created,
                },
            )
            others = await ctx.store.users_by_id(uid for uid in member_ids if uid != user.id)
        
        logger.info(
            "User %s admitted to team %s: %d expenses recalculated (%d updated, %d created)",
            user.id, team_id, counts.expenses, counts.updated, counts.created,
        )
        notices = [
            Notice.to(
                other, NotificationType.MEMBERSHIP_UPDATE,
                title=f"{user.name} joined {team.name}",
                message=f"Open expenses were re-split across {len(member_ids)} members.",
                team_name=team.name, expenses_recalculated=counts.expenses,
            )
            for other in others.values()
        ]
        if user.id != ctx.actor.id:
            notices.append(Notice.to(
                user, NotificationType.MEMBERSHIP_UPDATE,
                title=f"You were added to {team.name}",
                message=f"{ctx.actor.name} added you to {team.name}.",
                team_name=team.name,
            ))
        await ctx.after_commit(team_id, notices)
        
        return MembershipChange(
            team_id=team_id,
            user_id=user.id,
            role=role,
            expenses_recalculated=counts.expenses,
            settlements_updated=counts.updated,
            settlements_created=counts.created,
        )
    
    @staticmethod
    async def leave_team(ctx: LedgerContext, team_id: int) -> None:
        """Leave a team. Settlements stay as they are until a maintenance recalculation."""
        async with atomic(ctx.db):
            await ctx.store.lock_team(team_id)
            membership = await ctx.store.require_member(team_id, ctx.actor.id)
            await MembershipService._check_last_admin(ctx, membership)
            await ctx.db.delete(membership)
            await log_activity(
                ctx.db, team_id, AuditAction.LEFT_TEAM,
                f"{ctx.actor.name} left the team", actor=ctx.actor,
                metadata={"user_id": ctx.actor.id},
            )
        
        logger.info("User %s left team %s", ctx.actor.id, team_id)
        await ctx.after_commit(team_id)
    
    @staticmethod
    async def remove_member(ctx: LedgerContext, team_id: int, user_id: int) -> None:
        async with atomic(ctx.db):
            team = await ctx.store.lock_team(team_id)
            await ctx.store.require_admin(team_id, ctx.actor.id)
            membership = await ctx.store.get_membership(team_id, user_id)
            if not membership:
                raise ResourceNotFoundError("Member", user_id)
            await MembershipService._check_last_admin(ctx, membership)
            user = await ctx.store.get_user(user_id)
            await ctx.db.delete(membership)
            await log_activity(
                ctx.db, team_id, AuditAction.REMOVED_MEMBER,
                f"{ctx.actor.name} removed {user.name} from the team", actor=ctx.actor,
                metadata={"user_id": user_id},
            )
        
        logger.info("User %s removed from team %s by %s", user_id, team_id, ctx.actor.id)
        notices = []
        if user_id != ctx.actor.id:
            notices.append(Notice.to(
                user, NotificationType.MEMBERSHIP_UPDATE,
                title=f"Removed from {team.name}",
                message=f"{ctx.actor.name} removed you from {team.name}.",
                team_name=team.name,
            ))
        await ctx.after_commit(team_id, notices)
    
    @staticmethod
    async def _check_last_admin(ctx: LedgerContext, membership: TeamMember) -> None:
        if membership.role != MemberRole.ADMIN:
            return
        remaining = len(await ctx.store.member_ids(membership.team_id)) - 1
        if remaining > 0 and await ctx.store.count_admins(membership.team_id) <= 1:
            raise ConflictError("The last admin cannot leave while other members remain")
    
    @staticmethod
    async def maintenance_recalculate(ctx: LedgerContext, team_id: int) -> RecalculationReport:
        """
        Re-derive every open expense against the current members.
        
        Pending rows of users who have left are tombstoned; every current
        member other than the payer ends up with a row on each open expense.
        """
        async with atomic(ctx.db):
            await ctx.store.lock_team(team_id)
            await ctx.store.require_admin(team_id, ctx.actor.id)
            member_ids = await ctx.store.member_ids(team_id)
            expenses = await ctx.store.expenses_with_pending(team_id)
            counts = await recalculate_settlements(
                ctx, expenses, member_ids, ensure_member_ids=member_ids, remove_departed=True
            )
            await log_activity(
                ctx.db, team_id, AuditAction.RECALCULATED_SETTLEMENTS,
                f"Recalculated {counts.expenses} expense(s): {counts.removed} removed, "
                f"{counts.updated} updated, {counts.created} created",
                actor=ctx.actor,
                metadata={
                    "member_count": len(member_ids),
                    "removed": counts.removed,
                    "updated": counts.updated,
                    "created": counts.created,
                },
            )
        
        logger.info("Maintenance recalculation for team %s: %s", team_id, counts)
        await ctx.after_commit(team_id)
        return RecalculationReport(
            team_id=team_id,
            member_count=len(member_ids),
            expenses_processed=counts.expenses,
            removed=counts.removed,
            updated=counts.updated,
            created=counts.created,
        )
    
    # --- Read views ---
    
    @staticmethod
    async def get_team(ctx: LedgerContext, team_id: int) -> Team:
        await ctx.store.require_member(team_id, ctx.actor.id)
        return await ctx.store.get_team(team_id)
    
    @staticmethod
    async def list_teams(ctx: LedgerContext) -> List[Team]:
        result = await ctx.db.execute(
            select(Team)
            .join(TeamMember, TeamMember.team_id == Team.id)
            .where(TeamMember.user_id == ctx.actor.id)
            .order_by(Team.id)
        )
        return list(result.scalars().all())
    
    @staticmethod
    async def list_members(ctx: LedgerContext, team_id: int) -> List[MemberResponse]:
        await ctx.store.require_member(team_id, ctx.actor.id)
        return [
            MemberResponse(
                user_id=user.id,
                name=user.name,
                email=user.email,
                role=member.role,
                joined_at=member.joined_at,
            )
            for member, user in await ctx.store.members_with_users(team_id)
        ]
