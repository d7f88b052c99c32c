"""
Expense Ledger (Domain Service).

Creates expenses together with their settlement rows, edits their text,
and soft-deletes them. Every write runs in one transaction; notifications
go out only after it commits.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select

from payup.app.core.config import settings
from payup.app.core.exceptions import (
    ConflictError, InsufficientPermissionsError, InvalidInputError, ResourceNotFoundError,
)
from payup.app.db.ledger_store import active_expenses, active_settlements
from payup.app.db.session import atomic
from payup.app.domain.ledger.split_calculator import (
    InstallmentSplit, even_share, installment_due_dates, installment_split, stored_share, validate_amount,
)
from payup.app.models.enums import MemberRole
from payup.app.models.expense import Expense
from payup.app.models.ledger_enums import ExpenseCategory, SettlementEventType, SettlementStatus
from payup.app.models.notification import NotificationType
from payup.app.models.settlement import Settlement
from payup.app.schemas.expense import (
    CategoryTotal, ExpenseDetailResponse, ExpenseResponse, ExpenseStats,
)
from payup.app.schemas.settlement import SettlementResponse
from payup.app.services.audit import AuditAction, log_activity
from payup.app.services.cache import CacheKeys, CacheService
from payup.app.services.context import LedgerContext
from payup.app.services.notification_service import Notice

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {"description", "note"}


@dataclass
class InstallmentPlan:
    parent: Expense
    children: List[Expense]
    split: InstallmentSplit


class ExpenseLedger:
    
    @staticmethod
    async def create_expense(
        ctx: LedgerContext,
        team_id: int,
        amount: Decimal,
        description: str,
        category: ExpenseCategory = ExpenseCategory.OTHER,
        note: Optional[str] = None,
        currency: Optional[str] = None,
    ) -> Expense:
        """
        Record an expense paid by the caller and split it evenly.
        
        Flow:
        1. Lock the team and check the payer is a member
        2. Read the current member list
        3. Insert the expense and one pending settlement per non-payer
           member, each owing amount / member count
        4. Append an audit entry
        
        Raises:
            InvalidInputError: amount <= 0 or empty team
            InsufficientPermissionsError: payer is not a member
        """
        amount = validate_amount(amount)
        payer = ctx.actor
        
        async with atomic(ctx.db):
            team = await ctx.store.lock_team(team_id)
            await ctx.store.require_member(team_id, payer.id)
            members = await ctx.store.members_with_users(team_id)
            share = stored_share(even_share(amount, len(members)))
            
            expense = Expense(
                team_id=team_id,
                paid_by=payer.id,
                amount=amount,
                currency=currency or settings.default_currency,
                description=description,
                note=note,
                category=category,
            )
            ctx.db.add(expense)
            await ctx.db.flush()
            
            debtors = [user for member, user in members if member.user_id != payer.id]
            await ExpenseLedger._open_settlements(ctx, expense, [user.id for user in debtors], share)
            
            await log_activity(
                ctx.db, team_id, AuditAction.ADDED_EXPENSE,
                f"Added expense '{description}' for {expense.currency} {amount:.2f}",
                actor=payer,
                metadata={"expense_id": expense.id, "share": str(share), "member_count": len(members)},
            )
        
        logger.info("Expense %s created in team %s: %s split %d ways", expense.id, team_id, amount, len(members))
        await ctx.after_commit(team_id, [
            Notice.to(
                user, NotificationType.EXPENSE_ADDED,
                title=f"New expense in {team.name}",
                message=f"{payer.name} paid {expense.currency} {amount:.2f} for '{description}'. Your share is {expense.currency} {share:.2f}.",
                expense_id=expense.id, team_name=team.name, total_amount=amount, your_share=share,
            )
            for user in debtors
        ])
        return expense
    
    @staticmethod
    async def create_installment_expense(
        ctx: LedgerContext,
        team_id: int,
        total_amount: Decimal,
        number_of_months: int,
        due_day_of_month: int,
        description: str,
        category: ExpenseCategory = ExpenseCategory.OTHER,
        note: Optional[str] = None,
        start_date: Optional[date] = None,
    ) -> InstallmentPlan:
        """
        Record an installment plan: one parent plus one child expense per month.
        
        The parent carries the plan total and is never settled. Each child
        carries ceil(total / months) and every non-payer member owes
        ceil(monthly / member count) on it.
        """
        payer = ctx.actor
        start_date = start_date or datetime.now(timezone.utc).date()
        
        async with atomic(ctx.db):
            team = await ctx.store.lock_team(team_id)
            await ctx.store.require_member(team_id, payer.id)
            members = await ctx.store.members_with_users(team_id)
            split = installment_split(
                total_amount, number_of_months, len(members), max_months=settings.max_installment_months
            )
            due_dates = installment_due_dates(start_date, due_day_of_month, number_of_months)
            currency = settings.default_currency
            
            parent = Expense(
                team_id=team_id,
                paid_by=payer.id,
                amount=Decimal(total_amount),
                currency=currency,
                description=description,
                note=note,
                category=category,
                is_installment=True,
                total_installments=number_of_months,
                due_day_of_month=due_day_of_month,
            )
            ctx.db.add(parent)
            await ctx.db.flush()
            
            debtor_ids = [member.user_id for member, _ in members if member.user_id != payer.id]
            children = []
            for index, due_date in enumerate(due_dates, start=1):
                child = Expense(
                    team_id=team_id,
                    paid_by=payer.id,
                    amount=split.monthly_amount,
                    currency=currency,
                    description=f"{description} ({index}/{number_of_months})",
                    note=note,
                    category=category,
                    is_installment=True,
                    total_installments=number_of_months,
                    installment_index=index,
                    parent_expense_id=parent.id,
                    due_day_of_month=due_day_of_month,
                    due_date=due_date,
                )
                ctx.db.add(child)
                children.append(child)
            await ctx.db.flush()
            
            for child in children:
                await ExpenseLedger._open_settlements(ctx, child, debtor_ids, split.per_participant_amount)
            
            await log_activity(
                ctx.db, team_id, AuditAction.ADDED_INSTALLMENT_PLAN,
                f"Added installment plan '{description}' for {currency} {parent.amount:.2f} over "
                f"{number_of_months} month(s): {currency} {split.monthly_amount:.2f}/month, "
                f"{currency} {split.per_participant_amount:.2f} per member",
                actor=payer,
                metadata={
                    "expense_id": parent.id,
                    "children": [child.id for child in children],
                    "monthly_amount": str(split.monthly_amount),
                    "per_participant_amount": str(split.per_participant_amount),
                },
            )
        
        logger.info("Installment plan %s created in team %s with %d children", parent.id, team_id, len(children))
        first_due = due_dates[0].isoformat() if due_dates else None
        await ctx.after_commit(team_id, [
            Notice.to(
                user, NotificationType.EXPENSE_ADDED,
                title=f"New installment plan in {team.name}",
                message=(
                    f"{payer.name} set up '{description}' over {number_of_months} month(s). "
                    f"You owe {currency} {split.per_participant_amount:.2f} per month, first due {first_due}."
                ),
                expense_id=parent.id, team_name=team.name, total_amount=parent.amount,
                your_share=split.per_participant_amount, deadline=first_due,
            )
            for member, user in members if user.id != payer.id
        ])
        return InstallmentPlan(parent=parent, children=children, split=split)
    
    @staticmethod
    async def _open_settlements(ctx: LedgerContext, expense: Expense, debtor_ids: List[int], share: Decimal) -> List[Settlement]:
        settlements = [
            Settlement(
                expense_id=expense.id,
                owed_by=user_id,
                amount_owed=share,
                netted_amount=Decimal(0),
                status=SettlementStatus.PENDING,
            )
            for user_id in debtor_ids
        ]
        ctx.db.add_all(settlements)
        await ctx.db.flush()
        for settlement in settlements:
            ctx.store.add_event(settlement, SettlementEventType.CREATED, ctx.actor.id)
        return settlements
    
    @staticmethod
    async def delete_expense(ctx: LedgerContext, expense_id: int) -> Expense:
        """
        Soft-delete an expense and its live settlements.
        
        Deleting a plan parent also deletes its remaining children; deleting
        a child leaves the rest of its plan alone.
        """
        expense = await ctx.store.find_expense_including_deleted(expense_id)
        if not expense:
            raise ResourceNotFoundError("Expense", expense_id)
        
        async with atomic(ctx.db):
            await ctx.store.lock_team(expense.team_id)
            # Another request may have deleted it while we waited on the lock
            await ctx.db.refresh(expense)
            await ctx.store.require_member(expense.team_id, ctx.actor.id)
            if expense.deleted_at is not None:
                raise ConflictError("Expense has already been deleted")
            
            now = datetime.now(timezone.utc)
            targets = [expense]
            if expense.is_plan_parent:
                targets.extend(await ctx.store.plan_children(expense.id))
            
            removed = 0
            for target in targets:
                target.deleted_at = now
                for settlement in await ctx.store.settlements_for_expense(target.id):
                    settlement.deleted_at = now
                    ctx.store.add_event(settlement, SettlementEventType.DELETED, ctx.actor.id, from_status=settlement.status)
                    removed += 1
            
            await log_activity(
                ctx.db, expense.team_id, AuditAction.DELETED_EXPENSE,
                f"Deleted expense '{expense.description}'",
                actor=ctx.actor,
                metadata={"expense_id": expense.id, "expenses": len(targets), "settlements": removed},
            )
        
        logger.info("Expense %s deleted (%d expense rows, %d settlements)", expense.id, len(targets), removed)
        await ctx.after_commit(expense.team_id)
        return expense
    
    @staticmethod
    async def update_expense(ctx: LedgerContext, expense_id: int, fields: Dict[str, Any]) -> Expense:
        """
        Edit an expense's description or note.
        
        Amounts are never editable: settlements computed from them may
        already be paid. Only the payer or a team admin may edit.
        """
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise InvalidInputError(
                "Only the description and note of an expense can be edited",
                details={"fields": sorted(unknown)}
            )
        if "description" in fields and not (fields["description"] or "").strip():
            raise InvalidInputError("Description is required", details={"field": "description"})
        
        async with atomic(ctx.db):
            expense = await ctx.store.get_expense(expense_id)
            membership = await ctx.store.require_member(expense.team_id, ctx.actor.id)
            if expense.paid_by != ctx.actor.id and membership.role != MemberRole.ADMIN:
                raise InsufficientPermissionsError("Only the payer or a team admin can edit this expense")
            
            before = expense.description
            for name, value in fields.items():
                setattr(expense, name, value)
            
            await log_activity(
                ctx.db, expense.team_id, AuditAction.UPDATED_EXPENSE,
                f"Updated expense '{before}'" + (
                    f" to '{expense.description}'" if expense.description != before else ""
                ),
                actor=ctx.actor,
                metadata={"expense_id": expense.id, "fields": sorted(fields)},
            )
        
        await ctx.after_commit(expense.team_id)
        return expense
    
    # --- Read views ---
    
    @staticmethod
    async def list_expenses(ctx: LedgerContext, team_id: int) -> List[ExpenseResponse]:
        await ctx.store.require_member(team_id, ctx.actor.id)
        expenses = await ctx.store.list_expenses(team_id)
        users = await ctx.store.users_by_id(e.paid_by for e in expenses)
        views = []
        for expense in expenses:
            view = ExpenseResponse.model_validate(expense)
            payer = users.get(expense.paid_by)
            view.paid_by_name = payer.name if payer else "Former Member"
            views.append(view)
        return views
    
    @staticmethod
    async def get_expense(ctx: LedgerContext, expense_id: int) -> ExpenseDetailResponse:
        expense = await ctx.store.get_expense(expense_id)
        await ctx.store.require_member(expense.team_id, ctx.actor.id)
        payer = (await ctx.store.users_by_id([expense.paid_by])).get(expense.paid_by)
        settlements = await ctx.store.settlements_for_expense(expense.id)
        detail = ExpenseDetailResponse.model_validate(expense)
        detail.paid_by_name = payer.name if payer else "Former Member"
        detail.settlements = [SettlementResponse.model_validate(s) for s in settlements]
        return detail
    
    @staticmethod
    async def expense_stats(ctx: LedgerContext, team_id: int) -> ExpenseStats:
        """
        Spend totals for the team dashboard.
        
        Plan children are left out of spend totals so a plan is counted
        once, through its parent.
        """
        await ctx.store.require_member(team_id, ctx.actor.id)
        
        async def fetch() -> dict:
            counted = active_expenses().where(
                Expense.team_id == team_id, Expense.parent_expense_id.is_(None)
            ).subquery()
            total, count = (await ctx.db.execute(
                select(func.coalesce(func.sum(counted.c.amount), 0), func.count(counted.c.id))
            )).one()
            
            now = datetime.now(timezone.utc)
            month_start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
            this_month = (await ctx.db.execute(
                select(func.coalesce(func.sum(counted.c.amount), 0)).where(counted.c.created_at >= month_start)
            )).scalar()
            
            rows = (await ctx.db.execute(active_settlements().where(Expense.team_id == team_id))).all()
            completed = sum(1 for settlement, _ in rows if settlement.status == SettlementStatus.PAID)
            
            total = Decimal(total)
            return {
                "total_spent": total,
                "this_month_spent": Decimal(this_month),
                "average_expense": (total / count) if count else Decimal(0),
                "expense_count": count,
                "settlements_completed": completed,
                "settlements_total": len(rows),
            }
        
        data = await CacheService.cached(CacheKeys.expense_stats(team_id), fetch, settings.stats_cache_ttl_seconds)
        return ExpenseStats(**data)
    
    @staticmethod
    async def category_totals(ctx: LedgerContext, team_id: int) -> List[CategoryTotal]:
        await ctx.store.require_member(team_id, ctx.actor.id)
        counted = active_expenses().where(
            Expense.team_id == team_id, Expense.parent_expense_id.is_(None)
        ).subquery()
        result = await ctx.db.execute(
            select(counted.c.category, func.sum(counted.c.amount), func.count(counted.c.id))
            .group_by(counted.c.category)
        )
        totals = [CategoryTotal(category=row[0], amount=Decimal(row[1]), count=row[2]) for row in result.all()]
        return sorted(totals, key=lambda t: t.amount, reverse=True)
