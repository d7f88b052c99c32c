"""
Ledger Store.

Every Expense/Settlement read goes through here. Readers exclude
soft-deleted rows unless their name says otherwise, so a query built
elsewhere cannot forget the tombstone filter.
"""

from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from payup.app.core.exceptions import InsufficientPermissionsError, ResourceNotFoundError
from payup.app.domain.ledger.netting import Obligation
from payup.app.models.enums import MemberRole
from payup.app.models.expense import Expense
from payup.app.models.ledger_enums import PaymentMethod, SettlementEventType, SettlementStatus
from payup.app.models.settlement import Settlement, SettlementEvent
from payup.app.models.team import Team, TeamMember
from payup.app.models.user import User


def active_expenses():
    """SELECT over non-deleted expenses."""
    return select(Expense).where(Expense.deleted_at.is_(None))


def active_settlements():
    """SELECT (Settlement, Expense) pairs where neither row is deleted."""
    return (
        select(Settlement, Expense)
        .join(Expense, Expense.id == Settlement.expense_id)
        .where(Settlement.deleted_at.is_(None), Expense.deleted_at.is_(None))
    )


class LedgerStore:
    
    def __init__(self, db: AsyncSession):
        self.db = db
    
    # --- Teams & members ---
    
    async def get_team(self, team_id: int) -> Team:
        team = await self.db.get(Team, team_id)
        if not team:
            raise ResourceNotFoundError("Team", team_id)
        return team
    
    async def lock_team(self, team_id: int) -> Team:
        """
        Take the team row lock for the current transaction.
        
        Multi-row mutations on one team serialize on this lock.
        """
        result = await self.db.execute(
            select(Team).where(Team.id == team_id).with_for_update()
        )
        team = result.scalar_one_or_none()
        if not team:
            raise ResourceNotFoundError("Team", team_id)
        return team
    
    async def get_team_by_code(self, invite_code: str) -> Optional[Team]:
        result = await self.db.execute(select(Team).where(Team.invite_code == invite_code))
        return result.scalar_one_or_none()
    
    async def get_membership(self, team_id: int, user_id: int) -> Optional[TeamMember]:
        result = await self.db.execute(
            select(TeamMember).where(TeamMember.team_id == team_id, TeamMember.user_id == user_id)
        )
        return result.scalar_one_or_none()
    
    async def require_member(self, team_id: int, user_id: int) -> TeamMember:
        membership = await self.get_membership(team_id, user_id)
        if not membership:
            raise InsufficientPermissionsError("Not a member of this team")
        return membership
    
    async def require_admin(self, team_id: int, user_id: int) -> TeamMember:
        membership = await self.require_member(team_id, user_id)
        if membership.role != MemberRole.ADMIN:
            raise InsufficientPermissionsError("Team admin access required")
        return membership
    
    async def member_ids(self, team_id: int) -> List[int]:
        result = await self.db.execute(
            select(TeamMember.user_id).where(TeamMember.team_id == team_id).order_by(TeamMember.user_id)
        )
        return list(result.scalars().all())
    
    async def members_with_users(self, team_id: int) -> List[Tuple[TeamMember, User]]:
        result = await self.db.execute(
            select(TeamMember, User)
            .join(User, User.id == TeamMember.user_id)
            .where(TeamMember.team_id == team_id)
            .order_by(TeamMember.joined_at, TeamMember.id)
        )
        return list(result.all())
    
    async def count_admins(self, team_id: int) -> int:
        result = await self.db.execute(
            select(func.count(TeamMember.id)).where(
                TeamMember.team_id == team_id, TeamMember.role == MemberRole.ADMIN
            )
        )
        return result.scalar() or 0
    
    # --- Users ---
    
    async def get_user(self, user_id: int) -> User:
        user = await self.db.get(User, user_id)
        if not user:
            raise ResourceNotFoundError("User", user_id)
        return user
    
    async def users_by_id(self, user_ids: Iterable[int]) -> Dict[int, User]:
        ids = set(user_ids)
        if not ids:
            return {}
        result = await self.db.execute(select(User).where(User.id.in_(ids)))
        return {user.id: user for user in result.scalars().all()}
    
    # --- Expenses ---
    
    async def get_expense(self, expense_id: int) -> Expense:
        result = await self.db.execute(active_expenses().where(Expense.id == expense_id))
        expense = result.scalar_one_or_none()
        if not expense:
            raise ResourceNotFoundError("Expense", expense_id)
        return expense
    
    async def find_expense_including_deleted(self, expense_id: int) -> Optional[Expense]:
        return await self.db.get(Expense, expense_id)
    
    async def list_expenses(self, team_id: int) -> List[Expense]:
        result = await self.db.execute(
            active_expenses()
            .where(Expense.team_id == team_id)
            .order_by(Expense.created_at.desc(), Expense.id.desc())
        )
        return list(result.scalars().all())
    
    async def plan_children(self, parent_id: int) -> List[Expense]:
        result = await self.db.execute(
            active_expenses()
            .where(Expense.parent_expense_id == parent_id)
            .order_by(Expense.installment_index)
        )
        return list(result.scalars().all())
    
    async def expenses_with_pending(self, team_id: int, exclude_payer_id: Optional[int] = None) -> List[Expense]:
        """Non-deleted team expenses with at least one pending settlement."""
        pending = (
            select(Settlement.expense_id)
            .where(Settlement.deleted_at.is_(None), Settlement.status == SettlementStatus.PENDING)
        )
        query = (
            active_expenses()
            .where(Expense.team_id == team_id, Expense.id.in_(pending))
            .order_by(Expense.id)
        )
        if exclude_payer_id is not None:
            query = query.where(Expense.paid_by != exclude_payer_id)
        result = await self.db.execute(query)
        return list(result.scalars().all())
    
    # --- Settlements ---
    
    async def get_settlement(self, settlement_id: int) -> Tuple[Settlement, Expense]:
        result = await self.db.execute(active_settlements().where(Settlement.id == settlement_id))
        row = result.first()
        if not row:
            raise ResourceNotFoundError("Settlement", settlement_id)
        return row[0], row[1]
    
    async def get_settlements(self, settlement_ids: Sequence[int]) -> List[Tuple[Settlement, Expense]]:
        """Live settlements for ids, in the order given. Any missing id is NotFound."""
        result = await self.db.execute(active_settlements().where(Settlement.id.in_(set(settlement_ids))))
        rows = {row[0].id: (row[0], row[1]) for row in result.all()}
        missing = [sid for sid in settlement_ids if sid not in rows]
        if missing:
            raise ResourceNotFoundError("Settlement", missing[0])
        return [rows[sid] for sid in settlement_ids]
    
    async def settlements_for_expense(self, expense_id: int) -> List[Settlement]:
        result = await self.db.execute(
            select(Settlement)
            .where(Settlement.expense_id == expense_id, Settlement.deleted_at.is_(None))
            .order_by(Settlement.id)
        )
        return list(result.scalars().all())
    
    async def settlement_rows_including_deleted(self, expense_ids: Sequence[int]) -> Dict[int, List[Settlement]]:
        """
        Every settlement row of the given expenses, tombstones included.
        
        Only recalculation needs tombstones, to revive a row instead of
        inserting a duplicate (expense, member) pair.
        """
        grouped: Dict[int, List[Settlement]] = {expense_id: [] for expense_id in expense_ids}
        if not expense_ids:
            return grouped
        result = await self.db.execute(
            select(Settlement).where(Settlement.expense_id.in_(expense_ids)).order_by(Settlement.id)
        )
        for settlement in result.scalars().all():
            grouped[settlement.expense_id].append(settlement)
        return grouped
    
    async def team_settlements(self, team_id: int) -> List[Tuple[Settlement, Expense]]:
        result = await self.db.execute(
            active_settlements()
            .where(Expense.team_id == team_id)
            .order_by(Settlement.created_at.desc(), Settlement.id.desc())
        )
        return [(row[0], row[1]) for row in result.all()]
    
    async def pending_obligations(self, team_id: int, user_id: int) -> List[Obligation]:
        """Pending settlements in the team where user is debtor or creditor."""
        result = await self.db.execute(
            active_settlements().where(
                Expense.team_id == team_id,
                Settlement.status == SettlementStatus.PENDING,
                (Settlement.owed_by == user_id) | (Expense.paid_by == user_id),
            )
        )
        return [
            Obligation(
                settlement_id=settlement.id,
                debtor_id=settlement.owed_by,
                creditor_id=expense.paid_by,
                amount=Decimal(settlement.amount_owed),
            )
            for settlement, expense in result.all()
        ]
    
    async def events_for(self, settlement_id: int) -> List[SettlementEvent]:
        result = await self.db.execute(
            select(SettlementEvent)
            .where(SettlementEvent.settlement_id == settlement_id)
            .order_by(SettlementEvent.id)
        )
        return list(result.scalars().all())
    
    def add_event(
        self,
        settlement: Settlement,
        event_type: SettlementEventType,
        actor_id: Optional[int],
        from_status: Optional[SettlementStatus] = None,
        amount: Optional[Decimal] = None,
        note: Optional[str] = None,
        payment_method: Optional[PaymentMethod] = None,
        proof_url: Optional[str] = None,
    ) -> SettlementEvent:
        """
        Append a history entry capturing the row as it is now.
        
        payment_method and proof_url override the row values, so a rejection
        can record the proof it is discarding.
        """
        event = SettlementEvent(
            settlement_id=settlement.id,
            actor_id=actor_id,
            event_type=event_type,
            from_status=from_status,
            to_status=settlement.status,
            amount=settlement.amount_owed if amount is None else amount,
            payment_method=payment_method or settlement.payment_method,
            proof_url=proof_url or settlement.proof_url,
            note=note,
        )
        self.db.add(event)
        return event
