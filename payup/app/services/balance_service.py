"""
Balance Aggregator.

Derives a member's position from live settlement rows on every call.
Nothing here is cached: a balance read always reflects the latest commit.
"""

from decimal import Decimal

from payup.app.db.ledger_store import active_settlements
from payup.app.models.expense import Expense
from payup.app.models.ledger_enums import SettlementStatus
from payup.app.models.settlement import Settlement
from payup.app.schemas.balance import TeamBalance
from payup.app.services.context import LedgerContext


class BalanceService:
    
    @staticmethod
    async def team_balance(ctx: LedgerContext, team_id: int) -> TeamBalance:
        """
        you_owe / owed_to_you count pending settlements only. Payments
        reported but not yet confirmed are summed separately.
        """
        await ctx.store.require_member(team_id, ctx.actor.id)
        user_id = ctx.actor.id
        
        result = await ctx.db.execute(
            active_settlements().where(
                Expense.team_id == team_id,
                Settlement.status.in_([SettlementStatus.PENDING, SettlementStatus.UNCONFIRMED]),
                (Settlement.owed_by == user_id) | (Expense.paid_by == user_id),
            )
        )
        
        zero = Decimal(0)
        you_owe, owed_to_you = zero, zero
        you_owe_unconfirmed, owed_to_you_unconfirmed = zero, zero
        creditors, debtors = set(), set()
        
        for settlement, expense in result.all():
            amount = Decimal(settlement.amount_owed)
            pending = settlement.status == SettlementStatus.PENDING
            if settlement.owed_by == user_id and expense.paid_by != user_id:
                if pending:
                    you_owe += amount
                    creditors.add(expense.paid_by)
                else:
                    you_owe_unconfirmed += amount
            elif expense.paid_by == user_id and settlement.owed_by != user_id:
                if pending:
                    owed_to_you += amount
                    debtors.add(settlement.owed_by)
                else:
                    owed_to_you_unconfirmed += amount
        
        return TeamBalance(
            team_id=team_id,
            user_id=user_id,
            you_owe=you_owe,
            owed_to_you=owed_to_you,
            you_owe_count=len(creditors),
            owed_to_you_count=len(debtors),
            you_owe_unconfirmed=you_owe_unconfirmed,
            owed_to_you_unconfirmed=owed_to_you_unconfirmed,
            net_balance=owed_to_you - you_owe,
        )
