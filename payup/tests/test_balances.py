"""
Balance aggregation from live settlement rows.
"""

import pytest
from decimal import Decimal

from payup.app.core.exceptions import InsufficientPermissionsError
from payup.app.db.ledger_store import LedgerStore
from payup.app.models.ledger_enums import PaymentMethod
from payup.app.services.balance_service import BalanceService
from payup.app.services.expense_ledger import ExpenseLedger
from payup.app.services.settlement_service import SettlementService


async def test_balances_after_expense(users, team, ctx_for):
    alice, bob = users[0], users[1]
    await ExpenseLedger.create_expense(ctx_for(alice), team.id, Decimal("300"), "Venue")
    
    bob_balance = await BalanceService.team_balance(ctx_for(bob), team.id)
    assert bob_balance.you_owe == Decimal("100")
    assert bob_balance.you_owe_count == 1
    assert bob_balance.owed_to_you == 0
    assert bob_balance.net_balance == Decimal("-100")
    
    alice_balance = await BalanceService.team_balance(ctx_for(alice), team.id)
    assert alice_balance.owed_to_you == Decimal("200")
    assert alice_balance.owed_to_you_count == 2
    assert alice_balance.you_owe == 0
    assert alice_balance.net_balance == Decimal("200")


async def test_counterparty_counts_are_distinct(users, team, ctx_for):
    alice, bob = users[0], users[1]
    await ExpenseLedger.create_expense(ctx_for(alice), team.id, Decimal("30"), "Coffee")
    await ExpenseLedger.create_expense(ctx_for(alice), team.id, Decimal("60"), "Lunch")
    
    balance = await BalanceService.team_balance(ctx_for(bob), team.id)
    assert balance.you_owe == Decimal("30")
    assert balance.you_owe_count == 1


async def test_unconfirmed_payments_leave_the_headline_figures(users, team, ctx_for, db_session):
    alice, bob = users[0], users[1]
    expense = await ExpenseLedger.create_expense(ctx_for(alice), team.id, Decimal("300"), "Venue")
    settlement = next(
        s for s in await LedgerStore(db_session).settlements_for_expense(expense.id) if s.owed_by == bob.id
    )
    
    await SettlementService.submit_payment(ctx_for(bob), settlement.id, PaymentMethod.CASH)
    
    bob_balance = await BalanceService.team_balance(ctx_for(bob), team.id)
    assert bob_balance.you_owe == 0
    assert bob_balance.you_owe_unconfirmed == Decimal("100")
    alice_balance = await BalanceService.team_balance(ctx_for(alice), team.id)
    assert alice_balance.owed_to_you == Decimal("100")
    assert alice_balance.owed_to_you_unconfirmed == Decimal("100")
    
    await SettlementService.verify_payment(ctx_for(alice), settlement.id)
    
    alice_balance = await BalanceService.team_balance(ctx_for(alice), team.id)
    assert alice_balance.owed_to_you == Decimal("100")
    assert alice_balance.owed_to_you_unconfirmed == 0


async def test_balance_reflects_each_committed_change(users, team, ctx_for, db_session):
    alice, bob = users[0], users[1]
    expense = await ExpenseLedger.create_expense(ctx_for(alice), team.id, Decimal("300"), "Venue")
    assert (await BalanceService.team_balance(ctx_for(bob), team.id)).you_owe == Decimal("100")
    
    await ExpenseLedger.delete_expense(ctx_for(alice), expense.id)
    assert (await BalanceService.team_balance(ctx_for(bob), team.id)).you_owe == 0


async def test_balance_requires_membership(users, team, ctx_for):
    with pytest.raises(InsufficientPermissionsError):
        await BalanceService.team_balance(ctx_for(users[3]), team.id)
