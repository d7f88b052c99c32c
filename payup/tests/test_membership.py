"""
Membership changes and the settlement recalculation they trigger.
"""

import pytest
from decimal import Decimal
from sqlalchemy import select

from payup.app.core.exceptions import ConflictError, InsufficientPermissionsError, ResourceNotFoundError
from payup.app.db.ledger_store import LedgerStore
from payup.app.domain.ledger.settlement_state import SettlementAction
from payup.app.models.enums import MemberRole
from payup.app.models.ledger_enums import PaymentMethod, SettlementEventType, SettlementStatus
from payup.app.models.settlement import Settlement, SettlementEvent
from payup.app.models.team import TeamMember
from payup.app.services.expense_ledger import ExpenseLedger
from payup.app.services.membership import MembershipService
from payup.app.services.settlement_service import SettlementService


async def owed(db_session, expense_id):
    """{user_id: settlement} for the live settlements of an expense."""
    return {s.owed_by: s for s in await LedgerStore(db_session).settlements_for_expense(expense_id)}


async def test_create_team_makes_creator_admin(users, ctx_for, db_session):
    alice = users[0]
    team = await MembershipService.create_team(ctx_for(alice), "Robotics")
    
    assert len(team.invite_code) == 6
    assert team.invite_code == team.invite_code.upper()
    membership = await LedgerStore(db_session).get_membership(team.id, alice.id)
    assert membership.role == MemberRole.ADMIN


async def test_join_scenario(users, team, ctx_for, db_session):
    """A pays 300 in a team of 3; D joins; B pays; C and D stay pending at 75."""
    alice, bob, carol, dave = users
    expense = await ExpenseLedger.create_expense(ctx_for(alice), team.id, Decimal("300"), "Venue")
    rows = await owed(db_session, expense.id)
    assert rows[bob.id].amount_owed == rows[carol.id].amount_owed == Decimal("100")
    
    change = await MembershipService.join_team(ctx_for(dave), team.invite_code)
    assert change.expenses_recalculated == 1
    assert change.settlements_updated == 2
    assert change.settlements_created == 1
    
    rows = await owed(db_session, expense.id)
    assert set(rows) == {bob.id, carol.id, dave.id}
    assert all(s.amount_owed == Decimal("75") for s in rows.values())
    assert alice.id not in rows
    
    await SettlementService.mark_paid(ctx_for(alice), rows[bob.id].id)
    rows = await owed(db_session, expense.id)
    assert rows[bob.id].status == SettlementStatus.PAID
    assert rows[carol.id].status == rows[dave.id].status == SettlementStatus.PENDING
    assert rows[carol.id].amount_owed == rows[dave.id].amount_owed == Decimal("75")


async def test_join_leaves_tendered_settlements_alone(users, team, ctx_for, db_session):
    alice, bob, carol, dave = users
    expense = await ExpenseLedger.create_expense(ctx_for(alice), team.id, Decimal("300"), "Venue")
    rows = await owed(db_session, expense.id)
    await SettlementService.submit_payment(ctx_for(bob), rows[bob.id].id, PaymentMethod.GCASH, "https://proof.example/b")
    
    await MembershipService.join_team(ctx_for(dave), team.invite_code)
    
    rows = await owed(db_session, expense.id)
    assert rows[bob.id].status == SettlementStatus.UNCONFIRMED
    assert rows[bob.id].amount_owed == Decimal("100")
    assert rows[carol.id].amount_owed == Decimal("75")
    assert rows[dave.id].amount_owed == Decimal("75")


async def test_expenses_without_pending_settlements_are_skipped(users, team, ctx_for, db_session):
    alice, bob, carol, dave = users
    expense = await ExpenseLedger.create_expense(ctx_for(alice), team.id, Decimal("300"), "Venue")
    rows = await owed(db_session, expense.id)
    await SettlementService.batch_transition(
        ctx_for(alice), [rows[bob.id].id, rows[carol.id].id], SettlementAction.MARK_PAID
    )
    
    change = await MembershipService.join_team(ctx_for(dave), team.invite_code)
    
    assert change.expenses_recalculated == 0
    assert dave.id not in await owed(db_session, expense.id)



async def test_joiner_never_owes_on_own_expense(users, team, ctx_for, db_session):
    """A member who paid, left and rejoined gets no row on their own expense."""
    alice, bob, carol, dave = users
    expense = await ExpenseLedger.create_expense(ctx_for(bob), team.id, Decimal("300"), "Venue")
    await MembershipService.leave_team(ctx_for(bob), team.id)
    
    change = await MembershipService.join_team(ctx_for(bob), team.invite_code)
    
    assert change.expenses_recalculated == 0
    assert set(await owed(db_session, expense.id)) == {alice.id, carol.id}


async def test_admin_add_recalculates(users, team, ctx_for, db_session):
    alice, bob, carol, dave = users
    expense = await ExpenseLedger.create_expense(ctx_for(bob), team.id, Decimal("300"), "Venue")
    
    change = await MembershipService.add_member(ctx_for(alice), team.id, dave.id)
    
    assert change.settlements_created == 1
    rows = await owed(db_session, expense.id)
    assert set(rows) == {alice.id, carol.id, dave.id}
    assert all(s.amount_owed == Decimal("75") for s in rows.values())


async def test_only_admins_add_members(users, team, ctx_for):
    bob, dave = users[1], users[3]
    with pytest.raises(InsufficientPermissionsError):
        await MembershipService.add_member(ctx_for(bob), team.id, dave.id)


async def test_joining_twice_conflicts(users, team, ctx_for):
    with pytest.raises(ConflictError):
        await MembershipService.join_team(ctx_for(users[1]), team.invite_code)


async def test_unknown_invite_code(users, team, ctx_for):
    with pytest.raises(ResourceNotFoundError):
        await MembershipService.join_team(ctx_for(users[3]), "NOPE00")


async def test_invite_code_is_case_insensitive(users, team, ctx_for):
    change = await MembershipService.join_team(ctx_for(users[3]), team.invite_code.lower())
    assert change.user_id == users[3].id


async def test_recalculation_is_all_or_nothing(users, team, ctx_for, db_session, mocker):
    alice, bob, carol, dave = users
    expense = await ExpenseLedger.create_expense(ctx_for(alice), team.id, Decimal("300"), "Venue")
    expense_id, team_id, dave_id = expense.id, team.id, dave.id
    mocker.patch("payup.app.services.membership.log_activity", side_effect=RuntimeError("audit store down"))
    
    with pytest.raises(RuntimeError):
        await MembershipService.join_team(ctx_for(dave), team.invite_code)
    
    rows = (await db_session.execute(
        select(Settlement).where(Settlement.expense_id == expense_id)
    )).scalars().all()
    assert len(rows) == 2
    assert all(s.amount_owed == Decimal("100") for s in rows)
    membership = (await db_session.execute(
        select(TeamMember).where(TeamMember.team_id == team_id, TeamMember.user_id == dave_id)
    )).scalar_one_or_none()
    assert membership is None


async def test_member_can_leave(users, team, ctx_for, db_session):
    carol = users[2]
    await MembershipService.leave_team(ctx_for(carol), team.id)
    assert await LedgerStore(db_session).get_membership(team.id, carol.id) is None


async def test_last_admin_cannot_leave_while_members_remain(users, team, ctx_for):
    with pytest.raises(ConflictError):
        await MembershipService.leave_team(ctx_for(users[0]), team.id)


async def test_last_admin_can_leave_an_empty_team(users, ctx_for):
    alice = users[0]
    team = await MembershipService.create_team(ctx_for(alice), "Solo")
    await MembershipService.leave_team(ctx_for(alice), team.id)


async def test_admin_removes_member_and_notifies(users, team, ctx_for, notifier, db_session):
    alice, bob = users[0], users[1]
    await MembershipService.remove_member(ctx_for(alice), team.id, bob.id)
    assert await LedgerStore(db_session).get_membership(team.id, bob.id) is None
    assert notifier.sent_to(bob)


async def test_remove_unknown_member(users, team, ctx_for):
    with pytest.raises(ResourceNotFoundError):
        await MembershipService.remove_member(ctx_for(users[0]), team.id, users[3].id)


async def test_maintenance_recalculation_converges(users, team, ctx_for, db_session):
    alice, bob, carol, dave = users
    expense = await ExpenseLedger.create_expense(ctx_for(alice), team.id, Decimal("300"), "Venue")
    await MembershipService.leave_team(ctx_for(bob), team.id)
    
    report = await MembershipService.maintenance_recalculate(ctx_for(alice), team.id)
    
    assert report.member_count == 2
    assert report.expenses_processed == 1
    assert (report.removed, report.updated, report.created) == (1, 1, 0)
    rows = await owed(db_session, expense.id)
    assert set(rows) == {carol.id}
    assert rows[carol.id].amount_owed == Decimal("150")
    
    # a second run has nothing left to do
    report = await MembershipService.maintenance_recalculate(ctx_for(alice), team.id)
    assert (report.removed, report.updated, report.created) == (0, 0, 0)


async def test_maintenance_keeps_paid_rows_of_departed_members(users, team, ctx_for, db_session):
    alice, bob, carol, _ = users
    expense = await ExpenseLedger.create_expense(ctx_for(alice), team.id, Decimal("300"), "Venue")
    rows = await owed(db_session, expense.id)
    await SettlementService.mark_paid(ctx_for(alice), rows[bob.id].id)
    await MembershipService.leave_team(ctx_for(bob), team.id)
    
    report = await MembershipService.maintenance_recalculate(ctx_for(alice), team.id)
    
    assert report.removed == 0
    rows = await owed(db_session, expense.id)
    assert rows[bob.id].status == SettlementStatus.PAID
    assert rows[bob.id].amount_owed == Decimal("100")


async def test_rejoining_member_gets_tombstoned_row_back(users, team, ctx_for, db_session):
    alice, bob, carol, _ = users
    expense = await ExpenseLedger.create_expense(ctx_for(alice), team.id, Decimal("300"), "Venue")
    original_id = (await owed(db_session, expense.id))[bob.id].id
    await MembershipService.leave_team(ctx_for(bob), team.id)
    await MembershipService.maintenance_recalculate(ctx_for(alice), team.id)
    
    change = await MembershipService.join_team(ctx_for(bob), team.invite_code)
    
    assert change.settlements_created == 1
    rows = await owed(db_session, expense.id)
    assert rows[bob.id].id == original_id
    assert rows[bob.id].amount_owed == Decimal("100")
    assert rows[carol.id].amount_owed == Decimal("100")
    
    events = (await db_session.execute(
        select(SettlementEvent.event_type)
        .where(SettlementEvent.settlement_id == original_id)
        .order_by(SettlementEvent.id)
    )).scalars().all()
    assert events == [SettlementEventType.CREATED, SettlementEventType.REMOVED, SettlementEventType.REVIVED]


async def test_non_admin_cannot_run_maintenance(users, team, ctx_for):
    with pytest.raises(InsufficientPermissionsError):
        await MembershipService.maintenance_recalculate(ctx_for(users[1]), team.id)


async def test_list_members(users, team, ctx_for):
    members = await MembershipService.list_members(ctx_for(users[1]), team.id)
    assert [m.name for m in members] == ["Alice", "Bob", "Carol"]
    assert members[0].role == MemberRole.ADMIN


async def test_maintenance_is_a_no_op_for_an_uneven_split(users, team, ctx_for, db_session):
    alice, bob, carol, _ = users
    expense = await ExpenseLedger.create_expense(ctx_for(alice), team.id, Decimal("100"), "Snacks")
    
    first = await MembershipService.maintenance_recalculate(ctx_for(alice), team.id)
    second = await MembershipService.maintenance_recalculate(ctx_for(alice), team.id)
    
    assert (first.removed, first.updated, first.created) == (0, 0, 0)
    assert (second.removed, second.updated, second.created) == (0, 0, 0)
    recalculated = (await db_session.execute(
        select(SettlementEvent.id).where(SettlementEvent.event_type == SettlementEventType.RECALCULATED)
    )).scalars().all()
    assert recalculated == []
    rows = await owed(db_session, expense.id)
    assert rows[bob.id].amount_owed == Decimal("33.33333333")
