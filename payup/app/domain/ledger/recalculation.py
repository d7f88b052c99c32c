"""
Recalculation planning.

Membership changes re-derive settlement amounts. The planner turns a
snapshot of one expense's settlements into an explicit list of mutations;
the caller validates the whole batch and applies it in one transaction.

Only plain pending rows are ever changed. Unconfirmed and paid rows hold
money already tendered or attested, and rows with netted_amount > 0 were
partly cleared by an agreement; both are left as they are.
"""

import enum
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from payup.app.core.exceptions import ConflictError, InvalidInputError
from payup.app.domain.ledger.split_calculator import even_share, stored_share
from payup.app.models.ledger_enums import SettlementStatus


class MutationKind(str, enum.Enum):
    UPDATE = "update"
    CREATE = "create"
    REVIVE = "revive"
    REMOVE = "remove"


@dataclass(frozen=True)
class SettlementSnapshot:
    id: int
    expense_id: int
    owed_by: int
    amount_owed: Decimal
    netted_amount: Decimal
    status: SettlementStatus
    is_deleted: bool = False

    @property
    def is_recalculable(self) -> bool:
        return (
            not self.is_deleted
            and self.status == SettlementStatus.PENDING
            and not self.netted_amount
        )


@dataclass(frozen=True)
class PlannedMutation:
    kind: MutationKind
    expense_id: int
    owed_by: int
    new_amount: Optional[Decimal] = None
    old_amount: Optional[Decimal] = None
    settlement_id: Optional[int] = None


@dataclass(frozen=True)
class ExpenseFacts:
    id: int
    paid_by: int
    amount: Decimal


def plan_expense_recalculation(
    expense: ExpenseFacts,
    settlements: Sequence[SettlementSnapshot],
    member_ids: Iterable[int],
    ensure_member_ids: Iterable[int],
    remove_departed: bool = False,
) -> List[PlannedMutation]:
    """
    Plan the settlement mutations for one expense.
    
    Args:
        expense: The expense being re-split
        settlements: Every settlement row of the expense, tombstoned ones included
        member_ids: Current team membership; its size is the new divisor
        ensure_member_ids: Members that must end up with a settlement row
        remove_departed: Tombstone pending rows of users no longer in member_ids
    """
    members = set(member_ids)
    new_share = stored_share(even_share(expense.amount, len(members)))
    
    mutations: List[PlannedMutation] = []
    active_debtors = set()
    tombstoned = {}
    
    for snapshot in settlements:
        if snapshot.is_deleted:
            tombstoned.setdefault(snapshot.owed_by, snapshot)
            continue
        active_debtors.add(snapshot.owed_by)
        if not snapshot.is_recalculable:
            continue
        if remove_departed and snapshot.owed_by not in members:
            mutations.append(PlannedMutation(
                MutationKind.REMOVE, expense.id, snapshot.owed_by,
                old_amount=snapshot.amount_owed, settlement_id=snapshot.id,
            ))
        elif stored_share(snapshot.amount_owed) != new_share:
            mutations.append(PlannedMutation(
                MutationKind.UPDATE, expense.id, snapshot.owed_by,
                new_amount=new_share, old_amount=snapshot.amount_owed, settlement_id=snapshot.id,
            ))
    
    for member_id in sorted(set(ensure_member_ids)):
        if member_id == expense.paid_by or member_id in active_debtors:
            continue
        previous = tombstoned.get(member_id)
        if previous is not None:
            mutations.append(PlannedMutation(
                MutationKind.REVIVE, expense.id, member_id,
                new_amount=new_share, old_amount=previous.amount_owed, settlement_id=previous.id,
            ))
        else:
            mutations.append(PlannedMutation(MutationKind.CREATE, expense.id, member_id, new_amount=new_share))
    
    return mutations


def validate_plan(mutations: Sequence[PlannedMutation], existing_pairs: Iterable[tuple]) -> None:
    """
    Reject a batch that would duplicate a settlement or write a non-positive amount.
    
    existing_pairs holds the (expense_id, owed_by) pairs of live rows.
    """
    live = set(existing_pairs)
    for mutation in mutations:
        if mutation.kind in (MutationKind.CREATE, MutationKind.REVIVE):
            pair = (mutation.expense_id, mutation.owed_by)
            if pair in live:
                raise ConflictError(
                    "Recalculation would duplicate a settlement",
                    details={"expense_id": mutation.expense_id}
                )
            live.add(pair)
        if mutation.kind != MutationKind.REMOVE and (mutation.new_amount is None or mutation.new_amount <= 0):
            raise InvalidInputError(
                "Recalculation produced a non-positive amount",
                details={"expense_id": mutation.expense_id}
            )
