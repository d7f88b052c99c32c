"""
Mutual debt detection and netting.

Two members who owe each other can cancel the overlap without money
changing hands. Netting here conserves value: the net amount one owes
the other is the same before and after an agreement is applied.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

ZERO = Decimal(0)


@dataclass(frozen=True)
class Obligation:
    """One pending settlement seen from outside: who owes whom how much."""
    settlement_id: int
    debtor_id: int
    creditor_id: int
    amount: Decimal


@dataclass
class MutualDebt:
    counterparty_id: int
    user_owes: Decimal = ZERO
    counterparty_owes: Decimal = ZERO
    user_settlement_ids: List[int] = field(default_factory=list)
    counterparty_settlement_ids: List[int] = field(default_factory=list)

    @property
    def settlement_ids(self) -> List[int]:
        return self.user_settlement_ids + self.counterparty_settlement_ids

    @property
    def offset(self) -> Decimal:
        return min(self.user_owes, self.counterparty_owes)


def find_mutual_debts(user_id: int, obligations: Iterable[Obligation]) -> List[MutualDebt]:
    """
    Group obligations by counterparty, keeping those owed in both directions.
    """
    by_counterparty: Dict[int, MutualDebt] = {}
    for obligation in obligations:
        if obligation.debtor_id == user_id and obligation.creditor_id != user_id:
            debt = by_counterparty.setdefault(obligation.creditor_id, MutualDebt(obligation.creditor_id))
            debt.user_owes += obligation.amount
            debt.user_settlement_ids.append(obligation.settlement_id)
        elif obligation.creditor_id == user_id and obligation.debtor_id != user_id:
            debt = by_counterparty.setdefault(obligation.debtor_id, MutualDebt(obligation.debtor_id))
            debt.counterparty_owes += obligation.amount
            debt.counterparty_settlement_ids.append(obligation.settlement_id)
    
    mutual = [d for d in by_counterparty.values() if d.user_owes > 0 and d.counterparty_owes > 0]
    for debt in mutual:
        debt.user_settlement_ids.sort()
        debt.counterparty_settlement_ids.sort()
    return sorted(mutual, key=lambda d: d.counterparty_id)


@dataclass(frozen=True)
class NettingLeg:
    settlement_id: int
    amount: Decimal


@dataclass(frozen=True)
class NettingOutcome:
    settlement_id: int
    cleared: Decimal
    remaining: Decimal

    @property
    def fully_cleared(self) -> bool:
        return self.remaining == ZERO


@dataclass(frozen=True)
class NettingPlan:
    offset: Decimal
    outcomes: List[NettingOutcome]
    residual: Decimal
    residual_debtor: Optional[str]  # "proposer", "responder" or None when even

    def outcome_for(self, settlement_id: int) -> NettingOutcome:
        for outcome in self.outcomes:
            if outcome.settlement_id == settlement_id:
                return outcome
        raise KeyError(settlement_id)


def _consume(legs: Sequence[NettingLeg], budget: Decimal) -> List[NettingOutcome]:
    outcomes = []
    for leg in sorted(legs, key=lambda l: l.settlement_id):
        cleared = min(leg.amount, budget)
        budget -= cleared
        outcomes.append(NettingOutcome(leg.settlement_id, cleared, leg.amount - cleared))
    return outcomes


def plan_netting(proposer_legs: Sequence[NettingLeg], responder_legs: Sequence[NettingLeg]) -> NettingPlan:
    """
    Decide exactly how an accepted agreement changes each pinned settlement.
    
    The offset is the smaller of the two totals. The smaller side is cleared
    entirely; the larger side is cleared in settlement-id order until the
    offset is used up, leaving at most one settlement partly cleared. What
    remains outstanding is the net difference.
    """
    proposer_total = sum((leg.amount for leg in proposer_legs), ZERO)
    responder_total = sum((leg.amount for leg in responder_legs), ZERO)
    offset = min(proposer_total, responder_total)
    
    outcomes = _consume(proposer_legs, offset) + _consume(responder_legs, offset)
    
    if proposer_total > responder_total:
        residual_debtor = "proposer"
    elif responder_total > proposer_total:
        residual_debtor = "responder"
    else:
        residual_debtor = None
    
    return NettingPlan(
        offset=offset,
        outcomes=outcomes,
        residual=abs(proposer_total - responder_total),
        residual_debtor=residual_debtor,
    )
