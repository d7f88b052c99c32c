"""
Mutual debt detection and the conserving netting plan.
"""

import random
from decimal import Decimal

import pytest

from payup.app.domain.ledger.netting import NettingLeg, Obligation, find_mutual_debts, plan_netting

ALICE, BOB, CAROL = 1, 2, 3


def test_find_mutual_debts_groups_by_counterparty():
    obligations = [
        Obligation(1, ALICE, BOB, Decimal("50")),
        Obligation(2, BOB, ALICE, Decimal("100")),
        Obligation(3, ALICE, BOB, Decimal("20")),
        Obligation(4, CAROL, ALICE, Decimal("30")),  # one direction only
    ]
    debts = find_mutual_debts(ALICE, obligations)
    assert len(debts) == 1
    debt = debts[0]
    assert debt.counterparty_id == BOB
    assert debt.user_owes == Decimal("70")
    assert debt.counterparty_owes == Decimal("100")
    assert debt.user_settlement_ids == [1, 3]
    assert debt.counterparty_settlement_ids == [2]
    assert debt.offset == Decimal("70")


def test_no_mutual_debt_without_both_directions():
    assert find_mutual_debts(ALICE, [Obligation(1, ALICE, BOB, Decimal("10"))]) == []


def test_smaller_side_is_cleared_and_larger_side_straddles():
    plan = plan_netting(
        [NettingLeg(1, Decimal("50"))],
        [NettingLeg(2, Decimal("30")), NettingLeg(3, Decimal("40"))],
    )
    assert plan.offset == Decimal("50")
    assert plan.outcome_for(1).fully_cleared
    assert plan.outcome_for(2).fully_cleared
    straddling = plan.outcome_for(3)
    assert straddling.cleared == Decimal("20")
    assert straddling.remaining == Decimal("20")
    assert plan.residual == Decimal("20")
    assert plan.residual_debtor == "responder"


def test_even_sides_clear_everything():
    plan = plan_netting([NettingLeg(1, Decimal("25"))], [NettingLeg(2, Decimal("25"))])
    assert all(o.fully_cleared for o in plan.outcomes)
    assert plan.residual == 0
    assert plan.residual_debtor is None


def test_legs_beyond_the_offset_are_untouched():
    plan = plan_netting(
        [NettingLeg(1, Decimal("10"))],
        [NettingLeg(5, Decimal("10")), NettingLeg(4, Decimal("30"))],
    )
    # consumed in id order: 4 first
    assert plan.outcome_for(4).cleared == Decimal("10")
    assert plan.outcome_for(5).cleared == 0
    assert plan.outcome_for(5).remaining == Decimal("10")


def _legs(rng, first_id, count):
    return [
        NettingLeg(first_id + i, Decimal(rng.randint(1, 50000)) / 100)
        for i in range(count)
    ]


@pytest.mark.parametrize("seed", range(25))
def test_netting_conserves_net_position(seed):
    rng = random.Random(seed)
    proposer = _legs(rng, 1, rng.randint(1, 5))
    responder = _legs(rng, 100, rng.randint(1, 5))
    plan = plan_netting(proposer, responder)
    
    before = sum(l.amount for l in proposer) - sum(l.amount for l in responder)
    remaining = {o.settlement_id: o.remaining for o in plan.outcomes}
    after = sum(remaining[l.settlement_id] for l in proposer) - sum(remaining[l.settlement_id] for l in responder)
    
    assert after == before
    assert sum(o.cleared for o in plan.outcomes) == plan.offset * 2
    assert all(Decimal(0) <= o.remaining for o in plan.outcomes)
    # at most one settlement is left partly cleared
    assert sum(1 for o in plan.outcomes if o.cleared and o.remaining) <= 1
    # the smaller side is always cleared entirely
    smaller = proposer if sum(l.amount for l in proposer) <= sum(l.amount for l in responder) else responder
    assert all(remaining[l.settlement_id] == 0 for l in smaller)
