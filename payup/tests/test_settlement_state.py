"""
Settlement transition rules, checked without a database.
"""

import pytest
from datetime import datetime, timezone
from types import SimpleNamespace

from payup.app.core.exceptions import ConflictError, InsufficientPermissionsError, InvalidInputError
from payup.app.domain.ledger.settlement_state import (
    SettlementAction, TRANSITIONS, apply_transition, check_authority, check_status,
)
from payup.app.models.ledger_enums import PaymentMethod, SettlementStatus

CREDITOR, DEBTOR, STRANGER = 1, 2, 3
NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


def make_settlement(status=SettlementStatus.PENDING, **fields):
    values = dict(status=status, payment_method=None, proof_url=None, paid_at=None)
    values.update(fields)
    return SimpleNamespace(**values)


@pytest.mark.parametrize("action,allowed", [
    (SettlementAction.MARK_PAID, CREDITOR),
    (SettlementAction.SUBMIT, DEBTOR),
    (SettlementAction.VERIFY, CREDITOR),
    (SettlementAction.REJECT, CREDITOR),
])
def test_only_the_allowed_party_may_act(action, allowed):
    assert check_authority(action, allowed, CREDITOR, DEBTOR) is TRANSITIONS[action]
    for other in {CREDITOR, DEBTOR, STRANGER} - {allowed}:
        with pytest.raises(InsufficientPermissionsError):
            check_authority(action, other, CREDITOR, DEBTOR)


@pytest.mark.parametrize("action,wrong_status", [
    (SettlementAction.VERIFY, SettlementStatus.PENDING),
    (SettlementAction.VERIFY, SettlementStatus.PAID),
    (SettlementAction.REJECT, SettlementStatus.PENDING),
    (SettlementAction.REJECT, SettlementStatus.PAID),
    (SettlementAction.MARK_PAID, SettlementStatus.UNCONFIRMED),
    (SettlementAction.SUBMIT, SettlementStatus.PAID),
])
def test_transitions_from_wrong_status_conflict(action, wrong_status):
    with pytest.raises(ConflictError):
        check_status(TRANSITIONS[action], wrong_status)


def test_mark_paid_defaults_to_cash_and_stamps_paid_at():
    settlement = make_settlement()
    apply_transition(settlement, TRANSITIONS[SettlementAction.MARK_PAID], NOW)
    assert settlement.status == SettlementStatus.PAID
    assert settlement.payment_method == PaymentMethod.CASH
    assert settlement.paid_at == NOW


def test_submit_records_method_and_proof_without_paid_at():
    settlement = make_settlement()
    apply_transition(
        settlement, TRANSITIONS[SettlementAction.SUBMIT], NOW,
        payment_method=PaymentMethod.GCASH, proof_url="https://proof.example/1.png",
    )
    assert settlement.status == SettlementStatus.UNCONFIRMED
    assert settlement.payment_method == PaymentMethod.GCASH
    assert settlement.proof_url == "https://proof.example/1.png"
    assert settlement.paid_at is None


@pytest.mark.parametrize("method", [None, PaymentMethod.NETTED])
def test_submit_needs_a_real_payment_method(method):
    with pytest.raises(InvalidInputError):
        apply_transition(make_settlement(), TRANSITIONS[SettlementAction.SUBMIT], NOW, payment_method=method)


def test_reject_reverts_to_pending_and_clears_proof():
    settlement = make_settlement(
        SettlementStatus.UNCONFIRMED, payment_method=PaymentMethod.GCASH, proof_url="https://proof.example/2.png"
    )
    apply_transition(settlement, TRANSITIONS[SettlementAction.REJECT], NOW)
    assert settlement.status == SettlementStatus.PENDING
    assert settlement.payment_method is None
    assert settlement.proof_url is None
    assert settlement.paid_at is None


def test_verify_stamps_paid_at():
    settlement = make_settlement(SettlementStatus.UNCONFIRMED, payment_method=PaymentMethod.CASH)
    apply_transition(settlement, TRANSITIONS[SettlementAction.VERIFY], NOW)
    assert settlement.status == SettlementStatus.PAID
    assert settlement.paid_at == NOW
    assert settlement.payment_method == PaymentMethod.CASH
