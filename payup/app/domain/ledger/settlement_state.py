"""
Settlement State Machine.

Legal status transitions of a single settlement and who may trigger them:

    pending     --mark_paid-->  paid         (creditor)
    pending     --submit----->  unconfirmed  (debtor)
    unconfirmed --verify----->  paid         (creditor)
    unconfirmed --reject----->  pending      (creditor)

A rejection is recorded as its own history event, so the disputed proof
stays on file even though the row returns to pending.
"""

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from payup.app.core.exceptions import ConflictError, InsufficientPermissionsError, InvalidInputError
from payup.app.models.ledger_enums import PaymentMethod, SettlementEventType, SettlementStatus


class SettlementAction(str, enum.Enum):
    MARK_PAID = "mark_paid"
    SUBMIT = "submit"
    VERIFY = "verify"
    REJECT = "reject"


class Party(str, enum.Enum):
    CREDITOR = "creditor"
    DEBTOR = "debtor"


@dataclass(frozen=True)
class TransitionRule:
    action: SettlementAction
    from_status: SettlementStatus
    to_status: SettlementStatus
    party: Party
    event_type: SettlementEventType


TRANSITIONS = {
    SettlementAction.MARK_PAID: TransitionRule(
        SettlementAction.MARK_PAID, SettlementStatus.PENDING, SettlementStatus.PAID,
        Party.CREDITOR, SettlementEventType.MARKED_PAID,
    ),
    SettlementAction.SUBMIT: TransitionRule(
        SettlementAction.SUBMIT, SettlementStatus.PENDING, SettlementStatus.UNCONFIRMED,
        Party.DEBTOR, SettlementEventType.SUBMITTED,
    ),
    SettlementAction.VERIFY: TransitionRule(
        SettlementAction.VERIFY, SettlementStatus.UNCONFIRMED, SettlementStatus.PAID,
        Party.CREDITOR, SettlementEventType.VERIFIED,
    ),
    SettlementAction.REJECT: TransitionRule(
        SettlementAction.REJECT, SettlementStatus.UNCONFIRMED, SettlementStatus.PENDING,
        Party.CREDITOR, SettlementEventType.REJECTED,
    ),
}


def check_authority(action: SettlementAction, actor_id: int, creditor_id: int, debtor_id: int) -> TransitionRule:
    """Return the rule for action if actor is the party allowed to trigger it."""
    rule = TRANSITIONS[action]
    allowed_id = creditor_id if rule.party == Party.CREDITOR else debtor_id
    if actor_id != allowed_id:
        raise InsufficientPermissionsError(
            f"Only the {rule.party.value} of a settlement can {action.value.replace('_', ' ')} it"
        )
    return rule


def check_status(rule: TransitionRule, current: SettlementStatus) -> None:
    if current != rule.from_status:
        raise ConflictError(
            f"Settlement is {current.value}, expected {rule.from_status.value}",
            details={"status": current.value}
        )


def apply_transition(
    settlement,
    rule: TransitionRule,
    now: datetime,
    payment_method: Optional[PaymentMethod] = None,
    proof_url: Optional[str] = None,
) -> None:
    """
    Move a settlement row along rule, setting the fields the transition owns.
    
    The caller has already checked authority and current status.
    """
    if rule.action == SettlementAction.MARK_PAID:
        settlement.payment_method = payment_method or PaymentMethod.CASH
        if proof_url is not None:
            settlement.proof_url = proof_url
        settlement.paid_at = now
    elif rule.action == SettlementAction.SUBMIT:
        if payment_method is None:
            raise InvalidInputError("A payment method is required to submit a payment")
        if payment_method == PaymentMethod.NETTED:
            raise InvalidInputError("Netted payments are recorded by settlement agreements")
        settlement.payment_method = payment_method
        settlement.proof_url = proof_url
        settlement.paid_at = None
    elif rule.action == SettlementAction.VERIFY:
        settlement.paid_at = now
    elif rule.action == SettlementAction.REJECT:
        settlement.payment_method = None
        settlement.proof_url = None
        settlement.paid_at = None
    settlement.status = rule.to_status
