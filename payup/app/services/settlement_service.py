"""
Settlement Service.

Drives settlements through the confirmation workflow, one at a time or
in batches, and serves the team settlement list and per-row history.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from payup.app.core.config import settings
from payup.app.core.exceptions import InvalidInputError
from payup.app.db.session import atomic
from payup.app.domain.ledger.settlement_state import (
    Party, SettlementAction, TRANSITIONS, apply_transition, check_authority, check_status,
)
from payup.app.models.expense import Expense
from payup.app.models.ledger_enums import PaymentMethod
from payup.app.models.notification import NotificationType
from payup.app.models.settlement import Settlement, SettlementEvent
from payup.app.models.user import User
from payup.app.schemas.settlement import TeamSettlementView
from payup.app.services.audit import AuditAction, log_activity
from payup.app.services.context import LedgerContext
from payup.app.services.notification_service import Notice

logger = logging.getLogger(__name__)

AUDIT_ACTIONS = {
    SettlementAction.MARK_PAID: AuditAction.PAID_SETTLEMENT,
    SettlementAction.SUBMIT: AuditAction.SUBMITTED_PAYMENT,
    SettlementAction.VERIFY: AuditAction.VERIFIED_PAYMENT,
    SettlementAction.REJECT: AuditAction.REJECTED_PAYMENT,
}

NOTICE_TITLES = {
    SettlementAction.MARK_PAID: "Settlement marked as paid",
    SettlementAction.SUBMIT: "Payment awaiting your confirmation",
    SettlementAction.VERIFY: "Payment confirmed",
    SettlementAction.REJECT: "Payment rejected",
}

Row = Tuple[Settlement, Expense]


class SettlementService:
    
    @staticmethod
    async def mark_paid(
        ctx: LedgerContext,
        settlement_id: int,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        proof_url: Optional[str] = None,
    ) -> Settlement:
        """Creditor records a payment received outside the app (pending -> paid)."""
        rows = await SettlementService._run(
            ctx, [settlement_id], SettlementAction.MARK_PAID,
            payment_method=payment_method, proof_url=proof_url,
        )
        return rows[0][0]
    
    @staticmethod
    async def submit_payment(
        ctx: LedgerContext,
        settlement_id: int,
        payment_method: PaymentMethod,
        proof_url: Optional[str] = None,
    ) -> Settlement:
        """Debtor reports a payment for the creditor to confirm (pending -> unconfirmed)."""
        rows = await SettlementService._run(
            ctx, [settlement_id], SettlementAction.SUBMIT,
            payment_method=payment_method, proof_url=proof_url,
        )
        return rows[0][0]
    
    @staticmethod
    async def verify_payment(ctx: LedgerContext, settlement_id: int) -> Settlement:
        rows = await SettlementService._run(ctx, [settlement_id], SettlementAction.VERIFY)
        return rows[0][0]
    
    @staticmethod
    async def reject_payment(ctx: LedgerContext, settlement_id: int, reason: Optional[str] = None) -> Settlement:
        """
        Creditor disputes a reported payment (unconfirmed -> pending).
        
        The row loses its method and proof; the REJECTED history event keeps
        both along with the reason.
        """
        rows = await SettlementService._run(ctx, [settlement_id], SettlementAction.REJECT, reason=reason)
        return rows[0][0]
    
    @staticmethod
    async def batch_transition(
        ctx: LedgerContext,
        settlement_ids: Sequence[int],
        action: SettlementAction,
        payment_method: Optional[PaymentMethod] = None,
        proof_url: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> List[Settlement]:
        """
        Apply one transition to several settlements, all or nothing.
        
        Every settlement must belong to one team and share the party that
        is allowed to act (the same creditor, or the same debtor for
        submissions). A mixed batch is rejected before any row changes.
        """
        if not settlement_ids:
            raise InvalidInputError("No settlements given", details={"field": "settlement_ids"})
        if len(settlement_ids) > settings.max_batch_size:
            raise InvalidInputError(
                f"A batch may hold at most {settings.max_batch_size} settlements",
                details={"field": "settlement_ids"}
            )
        if len(set(settlement_ids)) != len(settlement_ids):
            raise InvalidInputError("Duplicate settlement in batch", details={"field": "settlement_ids"})
        
        if action == SettlementAction.MARK_PAID and payment_method is None:
            payment_method = PaymentMethod.CASH
        rows = await SettlementService._run(
            ctx, list(settlement_ids), action,
            payment_method=payment_method, proof_url=proof_url, reason=reason,
        )
        return [settlement for settlement, _ in rows]
    
    @staticmethod
    async def _run(
        ctx: LedgerContext,
        settlement_ids: List[int],
        action: SettlementAction,
        payment_method: Optional[PaymentMethod] = None,
        proof_url: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> List[Row]:
        rule = TRANSITIONS[action]
        now = datetime.now(timezone.utc)
        
        async with atomic(ctx.db):
            rows = await ctx.store.get_settlements(settlement_ids)
            team_ids = {expense.team_id for _, expense in rows}
            if len(team_ids) > 1:
                raise InvalidInputError("Settlements in a batch must belong to one team")
            team_id = team_ids.pop()
            team = await ctx.store.lock_team(team_id)
            for settlement, _ in rows:
                await ctx.db.refresh(settlement)
            
            parties = {
                expense.paid_by if rule.party == Party.CREDITOR else settlement.owed_by
                for settlement, expense in rows
            }
            if len(parties) > 1:
                raise InvalidInputError(
                    f"Settlements in a batch must share the same {rule.party.value}",
                    details={"action": action.value}
                )
            
            for settlement, expense in rows:
                check_authority(action, ctx.actor.id, expense.paid_by, settlement.owed_by)
            for settlement, _ in rows:
                check_status(rule, settlement.status)
            
            for settlement, expense in rows:
                previous_method, previous_proof = settlement.payment_method, settlement.proof_url
                apply_transition(settlement, rule, now, payment_method=payment_method, proof_url=proof_url)
                ctx.store.add_event(
                    settlement, rule.event_type, ctx.actor.id,
                    from_status=rule.from_status,
                    note=reason if action == SettlementAction.REJECT else None,
                    payment_method=previous_method if action == SettlementAction.REJECT else None,
                    proof_url=previous_proof if action == SettlementAction.REJECT else None,
                )
                await log_activity(
                    ctx.db, team_id, AUDIT_ACTIONS[action],
                    SettlementService._describe(action, settlement, expense, reason),
                    actor=ctx.actor,
                    metadata={
                        "settlement_id": settlement.id,
                        "expense_id": expense.id,
                        "from": rule.from_status.value,
                        "to": rule.to_status.value,
                    },
                )
            
            counterpart_ids = {
                settlement.owed_by if rule.party == Party.CREDITOR else expense.paid_by
                for settlement, expense in rows
            }
            counterparts = await ctx.store.users_by_id(counterpart_ids)
        
        logger.info(
            "%s applied to %d settlement(s) in team %s by user %s",
            action.value, len(rows), team_id, ctx.actor.id,
        )
        await ctx.after_commit(team_id, [
            SettlementService._notice(action, ctx.actor, counterparts[uid], team.name, rows, reason)
            for uid in sorted(counterparts)
        ])
        return rows
    
    @staticmethod
    def _describe(action: SettlementAction, settlement: Settlement, expense: Expense, reason: Optional[str]) -> str:
        amount = f"{expense.currency} {Decimal(settlement.amount_owed):.2f}"
        if action == SettlementAction.MARK_PAID:
            return f"Marked {amount} for '{expense.description}' as paid"
        if action == SettlementAction.SUBMIT:
            return f"Submitted {amount} for '{expense.description}' via {settlement.payment_method.value}"
        if action == SettlementAction.VERIFY:
            return f"Confirmed payment of {amount} for '{expense.description}'"
        suffix = f": {reason}" if reason else ""
        return f"Rejected payment of {amount} for '{expense.description}'{suffix}"
    
    @staticmethod
    def _notice(
        action: SettlementAction,
        actor: User,
        recipient: User,
        team_name: str,
        rows: List[Row],
        reason: Optional[str],
    ) -> Notice:
        mine = [
            (settlement, expense) for settlement, expense in rows
            if recipient.id in (settlement.owed_by, expense.paid_by)
        ]
        total = sum((Decimal(s.amount_owed) for s, _ in mine), Decimal(0))
        descriptions = ", ".join(f"'{e.description}'" for _, e in mine)
        message = f"{actor.name}: {NOTICE_TITLES[action].lower()} for {descriptions} ({total:.2f})."
        if reason:
            message += f" Reason: {reason}"
        return Notice.to(
            recipient, NotificationType.PAYMENT_UPDATE,
            title=NOTICE_TITLES[action], message=message,
            team_name=team_name, amount=total, settlement_ids=",".join(str(s.id) for s, _ in mine),
        )
    
    # --- Read views ---
    
    @staticmethod
    async def list_settlements(ctx: LedgerContext, team_id: int) -> List[TeamSettlementView]:
        """Every live settlement of the team, annotated for the caller."""
        await ctx.store.require_member(team_id, ctx.actor.id)
        rows = await ctx.store.team_settlements(team_id)
        users = await ctx.store.users_by_id(
            [s.owed_by for s, _ in rows] + [e.paid_by for _, e in rows]
        )
        
        def name(user_id: int) -> str:
            user = users.get(user_id)
            return user.name if user else "Former Member"
        
        return [
            TeamSettlementView(
                id=settlement.id,
                expense_id=expense.id,
                expense_description=expense.description,
                owed_by_id=settlement.owed_by,
                owed_by_name=name(settlement.owed_by),
                owed_to_id=expense.paid_by,
                owed_to_name=name(expense.paid_by),
                amount=settlement.amount_owed,
                status=settlement.status,
                payment_method=settlement.payment_method,
                due_date=expense.due_date,
                paid_at=settlement.paid_at,
                is_current_user_owing=settlement.owed_by == ctx.actor.id,
                is_current_user_owed=expense.paid_by == ctx.actor.id,
            )
            for settlement, expense in rows
        ]
    
    @staticmethod
    async def history(ctx: LedgerContext, settlement_id: int) -> List[SettlementEvent]:
        settlement, expense = await ctx.store.get_settlement(settlement_id)
        await ctx.store.require_member(expense.team_id, ctx.actor.id)
        return await ctx.store.events_for(settlement.id)
