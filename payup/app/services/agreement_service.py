"""
Mutual Settlement Negotiator.

Finds members who owe each other, records netting proposals that pin
the exact settlements involved, and applies accepted proposals.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import select

from payup.app.core.exceptions import (
    ConflictError, InsufficientPermissionsError, InvalidInputError, ResourceNotFoundError,
)
from payup.app.db.ledger_store import active_settlements
from payup.app.db.session import atomic
from payup.app.domain.ledger.netting import NettingLeg, find_mutual_debts, plan_netting
from payup.app.models.agreement import SettlementAgreement
from payup.app.models.expense import Expense
from payup.app.models.ledger_enums import (
    AgreementStatus, PaymentMethod, SettlementEventType, SettlementStatus,
)
from payup.app.models.notification import NotificationType
from payup.app.models.settlement import Settlement
from payup.app.schemas.agreement import MutualDebtResponse
from payup.app.services.audit import AuditAction, log_activity
from payup.app.services.context import LedgerContext
from payup.app.services.notification_service import Notice

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
STALE_NOTE = "stale"

Row = Tuple[Settlement, Expense]


def _cents(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _split_sides(rows: Sequence[Row], proposer_id: int, responder_id: int) -> Tuple[List[Row], List[Row]]:
    """
    Partition pinned rows into what the proposer owes and what the responder owes.
    
    A row between any other pair of members raises InvalidInputError.
    """
    proposer_side, responder_side = [], []
    for settlement, expense in rows:
        if settlement.owed_by == proposer_id and expense.paid_by == responder_id:
            proposer_side.append((settlement, expense))
        elif settlement.owed_by == responder_id and expense.paid_by == proposer_id:
            responder_side.append((settlement, expense))
        else:
            raise InvalidInputError(
                "Every settlement must be owed between the two parties",
                details={"settlement_id": settlement.id}
            )
    return proposer_side, responder_side


def _total(rows: Sequence[Row]) -> Decimal:
    return sum((Decimal(settlement.amount_owed) for settlement, _ in rows), Decimal(0))


class AgreementService:
    
    @staticmethod
    async def detect_mutual_debts(ctx: LedgerContext, team_id: int) -> List[MutualDebtResponse]:
        """Counterparties the caller both owes and is owed by, with the settlements on each side."""
        await ctx.store.require_member(team_id, ctx.actor.id)
        obligations = await ctx.store.pending_obligations(team_id, ctx.actor.id)
        debts = find_mutual_debts(ctx.actor.id, obligations)
        users = await ctx.store.users_by_id(d.counterparty_id for d in debts)
        return [
            MutualDebtResponse(
                counterparty_id=debt.counterparty_id,
                counterparty_name=users[debt.counterparty_id].name if debt.counterparty_id in users else None,
                user_owes=debt.user_owes,
                counterparty_owes=debt.counterparty_owes,
                user_settlement_ids=debt.user_settlement_ids,
                counterparty_settlement_ids=debt.counterparty_settlement_ids,
                settlement_ids=debt.settlement_ids,
            )
            for debt in debts
        ]
    
    @staticmethod
    async def propose(
        ctx: LedgerContext,
        team_id: int,
        responder_id: int,
        proposer_owes: Decimal,
        responder_owes: Decimal,
        settlement_ids: Sequence[int],
    ) -> SettlementAgreement:
        """
        Propose netting the pinned settlements with responder.
        
        Every pinned settlement must be pending and owed between the two
        parties, with at least one in each direction. The stated totals
        must match the pinned rows to the cent. A settlement can be pinned
        by only one open proposal at a time.
        """
        proposer = ctx.actor
        if responder_id == proposer.id:
            raise InvalidInputError("Cannot propose an agreement with yourself", details={"field": "responder_id"})
        if len(set(settlement_ids)) != len(settlement_ids):
            raise InvalidInputError("Duplicate settlement in agreement", details={"field": "settlement_ids"})
        
        async with atomic(ctx.db):
            team = await ctx.store.lock_team(team_id)
            await ctx.store.require_member(team_id, proposer.id)
            if not await ctx.store.get_membership(team_id, responder_id):
                raise InvalidInputError("Responder is not a member of this team", details={"field": "responder_id"})
            responder = await ctx.store.get_user(responder_id)
            
            rows = await ctx.store.get_settlements(list(settlement_ids))
            for settlement, expense in rows:
                if expense.team_id != team_id:
                    raise ResourceNotFoundError("Settlement", settlement.id)
                if settlement.status != SettlementStatus.PENDING:
                    raise ConflictError(
                        "Only pending settlements can be netted",
                        details={"settlement_id": settlement.id}
                    )
            proposer_side, responder_side = _split_sides(rows, proposer.id, responder_id)
            if not proposer_side or not responder_side:
                raise InvalidInputError("An agreement needs settlements owed in both directions")
            
            pinned_proposer_owes, pinned_responder_owes = _total(proposer_side), _total(responder_side)
            if _cents(proposer_owes) != _cents(pinned_proposer_owes) or _cents(responder_owes) != _cents(pinned_responder_owes):
                raise InvalidInputError(
                    "Agreement amounts do not match the selected settlements",
                    details={
                        "proposer_owes": str(_cents(pinned_proposer_owes)),
                        "responder_owes": str(_cents(pinned_responder_owes)),
                    }
                )
            
            open_agreements = await AgreementService._open_agreements(ctx, team_id)
            already_pinned = {sid for agreement in open_agreements for sid in agreement.settlement_ids}
            overlap = sorted(already_pinned.intersection(settlement_ids))
            if overlap:
                raise ConflictError(
                    "Some settlements are already part of an open agreement",
                    details={"settlement_ids": overlap}
                )
            
            agreement = SettlementAgreement(
                team_id=team_id,
                proposer_id=proposer.id,
                responder_id=responder_id,
                proposer_owes=pinned_proposer_owes,
                responder_owes=pinned_responder_owes,
                settlement_ids=sorted(settlement_ids),
                status=AgreementStatus.PROPOSED,
            )
            ctx.db.add(agreement)
            await ctx.db.flush()
            
            await log_activity(
                ctx.db, team_id, AuditAction.PROPOSED_AGREEMENT,
                f"Proposed netting with {responder.name}: owes {_cents(pinned_proposer_owes)}, "
                f"is owed {_cents(pinned_responder_owes)}",
                actor=proposer,
                metadata={"agreement_id": agreement.id, "settlement_ids": agreement.settlement_ids},
            )
        
        logger.info("Agreement %s proposed in team %s", agreement.id, team_id)
        await ctx.after_commit(team_id, [Notice.to(
            responder, NotificationType.AGREEMENT_UPDATE,
            title=f"Netting proposal in {team.name}",
            message=(
                f"{proposer.name} proposes cancelling {_cents(pinned_proposer_owes)} you are owed "
                f"against {_cents(pinned_responder_owes)} you owe."
            ),
            agreement_id=agreement.id, team_name=team.name,
        )])
        return agreement
    
    @staticmethod
    async def respond(ctx: LedgerContext, agreement_id: int, accept: bool) -> SettlementAgreement:
        """
        Accept or reject an agreement. Only the responder may answer.
        
        Answering an agreement that is already resolved returns it as is.
        Acceptance re-checks the pinned settlements first; if any of them
        changed since the proposal, the agreement is rejected as stale and
        ConflictError is raised.
        """
        agreement = await ctx.db.get(SettlementAgreement, agreement_id)
        if not agreement:
            raise ResourceNotFoundError("Agreement", agreement_id)
        if agreement.responder_id != ctx.actor.id:
            raise InsufficientPermissionsError("Only the responder can answer this agreement")
        
        stale = False
        async with atomic(ctx.db):
            team = await ctx.store.lock_team(agreement.team_id)
            await ctx.db.refresh(agreement)
            if agreement.status != AgreementStatus.PROPOSED:
                return agreement
            
            now = datetime.now(timezone.utc)
            if not accept:
                AgreementService._resolve(agreement, AgreementStatus.REJECTED, now)
                action, details = AuditAction.REJECTED_AGREEMENT, "Rejected netting agreement"
            else:
                rows = await AgreementService._pinned_rows(ctx, agreement)
                if rows is None:
                    stale = True
                    AgreementService._resolve(agreement, AgreementStatus.REJECTED, now, note=STALE_NOTE)
                    action, details = AuditAction.REJECTED_AGREEMENT, "Netting agreement expired: settlements changed"
                else:
                    offset = AgreementService._apply_netting(ctx, agreement, rows, now)
                    AgreementService._resolve(agreement, AgreementStatus.ACCEPTED, now)
                    action, details = AuditAction.ACCEPTED_AGREEMENT, f"Accepted netting agreement, {_cents(offset)} cancelled"
            
            await log_activity(
                ctx.db, agreement.team_id, action, details, actor=ctx.actor,
                metadata={"agreement_id": agreement.id, "settlement_ids": agreement.settlement_ids},
            )
            proposer = await ctx.store.get_user(agreement.proposer_id)
        
        logger.info("Agreement %s resolved as %s", agreement.id, agreement.status.value)
        await ctx.after_commit(agreement.team_id, [Notice.to(
            proposer, NotificationType.AGREEMENT_UPDATE,
            title=f"Netting proposal {agreement.status.value.lower()}",
            message=f"{ctx.actor.name}: {details.lower()}.",
            agreement_id=agreement.id, team_name=team.name,
        )])
        if stale:
            raise ConflictError(
                "The settlements in this agreement changed since it was proposed",
                details={"agreement_id": agreement.id}
            )
        return agreement
    
    @staticmethod
    def _resolve(agreement: SettlementAgreement, status: AgreementStatus, now: datetime, note: Optional[str] = None):
        agreement.status = status
        agreement.responded_at = now
        agreement.resolution_note = note
    
    @staticmethod
    async def _pinned_rows(ctx: LedgerContext, agreement: SettlementAgreement) -> Optional[List[Row]]:
        """The pinned rows if they still match the proposal, else None."""
        result = await ctx.db.execute(
            active_settlements().where(Settlement.id.in_(agreement.settlement_ids))
        )
        rows = [(row[0], row[1]) for row in result.all()]
        if len(rows) != len(agreement.settlement_ids):
            return None
        if any(s.status != SettlementStatus.PENDING or e.team_id != agreement.team_id for s, e in rows):
            return None
        try:
            proposer_side, responder_side = _split_sides(rows, agreement.proposer_id, agreement.responder_id)
        except InvalidInputError:
            return None
        if (
            _cents(_total(proposer_side)) != _cents(agreement.proposer_owes)
            or _cents(_total(responder_side)) != _cents(agreement.responder_owes)
        ):
            return None
        return rows
    
    @staticmethod
    def _apply_netting(ctx: LedgerContext, agreement: SettlementAgreement, rows: List[Row], now: datetime) -> Decimal:
        by_id = {settlement.id: settlement for settlement, _ in rows}
        proposer_legs = [
            NettingLeg(s.id, Decimal(s.amount_owed)) for s, _ in rows if s.owed_by == agreement.proposer_id
        ]
        responder_legs = [
            NettingLeg(s.id, Decimal(s.amount_owed)) for s, _ in rows if s.owed_by == agreement.responder_id
        ]
        plan = plan_netting(proposer_legs, responder_legs)
        
        for outcome in plan.outcomes:
            if not outcome.cleared:
                continue
            settlement = by_id[outcome.settlement_id]
            if outcome.fully_cleared:
                settlement.status = SettlementStatus.PAID
                settlement.payment_method = PaymentMethod.NETTED
                settlement.paid_at = now
            else:
                settlement.amount_owed = outcome.remaining
                settlement.netted_amount = Decimal(settlement.netted_amount or 0) + outcome.cleared
            ctx.store.add_event(
                settlement, SettlementEventType.NETTED, ctx.actor.id,
                from_status=SettlementStatus.PENDING, amount=outcome.cleared,
                payment_method=PaymentMethod.NETTED, note=f"agreement {agreement.id}",
            )
        return plan.offset
    
    @staticmethod
    async def _open_agreements(ctx: LedgerContext, team_id: int) -> List[SettlementAgreement]:
        result = await ctx.db.execute(
            select(SettlementAgreement).where(
                SettlementAgreement.team_id == team_id,
                SettlementAgreement.status == AgreementStatus.PROPOSED,
            )
        )
        return list(result.scalars().all())
    
    # --- Read views ---
    
    @staticmethod
    async def list_agreements(
        ctx: LedgerContext, team_id: int, status: Optional[AgreementStatus] = None
    ) -> List[SettlementAgreement]:
        """Agreements of the team that involve the caller, newest first."""
        await ctx.store.require_member(team_id, ctx.actor.id)
        query = select(SettlementAgreement).where(
            SettlementAgreement.team_id == team_id,
            (SettlementAgreement.proposer_id == ctx.actor.id) | (SettlementAgreement.responder_id == ctx.actor.id),
        ).order_by(SettlementAgreement.id.desc())
        if status:
            query = query.where(SettlementAgreement.status == status)
        result = await ctx.db.execute(query)
        return list(result.scalars().all())
    
    @staticmethod
    async def get_agreement(ctx: LedgerContext, agreement_id: int) -> SettlementAgreement:
        agreement = await ctx.db.get(SettlementAgreement, agreement_id)
        if not agreement:
            raise ResourceNotFoundError("Agreement", agreement_id)
        await ctx.store.require_member(agreement.team_id, ctx.actor.id)
        return agreement
