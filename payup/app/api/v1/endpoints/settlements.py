"""
Settlement API Endpoints.

Batch routes are registered before the per-settlement routes so that
"/batch/..." is never read as a settlement id.
"""

from typing import List, Optional
from fastapi import APIRouter, Body, Depends, Path

from payup.app.core.dependencies import get_ledger_context
from payup.app.domain.ledger.settlement_state import SettlementAction
from payup.app.schemas.settlement import (
    BatchTransitionRequest, MarkPaidRequest, RejectPaymentRequest, SettlementEventResponse,
    SettlementResponse, SubmitPaymentRequest, TeamSettlementView,
)
from payup.app.services.context import LedgerContext
from payup.app.services.settlement_service import SettlementService

team_router = APIRouter(prefix="/teams/{team_id}/settlements", tags=["Settlements"])
router = APIRouter(prefix="/settlements", tags=["Settlements"])


@team_router.get("", response_model=List[TeamSettlementView])
async def list_settlements(team_id: int = Path(...), ctx: LedgerContext = Depends(get_ledger_context)):
    return await SettlementService.list_settlements(ctx, team_id)


@router.post("/batch/{action}", response_model=List[SettlementResponse])
async def batch_transition(
    req: BatchTransitionRequest,
    action: SettlementAction = Path(...),
    ctx: LedgerContext = Depends(get_ledger_context)
):
    """Apply one transition to every listed settlement, or to none."""
    return await SettlementService.batch_transition(
        ctx, req.settlement_ids, action,
        payment_method=req.payment_method, proof_url=req.proof_url, reason=req.reason,
    )


@router.post("/{settlement_id}/mark-paid", response_model=SettlementResponse)
async def mark_paid(
    settlement_id: int = Path(...),
    req: Optional[MarkPaidRequest] = Body(None),
    ctx: LedgerContext = Depends(get_ledger_context)
):
    """Creditor marks a pending settlement as paid."""
    req = req or MarkPaidRequest()
    return await SettlementService.mark_paid(ctx, settlement_id, req.payment_method, req.proof_url)


@router.post("/{settlement_id}/submit", response_model=SettlementResponse)
async def submit_payment(
    req: SubmitPaymentRequest,
    settlement_id: int = Path(...),
    ctx: LedgerContext = Depends(get_ledger_context)
):
    """Debtor reports a payment with optional proof."""
    return await SettlementService.submit_payment(ctx, settlement_id, req.payment_method, req.proof_url)


@router.post("/{settlement_id}/verify", response_model=SettlementResponse)
async def verify_payment(settlement_id: int = Path(...), ctx: LedgerContext = Depends(get_ledger_context)):
    return await SettlementService.verify_payment(ctx, settlement_id)


@router.post("/{settlement_id}/reject", response_model=SettlementResponse)
async def reject_payment(
    settlement_id: int = Path(...),
    req: Optional[RejectPaymentRequest] = Body(None),
    ctx: LedgerContext = Depends(get_ledger_context)
):
    return await SettlementService.reject_payment(ctx, settlement_id, req.reason if req else None)


@router.get("/{settlement_id}/history", response_model=List[SettlementEventResponse])
async def settlement_history(settlement_id: int = Path(...), ctx: LedgerContext = Depends(get_ledger_context)):
    return await SettlementService.history(ctx, settlement_id)
