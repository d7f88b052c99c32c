"""
Settlement Agreement API Endpoints.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Path, Query, status

from payup.app.core.dependencies import get_ledger_context
from payup.app.models.ledger_enums import AgreementStatus
from payup.app.schemas.agreement import (
    AgreementPropose, AgreementRespond, AgreementResponse, MutualDebtResponse,
)
from payup.app.services.agreement_service import AgreementService
from payup.app.services.context import LedgerContext

team_router = APIRouter(prefix="/teams/{team_id}", tags=["Agreements"])
router = APIRouter(prefix="/agreements", tags=["Agreements"])


@team_router.get("/mutual-debts", response_model=List[MutualDebtResponse])
async def mutual_debts(team_id: int = Path(...), ctx: LedgerContext = Depends(get_ledger_context)):
    """Members the caller both owes and is owed by."""
    return await AgreementService.detect_mutual_debts(ctx, team_id)


@team_router.get("/agreements", response_model=List[AgreementResponse])
async def list_agreements(
    team_id: int = Path(...),
    status_filter: Optional[AgreementStatus] = Query(None, alias="status"),
    ctx: LedgerContext = Depends(get_ledger_context)
):
    return await AgreementService.list_agreements(ctx, team_id, status=status_filter)


@team_router.post("/agreements", response_model=AgreementResponse, status_code=status.HTTP_201_CREATED)
async def propose_agreement(
    req: AgreementPropose,
    team_id: int = Path(...),
    ctx: LedgerContext = Depends(get_ledger_context)
):
    return await AgreementService.propose(
        ctx, team_id, req.responder_id, req.proposer_owes, req.responder_owes, req.settlement_ids
    )


@router.get("/{agreement_id}", response_model=AgreementResponse)
async def get_agreement(agreement_id: int = Path(...), ctx: LedgerContext = Depends(get_ledger_context)):
    return await AgreementService.get_agreement(ctx, agreement_id)


@router.post("/{agreement_id}/respond", response_model=AgreementResponse)
async def respond_to_agreement(
    req: AgreementRespond,
    agreement_id: int = Path(...),
    ctx: LedgerContext = Depends(get_ledger_context)
):
    """
    Accept or reject a proposal. Only the responder may answer; answering
    a resolved agreement returns it unchanged.
    """
    return await AgreementService.respond(ctx, agreement_id, req.accept)
