"""
Expense API Endpoints.
"""

from typing import List
from fastapi import APIRouter, Depends, Path, status

from payup.app.core.dependencies import get_ledger_context
from payup.app.schemas.expense import (
    ExpenseCreate, ExpenseDetailResponse, ExpenseResponse, ExpenseUpdate,
    InstallmentPlanCreate, InstallmentPlanResponse,
)
from payup.app.services.context import LedgerContext
from payup.app.services.expense_ledger import ExpenseLedger

team_router = APIRouter(prefix="/teams/{team_id}/expenses", tags=["Expenses"])
router = APIRouter(prefix="/expenses", tags=["Expenses"])


def _view(expense, ctx: LedgerContext) -> ExpenseResponse:
    view = ExpenseResponse.model_validate(expense)
    view.paid_by_name = ctx.actor.name
    return view


@team_router.post("", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
async def create_expense(req: ExpenseCreate, team_id: int = Path(...), ctx: LedgerContext = Depends(get_ledger_context)):
    """Record an expense paid by the caller, split evenly across the team."""
    expense = await ExpenseLedger.create_expense(
        ctx, team_id, req.amount, req.description,
        category=req.category, note=req.note, currency=req.currency,
    )
    return _view(expense, ctx)


@team_router.post("/installments", response_model=InstallmentPlanResponse, status_code=status.HTTP_201_CREATED)
async def create_installment_plan(
    req: InstallmentPlanCreate,
    team_id: int = Path(...),
    ctx: LedgerContext = Depends(get_ledger_context)
):
    plan = await ExpenseLedger.create_installment_expense(
        ctx, team_id, req.total_amount, req.number_of_months, req.due_day_of_month,
        req.description, category=req.category, note=req.note, start_date=req.start_date,
    )
    return InstallmentPlanResponse(
        parent=_view(plan.parent, ctx),
        children=[_view(child, ctx) for child in plan.children],
        monthly_amount=plan.split.monthly_amount,
        per_participant_amount=plan.split.per_participant_amount,
    )


@team_router.get("", response_model=List[ExpenseResponse])
async def list_expenses(team_id: int = Path(...), ctx: LedgerContext = Depends(get_ledger_context)):
    return await ExpenseLedger.list_expenses(ctx, team_id)


@router.get("/{expense_id}", response_model=ExpenseDetailResponse)
async def get_expense(expense_id: int = Path(...), ctx: LedgerContext = Depends(get_ledger_context)):
    return await ExpenseLedger.get_expense(ctx, expense_id)


@router.patch("/{expense_id}", response_model=ExpenseResponse)
async def update_expense(
    req: ExpenseUpdate,
    expense_id: int = Path(...),
    ctx: LedgerContext = Depends(get_ledger_context)
):
    """Edit the description or note. Amounts cannot be changed."""
    expense = await ExpenseLedger.update_expense(ctx, expense_id, req.model_dump(exclude_unset=True))
    return ExpenseResponse.model_validate(expense)


@router.delete("/{expense_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_expense(expense_id: int = Path(...), ctx: LedgerContext = Depends(get_ledger_context)):
    await ExpenseLedger.delete_expense(ctx, expense_id)
