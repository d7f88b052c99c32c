"""
Expense Schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from payup.app.models.ledger_enums import ExpenseCategory
from payup.app.schemas.settlement import SettlementResponse


class ExpenseCreate(BaseModel):
    """Schema for creating a standalone expense split evenly across the team."""
    amount: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=500)
    category: ExpenseCategory = ExpenseCategory.OTHER
    note: Optional[str] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class InstallmentPlanCreate(BaseModel):
    """Schema for creating an installment plan."""
    total_amount: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)
    number_of_months: int
    due_day_of_month: int = Field(..., ge=1, le=31)
    description: str = Field(..., min_length=1, max_length=500)
    category: ExpenseCategory = ExpenseCategory.OTHER
    note: Optional[str] = None
    start_date: Optional[date] = None


class ExpenseUpdate(BaseModel):
    """Only the description and note of an expense can change."""
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    note: Optional[str] = None
    
    model_config = {"extra": "forbid"}


class ExpenseResponse(BaseModel):
    """Schema for displaying an expense."""
    id: int
    team_id: int
    paid_by: int
    paid_by_name: Optional[str] = None
    amount: Decimal
    currency: str
    description: str
    note: Optional[str]
    category: ExpenseCategory
    is_installment: bool
    total_installments: Optional[int]
    installment_index: Optional[int]
    parent_expense_id: Optional[int]
    due_day_of_month: Optional[int]
    due_date: Optional[date]
    created_at: datetime
    
    class Config:
        from_attributes = True


class ExpenseDetailResponse(ExpenseResponse):
    settlements: List[SettlementResponse] = []


class InstallmentPlanResponse(BaseModel):
    parent: ExpenseResponse
    children: List[ExpenseResponse]
    monthly_amount: Decimal
    per_participant_amount: Decimal


class ExpenseStats(BaseModel):
    total_spent: Decimal
    this_month_spent: Decimal
    average_expense: Decimal
    expense_count: int
    settlements_completed: int
    settlements_total: int


class CategoryTotal(BaseModel):
    category: ExpenseCategory
    amount: Decimal
    count: int
