"""
Expense database model.

A spend event paid by one team member. Installment plans are a parent
expense (the plan total, never settled itself) owning one child expense
per month; each child is settled independently.
"""

from sqlalchemy import Column, Integer, String, Text, Boolean, Date, DateTime, ForeignKey, Enum
from payup.app.db.session import Base
from payup.app.models.base import MONEY, utcnow
from payup.app.models.ledger_enums import ExpenseCategory


class Expense(Base):
    """
    Expense model.
    
    Expenses are soft-deleted (deleted_at) so settlements that reference
    them stay resolvable.
    """
    __tablename__ = "expenses"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)
    paid_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)  # Creditor
    
    # Financials
    amount = Column(MONEY, nullable=False)
    currency = Column(String(3), nullable=False, default="PHP")
    
    description = Column(String(500), nullable=False)
    note = Column(Text, nullable=True)
    category = Column(Enum(ExpenseCategory), default=ExpenseCategory.OTHER, nullable=False)
    
    # Installment plan metadata
    is_installment = Column(Boolean, default=False, nullable=False)
    total_installments = Column(Integer, nullable=True)
    installment_index = Column(Integer, nullable=True)  # 1-based, children only
    parent_expense_id = Column(Integer, ForeignKey("expenses.id"), nullable=True, index=True)
    due_day_of_month = Column(Integer, nullable=True)
    due_date = Column(Date, nullable=True)
    
    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)
    
    @property
    def is_plan_parent(self) -> bool:
        return bool(self.is_installment) and self.parent_expense_id is None
    
    def __repr__(self):
        return f"<Expense(id={self.id}, team={self.team_id}, amount={self.amount})>"
