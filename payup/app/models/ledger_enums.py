"""
Ledger enumerations.
"""

import enum


class ExpenseCategory(str, enum.Enum):
    """Expense category enumeration."""
    FOOD = "food"
    PRINTING = "printing"
    SUPPLIES = "supplies"
    OTHER = "other"


class SettlementStatus(str, enum.Enum):
    """Settlement status enumeration."""
    PENDING = "pending"  # Owed, nothing tendered yet
    UNCONFIRMED = "unconfirmed"  # Debtor reported a payment, creditor has not verified
    PAID = "paid"  # Confirmed by the creditor or cleared by netting


class PaymentMethod(str, enum.Enum):
    """How a settlement was (or is claimed to be) paid."""
    CASH = "CASH"
    GCASH = "GCASH"
    NETTED = "NETTED"  # Cleared by an accepted settlement agreement


class AgreementStatus(str, enum.Enum):
    """Settlement agreement status enumeration."""
    PROPOSED = "PROPOSED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class SettlementEventType(str, enum.Enum):
    """Entries in a settlement's history."""
    CREATED = "CREATED"
    MARKED_PAID = "MARKED_PAID"
    SUBMITTED = "SUBMITTED"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"
    RECALCULATED = "RECALCULATED"
    NETTED = "NETTED"
    REMOVED = "REMOVED"
    REVIVED = "REVIVED"
    DELETED = "DELETED"
