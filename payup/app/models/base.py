"""
Shared column helpers for ledger models.
"""

from datetime import datetime, timezone
from sqlalchemy import Numeric

# Expense amounts are entered in currency units; shares keep the
# fractional precision of an uneven split.
MONEY = Numeric(14, 2)
SHARE = Numeric(20, 8)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
