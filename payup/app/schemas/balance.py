"""
Balance Schemas.
"""

from pydantic import BaseModel
from decimal import Decimal


class TeamBalance(BaseModel):
    """Net position of one member against the rest of the team."""
    team_id: int
    user_id: int
    you_owe: Decimal
    owed_to_you: Decimal
    you_owe_count: int
    owed_to_you_count: int
    # Reported payments awaiting confirmation, kept out of the headline figures
    you_owe_unconfirmed: Decimal
    owed_to_you_unconfirmed: Decimal
    net_balance: Decimal
