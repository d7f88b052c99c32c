"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from payup.app.api.v1.endpoints import teams, expenses, settlements, agreements, notifications

router = APIRouter()

# Teams and membership
router.include_router(teams.router)

# Expenses
router.include_router(expenses.team_router)
router.include_router(expenses.router)

# Settlements
router.include_router(settlements.team_router)
router.include_router(settlements.router)

# Netting agreements
router.include_router(agreements.team_router)
router.include_router(agreements.router)

# In-app notifications
router.include_router(notifications.router)
