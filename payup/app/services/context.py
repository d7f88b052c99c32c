"""
Request-scoped ledger context.

Every ledger operation receives the caller and its collaborators
explicitly; nothing is looked up from ambient state.
"""

import logging
from dataclasses import dataclass, field
from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from payup.app.db.ledger_store import LedgerStore
from payup.app.models.user import User
from payup.app.services.cache import CacheService
from payup.app.services.notification_service import Notice, Notifier

logger = logging.getLogger(__name__)


@dataclass
class LedgerContext:
    db: AsyncSession
    actor: User
    notifier: Notifier
    store: LedgerStore = field(init=False)

    def __post_init__(self):
        self.store = LedgerStore(self.db)

    async def after_commit(self, team_id: int, notices: Sequence[Notice] = ()) -> None:
        """
        Best-effort work that must not touch the committed transaction.
        
        Drops the team's cached views and hands notices to the notifier.
        Neither step can fail the ledger operation.
        """
        await CacheService.invalidate_team(team_id)
        try:
            self.notifier.dispatch(notices)
        except Exception:
            logger.exception("Could not schedule %d notification(s) for team %s", len(notices), team_id)
