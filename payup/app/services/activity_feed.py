"""
Team activity feed over the audit trail, newest first.
"""

from typing import Optional

from payup.app.core.config import settings
from payup.app.core.exceptions import InvalidInputError
from payup.app.schemas.team import ActivityEntry, ActivityPage
from payup.app.services.audit import get_audit_trail
from payup.app.services.cache import CacheKeys, CacheService
from payup.app.services.context import LedgerContext

MAX_PAGE_SIZE = 100


class ActivityFeed:
    
    @staticmethod
    async def get_team_activity(
        ctx: LedgerContext,
        team_id: int,
        cursor: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> ActivityPage:
        """
        One page of the team's activity.
        
        cursor is the next_cursor of the previous page. The first page at
        the default size is served from cache when possible.
        """
        await ctx.store.require_member(team_id, ctx.actor.id)
        limit = limit or settings.activity_page_size
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise InvalidInputError(f"Limit must be between 1 and {MAX_PAGE_SIZE}", details={"field": "limit"})
        
        async def fetch() -> dict:
            entries = await get_audit_trail(ctx.db, team_id, before_id=cursor, limit=limit + 1)
            page = entries[:limit]
            return ActivityPage(
                entries=[
                    ActivityEntry(
                        id=entry.id,
                        action=entry.action,
                        details=entry.details,
                        actor_id=entry.actor_id,
                        actor_name=entry.actor_username or "System",
                        timestamp=entry.timestamp,
                    )
                    for entry in page
                ],
                next_cursor=page[-1].id if len(entries) > limit else None,
            ).model_dump(mode="json")
        
        if cursor is None and limit == settings.activity_page_size:
            data = await CacheService.cached(
                CacheKeys.activity_first_page(team_id), fetch, settings.activity_cache_ttl_seconds
            )
        else:
            data = await fetch()
        return ActivityPage(**data)
