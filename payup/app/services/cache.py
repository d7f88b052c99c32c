"""
Caching service for read-mostly team views.

Wraps Redis. Any cache failure falls back to the database; the cache
never decides ledger state and balances are never stored here.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Optional

import payup.app.core.redis_client as redis_client_module

logger = logging.getLogger(__name__)


class CacheKeys:
    """Cache key generators."""

    @staticmethod
    def activity_first_page(team_id: int) -> str:
        return f"activity:{team_id}:first"

    @staticmethod
    def expense_stats(team_id: int) -> str:
        return f"stats:{team_id}"


class CacheService:
    
    @staticmethod
    async def get(key: str) -> Optional[Any]:
        try:
            raw = await redis_client_module.redis_client.get(key)
        except Exception as exc:
            logger.warning("Cache read failed for %s: %s", key, exc)
            return None
        if raw is None:
            return None
        return json.loads(raw)

    @staticmethod
    async def set(key: str, data: Any, ttl_seconds: int = 300) -> None:
        try:
            await redis_client_module.redis_client.set(key, json.dumps(data, default=str), ex=ttl_seconds)
        except Exception as exc:
            logger.warning("Cache write failed for %s: %s", key, exc)

    @staticmethod
    async def invalidate(*keys: str) -> None:
        for key in keys:
            try:
                await redis_client_module.redis_client.delete(key)
            except Exception as exc:
                logger.warning("Cache invalidation failed for %s: %s", key, exc)

    @staticmethod
    async def invalidate_team(team_id: int) -> None:
        """Drop every cached view of a team after a committed mutation."""
        await CacheService.invalidate(
            CacheKeys.activity_first_page(team_id),
            CacheKeys.expense_stats(team_id),
        )

    @staticmethod
    async def cached(key: str, fetcher: Callable[[], Awaitable[Any]], ttl_seconds: int = 60) -> Any:
        """
        Return the cached value for key, or run fetcher and cache its result.
        
        The fetcher result must be JSON-friendly (dicts, lists, str, numbers).
        """
        hit = await CacheService.get(key)
        if hit is not None:
            return hit
        # Round-trip through JSON so hits and misses hand back the same shapes
        data = json.loads(json.dumps(await fetcher(), default=str))
        await CacheService.set(key, data, ttl_seconds)
        return data
