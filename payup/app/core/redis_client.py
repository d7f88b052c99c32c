"""
Shared Redis connection for the team-view cache.

The cache is optional: a short socket timeout keeps a dead Redis from
stalling requests that would fall back to the database anyway.
"""

import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from payup.app.core.config import settings

logger = logging.getLogger(__name__)

redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=True,
    socket_timeout=settings.redis_socket_timeout,
    socket_connect_timeout=settings.redis_socket_timeout,
)


async def ping_redis() -> bool:
    try:
        return bool(await redis_client.ping())
    except (RedisError, OSError) as exc:
        logger.debug("Redis ping failed: %s", exc)
        return False


async def close_redis() -> None:
    await redis_client.aclose()
