"""Redis async connection pool used for per-trip transition locks."""

import redis.asyncio as aioredis

from ridepilot.config import settings

_pool = aioredis.ConnectionPool.from_url(
    settings.redis_url, decode_responses=True
)


async def get_redis() -> aioredis.Redis:
    """Return a Redis client backed by the shared pool."""
    return aioredis.Redis(connection_pool=_pool)
