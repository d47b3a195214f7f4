"""Shared Redis connection for the change feed.

Every RedisChangeFeed publisher and every per-socket pub/sub subscription
draws on this one pool. Long-lived pub/sub connections are health-checked
so a dead socket fails fast in ``get_message`` instead of hanging, and
the controller can renew the subscription.
"""

import redis.asyncio as aioredis

from config.settings import settings

_HEALTH_CHECK_SECONDS = 30

_redis_pool: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    """Return the feed's Redis client, connecting and pinging on first use."""
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is None:
        client = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            health_check_interval=_HEALTH_CHECK_SECONDS,
        )
        await client.ping()
        _redis_pool = client
    return _redis_pool


async def close_redis() -> None:
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is not None:
        await _redis_pool.aclose()
        _redis_pool = None
