"""Redis client factory — used for write rate-limit counters only.

Balances, reservations and settlement state never touch Redis; they live in
PostgreSQL so a Redis outage cannot lose money. Short socket timeouts keep
an unreachable Redis from stalling writes: the limiter fails open instead.
"""

import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from config.settings import settings

logger = logging.getLogger(__name__)

_redis: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    """Return the shared client, creating its connection pool on first use."""
    global _redis  # noqa: PLW0603
    if _redis is None:
        _redis = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
            socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
        )
    return _redis


async def check_redis() -> bool:
    """Ping Redis at startup; False means rate limiting runs degraded."""
    try:
        client = await get_redis()
        await client.ping()
    except RedisError as exc:
        logger.warning("Redis unreachable at %s, write rate limiting disabled: %s",
                       settings.REDIS_URL, exc)
        return False
    return True


async def close_redis() -> None:
    global _redis  # noqa: PLW0603
    if _redis is not None:
        await _redis.aclose()
        _redis = None
