"""
Shared counter store backed by Redis.

Only the sign-in brute-force counters live here. Redis is optional: with
``REDIS_HOST`` unset, or the server unreachable, every helper returns its
"unavailable" value (None / False) and callers keep the count in process.

Usage:
    from sports_buddy.services.redis_service import redis_incr_with_expiry

    count = await redis_incr_with_expiry("signin_failures:alice@example.com", 900)
    if count is None:
        ...  # count locally instead
"""

import logging
import os
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

REDIS_HOST = os.getenv("REDIS_HOST")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_DB = int(os.getenv("REDIS_DB", "0"))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD") or None

CONNECT_TIMEOUT_SECONDS = 2
COMMAND_TIMEOUT_SECONDS = 5

_client: Optional[Redis] = None


def _redis_address() -> str:
    return f"{REDIS_HOST}:{REDIS_PORT}/{REDIS_DB}"


def _new_client() -> Redis:
    return Redis(
        host=REDIS_HOST,
        port=REDIS_PORT,
        db=REDIS_DB,
        password=REDIS_PASSWORD,
        decode_responses=True,
        socket_connect_timeout=CONNECT_TIMEOUT_SECONDS,
        socket_timeout=COMMAND_TIMEOUT_SECONDS,
        retry_on_timeout=True,
    )


async def get_redis_client() -> Optional[Redis]:
    """
    Return a live client, connecting (or reconnecting) as needed.

    Every call pings; a dead client is dropped and one fresh connection is
    attempted.

    Returns:
        The shared client, or None when Redis is disabled or unreachable
    """
    global _client

    if not REDIS_HOST:
        return None

    if _client is not None:
        try:
            await _client.ping()
            return _client
        except (RedisError, OSError) as e:
            logger.warning(f"Lost Redis connection to {_redis_address()}: {e}")
            await close_redis_connection()

    candidate = _new_client()
    try:
        await candidate.ping()
    except (RedisError, OSError) as e:
        logger.warning(f"Redis at {_redis_address()} unavailable: {e}")
        await candidate.aclose()
        return None

    _client = candidate
    logger.info(f"Connected to Redis at {_redis_address()}")
    return _client


async def close_redis_connection() -> None:
    """Drop the shared client. Called on application shutdown."""
    global _client

    client, _client = _client, None
    if client is None:
        return
    try:
        await client.aclose()
        logger.info("Closed Redis connection")
    except (RedisError, OSError) as e:
        logger.warning(f"Error closing Redis connection: {e}")


# ============================================================================
# Counter helpers
# ============================================================================

async def redis_incr_with_expiry(key: str, expiry_seconds: int) -> Optional[int]:
    """
    Increment ``key``; the TTL is set only when the counter is created, so the
    window is fixed from the first hit.

    Returns:
        The new value, or None if Redis is unavailable
    """
    client = await get_redis_client()
    if client is None:
        return None
    try:
        async with client.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.expire(key, expiry_seconds, nx=True)
            count, _ = await pipe.execute()
        return int(count)
    except RedisError as e:
        logger.warning(f"Redis INCR failed for {key}: {e}")
        return None


async def redis_get_int(key: str) -> Optional[int]:
    """
    Returns:
        The counter value (0 when absent), or None if Redis is unavailable
    """
    client = await get_redis_client()
    if client is None:
        return None
    try:
        value = await client.get(key)
    except RedisError as e:
        logger.warning(f"Redis GET failed for {key}: {e}")
        return None
    return int(value) if value is not None else 0


async def redis_delete(key: str) -> bool:
    """Delete ``key``. False when Redis is unavailable or the command fails."""
    client = await get_redis_client()
    if client is None:
        return False
    try:
        await client.delete(key)
    except RedisError as e:
        logger.warning(f"Redis DELETE failed for {key}: {e}")
        return False
    return True
