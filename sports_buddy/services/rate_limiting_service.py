"""
Brute-force protection for sign-in.

Failed sign-in attempts are counted per email. The shared counter lives in
Redis (INCR + EXPIRE) so every worker sees the same count; when Redis is not
available an in-memory sliding window is used instead.
"""

import time
from sports_buddy.services import redis_service
from sports_buddy.utils.constants import (
    SIGNIN_LOCKOUT_WINDOW_SECONDS,
    SIGNIN_MAX_FAILED_ATTEMPTS,
)
from sports_buddy.utils.errors import RateLimitedError
import logging

logger = logging.getLogger(__name__)

# In-memory fallback storage: key -> list of failure timestamps
_signin_failure_storage = {}


def reset_signin_attempt_storage():
    """Reset the in-memory failure storage. Useful for testing."""
    _signin_failure_storage.clear()


def get_signin_rate_limit_key(email: str) -> str:
    """
    Create a rate limiting key from an email address.

    Returns:
        Rate limit key string (e.g., "signin_failures:alice@example.com")
    """
    return f"signin_failures:{email.strip().lower()}"


def _recent_local_failures(key: str, now: float) -> list:
    hit_times = _signin_failure_storage.setdefault(key, [])
    hit_times[:] = [t for t in hit_times if now - t < SIGNIN_LOCKOUT_WINDOW_SECONDS]
    return hit_times


async def get_failed_attempts(email: str) -> int:
    """Number of failed sign-ins for this email inside the lockout window."""
    key = get_signin_rate_limit_key(email)
    count = await redis_service.redis_get_int(key)
    if count is not None:
        return count
    return len(_recent_local_failures(key, time.time()))


async def check_signin_allowed(email: str) -> None:
    """
    Refuse a sign-in attempt once the email has too many recent failures.

    Raises:
        RateLimitedError: If the failure limit for the window is reached
    """
    if await get_failed_attempts(email) >= SIGNIN_MAX_FAILED_ATTEMPTS:
        logger.warning(f"Sign-in blocked for {email}: too many failed attempts")
        raise RateLimitedError("Too many failed sign-in attempts. Please try again later.")


async def record_failed_signin(email: str) -> int:
    """
    Count one failed sign-in.

    Returns:
        The failure count inside the current window
    """
    key = get_signin_rate_limit_key(email)
    count = await redis_service.redis_incr_with_expiry(key, SIGNIN_LOCKOUT_WINDOW_SECONDS)
    if count is not None:
        return count

    now = time.time()
    hit_times = _recent_local_failures(key, now)
    hit_times.append(now)
    return len(hit_times)


async def clear_failed_signins(email: str) -> None:
    """Forget failures after a successful sign-in."""
    key = get_signin_rate_limit_key(email)
    await redis_service.redis_delete(key)
    _signin_failure_storage.pop(key, None)
