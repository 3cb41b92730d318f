"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter, limit strings) lives here;
every sub-router imports what it needs from this package.
"""

import os

from fastapi import APIRouter
from slowapi import Limiter
from slowapi.util import get_remote_address

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
if IS_TEST_ENV:
    limiter = Limiter(key_func=get_remote_address)

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()
else:
    limiter = Limiter(key_func=get_remote_address)

# ---------------------------------------------------------------------------
# Shared limits
# ---------------------------------------------------------------------------
AUTH_RATE_LIMIT = "10/15minutes"
SEARCH_RATE_LIMIT = "60/minute"
MATCH_CREATION_RATE_LIMIT = "20/hour"


# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from sports_buddy.api.routes.auth import router as auth_router  # noqa: E402
from sports_buddy.api.routes.profiles import router as profiles_router  # noqa: E402
from sports_buddy.api.routes.sports import router as sports_router  # noqa: E402
from sports_buddy.api.routes.matches import router as matches_router  # noqa: E402
from sports_buddy.api.routes.location import router as location_router  # noqa: E402
from sports_buddy.api.routes.friends import router as friends_router  # noqa: E402

router = APIRouter()
router.include_router(auth_router)
router.include_router(profiles_router)
router.include_router(sports_router)
router.include_router(matches_router)
router.include_router(location_router)
router.include_router(friends_router)
