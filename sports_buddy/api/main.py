"""
Sports Buddy API Server

FastAPI server for location-aware sports matchmaking: profiles, matches,
proximity search and friends.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import os
import time
import traceback
import uvicorn
from slowapi.errors import RateLimitExceeded  # type: ignore

from sports_buddy.api.routes import router, limiter as routes_limiter
from sports_buddy.database import db
from sports_buddy.database.init_defaults import init_defaults
from sports_buddy.services import identity_service, redis_service
from sports_buddy.utils.datetime_utils import utcnow
from sports_buddy.utils.errors import RateLimitedError, ServiceError, ValidationError, code_for_status

# Set up logging
# Allow log level to be configured via environment variable (default: INFO)
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
numeric_level = getattr(logging, log_level, logging.INFO)
logging.basicConfig(
    level=numeric_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

IS_PRODUCTION = os.getenv("ENV", "").lower() == "production"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup and shutdown events."""
    # Startup
    logger.info("Starting up Sports Buddy API...")

    # Missing identity/store credentials are fatal
    identity_service.check_configuration()

    try:
        await db.init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)
        raise

    try:
        await init_defaults()
        logger.info("✓ Default values initialized")
    except Exception as e:
        logger.error(f"Failed to initialize defaults: {e}", exc_info=True)
        # Don't raise - the API still works with an empty sports catalog

    yield  # App is running

    # Shutdown
    logger.info("Shutting down Sports Buddy API...")

    await redis_service.close_redis_connection()
    await db.dispose_engine()
    logger.info("✓ Connections closed")


app = FastAPI(
    title="Sports Buddy API",
    description="API for finding sports partners, matches and friends nearby",
    version="1.0.0",
    lifespan=lifespan,
)

# Setup rate limiter
app.state.limiter = routes_limiter

# Add CORS middleware - origins configured via ALLOWED_ORIGINS env var
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


# ============================================================================
# Request logging
# ============================================================================

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log method, path, status and duration of every request."""
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000

    message = f"{request.method} {request.url.path} {response.status_code} {duration_ms:.1f}ms"
    if response.status_code >= 500:
        logger.error(message)
    elif response.status_code >= 400:
        logger.warning(message)
    else:
        logger.info(message)
    return response


# ============================================================================
# Error rendering: every error body is {"error": message, "code": code}
# ============================================================================

def error_response(status_code: int, message: str, code: str, headers=None, **extra) -> JSONResponse:
    body = {"error": message, "code": code}
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body, headers=headers)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    code = getattr(exc, "code", None) or code_for_status(exc.status_code)
    return error_response(
        exc.status_code, str(exc.detail), code, headers=getattr(exc, "headers", None)
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Request validation failures are 400s carrying the first problem found."""
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        message = str(first.get("msg", message))
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        else:
            location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            if location:
                message = f"{location}: {message}"
    return error_response(400, message, ValidationError.code)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded):
    return error_response(429, f"Rate limit exceeded: {exc.detail}", RateLimitedError.code)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return error_response(exc.status_code, exc.message, exc.code)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    if IS_PRODUCTION:
        return error_response(500, "Internal server error", ServiceError.code)
    return error_response(
        500,
        str(exc) or exc.__class__.__name__,
        ServiceError.code,
        stack="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    )


# Include API routes
app.include_router(router)


@app.get("/health")
async def health():
    """Liveness probe."""
    return {"status": "ok", "timestamp": utcnow().isoformat()}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "3000")))
