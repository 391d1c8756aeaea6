"""
Rate limiting

SlowAPI limiter shared by the routes. Reservations are limited per
authenticated caller, since every admission creates a Pix charge; other
routes fall back to the client address. Counters live in Redis when
REDIS_URL is set and in process memory otherwise.
"""
import logging

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse

from app.core.config import settings
from app.core.security import caller_from_token

logger = logging.getLogger(__name__)


def client_address(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # Left-most entry is the client, the rest are our proxies
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


def caller_key(request: Request) -> str:
    """`caller:<uid>` for a valid bearer token, else `ip:<address>`."""
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and token:
        caller = caller_from_token(token)
        if caller is not None:
            return f"caller:{caller.uid}"
    return f"ip:{client_address(request)}"


limiter = Limiter(
    key_func=client_address,
    enabled=settings.RATE_LIMIT_ENABLED,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    storage_uri=settings.REDIS_URL or "memory://",
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(f"Rate limit hit by {caller_key(request)} on {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=429,
        content={
            "error": "rate-limited",
            "reason": None,
            "message": f"Too many requests ({exc.detail}). Try again shortly.",
        },
        headers={"Retry-After": "60"},
    )
