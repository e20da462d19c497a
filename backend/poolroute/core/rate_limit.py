"""
Rate limiting configuration for API endpoints.

Uses slowapi for coarse request throttling keyed by the bearer token's actor or
the client IP. Field actions have their own sliding window limiter
(see ``poolroute.core.rate_limiter``).
"""

import re

from fastapi import Request
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from poolroute.core.config import settings
from poolroute.core.security import decode_token


def get_rate_limit_key(request: Request) -> str:
    """
    Get rate limit key from request.

    Uses the token subject if a valid bearer token is present, otherwise client IP.
    """
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        payload = decode_token(auth_header[len("Bearer "):])
        if payload and payload.get("sub"):
            return f"user:{payload['sub']}"

    return get_remote_address(request)


class RateLimits:
    """Rate limit presets for different endpoint types."""

    # Schedule administration
    SCHEDULE_WRITE = "60/minute"

    # Materialization loops over dates; keep it modest
    GENERATE_ROUTES = "10/minute"

    # Read-side dispatch queries
    DISPATCH_READ = "120/minute"

    HEALTH = "60/minute"

    DEFAULT = "200/minute"


limiter = Limiter(
    key_func=get_rate_limit_key,
    default_limits=[RateLimits.DEFAULT],
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    strategy="fixed-window",
    enabled=settings.RATE_LIMIT_ENABLED,
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """
    Custom handler for rate limit exceeded errors.

    Returns a JSON response in the standard error envelope with retry information.
    """
    retry_after = 60
    if getattr(exc, "detail", None):
        match = re.search(r"(\d+)\s*second", str(exc.detail))
        if match:
            retry_after = int(match.group(1))

    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": "RATE_LIMIT_EXCEEDED",
                "message": f"Rate limit exceeded: {exc.detail}" if getattr(exc, "detail", None) else "Too many requests",
                "status_code": 429,
                "details": {"retry_after_seconds": retry_after},
            }
        },
        headers={"Retry-After": str(retry_after)},
    )
