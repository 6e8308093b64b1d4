"""
Rate Limiter Configuration

Protects checkout, tracking lookups and the public forms from abuse.
Uses Redis in production, memory storage for development.

Key decisions:
- User-based key when logged in (prevents punishing shared IPs)
- IP-based key for anonymous requests
- The payment webhook is exempt: the gateway retries aggressively and a
  429 would only delay reconciliation
"""

import os
import logging
from flask import request, g
from flask_limiter import Limiter

logger = logging.getLogger(__name__)

REDIS_URL = os.environ.get("REDIS_URL")

if REDIS_URL:
    storage_uri = REDIS_URL
else:
    storage_uri = "memory://"


def get_rate_limit_key():
    """
    Get rate limit key - user_id if logged in, else remote_addr.
    """
    if hasattr(g, 'current_user') and g.current_user:
        return f"user:{g.current_user.id}"
    return f"ip:{request.remote_addr}"


# Per-endpoint rate limits
RATE_LIMITS = {
    "checkout": "10 per minute",
    "tracking": "30 per minute",
    "public_form": "5 per minute",
    "auth": "10 per minute",
}

DEFAULT_LIMITS = ["2000 per day", "500 per hour"]

limiter = Limiter(
    key_func=get_rate_limit_key,
    default_limits=DEFAULT_LIMITS,
    storage_uri=storage_uri,
    key_prefix="rate_limit",
    headers_enabled=True,
)


def init_limiter(app):
    """
    Bind the shared limiter to the app.

    Routes decorate with @limiter.limit(RATE_LIMITS[...]) at import time;
    RATELIMIT_ENABLED=False (tests) turns enforcement off.
    """
    limiter.init_app(app)

    @app.errorhandler(429)
    def ratelimit_handler(e):
        from api.middleware.error_envelope import make_error_response
        return make_error_response(
            "TOO_MANY_REQUESTS",
            "Rate limit exceeded",
            details={"limit": str(e.description)},
        )

    if REDIS_URL:
        logger.info("Rate limiter using Redis storage")
    else:
        logger.warning("Rate limiter using in-memory storage (dev only)")
    return limiter