"""
Request logging middleware - lightweight usage sampling.

Sampled access log for /api requests. Server errors and slow requests are
always logged; everything else follows the sample rate and watchlist.
"""

import logging
import os
import random
import time
from typing import List

from flask import Flask, g, request


logger = logging.getLogger("api.request")


def _parse_watchlist(raw: str) -> List[str]:
    if not raw:
        return []
    return [p.strip() for p in raw.split(",") if p.strip()]


def _should_log(path: str, watchlist: List[str], sample_rate: float) -> bool:
    if watchlist and any(path.startswith(prefix) for prefix in watchlist):
        return True
    if sample_rate <= 0:
        return False
    if sample_rate >= 1:
        return True
    return random.random() <= sample_rate


def setup_request_logging_middleware(app: Flask) -> None:
    """
    Set up request logging middleware on Flask app.

    Env vars:
      - REQUEST_LOG_ENABLED (default: true)
      - REQUEST_LOG_SAMPLE_RATE (default: 0.0)
      - REQUEST_LOG_ENDPOINTS (comma-separated path prefixes to always log)
      - REQUEST_LOG_SLOW_MS (default: 2000)
    """
    enabled = os.environ.get("REQUEST_LOG_ENABLED", "true").lower() == "true"
    try:
        sample_rate = float(os.environ.get("REQUEST_LOG_SAMPLE_RATE", "0.0"))
    except ValueError:
        sample_rate = 0.0
    try:
        slow_ms = float(os.environ.get("REQUEST_LOG_SLOW_MS", "2000"))
    except ValueError:
        slow_ms = 2000.0
    watchlist = _parse_watchlist(os.environ.get("REQUEST_LOG_ENDPOINTS", "/api/payments/webhook"))

    if not enabled:
        return

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()

    @app.after_request
    def _log_request(response):
        path = request.path
        if not path.startswith("/api"):
            return response

        duration_ms = None
        if hasattr(g, "request_start"):
            duration_ms = round((time.perf_counter() - g.request_start) * 1000, 2)

        forced = response.status_code >= 500 or (duration_ms is not None and duration_ms >= slow_ms)
        if not forced and not _should_log(path, watchlist, sample_rate):
            return response

        log = logger.warning if forced else logger.info
        log(
            "api_request path=%s method=%s status=%s duration_ms=%s request_id=%s",
            path,
            request.method,
            response.status_code,
            duration_ms,
            getattr(g, "request_id", None),
        )
        return response
