"""
Shared retry loop for third-party HTTP APIs (payment gateway, carriers).

Connection errors, 429 and 5xx responses are retried with exponential backoff
(a numeric Retry-After header wins when the server sends one);
any other response is returned to the caller, which owns 4xx handling.
"""

import logging
import time

import requests

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0
BACKOFF_MULTIPLIER = 2.0
DEFAULT_TIMEOUT_SECONDS = 30
MAX_RETRY_AFTER_SECONDS = 30.0


def _retry_after_seconds(response):
    """Retry-After in seconds, or None when absent or given as an HTTP date."""
    try:
        return max(float(response.headers.get("Retry-After")), 0.0)
    except (TypeError, ValueError):
        return None


def request_with_retry(
    session: requests.Session,
    method: str,
    url: str,
    *,
    error_cls,
    service: str,
    max_retries: int = MAX_RETRIES,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    **kwargs,
) -> requests.Response:
    """
    Perform an HTTP request, retrying transient failures.

    Raises:
        error_cls: after max_retries connection errors / 429 / 5xx responses.
    """
    reason = None
    status_code = None
    for attempt in range(max_retries):
        retry_after = None
        try:
            response = session.request(method, url, timeout=timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            reason = str(e)
            status_code = None
        else:
            if response.status_code < 500 and response.status_code != 429:
                return response
            reason = f"HTTP {response.status_code}"
            status_code = response.status_code
            if status_code == 429:
                retry_after = _retry_after_seconds(response)

        if attempt < max_retries - 1:
            backoff = INITIAL_BACKOFF_SECONDS * (BACKOFF_MULTIPLIER ** attempt)
            if retry_after is not None:
                backoff = min(retry_after, MAX_RETRY_AFTER_SECONDS)
            logger.warning(
                f"{service} {method} {url} attempt {attempt + 1}/{max_retries} failed: {reason}. "
                f"Retrying in {backoff}s"
            )
            time.sleep(backoff)

    error = error_cls(f"{service} request failed after {max_retries} attempts: {reason}")
    error.status_code = status_code
    raise error


def safe_json(response: requests.Response):
    """Decode a JSON body, returning None for empty/non-JSON bodies."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None
