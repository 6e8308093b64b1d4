"""
Error envelope middleware - one JSON shape for every failure.

    {
        "error": {
            "code": "INSUFFICIENT_STOCK",
            "message": "Not enough stock for Remera básica",
            "requestId": "uuid",
            "field": "items",          # optional
            "details": [...],          # optional
            "hint": "..."              # optional
        }
    }

Routes build envelopes with make_error_response(); werkzeug HTTP errors
and uncaught exceptions are converted by the handlers registered in
setup_error_handlers(). The storefront is served from another origin, so
error responses carry the CORS headers too.
"""

import logging
from typing import Optional

from flask import Flask, g, jsonify
from werkzeug.exceptions import HTTPException

from models.database import db


logger = logging.getLogger('api.middleware.error')

# Default HTTP status per error code
ERROR_CODES = {
    # Request problems
    "BAD_REQUEST": 400,
    "INVALID_PARAMS": 400,
    "UNAUTHORIZED": 401,
    "INVALID_SIGNATURE": 401,
    "FORBIDDEN": 403,
    "NOT_FOUND": 404,
    "METHOD_NOT_ALLOWED": 405,
    "CONFLICT": 409,
    "TOO_MANY_REQUESTS": 429,

    # Order rules
    "INSUFFICIENT_STOCK": 400,
    "INVALID_TRANSITION": 409,
    "SHIPMENT_EXISTS": 409,

    # MercadoPago / carriers
    "PAYMENT_GATEWAY_ERROR": 502,
    "CARRIER_ERROR": 502,

    "INTERNAL_ERROR": 500,
    "SERVICE_UNAVAILABLE": 503,
}

CORS_ERROR_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'GET, POST, OPTIONS, PUT, PATCH, DELETE',
    'Access-Control-Allow-Headers': 'Content-Type, Authorization, X-Request-ID',
}


def _envelope(code: str, message: str, status_code: int, **extra):
    request_id = getattr(g, 'request_id', None)
    body = {"code": code, "message": message, "requestId": request_id}
    body.update({key: value for key, value in extra.items() if value})

    response = jsonify({"error": body})
    if request_id:
        response.headers['X-Request-ID'] = request_id
    for header, value in CORS_ERROR_HEADERS.items():
        response.headers.setdefault(header, value)
    return response, status_code


def make_error_response(
    code: str,
    message: str,
    status_code: Optional[int] = None,
    field: Optional[str] = None,
    details=None,
    hint: Optional[str] = None,
):
    """
    Error envelope for a route to return.

    The status defaults to ERROR_CODES[code] (500 for unknown codes).
    Returns a (response, status) tuple.
    """
    if status_code is None:
        status_code = ERROR_CODES.get(code, 500)
    return _envelope(code, message, status_code, field=field, details=details, hint=hint)


def validation_error_response(exc):
    """400 INVALID_PARAMS envelope listing each pydantic error as {field, message}."""
    details = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())),
            "message": err.get("msg"),
        }
        for err in exc.errors()
    ]
    return make_error_response("INVALID_PARAMS", "Invalid request body", details=details)


def setup_error_handlers(app: Flask) -> None:
    """Convert werkzeug HTTP errors and uncaught exceptions into envelopes."""

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        # "Method Not Allowed" -> "METHOD_NOT_ALLOWED"
        code = error.name.upper().replace(' ', '_')
        return _envelope(code, error.description, error.code)

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        if isinstance(error, HTTPException):
            return handle_http_error(error)

        # A half-applied order or stock change must not be committed later
        db.session.rollback()
        logger.exception(
            f"Unhandled error: {error}",
            extra={
                "event": "unhandled_error",
                "request_id": getattr(g, 'request_id', None),
                "error_type": type(error).__name__,
            }
        )
        return _envelope("INTERNAL_ERROR", "An unexpected error occurred", 500)
