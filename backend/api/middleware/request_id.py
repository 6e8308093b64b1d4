"""
Request ID middleware - Inject X-Request-ID for request correlation.

The id is echoed on every response and attached to error envelopes, so a
customer-reported failure (or a gateway delivery log) can be matched to
server logs.
"""

import re
import uuid
from flask import Flask, request, g, has_request_context

# Accept caller-supplied ids only when they look like ids
_VALID_REQUEST_ID = re.compile(r'^[A-Za-z0-9._:-]{1,128}$')


def setup_request_id_middleware(app: Flask) -> None:
    """
    Set up request ID middleware on Flask app.

    Injects X-Request-ID into g.request_id and the response headers.
    """

    @app.before_request
    def inject_request_id():
        incoming = request.headers.get('X-Request-ID', '')
        g.request_id = incoming if _VALID_REQUEST_ID.match(incoming) else str(uuid.uuid4())

    @app.after_request
    def add_request_id_header(response):
        if hasattr(g, 'request_id'):
            response.headers['X-Request-ID'] = g.request_id
        return response


def get_request_id() -> str:
    """Current request id, or a fresh one outside a request (CLI jobs)."""
    if has_request_context() and hasattr(g, "request_id"):
        return g.request_id
    return str(uuid.uuid4())
