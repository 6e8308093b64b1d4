"""
Back-office auth helpers.

Resolves the staff user from the `Authorization: Bearer <jwt>` header and
guards admin endpoints.
"""
from functools import wraps

from flask import request, g

from api.middleware.error_envelope import make_error_response
from models.database import db
from models.user import User


def get_user_from_request():
    """
    Extract and verify user from Authorization header.

    Returns:
        User object if valid token, None otherwise
    """
    from routes.auth import verify_token

    auth_header = request.headers.get('Authorization')
    if not auth_header or not auth_header.startswith('Bearer '):
        return None

    token = auth_header.split(' ', 1)[1]
    user_id = verify_token(token)
    if not user_id:
        return None

    return db.session.get(User, user_id)


def require_admin(f):
    """
    Decorator for back-office endpoints.

    401 when no valid token is presented, 403 when the user is not an active admin.
    The resolved user is available as g.current_user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = get_user_from_request()
        if not user:
            return make_error_response("UNAUTHORIZED", "Authentication required")
        if not user.is_admin:
            return make_error_response("FORBIDDEN", "Admin access required")
        g.current_user = user
        return f(*args, **kwargs)
    return decorated_function
