"""
Authentication Routes - JWT-based back-office login

Endpoints:
- POST /api/auth/login - Email/password login, returns a bearer token
- GET  /api/auth/me    - Current staff user
- POST /api/auth/forgot-password - Email a one-hour reset link to an admin
- POST /api/auth/reset-password  - Set a new password with that link's token
"""
from datetime import datetime, timedelta, timezone

import jwt
from flask import Blueprint, g, jsonify, request
from pydantic import ValidationError

from api.middleware.error_envelope import make_error_response, validation_error_response
from config import Config
from models.user import User
from schemas.admin import ForgotPasswordRequest, LoginRequest, ResetPasswordRequest
from services import email_service, user_service
from services.user_service import InvalidResetToken
from utils.rate_limiter import RATE_LIMITS, limiter

auth_bp = Blueprint('auth', __name__)


def generate_token(user_id, email):
    """Generate JWT token for user"""
    now = datetime.now(timezone.utc)
    payload = {
        'user_id': user_id,
        'email': email,
        'exp': now + timedelta(hours=Config.JWT_EXPIRATION_HOURS),
        'iat': now,
    }
    return jwt.encode(payload, Config.JWT_SECRET, algorithm=Config.JWT_ALGORITHM)


def verify_token(token):
    """Verify JWT token and return user_id"""
    try:
        payload = jwt.decode(token, Config.JWT_SECRET, algorithms=[Config.JWT_ALGORITHM])
        return payload.get('user_id')
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


@auth_bp.route("/login", methods=["POST"])
@limiter.limit(RATE_LIMITS["auth"])
def login():
    """Login staff user and return JWT token"""
    try:
        payload = LoginRequest.model_validate(request.get_json(silent=True) or {})
    except ValidationError as e:
        return validation_error_response(e)

    user = User.query.filter_by(email=payload.email.lower()).first()
    if not user or not user.check_password(payload.password):
        return make_error_response("UNAUTHORIZED", "Invalid email or password")
    if not user.is_active:
        return make_error_response("FORBIDDEN", "Account disabled")

    return jsonify({
        "message": "Login successful",
        "user": user.to_dict(),
        "token": generate_token(user.id, user.email),
    })


@auth_bp.route("/me", methods=["GET"])
def get_current_user():
    """Get current user info from JWT token"""
    from utils.auth import get_user_from_request

    user = get_user_from_request()
    if not user:
        return make_error_response("UNAUTHORIZED", "Authentication required")
    g.current_user = user
    return jsonify({"user": user.to_dict()})


@auth_bp.route("/forgot-password", methods=["POST"])
@limiter.limit(RATE_LIMITS["public_form"])
def forgot_password():
    """Email a reset link to an active admin. The answer never reveals whether the account exists."""
    try:
        payload = ForgotPasswordRequest.model_validate(request.get_json(silent=True) or {})
    except ValidationError as e:
        return validation_error_response(e)

    issued = user_service.create_password_reset(payload.email)
    if issued:
        user, token = issued
        email_service.send_password_reset(user, token)

    return jsonify({
        "success": True,
        "message": "Si el email corresponde a una cuenta, vas a recibir instrucciones para recuperar tu contraseña",
    })


@auth_bp.route("/reset-password", methods=["POST"])
@limiter.limit(RATE_LIMITS["auth"])
def reset_password():
    try:
        payload = ResetPasswordRequest.model_validate(request.get_json(silent=True) or {})
    except ValidationError as e:
        return validation_error_response(e)

    try:
        user = user_service.reset_password(payload.token, payload.password)
    except InvalidResetToken as e:
        return make_error_response("BAD_REQUEST", str(e), field="token")

    return jsonify({"success": True, "user": user.to_dict()})
