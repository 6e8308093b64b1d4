"""
Admin Dashboard Routes

Endpoints:
- GET  /api/admin/dashboard?days=30 - Sales overview (see services.dashboard_service)
- POST /api/admin/test-email        - Send a test email {email}
"""
from flask import Blueprint, jsonify, request
from pydantic import ValidationError as PydanticValidationError

from api.middleware.error_envelope import make_error_response, validation_error_response
from schemas.admin import SendTestEmailRequest
from services import email_service
from services.dashboard_service import DEFAULT_DAYS, get_dashboard_data
from utils.auth import require_admin
from utils.normalize import ValidationError, to_int

admin_dashboard_bp = Blueprint('admin_dashboard', __name__)


@admin_dashboard_bp.route("/dashboard", methods=["GET"])
@require_admin
def dashboard():
    try:
        days = to_int(request.args.get("days"), default=DEFAULT_DAYS, field="days", min_value=1)
    except ValidationError as e:
        return make_error_response("INVALID_PARAMS", str(e), field=e.field)
    return jsonify(get_dashboard_data(days))


@admin_dashboard_bp.route("/test-email", methods=["POST"])
@require_admin
def test_email():
    try:
        payload = SendTestEmailRequest.model_validate(request.get_json(silent=True) or {})
    except PydanticValidationError as e:
        return validation_error_response(e)

    sent = email_service.send_test_email(payload.email)
    if not sent:
        return make_error_response("SERVICE_UNAVAILABLE", "Email could not be sent; check RESEND_API_KEY and logs")
    return jsonify({"success": True, "email": payload.email})
