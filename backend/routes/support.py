"""
Support Routes - public contact form

Endpoints:
- POST /api/support/tickets - Open a support ticket
"""
from flask import Blueprint, jsonify, request
from pydantic import ValidationError

from api.middleware.error_envelope import validation_error_response
from schemas.support import TicketCreate
from services import support_service
from utils.rate_limiter import RATE_LIMITS, limiter

support_bp = Blueprint('support', __name__)


@support_bp.route("/tickets", methods=["POST"])
@limiter.limit(RATE_LIMITS["public_form"])
def create_ticket():
    try:
        payload = TicketCreate.model_validate(request.get_json(silent=True) or {})
    except ValidationError as e:
        return validation_error_response(e)

    ticket = support_service.create_ticket(payload)
    return jsonify({
        "success": True,
        "ticketId": ticket.id,
        "message": "Recibimos tu consulta. Te responderemos por email.",
    }), 201
