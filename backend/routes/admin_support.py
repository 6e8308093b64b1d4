"""
Admin Support Routes

Endpoints:
- GET   /api/admin/support/tickets              - List (status, search, page, limit)
- GET   /api/admin/support/tickets/<id>         - Detail with messages
- POST  /api/admin/support/tickets/<id>/reply   - Staff reply (emails the customer)
- PATCH /api/admin/support/tickets/<id>         - Change status / priority
- GET   /api/admin/support/stats                - Ticket counts and response time
"""
import math

from flask import Blueprint, jsonify, request
from pydantic import ValidationError as PydanticValidationError

from api.middleware.error_envelope import make_error_response, validation_error_response
from constants import MAX_PAGE_SIZE, TICKET_STATUSES
from schemas.support import TicketReply, TicketUpdate
from services import support_service
from services.support_service import TicketNotFound
from utils.auth import require_admin
from utils.normalize import ValidationError, to_page

admin_support_bp = Blueprint('admin_support', __name__)


@admin_support_bp.route("/tickets", methods=["GET"])
@require_admin
def list_tickets():
    status = request.args.get("status") or None
    if status and status not in TICKET_STATUSES:
        return make_error_response("INVALID_PARAMS", f"Unknown status '{status}'", field="status")
    try:
        page, limit = to_page(request.args.get("page"), request.args.get("limit"),
                              default_limit=20, max_limit=MAX_PAGE_SIZE)
    except ValidationError as e:
        return make_error_response("INVALID_PARAMS", str(e), field=e.field)

    tickets, total = support_service.list_tickets(
        status=status,
        search=(request.args.get("search") or "").strip() or None,
        page=page,
        limit=limit,
    )
    return jsonify({
        "data": [t.to_dict() for t in tickets],
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(total / limit) if total else 0,
    })


@admin_support_bp.route("/tickets/<int:ticket_id>", methods=["GET"])
@require_admin
def get_ticket(ticket_id):
    try:
        ticket = support_service.get_ticket(ticket_id)
    except TicketNotFound as e:
        return make_error_response("NOT_FOUND", str(e))
    return jsonify({"data": ticket.to_dict(include_messages=True)})


@admin_support_bp.route("/tickets/<int:ticket_id>/reply", methods=["POST"])
@require_admin
def reply_ticket(ticket_id):
    try:
        ticket = support_service.get_ticket(ticket_id)
    except TicketNotFound as e:
        return make_error_response("NOT_FOUND", str(e))
    try:
        payload = TicketReply.model_validate(request.get_json(silent=True) or {})
    except PydanticValidationError as e:
        return validation_error_response(e)

    reply = support_service.reply_to_ticket(ticket, payload.message)
    return jsonify({"data": ticket.to_dict(include_messages=True), "reply": reply.to_dict()}), 201


@admin_support_bp.route("/tickets/<int:ticket_id>", methods=["PATCH"])
@require_admin
def update_ticket(ticket_id):
    try:
        ticket = support_service.get_ticket(ticket_id)
    except TicketNotFound as e:
        return make_error_response("NOT_FOUND", str(e))
    try:
        payload = TicketUpdate.model_validate(request.get_json(silent=True) or {})
    except PydanticValidationError as e:
        return validation_error_response(e)

    ticket = support_service.update_ticket(ticket, payload)
    return jsonify({"data": ticket.to_dict()})


@admin_support_bp.route("/stats", methods=["GET"])
@require_admin
def ticket_stats():
    return jsonify(support_service.get_stats())
