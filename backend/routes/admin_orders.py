"""
Admin Order Routes - order back-office

Endpoints:
- GET  /api/admin/orders                          - List (status, shipment_status, search, page, limit)
- GET  /api/admin/orders/<id>                     - Full order with admin fields
- POST /api/admin/orders/<id>/mark-paid           - Confirm cash/transfer payment, ship automatically
- POST /api/admin/orders/<id>/mark-processed      - Manual dispatch {trackingNumber?, carrier?}
- POST /api/admin/orders/<id>/mark-delivered
- POST /api/admin/orders/<id>/cancel              - {reason?}; restores stock
- POST /api/admin/orders/<id>/retry-shipment      - Retry automatic carrier shipment
- POST /api/admin/orders/<id>/sync-tracking       - Refresh carrier tracking
"""
import logging
import math

from flask import Blueprint, jsonify, request
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, or_

from api.middleware.error_envelope import make_error_response, validation_error_response
from constants import CARRIER_PICKUP, MAX_PAGE_SIZE, OrderStatus
from models.database import db
from models.order import Order
from schemas.admin import CancelOrderRequest, MarkProcessedRequest
from services import email_service, order_service
from services.carriers import CarrierError
from services.order_service import InvalidTransition
from services.shipment_service import ShipmentService
from utils.auth import require_admin
from utils.normalize import ValidationError, to_page

logger = logging.getLogger(__name__)

admin_orders_bp = Blueprint('admin_orders', __name__)


def _load_order(order_id):
    return db.session.get(Order, order_id)


def _not_found(order_id):
    return make_error_response("NOT_FOUND", f"Order {order_id} not found")


def _invalid_transition(error: InvalidTransition):
    db.session.rollback()
    return make_error_response(
        "INVALID_TRANSITION", str(error),
        details={"current": error.current, "requested": error.new},
    )


@admin_orders_bp.route("", methods=["GET"])
@require_admin
def list_orders():
    args = request.args
    status = args.get("status") or None
    if status and status not in OrderStatus.ALL:
        return make_error_response("INVALID_PARAMS", f"Unknown status '{status}'", field="status")
    try:
        page, limit = to_page(args.get("page"), args.get("limit"), default_limit=20, max_limit=MAX_PAGE_SIZE)
    except ValidationError as e:
        return make_error_response("INVALID_PARAMS", str(e), field=e.field)

    query = Order.query
    if status:
        query = query.filter(Order.status == status)
    if args.get("shipment_status"):
        query = query.filter(Order.shipment_status == args["shipment_status"])
    search = (args.get("search") or "").strip().lower()
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            func.lower(Order.customer_name).like(pattern),
            func.lower(Order.customer_email).like(pattern),
            func.lower(Order.id).like(pattern),
            Order.mp_payment_id.like(pattern),
        ))

    total = query.count()
    orders = query.order_by(Order.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return jsonify({
        "data": [o.to_dict(include_admin=True) for o in orders],
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(total / limit) if total else 0,
    })


@admin_orders_bp.route("/<order_id>", methods=["GET"])
@require_admin
def get_order(order_id):
    order = _load_order(order_id)
    if order is None:
        return _not_found(order_id)
    return jsonify({"data": order.to_dict(include_admin=True)})


@admin_orders_bp.route("/<order_id>/mark-paid", methods=["POST"])
@require_admin
def mark_paid(order_id):
    order = _load_order(order_id)
    if order is None:
        return _not_found(order_id)

    try:
        order_service.mark_paid(order)
    except InvalidTransition as e:
        return _invalid_transition(e)
    order.add_note("Payment confirmed manually")
    db.session.commit()
    logger.info(f"Order {order.id} marked paid by admin")

    shipment_created = False
    if order.carrier and order.carrier != CARRIER_PICKUP:
        shipment_created = ShipmentService().create_shipment(order)

    return jsonify({"data": order.to_dict(include_admin=True), "shipmentCreated": shipment_created})


@admin_orders_bp.route("/<order_id>/mark-processed", methods=["POST"])
@require_admin
def mark_processed(order_id):
    order = _load_order(order_id)
    if order is None:
        return _not_found(order_id)
    try:
        payload = MarkProcessedRequest.model_validate(request.get_json(silent=True) or {})
    except PydanticValidationError as e:
        return validation_error_response(e)

    try:
        order_service.mark_processed(order, tracking_number=payload.tracking_number, carrier=payload.carrier)
    except InvalidTransition as e:
        return _invalid_transition(e)
    order.add_note("Dispatched manually")
    db.session.commit()

    email_service.send_order_shipped(order)
    return jsonify({"data": order.to_dict(include_admin=True)})


@admin_orders_bp.route("/<order_id>/mark-delivered", methods=["POST"])
@require_admin
def mark_delivered(order_id):
    order = _load_order(order_id)
    if order is None:
        return _not_found(order_id)
    try:
        order_service.mark_delivered(order)
    except InvalidTransition as e:
        return _invalid_transition(e)
    db.session.commit()

    email_service.send_order_delivered(order)
    return jsonify({"data": order.to_dict(include_admin=True)})


@admin_orders_bp.route("/<order_id>/cancel", methods=["POST"])
@require_admin
def cancel_order(order_id):
    order = _load_order(order_id)
    if order is None:
        return _not_found(order_id)
    try:
        payload = CancelOrderRequest.model_validate(request.get_json(silent=True) or {})
    except PydanticValidationError as e:
        return validation_error_response(e)

    try:
        order_service.cancel(order, reason=payload.reason or "cancelled by admin")
    except InvalidTransition as e:
        return _invalid_transition(e)
    db.session.commit()
    return jsonify({"data": order.to_dict(include_admin=True)})


@admin_orders_bp.route("/<order_id>/retry-shipment", methods=["POST"])
@require_admin
def retry_shipment(order_id):
    order = _load_order(order_id)
    if order is None:
        return _not_found(order_id)

    if order.tracking_number or order.shipment_id:
        return make_error_response("SHIPMENT_EXISTS", "Order already has a shipment")
    if order.status != OrderStatus.PAID:
        return make_error_response(
            "INVALID_TRANSITION", f"Order is {order.status}; only PAID orders can be shipped",
            details={"current": order.status, "requested": OrderStatus.PROCESSED},
        )
    if not order.carrier or order.carrier == CARRIER_PICKUP:
        return make_error_response("BAD_REQUEST", "Order is picked up in store; no shipment needed")

    created = ShipmentService().create_shipment(order)
    return jsonify({
        "success": created,
        "data": order.to_dict(include_admin=True),
        "error": None if created else order.shipment_error,
    })


@admin_orders_bp.route("/<order_id>/sync-tracking", methods=["POST"])
@require_admin
def sync_tracking(order_id):
    order = _load_order(order_id)
    if order is None:
        return _not_found(order_id)
    if not (order.tracking_number or order.shipment_id):
        return make_error_response("CONFLICT", "Order has no shipment to track")

    try:
        info = ShipmentService().sync_tracking(order)
    except CarrierError as e:
        return make_error_response("CARRIER_ERROR", str(e), details={"carrier": order.carrier, "code": e.code})

    return jsonify({
        "data": order.to_dict(include_admin=True),
        "tracking": info.to_dict() if info is not None else None,
    })
