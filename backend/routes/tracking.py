"""
Tracking Routes

Endpoints:
- GET  /api/tracking/<tracking_number> - Order summary plus carrier events
- POST /api/tracking/validate          - Does the carrier know this tracking number?
"""
import logging
import re

from flask import Blueprint, jsonify, request
from pydantic import ValidationError

from api.middleware.error_envelope import make_error_response, validation_error_response
from constants import CARRIER_CORREO_ARGENTINO, CARRIER_OCA
from models.order import Order
from schemas.checkout import TrackingValidateRequest
from services.carriers import CarrierError, get_carrier_client
from services.shipment_service import ShipmentService
from utils.rate_limiter import RATE_LIMITS, limiter

logger = logging.getLogger(__name__)

tracking_bp = Blueprint('tracking', __name__)

TRACKING_NUMBER_RE = re.compile(r'^[A-Za-z0-9-]+$')


@tracking_bp.route("/<tracking_number>", methods=["GET"])
@limiter.limit(RATE_LIMITS["tracking"])
def get_tracking(tracking_number):
    order = Order.query.filter_by(tracking_number=tracking_number).first()
    if order is None:
        return make_error_response("NOT_FOUND", "Tracking number not found")

    result = {"order": order.to_summary(), "tracking": None}
    try:
        info = ShipmentService().fetch_tracking(order)
        if info is not None:
            result["tracking"] = info.to_dict()
    except CarrierError as e:
        logger.warning(f"Tracking lookup failed for {tracking_number}: {e}")
        result["trackingError"] = "Carrier tracking is temporarily unavailable"
    return jsonify(result)


@tracking_bp.route("/validate", methods=["POST"])
@limiter.limit(RATE_LIMITS["tracking"])
def validate_tracking():
    body = request.get_json(silent=True) or {}
    try:
        payload = TrackingValidateRequest.model_validate(body)
    except ValidationError as e:
        return validation_error_response(e)

    tracking_number = payload.tracking_number
    empty = {"isValid": False, "exists": False, "status": None, "description": None, "lastUpdate": None}
    if not TRACKING_NUMBER_RE.match(tracking_number):
        return jsonify(empty)

    order = Order.query.filter_by(tracking_number=tracking_number).first()
    carrier = (order.carrier if order is not None else None) or body.get("carrier") or CARRIER_OCA
    if carrier not in (CARRIER_OCA, CARRIER_CORREO_ARGENTINO):
        return make_error_response("INVALID_PARAMS", f"Unknown carrier '{carrier}'", field="carrier")

    client = get_carrier_client(carrier)
    if client is None:
        return make_error_response("SERVICE_UNAVAILABLE", f"Carrier {carrier} is not configured")

    try:
        if carrier == CARRIER_OCA:
            info = client.validate_tracking(tracking_number)
        else:
            info = client.get_tracking(tracking_number)
    except CarrierError as e:
        logger.info(f"{carrier} does not know {tracking_number}: {e}")
        info = None

    if info is None:
        return jsonify({**empty, "isValid": True})
    return jsonify({
        "isValid": True,
        "exists": True,
        "status": info.status,
        "description": info.description,
        "lastUpdate": info.last_update,
    })
