"""
Shipping Routes - zone rates, live carrier quotes and branch lookup

Endpoints:
- GET  /api/shipping/options?postal_code=1611
- POST /api/shipping/quote      {carrier, postalCode, items, deliveredType?}
- GET  /api/shipping/agencies?carrier=correo-argentino&province_code=B
- GET  /api/shipping/agencies?carrier=oca&postal_code=1611
"""
import logging

from flask import Blueprint, current_app, jsonify, request
from pydantic import ValidationError

from api.middleware.error_envelope import make_error_response, validation_error_response
from constants import CARRIER_CORREO_ARGENTINO, CARRIER_OCA, DEFAULT_PACKAGE_DIMENSIONS, PROVINCE_CODES
from schemas.checkout import ShippingQuoteRequest
from services.carriers import CarrierError, get_carrier_client
from services.pricing import calculate_shipping_options, price_cart
from services.shipment_service import package_weight_grams
from utils.address import normalize_postal_code

logger = logging.getLogger(__name__)

shipping_bp = Blueprint('shipping', __name__)


def _carrier_error_response(carrier, error: CarrierError):
    logger.warning(f"{carrier} error: {error}")
    return make_error_response("CARRIER_ERROR", str(error), details={"carrier": carrier, "code": error.code})


@shipping_bp.route("/options", methods=["GET"])
def shipping_options():
    postal_code = request.args.get("postal_code") or request.args.get("postalCode")
    try:
        return jsonify(calculate_shipping_options(postal_code))
    except ValueError as e:
        return make_error_response("INVALID_PARAMS", str(e), field="postal_code")


@shipping_bp.route("/quote", methods=["POST"])
def shipping_quote():
    try:
        payload = ShippingQuoteRequest.model_validate(request.get_json(silent=True) or {})
    except ValidationError as e:
        return validation_error_response(e)

    destination = normalize_postal_code(payload.postal_code)
    if destination is None:
        return make_error_response("INVALID_PARAMS", "Invalid postal code", field="postalCode")
    destination = destination[-4:]

    cart = price_cart(payload.items, check_stock=False)
    if cart.problems:
        return make_error_response("BAD_REQUEST", "Some items cannot be quoted", details=cart.problems)

    client = get_carrier_client(payload.carrier)
    if client is None:
        return make_error_response("SERVICE_UNAVAILABLE", f"Carrier {payload.carrier} is not configured")

    weight = package_weight_grams((line.product, line.quantity) for line in cart.lines)
    origin = current_app.config.get("STORE_POSTAL_CODE")

    try:
        if payload.carrier == CARRIER_CORREO_ARGENTINO:
            quotes = client.get_rates(
                origin,
                destination,
                {"weight": weight, **DEFAULT_PACKAGE_DIMENSIONS},
                delivered_type=payload.delivered_type,
            )
        else:
            dims = DEFAULT_PACKAGE_DIMENSIONS
            volume = (dims["height"] * dims["width"] * dims["length"]) / 1_000_000
            quotes = [client.quote(
                weight_kg=weight / 1000,
                volume_m3=volume,
                postal_code_origin=origin,
                postal_code_destination=destination,
                declared_value=float(cart.subtotal),
            )]
    except CarrierError as e:
        return _carrier_error_response(payload.carrier, e)

    return jsonify({
        "carrier": payload.carrier,
        "postalCode": destination,
        "weightGrams": weight,
        "quotes": [q.to_dict() for q in quotes],
    })


@shipping_bp.route("/agencies", methods=["GET"])
def shipping_agencies():
    carrier = request.args.get("carrier") or CARRIER_CORREO_ARGENTINO
    if carrier not in (CARRIER_CORREO_ARGENTINO, CARRIER_OCA):
        return make_error_response("INVALID_PARAMS", f"Unknown carrier '{carrier}'", field="carrier")

    if carrier == CARRIER_CORREO_ARGENTINO:
        province_code = (request.args.get("province_code") or "").upper()
        if province_code not in PROVINCE_CODES:
            return make_error_response("INVALID_PARAMS", "Invalid province code", field="province_code")
    else:
        postal_code = normalize_postal_code(request.args.get("postal_code"))
        if postal_code is None:
            return make_error_response("INVALID_PARAMS", "Invalid postal code", field="postal_code")

    client = get_carrier_client(carrier)
    if client is None:
        return make_error_response("SERVICE_UNAVAILABLE", f"Carrier {carrier} is not configured")

    try:
        if carrier == CARRIER_CORREO_ARGENTINO:
            agencies = client.get_agencies(province_code, services=request.args.get("services"))
        else:
            agencies = client.get_branches(postal_code[-4:])
    except CarrierError as e:
        return _carrier_error_response(carrier, e)

    return jsonify({"carrier": carrier, "data": agencies})
