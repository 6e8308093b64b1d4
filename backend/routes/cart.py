"""
Cart Routes

Endpoints:
- POST /api/cart/validate - Price a cart server-side and report stock problems
"""
from flask import Blueprint, jsonify, request
from pydantic import ValidationError

from api.middleware.error_envelope import make_error_response, validation_error_response
from schemas.checkout import CartValidateRequest
from services.pricing import price_cart

cart_bp = Blueprint('cart', __name__)


@cart_bp.route("/validate", methods=["POST"])
def validate_cart():
    body = request.get_json(silent=True) or {}
    if not body.get("items"):
        return make_error_response("BAD_REQUEST", "Cart is empty", field="items")

    try:
        payload = CartValidateRequest.model_validate(body)
    except ValidationError as e:
        return validation_error_response(e)

    cart = price_cart(
        payload.items,
        shipping_method_id=payload.shipping_method_id,
        postal_code=payload.postal_code,
        payment_method=payload.payment_method,
    )
    return jsonify(cart.to_dict())
