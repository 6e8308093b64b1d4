"""
Checkout Routes

Endpoints:
- POST /api/checkout - Create an order (cash, transfer or MercadoPago)

Request body:
- items: [{productId, quantity, size?, color?}]
- customer: {name, email, phone?, address?, street?, number?, city?, province?, postalCode?}
- shippingMethod: {id, name?}
- paymentMethod: 'mercadopago' | 'cash' | 'transfer'
- shippingAgency: optional branch code for branch delivery

Client-side prices and totals are ignored.
"""
import logging

from flask import Blueprint, jsonify, request
from pydantic import ValidationError

from api.middleware.error_envelope import make_error_response, validation_error_response
from schemas.checkout import CheckoutRequest
from services.checkout_service import CheckoutError, process_checkout
from services.mercadopago_client import PaymentGatewayError
from services.order_service import StockError
from utils.rate_limiter import RATE_LIMITS, limiter

logger = logging.getLogger(__name__)

checkout_bp = Blueprint('checkout', __name__)


@checkout_bp.route("", methods=["POST"])
@limiter.limit(RATE_LIMITS["checkout"])
def checkout():
    try:
        payload = CheckoutRequest.model_validate(request.get_json(silent=True) or {})
    except ValidationError as e:
        return validation_error_response(e)

    try:
        result = process_checkout(payload)
    except StockError as e:
        return make_error_response("INSUFFICIENT_STOCK", str(e), details=e.problems)
    except CheckoutError as e:
        return make_error_response(e.code, str(e), status_code=e.status_code)
    except PaymentGatewayError as e:
        logger.error(f"Checkout payment preference failed: {e}")
        return make_error_response("PAYMENT_GATEWAY_ERROR", "Could not start the payment, please try again")

    return jsonify(result), 201
