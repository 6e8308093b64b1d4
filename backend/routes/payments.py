"""
Payment Routes - MercadoPago webhook

Endpoints:
- POST /api/payments/webhook - MercadoPago payment notifications
- GET  /api/payments/webhook - Reachability check for the webhook URL
- GET  /api/payments/methods - Payment options, discounts and MercadoPago brands

MercadoPago sends `type`/`topic` and `data.id`/`id` in the query string,
the JSON body, or both. The notification only says that a payment
changed; PaymentReconciler re-reads it from the API.

Responses:
- 200 on success, duplicates and unfixable metadata (no point retrying)
- 401 on a bad signature
- 502 / 500 when a retry can help (gateway down, unexpected error)
"""
import logging

from flask import Blueprint, current_app, jsonify, request

from api.middleware.error_envelope import make_error_response
from constants import PaymentMethod
from models.database import db
from services import settings_service
from services.mercadopago_client import PaymentGatewayError, get_mercadopago_client, verify_webhook_signature
from services.order_service import OrderError
from services.payment_reconciliation import PaymentReconciler
from utils.rate_limiter import limiter

logger = logging.getLogger(__name__)

payments_bp = Blueprint('payments', __name__)


def _notification_fields():
    body = request.get_json(silent=True) or {}
    data = body.get("data") if isinstance(body.get("data"), dict) else {}

    topic = (
        request.args.get("type")
        or request.args.get("topic")
        or body.get("type")
        or body.get("topic")
    )
    payment_id = (
        request.args.get("data.id")
        or request.args.get("id")
        or data.get("id")
        or body.get("id")
    )
    return topic, (str(payment_id) if payment_id else None)


@payments_bp.route("/webhook", methods=["GET"])
def webhook_check():
    return jsonify({"ok": True})


@payments_bp.route("/webhook", methods=["POST"])
@limiter.exempt
def mercadopago_webhook():
    topic, payment_id = _notification_fields()
    logger.info(f"MercadoPago webhook received: topic={topic} id={payment_id}")

    secret = current_app.config.get("MP_WEBHOOK_SECRET")
    if secret and payment_id:
        valid = verify_webhook_signature(
            secret,
            request.headers.get("x-signature"),
            request.headers.get("x-request-id"),
            payment_id,
        )
        if not valid:
            logger.warning(f"Invalid webhook signature for payment {payment_id}")
            return make_error_response("INVALID_SIGNATURE", "Invalid webhook signature")

    try:
        result = PaymentReconciler().process(topic, payment_id)
    except PaymentGatewayError as e:
        db.session.rollback()
        logger.error(f"Webhook for payment {payment_id}: gateway error {e}")
        return make_error_response("PAYMENT_GATEWAY_ERROR", "Could not fetch payment")
    except OrderError as e:
        db.session.rollback()
        logger.error(f"Webhook for payment {payment_id}: {e}")
        return jsonify({"received": True, "error": str(e)}), 200
    except Exception:
        db.session.rollback()
        logger.exception(f"Webhook for payment {payment_id} failed")
        return make_error_response("INTERNAL_ERROR", "Webhook processing failed")

    return jsonify({"received": True, **result.to_dict()}), 200


PAYMENT_METHOD_NAMES = {
    PaymentMethod.MERCADOPAGO: "MercadoPago",
    PaymentMethod.TRANSFER: "Transferencia bancaria",
    PaymentMethod.CASH: "Efectivo al retirar",
}


def _gateway_methods(gateway):
    """Card / ticket brands offered by the gateway, grouped by payment type."""
    grouped = {}
    for method in gateway.list_payment_methods():
        grouped.setdefault(method.get("payment_type_id") or "other", []).append({
            "id": method.get("id"),
            "name": method.get("name"),
            "thumbnail": method.get("secure_thumbnail") or method.get("thumbnail"),
            "minAllowedAmount": method.get("min_allowed_amount"),
            "maxAllowedAmount": method.get("max_allowed_amount"),
        })
    return grouped


@payments_bp.route("/methods", methods=["GET"])
def payment_methods():
    """Checkout payment options with their discounts; brands come from MercadoPago when configured."""
    gateway = get_mercadopago_client()
    data = []
    for method_id in (PaymentMethod.MERCADOPAGO, PaymentMethod.TRANSFER, PaymentMethod.CASH):
        entry = {
            "id": method_id,
            "name": PAYMENT_METHOD_NAMES[method_id],
            "available": True,
            "discountPercent": float(settings_service.payment_discount(method_id)),
        }
        if method_id == PaymentMethod.MERCADOPAGO:
            entry["available"] = gateway is not None
            entry["brands"] = {}
            if gateway is not None:
                try:
                    entry["brands"] = _gateway_methods(gateway)
                except PaymentGatewayError as e:
                    # Checkout still works through the hosted page; only the logos are missing
                    logger.warning(f"Could not list MercadoPago payment methods: {e}")
        data.append(entry)
    return jsonify({"data": data})
