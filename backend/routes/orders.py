"""
Order Routes - customer-facing order lookups

Endpoints:
- GET /api/orders/<id>?email=...               - Order detail for its customer
- GET /api/orders/by-payment/<mp_payment_id>   - Summary for the checkout success page
"""
from flask import Blueprint, jsonify, request

from api.middleware.error_envelope import make_error_response
from models.database import db
from models.order import Order
from utils.rate_limiter import RATE_LIMITS, limiter

orders_bp = Blueprint('orders', __name__)


@orders_bp.route("/<order_id>", methods=["GET"])
@limiter.limit(RATE_LIMITS["tracking"])
def get_order(order_id):
    email = (request.args.get("email") or "").strip().lower()
    order = db.session.get(Order, order_id)
    # Same 404 for unknown ids and wrong emails so order ids cannot be guessed
    if order is None or not email or (order.customer_email or "").lower() != email:
        return make_error_response("NOT_FOUND", "Order not found")
    return jsonify({"data": order.to_dict()})


@orders_bp.route("/by-payment/<mp_payment_id>", methods=["GET"])
@limiter.limit(RATE_LIMITS["tracking"])
def get_order_by_payment(mp_payment_id):
    order = Order.query.filter_by(mp_payment_id=str(mp_payment_id)).first()
    if order is None:
        return make_error_response("NOT_FOUND", "Order not found")
    return jsonify({"data": order.to_summary()})
