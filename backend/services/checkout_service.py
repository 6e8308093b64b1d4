"""
Checkout Service - turns a validated checkout request into an order

Flows by payment method:
- cash / transfer: order PENDING, stock reserved now, TTL in hours,
  confirmation email. Payment is confirmed later by an admin (mark-paid).
- mercadopago: order PENDING without touching stock, short TTL, then a
  Checkout Pro preference. Stock moves when the payment webhook says
  approved (services.payment_reconciliation).

Totals are always computed server-side from DB prices. Lifetimes, discounts
and the transfer bank details come from the store settings.
"""

import logging
from typing import Any, Dict

from flask import current_app

from constants import PaymentMethod
from models.database import db
from models.order import Order
from schemas.checkout import CheckoutRequest
from services import email_service, order_service, settings_service
from services.mercadopago_client import CURRENCY_ID, PaymentGatewayError, get_mercadopago_client
from services.order_service import StockError
from services.pricing import price_cart

logger = logging.getLogger(__name__)


class CheckoutError(Exception):
    """Checkout could not be completed (maps to an error envelope)."""

    def __init__(self, message, code='BAD_REQUEST', status_code=400):
        super().__init__(message)
        self.code = code
        self.status_code = status_code


def _shipping_method_name(request: CheckoutRequest) -> str:
    method = request.shipping_method
    option = settings_service.shipping_option_table().get(method.id)
    if option is not None:
        return option['name']
    return method.name or method.id


def process_checkout(request: CheckoutRequest) -> Dict[str, Any]:
    """
    Create the order for a checkout request.

    Raises:
        StockError: cart has availability problems (details in .problems)
        CheckoutError: payment gateway not configured
        PaymentGatewayError: preference creation failed (order is cancelled)
    """
    customer = request.customer.model_dump()
    cart = price_cart(
        request.items,
        shipping_method_id=request.shipping_method.id,
        postal_code=customer.get('postal_code'),
        payment_method=request.payment_method,
    )
    if not cart.ok:
        raise StockError("Some items are not available", problems=cart.problems)

    gateway = None
    if request.payment_method == PaymentMethod.MERCADOPAGO:
        gateway = get_mercadopago_client()
        if gateway is None:
            raise CheckoutError("Online payments are not available", code='SERVICE_UNAVAILABLE', status_code=503)

    reserve = request.payment_method in (PaymentMethod.CASH, PaymentMethod.TRANSFER)
    order = order_service.create_order(
        cart,
        customer,
        payment_method=request.payment_method,
        shipping_method_id=request.shipping_method.id,
        shipping_method_name=_shipping_method_name(request),
        shipping_agency=request.shipping_agency,
        reserve_stock=reserve,
        ttl=settings_service.order_ttl(request.payment_method),
    )
    db.session.commit()

    if reserve:
        email_service.send_order_confirmation(order)
        email_service.send_new_order_admin_notification(order)
        result = {
            'success': True,
            'orderId': order.id,
            'paymentMethod': order.payment_method,
            'total': float(order.total),
            'message': 'Pedido registrado. Te enviamos las instrucciones de pago por email.',
        }
        if order.payment_method == PaymentMethod.TRANSFER:
            result['bankDetails'] = settings_service.transfer_details()
        return result

    return _start_mercadopago_payment(gateway, order, request, cart)


def _start_mercadopago_payment(gateway, order: Order, request: CheckoutRequest, cart) -> Dict[str, Any]:
    config = current_app.config
    store_name = settings_service.store_name()
    customer = request.customer

    metadata = {
        'order_id': order.id,
        'items': [
            {'product_id': line.product.id, 'quantity': line.quantity, 'size': line.size, 'color': line.color}
            for line in cart.lines
        ],
        'customer': customer.model_dump(),
        'shipping': {
            'id': order.shipping_method_id,
            'name': order.shipping_method_name,
            'agency': order.shipping_agency,
        },
        'discount_percent': float(cart.discount_percent),
    }
    # One summary line so the gateway total always equals the server total
    items = [{
        'id': order.id,
        'title': f"Compra en {store_name}",
        'quantity': 1,
        'unit_price': float(order.total),
        'currency_id': CURRENCY_ID,
    }]
    payer = {'name': customer.name, 'email': customer.email}

    try:
        preference = gateway.create_preference(
            items=items,
            payer=payer,
            external_reference=order.id,
            metadata=metadata,
            back_url_base=config.get('PUBLIC_APP_URL'),
            notification_url=config.get('MP_WEBHOOK_URL'),
            statement_descriptor=config.get('MP_STATEMENT_DESCRIPTOR'),
            max_installments=config.get('MP_MAX_INSTALLMENTS', 12),
            expires_in_minutes=int(settings_service.order_ttl(PaymentMethod.MERCADOPAGO).total_seconds() // 60),
        )
    except PaymentGatewayError:
        order_service.cancel(order, reason="payment preference could not be created")
        db.session.commit()
        raise

    order.mp_preference_id = preference.id
    order.payment_url = preference.init_point
    db.session.commit()

    return {
        'success': True,
        'orderId': order.id,
        'paymentMethod': order.payment_method,
        'total': float(order.total),
        'preferenceId': preference.id,
        'initPoint': preference.init_point,
    }
