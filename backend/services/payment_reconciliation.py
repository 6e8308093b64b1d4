"""
Payment Reconciliation - MercadoPago webhook -> order -> shipment

MercadoPago notifications say only "payment <id> changed". Each one is
reconciled against the stored order:

1. Fetch the payment from the gateway (webhook bodies are never trusted)
2. Skip it if this (payment, status) pair was already handled
3. Locate the order (payment id, external reference, metadata id,
   preference id) or create it from the payment metadata
4. Apply the mapped status without regressing it
5. Decrement stock exactly once (orders.stock_decremented guard)
6. Commit, then create the carrier shipment and send emails

Delivery is at-least-once and may be concurrent; every step tolerates
being replayed.

Usage:
    from services.payment_reconciliation import PaymentReconciler

    result = PaymentReconciler().process("payment", "123456789")
    result.to_dict()
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from constants import (
    CARRIER_PICKUP,
    REVENUE_STATUSES,
    OrderStatus,
    PaymentMethod,
    map_payment_status,
)
from models.database import db
from models.order import Order
from models.processed_webhook import ProcessedWebhook
from services import email_service, order_service, settings_service
from services.mercadopago_client import MPPayment, PaymentGatewayError, get_mercadopago_client
from services.order_service import OrderError
from services.pricing import price_cart
from services.shipment_service import ShipmentService

logger = logging.getLogger(__name__)

PAYMENT_TOPICS = ("payment", "payment.created", "payment.updated")
METADATA_ORDER_KEYS = ("order_id", "temp_order_id", "tempOrderId")


@dataclass
class ReconciliationResult:
    action: str
    order_id: Optional[str] = None
    status: Optional[str] = None
    shipment_attempted: bool = False
    shipment_created: bool = False
    skipped: bool = False

    def to_dict(self):
        return {
            "action": self.action,
            "orderId": self.order_id,
            "status": self.status,
            "shipmentAttempted": self.shipment_attempted,
            "shipmentCreated": self.shipment_created,
            "skipped": self.skipped,
        }


def idempotency_key(payment_id, mp_status, event_id=None) -> str:
    if event_id:
        return str(event_id)
    return f"payment:{payment_id}:{mp_status or 'unknown'}"


def _metadata_items(metadata: Dict[str, Any]) -> List[Dict[str, Any]]:
    raw = metadata.get("items")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise OrderError(f"Payment metadata items are not valid JSON: {e}")
    if not isinstance(raw, list):
        return []

    items = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        items.append({
            "product_id": entry.get("product_id") or entry.get("productId") or entry.get("id"),
            "quantity": entry.get("quantity") or 1,
            "size": entry.get("size"),
            "color": entry.get("color"),
        })
    return items


def _payer_name(payer: Dict[str, Any]) -> Optional[str]:
    name = " ".join(filter(None, [payer.get("first_name"), payer.get("last_name")])).strip()
    return name or None


def _metadata_customer(metadata: Dict[str, Any], payer: Dict[str, Any]) -> Dict[str, Any]:
    customer = metadata.get("customer") if isinstance(metadata.get("customer"), dict) else {}
    phone = payer.get("phone") or {}
    payer_phone = None
    if isinstance(phone, dict) and phone.get("number"):
        payer_phone = f"{phone.get('area_code') or ''}{phone['number']}"
    return {
        "name": customer.get("name") or metadata.get("customer_name") or _payer_name(payer) or "Cliente",
        "email": customer.get("email") or metadata.get("customer_email") or payer.get("email"),
        "phone": customer.get("phone") or metadata.get("customer_phone") or payer_phone,
        "address": customer.get("address") or metadata.get("customer_address"),
        "street": customer.get("street"),
        "number": customer.get("number"),
        "floor": customer.get("floor"),
        "apartment": customer.get("apartment"),
        "city": customer.get("city"),
        "province": customer.get("province"),
        "postal_code": customer.get("postal_code") or customer.get("postalCode"),
    }


def _metadata_shipping(metadata: Dict[str, Any]) -> Dict[str, Optional[str]]:
    shipping = metadata.get("shipping") if isinstance(metadata.get("shipping"), dict) else {}
    method_id = shipping.get("id") or shipping.get("method_id") or metadata.get("shipping_method_id")
    name = shipping.get("name") or metadata.get("shipping_method_name")
    if not name and method_id:
        option = settings_service.shipping_option_table().get(method_id)
        name = option["name"] if option else None
    return {
        "id": method_id,
        "name": name,
        "agency": shipping.get("agency") or metadata.get("shipping_agency"),
    }


class PaymentReconciler:
    """
    Reconciles one payment notification at a time.

    Collaborators are injectable for tests; by default they come from the
    app config (gateway client, carrier clients, Resend).
    """

    def __init__(self, gateway=None, shipments: Optional[ShipmentService] = None, emails=None):
        self._gateway = gateway
        self.emails = emails or email_service
        self.shipments = shipments or ShipmentService(emails=self.emails)

    @property
    def gateway(self):
        if self._gateway is None:
            self._gateway = get_mercadopago_client()
            if self._gateway is None:
                raise PaymentGatewayError("MercadoPago is not configured", status_code=503)
        return self._gateway

    # =========================================================================
    # Entry point
    # =========================================================================

    def process(self, topic, payment_id, event_id=None) -> ReconciliationResult:
        """
        Reconcile a payment notification.

        Raises:
            PaymentGatewayError: payment could not be fetched (caller should
                answer 5xx so the gateway retries)
            OrderError: no order found and none could be built from metadata
        """
        if topic not in PAYMENT_TOPICS or not payment_id:
            logger.info(f"Ignoring notification topic={topic} id={payment_id}")
            return ReconciliationResult(action="ignored")

        payment = self.gateway.get_payment(payment_id)
        key = idempotency_key(payment.id, payment.status, event_id)
        if ProcessedWebhook.is_processed(key):
            logger.info(f"Payment notification {key} already processed, skipping")
            return ReconciliationResult(action="skipped", skipped=True)

        target = map_payment_status(payment.status)
        logger.info(f"Payment {payment.id}: gateway status {payment.status} -> {target}")

        order, strategy = self.find_order(payment)
        action = "updated"
        if order is None:
            order = self.create_order_from_payment(payment)
            strategy, action = "metadata", "created"
        logger.info(f"Payment {payment.id} matched order {order.id} via {strategy}")

        became_paid = self.apply_status(order, payment, target)
        db.session.commit()

        result = ReconciliationResult(action=action, order_id=order.id, status=order.status)

        if became_paid:
            if order.carrier and order.carrier != CARRIER_PICKUP:
                result.shipment_attempted = True
                result.shipment_created = self.shipments.create_shipment(order)
                result.status = order.status
            self.emails.send_order_confirmation(order)
            self.emails.send_new_order_admin_notification(order)

        ProcessedWebhook.mark_processed(key, event_type=f"payment.{payment.status}")
        return result

    # =========================================================================
    # Lookup
    # =========================================================================

    def find_order(self, payment: MPPayment):
        """First matching order and the name of the strategy that found it."""
        order = Order.query.filter_by(mp_payment_id=payment.id).first()
        if order is not None:
            return order, "payment_id"

        if payment.external_reference:
            order = db.session.get(Order, payment.external_reference)
            if order is not None:
                return order, "external_reference"

        metadata = payment.metadata or {}
        for key in METADATA_ORDER_KEYS:
            candidate = metadata.get(key)
            if candidate:
                order = db.session.get(Order, str(candidate))
                if order is not None:
                    return order, f"metadata.{key}"

        if payment.preference_id:
            order = (
                Order.query
                .filter_by(mp_preference_id=payment.preference_id)
                .order_by(Order.created_at.desc())
                .first()
            )
            if order is not None:
                return order, "preference_id"

        return None, None

    # =========================================================================
    # Creation from metadata
    # =========================================================================

    def create_order_from_payment(self, payment: MPPayment) -> Order:
        """
        Build the order a payment refers to when it was never stored.

        Prices are re-read from the database; the metadata only says what
        was bought. A concurrent insert for the same payment wins the race
        and is returned instead.
        """
        metadata = payment.metadata or {}
        items = _metadata_items(metadata)
        if not items:
            raise OrderError(f"Payment {payment.id} has no order and no items in metadata")

        customer = _metadata_customer(metadata, payment.payer or {})
        shipping = _metadata_shipping(metadata)
        cart = price_cart(
            items,
            shipping_method_id=shipping["id"],
            postal_code=customer.get("postal_code"),
            payment_method=PaymentMethod.MERCADOPAGO,
            discount_percent=metadata.get("discount_percent") or 0,
            check_stock=False,
        )
        if cart.problems or not cart.lines:
            details = "; ".join(p["message"] for p in cart.problems) or "no valid items"
            raise OrderError(f"Payment {payment.id} metadata cannot be priced: {details}")

        order_id = next((str(metadata[k]) for k in METADATA_ORDER_KEYS if metadata.get(k)), None)
        order_id = order_id or payment.external_reference

        try:
            order = order_service.create_order(
                cart,
                customer,
                payment_method=PaymentMethod.MERCADOPAGO,
                shipping_method_id=shipping["id"],
                shipping_method_name=shipping["name"],
                shipping_agency=shipping["agency"],
                order_id=order_id,
            )
            order.mp_payment_id = payment.id
            order.mp_preference_id = payment.preference_id
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            logger.info(f"Payment {payment.id}: order inserted concurrently, re-reading")
            order = Order.query.filter_by(mp_payment_id=payment.id).first()
            if order is None and order_id:
                order = db.session.get(Order, order_id)
            if order is None:
                raise OrderError(f"Payment {payment.id}: order insert conflicted but no order was found")
            return order

        logger.warning(f"Payment {payment.id}: order {order.id} created from payment metadata")
        return order

    # =========================================================================
    # Status
    # =========================================================================

    def _record_gateway_fields(self, order: Order, payment: MPPayment, target: str) -> bool:
        """
        Store the payment's ids on the order.

        Returns:
            True if the payment is not the one the order was paid with; the
            order keeps its own payment and only gets a note
        """
        if order.mp_payment_id and order.mp_payment_id != payment.id:
            if order.status in REVENUE_STATUSES:
                if target == OrderStatus.PAID:
                    order.add_note(f"Second approved payment {payment.id}; possible double charge")
                    logger.warning(f"Order {order.id}: second approved payment {payment.id}")
                elif target == OrderStatus.CANCELLED:
                    order.add_note(
                        f"Duplicate payment {payment.id} {payment.status}; "
                        f"order stays on payment {order.mp_payment_id}"
                    )
                    logger.warning(f"Order {order.id}: duplicate payment {payment.id} {payment.status}")
                return True
        order.mp_payment_id = payment.id
        order.mp_status = payment.status
        if payment.preference_id:
            order.mp_preference_id = payment.preference_id
        return False

    def apply_status(self, order: Order, payment: MPPayment, target: str) -> bool:
        """
        Move the order toward `target` without regressing it.

        A payment other than the one that paid the order never moves it.

        Returns:
            True if the order became PAID in this call
        """
        if self._record_gateway_fields(order, payment, target):
            return False

        if target == OrderStatus.PAID:
            became_paid = False
            if order.status == OrderStatus.PENDING:
                order_service.transition(order, OrderStatus.PAID)
                became_paid = True
            elif order.status == OrderStatus.CANCELLED:
                order_service.reopen_as_paid(order)
                became_paid = True
            if order.status == OrderStatus.PAID:
                order_service.decrement_stock_once(order)
            return became_paid

        if target == OrderStatus.CANCELLED:
            if order.status in (OrderStatus.PENDING, OrderStatus.PAID):
                order_service.cancel(order, reason=f"payment {payment.status}")
            elif order.status in (OrderStatus.PROCESSED, OrderStatus.DELIVERED):
                order.add_note(f"Payment {payment.id} {payment.status} after dispatch; handle manually")
                logger.warning(f"Order {order.id}: payment {payment.status} after dispatch")
            return False

        # PENDING never regresses a paid, processed or delivered order
        return False
