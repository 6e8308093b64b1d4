"""
Order Service - order creation, status transitions and stock movements

Functions here flush but never commit; the caller (route, reconciler or
maintenance job) owns the transaction.

Stock invariant:
- Stock leaves the shelf exactly once per order, claimed by flipping
  orders.stock_decremented from false to true in a conditional UPDATE.
- It comes back at most once, by flipping the flag back.
Concurrent webhook deliveries for the same order therefore cannot
decrement twice: only one UPDATE matches the row.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from sqlalchemy import update

from constants import (
    OrderStatus,
    ShipmentStatus,
    CARRIER_PICKUP,
    can_transition,
    carrier_for_shipping_method,
)
from models.catalog import Product, ProductVariant
from models.database import db, utcnow
from models.order import Order, OrderItem, generate_order_id

logger = logging.getLogger(__name__)


class OrderError(Exception):
    """Base exception for order operations."""


class OrderNotFound(OrderError):
    pass


class InvalidTransition(OrderError):
    def __init__(self, order_id, current, new):
        super().__init__(f"Order {order_id} cannot go from {current} to {new}")
        self.order_id = order_id
        self.current = current
        self.new = new


class StockError(Exception):
    """Requested quantities exceed available stock."""

    def __init__(self, message, problems=None):
        super().__init__(message)
        self.problems = problems or []


# =============================================================================
# Creation
# =============================================================================

def compose_address(customer: Dict[str, Any]) -> Optional[str]:
    if customer.get('address'):
        return customer['address']
    street_line = " ".join(filter(None, [customer.get('street'), customer.get('number')]))
    unit = " ".join(filter(None, [
        f"Piso {customer['floor']}" if customer.get('floor') else None,
        f"Depto {customer['apartment']}" if customer.get('apartment') else None,
    ]))
    parts = [street_line, unit, customer.get('city'), customer.get('province'),
             f"CP {customer['postal_code']}" if customer.get('postal_code') else None]
    composed = ", ".join(p for p in parts if p)
    return composed or None


def create_order(
    cart,
    customer: Dict[str, Any],
    payment_method: str,
    shipping_method_id: Optional[str] = None,
    shipping_method_name: Optional[str] = None,
    shipping_agency: Optional[str] = None,
    status: str = OrderStatus.PENDING,
    reserve_stock: bool = False,
    ttl: Optional[timedelta] = None,
    order_id: Optional[str] = None,
) -> Order:
    """
    Persist an order from a priced cart (services.pricing.PricedCart).

    reserve_stock decrements stock immediately (cash/transfer reservations).
    ttl sets expires_at; the maintenance job cancels unpaid orders past it.
    """
    carrier = carrier_for_shipping_method(shipping_method_id)
    order = Order(
        id=order_id or generate_order_id(),
        customer_name=customer.get('name') or 'Cliente',
        customer_email=(customer.get('email') or '').strip().lower() or None,
        customer_phone=customer.get('phone'),
        customer_address=compose_address(customer),
        shipping_street=customer.get('street'),
        shipping_number=customer.get('number'),
        shipping_floor=customer.get('floor'),
        shipping_apartment=customer.get('apartment'),
        shipping_city=customer.get('city'),
        shipping_province=customer.get('province'),
        shipping_postal_code=customer.get('postal_code'),
        shipping_method_id=shipping_method_id,
        shipping_method_name=shipping_method_name,
        shipping_cost=cart.shipping_cost,
        shipping_agency=shipping_agency,
        carrier=carrier,
        subtotal=cart.subtotal,
        discount=cart.discount,
        total=cart.total,
        payment_method=payment_method,
        status=status,
        stock_decremented=False,
        shipment_status=ShipmentStatus.NOT_REQUIRED if carrier == CARRIER_PICKUP else ShipmentStatus.PENDING,
        expires_at=utcnow() + ttl if ttl else None,
        paid_at=utcnow() if status == OrderStatus.PAID else None,
    )
    for line in cart.lines:
        order.items.append(OrderItem(
            product_id=line.product.id,
            product_name=line.product.name,
            quantity=line.quantity,
            unit_price=line.unit_price,
            size=line.size,
            color=line.color,
        ))

    db.session.add(order)
    db.session.flush()

    if reserve_stock or status == OrderStatus.PAID:
        decrement_stock_once(order)

    logger.info(f"Order {order.id} created ({payment_method}, {status}, total={order.total})")
    return order


# =============================================================================
# Stock
# =============================================================================

def _variant_for(item: OrderItem):
    if not (item.size or item.color):
        return None
    return (
        ProductVariant.query
        .filter_by(product_id=item.product_id, color=item.color, size=item.size)
        .first()
    )


def _claim_stock_flag(order: Order, expected: bool) -> bool:
    result = db.session.execute(
        update(Order)
        .where(Order.id == order.id, Order.stock_decremented.is_(expected))
        .values(stock_decremented=not expected)
        .execution_options(synchronize_session='fetch')
    )
    return result.rowcount == 1


def decrement_stock_once(order: Order) -> bool:
    """
    Take the order's items out of stock unless that already happened.

    Overselling is allowed (payment is already captured) but logged and
    noted on the order for the back office.

    Returns:
        True if stock moved in this call
    """
    db.session.flush()
    if not _claim_stock_flag(order, expected=False):
        logger.info(f"Order {order.id}: stock already decremented, skipping")
        return False

    oversold = []
    for item in order.items:
        product = db.session.get(Product, item.product_id)
        if product is None:
            logger.error(f"Order {order.id}: product {item.product_id} vanished; stock not moved")
            continue
        product.stock = Product.stock - item.quantity
        variant = _variant_for(item)
        if variant is not None:
            variant.stock = ProductVariant.stock - item.quantity
        db.session.flush()
        if product.stock < 0 or (variant is not None and variant.stock < 0):
            oversold.append(item.product_name)

    if oversold:
        logger.warning(f"Order {order.id} oversold: {', '.join(oversold)}")
        order.add_note(f"Oversold at payment time: {', '.join(oversold)}")

    order.stock_decremented = True
    return True


def restore_stock(order: Order) -> bool:
    """Put reserved/decremented stock back. Returns True if stock moved."""
    db.session.flush()
    if not _claim_stock_flag(order, expected=True):
        return False

    for item in order.items:
        product = db.session.get(Product, item.product_id)
        if product is None:
            continue
        product.stock = Product.stock + item.quantity
        variant = _variant_for(item)
        if variant is not None:
            variant.stock = ProductVariant.stock + item.quantity
    db.session.flush()

    order.stock_decremented = False
    logger.info(f"Order {order.id}: stock restored")
    return True


# =============================================================================
# Transitions
# =============================================================================

def transition(order: Order, new_status: str) -> Order:
    """
    Move an order along ALLOWED_TRANSITIONS, stamping lifecycle timestamps.

    Raises:
        InvalidTransition
    """
    if order.status == new_status:
        return order
    if not can_transition(order.status, new_status):
        raise InvalidTransition(order.id, order.status, new_status)
    _apply_status(order, new_status)
    return order


def _apply_status(order: Order, new_status: str):
    previous = order.status
    order.status = new_status
    now = utcnow()
    if new_status == OrderStatus.PAID and order.paid_at is None:
        order.paid_at = now
    elif new_status == OrderStatus.PROCESSED and order.shipped_at is None:
        order.shipped_at = now
    elif new_status == OrderStatus.DELIVERED:
        order.delivered_at = now
    if new_status != OrderStatus.PENDING:
        order.expires_at = None
    logger.info(f"Order {order.id}: {previous} -> {new_status}")


def reopen_as_paid(order: Order) -> Order:
    """A payment approved after the order was cancelled (e.g. expired) revives it."""
    logger.warning(f"Order {order.id}: payment approved after cancellation; reopening as PAID")
    order.add_note("Payment approved after cancellation; order reopened")
    _apply_status(order, OrderStatus.PAID)
    return order


def mark_paid(order: Order) -> Order:
    transition(order, OrderStatus.PAID)
    decrement_stock_once(order)
    return order


def mark_processed(order: Order, tracking_number: Optional[str] = None, carrier: Optional[str] = None) -> Order:
    """Manual dispatch by the back office (fallback when automatic shipment failed)."""
    transition(order, OrderStatus.PROCESSED)
    if tracking_number:
        order.tracking_number = tracking_number
    if carrier:
        order.carrier = carrier
    order.shipment_status = ShipmentStatus.CREATED
    order.shipment_error = None
    return order


def mark_delivered(order: Order) -> Order:
    return transition(order, OrderStatus.DELIVERED)


def cancel(order: Order, reason: Optional[str] = None) -> Order:
    transition(order, OrderStatus.CANCELLED)
    restore_stock(order)
    if reason:
        order.add_note(f"Cancelled: {reason}")
    return order


def get_order(order_id: str) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise OrderNotFound(f"Order {order_id} not found")
    return order
