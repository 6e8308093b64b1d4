"""
Tests for services/order_service.py

Focus: the stock guard (exactly-once decrement / restore) and the status
transition table.
"""

from datetime import timedelta

import pytest

from constants import OrderStatus, ShipmentStatus
from models.database import db
from services import order_service
from services.order_service import InvalidTransition, OrderNotFound
from services.pricing import price_cart


def _customer(**overrides):
    customer = {
        "name": "Ana Pérez",
        "email": "  Ana@Example.com ",
        "phone": "1155551234",
        "street": "Av. Siempreviva",
        "number": "742",
        "floor": "2",
        "apartment": "B",
        "city": "Don Torcuato",
        "province": "Buenos Aires",
        "postal_code": "1611",
    }
    customer.update(overrides)
    return customer


# =============================================================================
# Creation
# =============================================================================

class TestCreateOrder:

    def test_creates_items_and_totals(self, make_product):
        product = make_product(price="1000", stock=5)
        cart = price_cart([{"product_id": product.id, "quantity": 2}], shipping_method_id="standard",
                          postal_code="1611")
        order = order_service.create_order(cart, _customer(), payment_method="mercadopago",
                                           shipping_method_id="standard")
        db.session.commit()

        assert order.id.startswith("ord_")
        assert order.status == OrderStatus.PENDING
        assert order.customer_email == "ana@example.com"
        assert order.carrier == "correo-argentino"
        assert order.shipment_status == ShipmentStatus.PENDING
        assert float(order.total) == 3200.0
        assert len(order.items) == 1
        assert order.items[0].quantity == 2
        # MercadoPago orders do not touch stock until payment
        assert product.stock == 5
        assert order.stock_decremented is False

    def test_composes_free_text_address(self, make_product):
        product = make_product()
        cart = price_cart([{"product_id": product.id, "quantity": 1}])
        order = order_service.create_order(cart, _customer(), payment_method="cash")
        assert order.customer_address == "Av. Siempreviva 742, Piso 2 Depto B, Don Torcuato, Buenos Aires, CP 1611"

    def test_pickup_needs_no_shipment(self, make_product):
        product = make_product()
        cart = price_cart([{"product_id": product.id, "quantity": 1}])
        order = order_service.create_order(cart, _customer(), payment_method="cash", shipping_method_id="pickup")
        assert order.carrier == "pickup"
        assert order.shipment_status == ShipmentStatus.NOT_REQUIRED

    def test_reserve_stock(self, make_product):
        product = make_product(stock=5)
        cart = price_cart([{"product_id": product.id, "quantity": 2}])
        order = order_service.create_order(cart, _customer(), payment_method="cash", reserve_stock=True,
                                           ttl=timedelta(hours=72))
        db.session.commit()

        assert order.stock_decremented is True
        assert order.expires_at is not None
        db.session.refresh(product)
        assert product.stock == 3


# =============================================================================
# Stock guard
# =============================================================================

class TestStockGuard:

    def test_decrement_once(self, make_product, make_order):
        product = make_product(stock=5)
        order = make_order([(product, 2)])

        assert order_service.decrement_stock_once(order) is True
        assert order_service.decrement_stock_once(order) is False
        db.session.commit()

        db.session.refresh(product)
        assert product.stock == 3
        assert order.stock_decremented is True

    def test_variant_decremented_with_product(self, make_product, make_variant, make_order):
        from models.order import OrderItem

        product = make_product(stock=10)
        variant = make_variant(product, color="Rojo", size="M", stock=4)
        order = make_order()
        order.items.append(OrderItem(product_id=product.id, product_name=product.name, quantity=3,
                                     unit_price=product.price, color="Rojo", size="M"))
        db.session.commit()

        order_service.decrement_stock_once(order)
        db.session.commit()

        db.session.refresh(product)
        db.session.refresh(variant)
        assert product.stock == 7
        assert variant.stock == 1

    def test_oversell_is_noted(self, make_product, make_order):
        product = make_product(stock=1)
        order = make_order([(product, 3)])

        order_service.decrement_stock_once(order)
        db.session.commit()

        db.session.refresh(product)
        assert product.stock == -2
        assert "Oversold" in order.admin_notes

    def test_restore_only_after_decrement(self, make_product, make_order):
        product = make_product(stock=5)
        order = make_order([(product, 2)])

        assert order_service.restore_stock(order) is False
        order_service.decrement_stock_once(order)
        assert order_service.restore_stock(order) is True
        assert order_service.restore_stock(order) is False
        db.session.commit()

        db.session.refresh(product)
        assert product.stock == 5
        assert order.stock_decremented is False


# =============================================================================
# Transitions
# =============================================================================

class TestTransitions:

    def test_mark_paid_decrements(self, make_product, make_order):
        product = make_product(stock=5)
        order = make_order([(product, 1)])

        order_service.mark_paid(order)
        db.session.commit()

        assert order.status == OrderStatus.PAID
        assert order.paid_at is not None
        assert order.expires_at is None
        db.session.refresh(product)
        assert product.stock == 4

    def test_same_status_is_noop(self, make_order):
        order = make_order(status=OrderStatus.PAID)
        assert order_service.transition(order, OrderStatus.PAID) is order

    def test_invalid_transition(self, make_order):
        order = make_order(status=OrderStatus.DELIVERED)
        with pytest.raises(InvalidTransition) as exc:
            order_service.transition(order, OrderStatus.PENDING)
        assert exc.value.current == OrderStatus.DELIVERED
        assert exc.value.new == OrderStatus.PENDING

    def test_cancel_restores_reserved_stock(self, make_product, make_order):
        product = make_product(stock=3)
        order = make_order([(product, 2)], payment_method="cash")
        order_service.decrement_stock_once(order)
        db.session.commit()

        order_service.cancel(order, reason="expired")
        db.session.commit()

        db.session.refresh(product)
        assert order.status == OrderStatus.CANCELLED
        assert product.stock == 3
        assert "Cancelled: expired" in order.admin_notes

    def test_processed_cannot_be_cancelled(self, make_order):
        order = make_order(status=OrderStatus.PROCESSED)
        with pytest.raises(InvalidTransition):
            order_service.cancel(order)

    def test_mark_processed_sets_tracking(self, make_order):
        order = make_order(status=OrderStatus.PAID)
        order_service.mark_processed(order, tracking_number="TN123", carrier="oca")
        assert order.status == OrderStatus.PROCESSED
        assert order.tracking_number == "TN123"
        assert order.carrier == "oca"
        assert order.shipment_status == ShipmentStatus.CREATED
        assert order.shipped_at is not None

    def test_reopen_as_paid(self, make_order):
        order = make_order(status=OrderStatus.CANCELLED)
        order_service.reopen_as_paid(order)
        assert order.status == OrderStatus.PAID
        assert "reopened" in order.admin_notes

    def test_get_order_missing(self, app):
        with pytest.raises(OrderNotFound):
            order_service.get_order("ord_missing")
