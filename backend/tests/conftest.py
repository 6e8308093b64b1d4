"""
Root pytest configuration for backend tests.

Provides:
- In-memory SQLite app per test (APP_ENV=test)
- Shared fixtures (app, client, admin auth headers)
- Factories for catalog rows and orders
"""

import os
import sys
from decimal import Decimal
from pathlib import Path
from unittest.mock import Mock

# Config is evaluated at import time, so the test environment must be in
# place before anything under backend/ is imported.
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("REQUEST_LOG_ENABLED", "false")

# Add backend directory to Python path so imports like
# `from services.pricing import ...` and `from utils.normalize import ...` work
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

import pytest


@pytest.fixture
def app():
    """Test Flask application bound to a fresh in-memory database."""
    from app import create_app
    from models.database import db

    app = create_app()
    app.config.update(
        TESTING=True,
        MP_ACCESS_TOKEN=None,
        MP_WEBHOOK_SECRET=None,
        RESEND_API_KEY=None,
        CORREO_ARGENTINO_USERNAME=None,
        CORREO_ARGENTINO_PASSWORD=None,
        OCA_USER=None,
        OCA_PASSWORD=None,
        CRON_SECRET="cron-secret",
        CASH_DISCOUNT_PERCENT=0,
        ADMIN_NOTIFICATION_EMAIL="admin@rastuci.test",
    )

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def db_session(app):
    from models.database import db
    return db.session


# =============================================================================
# Auth
# =============================================================================

@pytest.fixture
def admin_user(app):
    from models.database import db
    from models.user import User

    user = User(email="admin@rastuci.test", name="Admin", role="admin")
    user.set_password("s3cret-pass")
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def admin_headers(admin_user):
    from routes.auth import generate_token
    return {"Authorization": f"Bearer {generate_token(admin_user.id, admin_user.email)}"}


# =============================================================================
# Factories
# =============================================================================

@pytest.fixture
def make_category(app):
    from models.catalog import Category
    from models.database import db

    def _make(name="Remeras", slug=None, **kwargs):
        category = Category(name=name, slug=slug or name.lower().replace(" ", "-"), **kwargs)
        db.session.add(category)
        db.session.commit()
        return category

    return _make


@pytest.fixture
def make_product(app):
    from models.catalog import Product
    from models.database import db

    def _make(name="Remera básica", price="1000", stock=10, **kwargs):
        product = Product(name=name, price=Decimal(str(price)), stock=stock, **kwargs)
        db.session.add(product)
        db.session.commit()
        return product

    return _make


@pytest.fixture
def make_variant(app):
    from models.catalog import ProductVariant
    from models.database import db

    def _make(product, color="Rojo", size="M", stock=5):
        variant = ProductVariant(product_id=product.id, color=color, size=size, stock=stock)
        db.session.add(variant)
        db.session.commit()
        return variant

    return _make


@pytest.fixture
def make_order(app):
    """
    Order with one item per (product, quantity) pair.

    Defaults describe a MercadoPago home delivery with Correo Argentino.
    """
    from constants import CARRIER_PICKUP, OrderStatus, ShipmentStatus
    from models.database import db
    from models.order import Order, OrderItem

    def _make(lines=(), status=OrderStatus.PENDING, stock_decremented=False, **kwargs):
        fields = {
            "customer_name": "Ana Pérez",
            "customer_email": "ana@example.com",
            "customer_phone": "1155551234",
            "customer_address": "Av. Siempreviva 742, Don Torcuato, Buenos Aires, CP 1611",
            "shipping_street": "Av. Siempreviva",
            "shipping_number": "742",
            "shipping_city": "Don Torcuato",
            "shipping_province": "Buenos Aires",
            "shipping_postal_code": "1611",
            "shipping_method_id": "standard",
            "shipping_method_name": "Envío estándar",
            "carrier": "correo-argentino",
            "payment_method": "mercadopago",
        }
        fields.update(kwargs)
        subtotal = sum((Decimal(p.price) * q for p, q in lines), Decimal("0"))
        fields.setdefault("subtotal", subtotal)
        fields.setdefault("total", subtotal)
        fields.setdefault(
            "shipment_status",
            ShipmentStatus.NOT_REQUIRED if fields["carrier"] == CARRIER_PICKUP else ShipmentStatus.PENDING,
        )

        order = Order(status=status, stock_decremented=stock_decremented, **fields)
        for product, quantity in lines:
            order.items.append(OrderItem(
                product_id=product.id,
                product_name=product.name,
                quantity=quantity,
                unit_price=Decimal(product.price),
            ))
        db.session.add(order)
        db.session.commit()
        return order

    return _make


# =============================================================================
# Collaborators
# =============================================================================

@pytest.fixture
def emails():
    """Stand-in for services.email_service; every sender reports success."""
    mock = Mock()
    for name in (
        "send_order_confirmation",
        "send_order_shipped",
        "send_order_delivered",
        "send_new_order_admin_notification",
        "send_payment_reminder",
        "send_ticket_reply",
        "send_test_email",
    ):
        getattr(mock, name).return_value = True
    return mock
