"""
Flask Application Factory - Storefront API

JSON backend for the storefront and its back-office:
- Public catalog, cart pricing, checkout and order tracking
- MercadoPago payment webhook -> order reconciliation -> carrier shipment
- Back-office (JWT) for orders, catalog, support tickets and dashboard
- Cron endpoint for maintenance jobs (expired orders, reminders, tracking)
"""

import logging
import os

from flask import Flask
from flask_cors import CORS
from flask_migrate import Migrate

from config import Config
from models.database import db

logger = logging.getLogger(__name__)

# Initialize Flask-Migrate (will be initialized in create_app)
migrate = Migrate()


def _register_blueprints(app):
    from routes.auth import auth_bp
    from routes.catalog import catalog_bp
    from routes.cart import cart_bp
    from routes.shipping import shipping_bp
    from routes.checkout import checkout_bp
    from routes.payments import payments_bp
    from routes.orders import orders_bp
    from routes.tracking import tracking_bp
    from routes.support import support_bp
    from routes.admin_catalog import admin_catalog_bp
    from routes.admin_orders import admin_orders_bp
    from routes.admin_support import admin_support_bp
    from routes.admin_dashboard import admin_dashboard_bp
    from routes.cron import cron_bp
    from routes.admin_users import admin_users_bp
    from routes.settings import admin_settings_bp, settings_bp

    # Public storefront
    app.register_blueprint(catalog_bp, url_prefix='/api')
    app.register_blueprint(cart_bp, url_prefix='/api/cart')
    app.register_blueprint(shipping_bp, url_prefix='/api/shipping')
    app.register_blueprint(checkout_bp, url_prefix='/api/checkout')
    app.register_blueprint(orders_bp, url_prefix='/api/orders')
    app.register_blueprint(tracking_bp, url_prefix='/api/tracking')
    app.register_blueprint(support_bp, url_prefix='/api/support')
    app.register_blueprint(settings_bp, url_prefix='/api/settings')

    # Gateway webhook and cron
    app.register_blueprint(payments_bp, url_prefix='/api/payments')
    app.register_blueprint(cron_bp, url_prefix='/api/cron')

    # Back-office
    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(admin_catalog_bp, url_prefix='/api/admin')
    app.register_blueprint(admin_orders_bp, url_prefix='/api/admin/orders')
    app.register_blueprint(admin_support_bp, url_prefix='/api/admin/support')
    app.register_blueprint(admin_dashboard_bp, url_prefix='/api/admin')
    app.register_blueprint(admin_users_bp, url_prefix='/api/admin/users')
    app.register_blueprint(admin_settings_bp, url_prefix='/api/admin/settings')


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    CORS(app,
         resources={r"/api/*": {"origins": "*"}},
         methods=["GET", "POST", "OPTIONS", "PUT", "PATCH", "DELETE"],
         allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
         expose_headers=["X-Request-ID"],
         supports_credentials=False,
         send_wildcard=True)

    # === API MIDDLEWARE ===
    from api.middleware import (
        setup_error_handlers,
        setup_request_id_middleware,
        setup_request_logging_middleware,
    )
    setup_request_id_middleware(app)
    setup_request_logging_middleware(app)
    setup_error_handlers(app)

    db.init_app(app)
    migrate.init_app(app, db)

    from utils.rate_limiter import init_limiter
    init_limiter(app)
    if not app.config.get("TESTING"):
        print("   ✓ Rate limiter initialized")

    with app.app_context():
        # Register every model on the metadata before create_all
        import models  # noqa: F401

        env = (os.environ.get("APP_ENV") or os.environ.get("FLASK_ENV") or "").lower()
        is_prod = env in {"prod", "production"}
        if app.config.get("TESTING") or not is_prod:
            db.create_all()
            if not app.config.get("TESTING"):
                print("✓ Database initialized")
        else:
            print("✓ Database ready (schema managed by migrations)")

    _register_blueprints(app)

    if not app.config.get("MP_ACCESS_TOKEN"):
        logger.warning("MP_ACCESS_TOKEN not set; MercadoPago checkout disabled")
    return app


if __name__ == "__main__":
    app = create_app()
    port = int(os.environ.get("PORT", 5000))
    print(f"Starting storefront API on port {port}")
    app.run(host="0.0.0.0", port=port, debug=app.config.get("DEBUG", False))
