"""
Order Maintenance - jobs run by an external cron

Jobs:
- cancel_expired_orders:  unpaid orders past expires_at -> CANCELLED
- send_payment_reminders: nudge MercadoPago orders left unpaid
- sync_shipments:         refresh carrier tracking for dispatched orders
- cleanup_webhooks:       prune old idempotency records

Each order is handled in its own transaction, so one failure is logged
and the rest of the batch still runs.

Usage:
    python cli.py run-maintenance
    GET /api/cron/orders  (Authorization: Bearer <CRON_SECRET>)
"""

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from constants import OrderStatus, PaymentMethod
from models.database import db, utcnow
from models.order import Order
from models.processed_webhook import ProcessedWebhook
from services import email_service, order_service
from services.carriers import CarrierError
from services.shipment_service import ShipmentService

logger = logging.getLogger(__name__)

REMINDER_MIN_AGE = timedelta(minutes=15)
REMINDER_MAX_AGE = timedelta(hours=2)
WEBHOOK_RETENTION_DAYS = 30


def cancel_expired_orders(now=None, batch_size: int = 50) -> Dict[str, Any]:
    now = now or utcnow()
    expired = (
        Order.query
        .filter(Order.status == OrderStatus.PENDING, Order.expires_at.isnot(None), Order.expires_at < now)
        .order_by(Order.expires_at.asc())
        .limit(batch_size)
        .all()
    )

    cancelled, failed = [], []
    for order in expired:
        try:
            order_service.cancel(order, reason="payment window expired")
            db.session.commit()
            cancelled.append(order.id)
        except Exception as e:
            db.session.rollback()
            logger.error(f"Could not cancel expired order {order.id}: {e}")
            failed.append(order.id)

    if cancelled:
        logger.info(f"Cancelled {len(cancelled)} expired orders")
    return {'checked': len(expired), 'cancelled': cancelled, 'failed': failed}


def send_payment_reminders(now=None) -> Dict[str, Any]:
    now = now or utcnow()
    orders = (
        Order.query
        .filter(
            Order.status == OrderStatus.PENDING,
            Order.payment_method == PaymentMethod.MERCADOPAGO,
            Order.mp_payment_id.is_(None),
            Order.payment_reminder_sent.is_(False),
            Order.created_at <= now - REMINDER_MIN_AGE,
            Order.created_at >= now - REMINDER_MAX_AGE,
        )
        .all()
    )

    sent = []
    for order in orders:
        if not email_service.send_payment_reminder(order):
            continue
        order.payment_reminder_sent = True
        db.session.commit()
        sent.append(order.id)

    return {'eligible': len(orders), 'sent': sent}


def sync_shipments(limit: int = 50, shipments: Optional[ShipmentService] = None) -> Dict[str, Any]:
    shipments = shipments or ShipmentService()
    orders = (
        Order.query
        .filter(Order.status == OrderStatus.PROCESSED, Order.tracking_number.isnot(None))
        .order_by(Order.shipped_at.asc())
        .limit(limit)
        .all()
    )

    delivered, errors = [], []
    for order in orders:
        try:
            shipments.sync_tracking(order)
        except CarrierError as e:
            logger.warning(f"Tracking sync failed for order {order.id}: {e}")
            errors.append(order.id)
            continue
        except Exception as e:
            db.session.rollback()
            logger.error(f"Unexpected tracking sync error for order {order.id}: {e}")
            errors.append(order.id)
            continue
        if order.status == OrderStatus.DELIVERED:
            delivered.append(order.id)

    return {'checked': len(orders), 'delivered': delivered, 'errors': errors}


def cleanup_webhooks(days: int = WEBHOOK_RETENTION_DAYS) -> Dict[str, Any]:
    return {'deleted': ProcessedWebhook.cleanup_old_events(days=days)}


def run_all() -> Dict[str, Any]:
    """Every job, in order; used by the cron endpoint and `run-maintenance`."""
    return {
        'expiredOrders': cancel_expired_orders(),
        'paymentReminders': send_payment_reminders(),
        'tracking': sync_shipments(),
        'webhookCleanup': cleanup_webhooks(),
    }
