"""
Dashboard Service - back-office sales overview

All aggregation happens in SQL; only the small result sets are shaped in
Python.

Panels:
- summary:          revenue, order count, average order value
- statusCounts:     orders per status in the window
- dailySales:       revenue and orders per day
- topProducts:      best sellers by quantity
- lowStock:         active products at or below the store's low-stock threshold
- pendingShipments: paid orders whose automatic shipment failed
- recentOrders:     the 5 newest orders

Usage:
    from services.dashboard_service import get_dashboard_data

    data = get_dashboard_data(days=30)
"""

import logging
from datetime import timedelta
from typing import Any, Dict

from sqlalchemy import func

from constants import REVENUE_STATUSES, OrderStatus, ShipmentStatus
from models.catalog import Product
from models.database import db, utcnow
from models.order import Order, OrderItem
from services import settings_service

logger = logging.getLogger(__name__)

# ============================================================================
# CONFIGURATION
# ============================================================================

DEFAULT_DAYS = 30
MAX_DAYS = 365
TOP_PRODUCTS_LIMIT = 5
RECENT_ORDERS_LIMIT = 5
LOW_STOCK_LIMIT = 20


def _summary(since) -> Dict[str, Any]:
    revenue, count = (
        db.session.query(func.coalesce(func.sum(Order.total), 0), func.count(Order.id))
        .filter(Order.created_at >= since, Order.status.in_(REVENUE_STATUSES))
        .one()
    )
    revenue = float(revenue or 0)
    return {
        'revenue': round(revenue, 2),
        'orderCount': count,
        'averageOrderValue': round(revenue / count, 2) if count else 0,
    }


def _status_counts(since) -> Dict[str, int]:
    rows = (
        db.session.query(Order.status, func.count(Order.id))
        .filter(Order.created_at >= since)
        .group_by(Order.status)
        .all()
    )
    counts = {status: 0 for status in OrderStatus.ALL}
    counts.update({status: count for status, count in rows})
    return counts


def _daily_sales(since):
    day = func.date(Order.created_at)
    rows = (
        db.session.query(day.label('day'), func.sum(Order.total), func.count(Order.id))
        .filter(Order.created_at >= since, Order.status.in_(REVENUE_STATUSES))
        .group_by(day)
        .order_by(day)
        .all()
    )
    return [
        {'date': str(row_day), 'revenue': round(float(total or 0), 2), 'orders': count}
        for row_day, total, count in rows
    ]


def _top_products(since):
    quantity = func.sum(OrderItem.quantity)
    rows = (
        db.session.query(
            OrderItem.product_id,
            OrderItem.product_name,
            quantity.label('quantity'),
            func.sum(OrderItem.quantity * OrderItem.unit_price).label('revenue'),
        )
        .join(Order, Order.id == OrderItem.order_id)
        .filter(Order.created_at >= since, Order.status.in_(REVENUE_STATUSES))
        .group_by(OrderItem.product_id, OrderItem.product_name)
        .order_by(quantity.desc())
        .limit(TOP_PRODUCTS_LIMIT)
        .all()
    )
    return [
        {'productId': pid, 'name': name, 'quantity': int(qty or 0), 'revenue': round(float(rev or 0), 2)}
        for pid, name, qty, rev in rows
    ]


def _low_stock(threshold):
    products = (
        Product.query
        .filter(Product.is_active.is_(True), Product.stock <= threshold)
        .order_by(Product.stock.asc(), Product.name.asc())
        .limit(LOW_STOCK_LIMIT)
        .all()
    )
    return [{'id': p.id, 'name': p.name, 'stock': p.stock} for p in products]


def _pending_shipments():
    orders = (
        Order.query
        .filter(Order.status == OrderStatus.PAID, Order.shipment_status == ShipmentStatus.MANUAL_REQUIRED)
        .order_by(Order.paid_at.asc())
        .all()
    )
    return [
        {**order.to_summary(), 'shipmentError': order.shipment_error, 'shipmentAttempts': order.shipment_attempts}
        for order in orders
    ]


def get_dashboard_data(days: int = DEFAULT_DAYS) -> Dict[str, Any]:
    days = max(1, min(int(days), MAX_DAYS))
    since = utcnow() - timedelta(days=days)
    threshold = settings_service.low_stock_threshold()

    recent = Order.query.order_by(Order.created_at.desc()).limit(RECENT_ORDERS_LIMIT).all()

    data = {
        'days': days,
        'summary': _summary(since),
        'statusCounts': _status_counts(since),
        'dailySales': _daily_sales(since),
        'topProducts': _top_products(since),
        'lowStock': _low_stock(threshold),
        'pendingShipments': _pending_shipments(),
        'recentOrders': [order.to_summary() for order in recent],
    }
    logger.debug(f"Dashboard computed for last {days} days")
    return data
