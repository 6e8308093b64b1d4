"""
Settings Service - admin-editable store settings over config defaults

Stored documents (models.store_setting) only hold what an admin changed.
Every read merges them over defaults built from the app config, so an
untouched store behaves exactly as its environment says.

Consumers:
- services.pricing: payment-method discounts, free shipping, shipping options
- services.checkout_service: unpaid order lifetimes, transfer bank details
- services.email_service: store name, admin notification address
- services.dashboard_service: low-stock threshold
"""

import copy
import logging
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from flask import current_app

from constants import SHIPPING_OPTIONS, PaymentMethod
from models.database import db
from models.store_setting import StoreSetting
from schemas.admin import ShippingOptionsUpdate, StoreSettingsUpdate

logger = logging.getLogger(__name__)

STORE_KEY = 'store'
SHIPPING_OPTIONS_KEY = 'shipping_options'

SHIPPING_OPTION_DESCRIPTIONS = {
    'pickup': 'Retirá tu pedido en nuestro local',
    'standard': 'Envío a domicilio',
    'express': 'Envío a domicilio prioritario',
}


# =============================================================================
# Store settings
# =============================================================================

def default_store_settings() -> Dict[str, Any]:
    config = current_app.config
    return {
        'name': config.get('STORE_NAME'),
        'adminEmail': config.get('ADMIN_NOTIFICATION_EMAIL'),
        'supportEmail': config.get('STORE_SENDER_EMAIL') or None,
        'shipping': {
            'freeShipping': False,
            'freeShippingThreshold': None,
        },
        'stock': {
            'lowStockThreshold': config.get('LOW_STOCK_THRESHOLD', 5),
        },
        'payments': {
            'cashDiscount': config.get('CASH_DISCOUNT_PERCENT', 0),
            'transferDiscount': config.get('TRANSFER_DISCOUNT_PERCENT', 0),
            'mpDiscount': 0,
            'cashExpirationHours': config.get('CASH_ORDER_TTL_HOURS', 72),
            'transferExpirationHours': config.get('TRANSFER_ORDER_TTL_HOURS', 48),
            'mpExpirationMinutes': config.get('MP_ORDER_TTL_MINUTES', 60),
            'bankName': config.get('BANK_NAME'),
            'bankCbu': config.get('BANK_CBU'),
            'bankAlias': config.get('BANK_ALIAS'),
            'bankHolder': config.get('BANK_HOLDER'),
            'bankCuit': config.get('BANK_CUIT'),
        },
    }


def _merge(base: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    """Recursive merge; a None in the patch drops the key (back to default)."""
    merged = copy.deepcopy(base)
    for key, value in patch.items():
        if value is None:
            merged.pop(key, None)
        elif isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _overlay(defaults: Dict[str, Any], stored: Dict[str, Any]) -> Dict[str, Any]:
    result = copy.deepcopy(defaults)
    for key, value in stored.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _overlay(result[key], value)
        else:
            result[key] = value
    return result


def get_store_settings() -> Dict[str, Any]:
    return _overlay(default_store_settings(), StoreSetting.get_value(STORE_KEY, {}))


def update_store_settings(payload: StoreSettingsUpdate) -> Dict[str, Any]:
    patch = payload.model_dump(by_alias=True, exclude_unset=True)
    stored = _merge(StoreSetting.get_value(STORE_KEY, {}), patch)
    StoreSetting.set_value(STORE_KEY, stored)
    db.session.commit()
    logger.info(f"Store settings updated: {sorted(patch)}")
    return get_store_settings()


def store_name() -> Optional[str]:
    return get_store_settings()['name']


def admin_email() -> Optional[str]:
    return get_store_settings()['adminEmail']


def low_stock_threshold() -> int:
    return int(get_store_settings()['stock']['lowStockThreshold'])


def payment_discount(payment_method: Optional[str]) -> Decimal:
    payments = get_store_settings()['payments']
    key = {
        PaymentMethod.CASH: 'cashDiscount',
        PaymentMethod.TRANSFER: 'transferDiscount',
        PaymentMethod.MERCADOPAGO: 'mpDiscount',
    }.get(payment_method)
    if key is None:
        return Decimal('0')
    return Decimal(str(payments.get(key) or 0))


def order_ttl(payment_method: str) -> timedelta:
    """How long an unpaid order holds before the maintenance job cancels it."""
    payments = get_store_settings()['payments']
    if payment_method == PaymentMethod.CASH:
        return timedelta(hours=payments['cashExpirationHours'])
    if payment_method == PaymentMethod.TRANSFER:
        return timedelta(hours=payments['transferExpirationHours'])
    return timedelta(minutes=payments['mpExpirationMinutes'])


def free_shipping_applies(subtotal: Decimal) -> bool:
    shipping = get_store_settings()['shipping']
    if not shipping.get('freeShipping'):
        return False
    threshold = shipping.get('freeShippingThreshold')
    return threshold is None or subtotal >= Decimal(str(threshold))


def transfer_details() -> Dict[str, Any]:
    payments = get_store_settings()['payments']
    return {
        'bankName': payments.get('bankName'),
        'cbu': payments.get('bankCbu'),
        'alias': payments.get('bankAlias'),
        'holder': payments.get('bankHolder'),
        'cuit': payments.get('bankCuit'),
    }


# =============================================================================
# Shipping options
# =============================================================================

def default_shipping_options() -> List[Dict[str, Any]]:
    return [
        {
            'id': option['id'],
            'name': option['name'],
            'description': SHIPPING_OPTION_DESCRIPTIONS.get(option['id']),
            'price': option['price'],
            'estimatedDays': option['estimated_days'],
        }
        for option in SHIPPING_OPTIONS.values()
    ]


def get_shipping_options() -> List[Dict[str, Any]]:
    return StoreSetting.get_value(SHIPPING_OPTIONS_KEY) or default_shipping_options()


def update_shipping_options(payload: ShippingOptionsUpdate) -> List[Dict[str, Any]]:
    options = [option.model_dump(by_alias=True) for option in payload.options]
    StoreSetting.set_value(SHIPPING_OPTIONS_KEY, options)
    db.session.commit()
    logger.info(f"Shipping options replaced: {[o['id'] for o in options]}")
    return options


def reset_shipping_options() -> List[Dict[str, Any]]:
    row = db.session.get(StoreSetting, SHIPPING_OPTIONS_KEY)
    if row is not None:
        db.session.delete(row)
        db.session.commit()
    return default_shipping_options()


def shipping_option_table() -> Dict[str, Dict[str, Any]]:
    """Options by id, in the shape services.pricing uses."""
    return {
        option['id']: {
            'id': option['id'],
            'name': option['name'],
            'price': option['price'],
            'estimated_days': option.get('estimatedDays'),
        }
        for option in get_shipping_options()
    }
