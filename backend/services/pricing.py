"""
Cart pricing and zone shipping rates.

Prices always come from the database (effective price = sale price when on
sale). Client-side prices, totals and shipping costs are never trusted.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from constants import (
    SHIPPING_OPTIONS,
    SHIPPING_ZONES,
    SHIPPING_ZONE_DEFAULT,
)
from models.catalog import Product
from models.database import db
from services import settings_service
from utils.address import normalize_postal_code, postal_code_number
from utils.normalize import clamp_fraction, round_money

logger = logging.getLogger(__name__)

ZONE_PRICED_OPTIONS = ('standard', 'express')


# =============================================================================
# Shipping
# =============================================================================

def _zone_for(postal_code: str):
    number = postal_code_number(postal_code)
    for name, ranges, standard, express in SHIPPING_ZONES:
        if any(low <= number <= high for low, high in ranges):
            return name, standard, express
    return SHIPPING_ZONE_DEFAULT


def calculate_shipping_options(postal_code: str) -> Dict[str, Any]:
    """
    Zone-priced shipping options for an Argentine postal code.

    Options come from the store settings; standard and express follow the
    zone table, any other option keeps its flat price.

    Raises:
        ValueError: postal code is not 4 digits (optionally letter-prefixed)
    """
    code = normalize_postal_code(postal_code)
    if code is None:
        raise ValueError(f"Invalid postal code: {postal_code!r}")

    zone, standard, express = _zone_for(code)
    options = []
    for option_id, option in settings_service.shipping_option_table().items():
        price = {'standard': standard, 'express': express}.get(option_id, option['price'])
        options.append({
            'id': option_id,
            'name': option['name'],
            'price': price,
            'estimatedDays': option['estimated_days'],
        })
    return {'postalCode': code, 'zone': zone, 'options': options}


def shipping_cost_for(method_id: Optional[str], postal_code: Optional[str] = None) -> Decimal:
    """
    Server-side shipping cost for a checkout shipping method.

    Carrier service ids (ca-*, oca-*) are billed at the zone standard rate,
    or the express rate when the service id says so. Flat-priced options
    added in the store settings cost their configured price.
    """
    if not method_id or method_id == 'pickup':
        return Decimal('0')

    table = settings_service.shipping_option_table()
    if method_id in table and method_id not in ZONE_PRICED_OPTIONS:
        return Decimal(str(table[method_id]['price']))

    if method_id in ZONE_PRICED_OPTIONS:
        option_id = method_id
    elif 'express' in method_id or method_id.endswith('-ex'):
        option_id = 'express'
    else:
        option_id = 'standard'

    code = normalize_postal_code(postal_code)
    if code is None:
        base = table.get(option_id) or SHIPPING_OPTIONS[option_id]
        return Decimal(str(base['price']))

    _, standard, express = _zone_for(code)
    return Decimal(standard if option_id == 'standard' else express)


# =============================================================================
# Cart
# =============================================================================

@dataclass
class PricedLine:
    product: Product
    quantity: int
    unit_price: Decimal
    size: Optional[str] = None
    color: Optional[str] = None
    variant: Any = None

    @property
    def line_total(self) -> Decimal:
        return round_money(self.unit_price * self.quantity)

    def to_dict(self):
        return {
            'productId': self.product.id,
            'name': self.product.name,
            'quantity': self.quantity,
            'unitPrice': float(self.unit_price),
            'lineTotal': float(self.line_total),
            'size': self.size,
            'color': self.color,
            'variantId': self.variant.id if self.variant is not None else None,
        }


@dataclass
class PricedCart:
    lines: List[PricedLine] = field(default_factory=list)
    problems: List[Dict[str, Any]] = field(default_factory=list)
    subtotal: Decimal = Decimal('0')
    shipping_cost: Decimal = Decimal('0')
    discount: Decimal = Decimal('0')
    discount_percent: Decimal = Decimal('0')
    total: Decimal = Decimal('0')

    @property
    def ok(self) -> bool:
        return not self.problems

    def to_dict(self):
        return {
            'items': [line.to_dict() for line in self.lines],
            'problems': self.problems,
            'subtotal': float(self.subtotal),
            'shippingCost': float(self.shipping_cost),
            'discount': float(self.discount),
            'discountPercent': float(self.discount_percent),
            'total': float(self.total),
            'valid': self.ok,
        }


def _field(item, name, alias=None):
    if isinstance(item, dict):
        if name in item:
            return item[name]
        return item.get(alias) if alias else None
    return getattr(item, name, None)


def _problem(product_id, code, message, available=None):
    problem = {'productId': product_id, 'code': code, 'message': message}
    if available is not None:
        problem['available'] = available
    return problem


def price_cart(
    items,
    shipping_method_id: Optional[str] = None,
    postal_code: Optional[str] = None,
    payment_method: Optional[str] = None,
    discount_percent=None,
    check_stock: bool = True,
) -> PricedCart:
    """
    Price a cart from DB prices and check availability.

    `items` are CartItemIn models or dicts with productId/product_id,
    quantity, size and color. Quantities for the same product (or variant)
    are summed before comparing with stock.

    Variant stock is checked when the product has variants and the item
    names a color/size; otherwise the product stock is used.
    """
    cart = PricedCart()
    requested_by_product = defaultdict(int)
    requested_by_variant = defaultdict(int)

    for item in items:
        product_id = _field(item, 'product_id', 'productId')
        quantity = int(_field(item, 'quantity') or 0)
        size = _field(item, 'size')
        color = _field(item, 'color')

        try:
            product_id = int(product_id)
        except (TypeError, ValueError):
            cart.problems.append(_problem(product_id, 'NOT_FOUND', 'Invalid product id'))
            continue
        if quantity < 1:
            cart.problems.append(_problem(product_id, 'INVALID_QUANTITY', 'Quantity must be at least 1'))
            continue

        product = db.session.get(Product, product_id)
        if product is None:
            cart.problems.append(_problem(product_id, 'NOT_FOUND', f'Product {product_id} not found'))
            continue
        if not product.is_active:
            cart.problems.append(_problem(product_id, 'INACTIVE', f'{product.name} is no longer available'))
            continue

        variant = None
        if product.variants and (size or color):
            variant = product.find_variant(color, size)
            if variant is None:
                cart.problems.append(_problem(
                    product_id, 'VARIANT_NOT_FOUND',
                    f'{product.name} is not available in {color or "-"} / {size or "-"}'
                ))
                continue
            requested_by_variant[variant.id] += quantity

        requested_by_product[product.id] += quantity
        cart.lines.append(PricedLine(
            product=product,
            quantity=quantity,
            unit_price=round_money(product.effective_price),
            size=size,
            color=color,
            variant=variant,
        ))

    if check_stock:
        reported = set()
        for line in cart.lines:
            if line.variant is not None:
                requested = requested_by_variant[line.variant.id]
                available = line.variant.stock
                key = ('variant', line.variant.id)
            else:
                requested = requested_by_product[line.product.id]
                available = line.product.stock
                key = ('product', line.product.id)
            if requested > available and key not in reported:
                reported.add(key)
                cart.problems.append(_problem(
                    line.product.id, 'INSUFFICIENT_STOCK',
                    f'Only {available} left of {line.product.name}',
                    available=available,
                ))

    cart.subtotal = round_money(sum((line.line_total for line in cart.lines), Decimal('0')))
    cart.shipping_cost = round_money(shipping_cost_for(shipping_method_id, postal_code))
    if cart.shipping_cost and cart.lines and settings_service.free_shipping_applies(cart.subtotal):
        cart.shipping_cost = Decimal('0.00')

    if discount_percent is None:
        discount_percent = settings_service.payment_discount(payment_method)
    cart.discount_percent = clamp_fraction(discount_percent)
    cart.discount = round_money(cart.subtotal * cart.discount_percent)

    cart.total = round_money(max(Decimal('0'), cart.subtotal + cart.shipping_cost - cart.discount))
    return cart
