"""
Shipment Service - automatic carrier shipments with manual fallback

create_shipment() is called once an order is PAID. It builds the carrier
payload from the order, registers the shipment and moves the order to
PROCESSED. Any failure leaves the order PAID with
shipment_status='manual_required' and the error recorded, so the back
office can retry or dispatch it by hand; it never raises to the caller.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from flask import current_app

from constants import (
    CARRIER_CORREO_ARGENTINO,
    CARRIER_OCA,
    CARRIER_PICKUP,
    DEFAULT_PACKAGE_DIMENSIONS,
    MIN_PACKAGE_WEIGHT_GRAMS,
    WEIGHT_PER_ITEM_GRAMS,
    OrderStatus,
    ShipmentStatus,
    province_code_for,
)
from models.database import db
from models.order import Order
from services import email_service, order_service
from services.carriers import CarrierError, TrackingInfo, get_carrier_client
from services.oca_client import OCAShipmentRequest, recommended_operativa
from utils.address import parse_free_text_address, province_code_from_postal

logger = logging.getLogger(__name__)


def package_weight_grams(lines) -> int:
    """
    Total package weight for (product, quantity) lines.

    Products without a configured weight count 300 g per unit; the
    package never weighs less than 500 g.
    """
    total = 0
    for product, quantity in lines:
        per_unit = getattr(product, 'weight_grams', None) or WEIGHT_PER_ITEM_GRAMS
        total += per_unit * quantity
    return max(MIN_PACKAGE_WEIGHT_GRAMS, total)


def order_package(order: Order) -> Dict[str, int]:
    weight = package_weight_grams((item.product, item.quantity) for item in order.items)
    return {'weight': weight, **DEFAULT_PACKAGE_DIMENSIONS}


def resolve_destination(order: Order) -> Dict[str, Optional[str]]:
    """
    Destination address for a carrier.

    Structured checkout fields win; older or metadata-built orders fall
    back to parsing the free-text address.
    """
    if order.shipping_street and order.shipping_number and order.shipping_city and order.shipping_postal_code:
        province_code = (
            province_code_for(order.shipping_province)
            or province_code_from_postal(order.shipping_postal_code)
        )
        return {
            'street': order.shipping_street,
            'number': order.shipping_number,
            'floor': order.shipping_floor,
            'apartment': order.shipping_apartment,
            'city': order.shipping_city,
            'province_code': province_code,
            'postal_code': order.shipping_postal_code[-4:],
        }

    parsed = parse_free_text_address(order.customer_address, province=order.shipping_province)
    return {
        'street': parsed.street,
        'number': parsed.number,
        'floor': None,
        'apartment': None,
        'city': parsed.city,
        'province_code': parsed.province_code,
        'postal_code': order.shipping_postal_code[-4:] if order.shipping_postal_code else parsed.postal_code,
    }


def _split_name(full_name: str) -> Tuple[str, str]:
    parts = (full_name or '').split()
    if len(parts) < 2:
        return (full_name or 'Cliente'), '-'
    return " ".join(parts[:-1]), parts[-1]


class ShipmentService:
    """
    Carrier shipment orchestration.

    `clients` maps carrier id -> client; missing carriers are resolved
    lazily from app config (see services.carriers.get_carrier_client).
    """

    def __init__(self, clients: Optional[Dict[str, Any]] = None, emails=None):
        self._clients = dict(clients or {})
        self.emails = emails or email_service

    def _client(self, carrier: str):
        if carrier not in self._clients:
            self._clients[carrier] = get_carrier_client(carrier)
        return self._clients[carrier]

    # =========================================================================
    # Payloads
    # =========================================================================

    def build_correo_argentino_payload(self, order: Order) -> Dict[str, Any]:
        config = current_app.config
        destination = resolve_destination(order)
        package = order_package(order)
        delivery_type = 'S' if order.shipping_agency else 'D'

        shipping = {
            'deliveryType': delivery_type,
            'productType': 'CP',
            'agency': order.shipping_agency,
            'weight': package['weight'],
            'declaredValue': float(order.total),
            'height': package['height'],
            'length': package['length'],
            'width': package['width'],
        }
        if delivery_type == 'D':
            shipping['address'] = {
                'streetName': destination['street'],
                'streetNumber': destination['number'],
                'floor': destination['floor'],
                'apartment': destination['apartment'],
                'city': destination['city'],
                'provinceCode': destination['province_code'],
                'postalCode': destination['postal_code'],
            }

        return {
            'customerId': config.get('CORREO_ARGENTINO_CUSTOMER_ID'),
            'extOrderId': order.id,
            'orderNumber': order.id,
            'sender': {
                'name': config.get('STORE_SENDER_NAME'),
                'phone': config.get('STORE_SENDER_PHONE'),
                'cellPhone': config.get('STORE_SENDER_PHONE'),
                'email': config.get('STORE_SENDER_EMAIL'),
                'originAddress': {
                    'streetName': config.get('STORE_STREET'),
                    'streetNumber': config.get('STORE_STREET_NUMBER'),
                    'floor': None,
                    'apartment': None,
                    'city': config.get('STORE_CITY'),
                    'provinceCode': config.get('STORE_PROVINCE_CODE'),
                    'postalCode': config.get('STORE_POSTAL_CODE'),
                },
            },
            'recipient': {
                'name': order.customer_name,
                'phone': order.customer_phone or '',
                'cellPhone': order.customer_phone or '',
                'email': order.customer_email,
            },
            'shipping': shipping,
        }

    def build_oca_request(self, order: Order) -> Tuple[Dict[str, str], OCAShipmentRequest, str]:
        config = current_app.config
        destination = resolve_destination(order)
        package = order_package(order)
        first_name, last_name = _split_name(order.customer_name)

        origin = {
            'street': config.get('STORE_STREET') or '',
            'number': config.get('STORE_STREET_NUMBER') or '',
            'postal_code': config.get('STORE_POSTAL_CODE') or '',
            'city': config.get('STORE_CITY') or '',
            'province': config.get('STORE_PROVINCE_CODE') or '',
            'contact': config.get('STORE_SENDER_NAME') or '',
            'email': config.get('STORE_SENDER_EMAIL') or '',
        }
        request = OCAShipmentRequest(
            remito=order.id,
            recipient_first_name=first_name,
            recipient_last_name=last_name,
            street=destination['street'],
            number=destination['number'],
            floor=destination['floor'] or '',
            apartment=destination['apartment'] or '',
            city=destination['city'],
            province=destination['province_code'],
            postal_code=destination['postal_code'],
            phone=order.customer_phone or '',
            email=order.customer_email or '',
            branch_id=order.shipping_agency or '0',
            packages=[{
                'alto': package['height'],
                'ancho': package['width'],
                'largo': package['length'],
                'peso': round(package['weight'] / 1000, 3),
                'valor': float(order.total),
                'cantidad': 1,
            }],
        )
        operativa = recommended_operativa(origin_is_door=True, destination_is_door=not order.shipping_agency)
        return origin, request, operativa

    # =========================================================================
    # Creation
    # =========================================================================

    def _record_failure(self, order: Order, reason: str) -> bool:
        order.shipment_attempts = (order.shipment_attempts or 0) + 1
        order.shipment_status = ShipmentStatus.MANUAL_REQUIRED
        order.shipment_error = reason
        db.session.commit()
        logger.warning(f"Order {order.id}: automatic shipment failed ({reason}); manual processing required")
        return False

    def create_shipment(self, order: Order) -> bool:
        """
        Register the order with its carrier.

        Returns:
            True if the order has a carrier shipment after this call.
        """
        carrier = order.carrier
        if not carrier or carrier == CARRIER_PICKUP:
            if order.shipment_status != ShipmentStatus.NOT_REQUIRED:
                order.shipment_status = ShipmentStatus.NOT_REQUIRED
                db.session.commit()
            return False

        if order.tracking_number or order.shipment_id:
            logger.info(f"Order {order.id}: shipment already exists, skipping")
            return True

        if order.status != OrderStatus.PAID:
            logger.info(f"Order {order.id}: status {order.status}, not creating shipment")
            return False

        if not order.customer_name or not order.customer_email or not (order.customer_address or order.shipping_street):
            return self._record_failure(order, "Missing customer name, email or address")

        client = self._client(carrier)
        if client is None:
            return self._record_failure(order, f"Carrier {carrier} is not configured")

        try:
            if carrier == CARRIER_CORREO_ARGENTINO:
                result = client.import_shipment(self.build_correo_argentino_payload(order))
            elif carrier == CARRIER_OCA:
                origin, request, operativa = self.build_oca_request(order)
                result = client.create_shipment(origin, request, operativa=operativa)
            else:
                return self._record_failure(order, f"Unknown carrier {carrier}")
        except CarrierError as e:
            return self._record_failure(order, f"{getattr(e, 'code', 'CARRIER_ERROR')}: {e}")
        except Exception as e:
            logger.exception(f"Order {order.id}: unexpected error creating shipment")
            return self._record_failure(order, f"Unexpected error: {e}")

        order.shipment_attempts = (order.shipment_attempts or 0) + 1
        order.tracking_number = result.tracking_number
        order.shipment_id = result.shipment_id
        order.shipment_status = ShipmentStatus.CREATED
        order.shipment_error = None
        order_service.transition(order, OrderStatus.PROCESSED)
        db.session.commit()

        logger.info(f"Order {order.id}: {carrier} shipment created (tracking={order.tracking_number})")
        self.emails.send_order_shipped(order)
        return True

    # =========================================================================
    # Tracking
    # =========================================================================

    def fetch_tracking(self, order: Order) -> Optional[TrackingInfo]:
        """
        Raises:
            CarrierError: carrier lookup failed
        """
        reference = order.tracking_number or order.shipment_id
        if not reference:
            return None
        client = self._client(order.carrier)
        if client is None:
            return None
        if order.carrier == CARRIER_OCA:
            return client.validate_tracking(reference)
        return client.get_tracking(reference)

    def sync_tracking(self, order: Order) -> Optional[TrackingInfo]:
        """
        Refresh carrier tracking; a delivered shipment moves the order to DELIVERED.

        Raises:
            CarrierError: carrier lookup failed
        """
        info = self.fetch_tracking(order)
        if info is not None and info.delivered and order.status == OrderStatus.PROCESSED:
            order_service.mark_delivered(order)
            db.session.commit()
            self.emails.send_order_delivered(order)
        return info
