"""
Carrier-neutral types shared by the Correo Argentino and OCA clients.
"""

from dataclasses import dataclass, field
from typing import List, Optional


class CarrierError(Exception):
    """Base exception for shipping carrier errors."""

    def __init__(self, message, code='CARRIER_ERROR', status_code=None, carrier=None):
        super().__init__(message)
        self.code = code
        self.status_code = status_code
        self.carrier = carrier


class CarrierAuthError(CarrierError):
    """Credentials rejected or token could not be obtained."""

    def __init__(self, message, **kwargs):
        kwargs.setdefault('code', 'AUTH_FAILED')
        super().__init__(message, **kwargs)


class CarrierRequestError(CarrierError):
    """Carrier API returned an error or an unusable response."""


class CarrierValidationError(CarrierError):
    """Payload rejected locally before calling the carrier."""


@dataclass
class TrackingEvent:
    date: Optional[str]
    description: str
    location: Optional[str] = None
    status: Optional[str] = None


@dataclass
class TrackingInfo:
    tracking_number: str
    status: Optional[str]
    description: Optional[str]
    last_update: Optional[str]
    delivered: bool = False
    events: List[TrackingEvent] = field(default_factory=list)

    def to_dict(self):
        return {
            'trackingNumber': self.tracking_number,
            'status': self.status,
            'description': self.description,
            'lastUpdate': self.last_update,
            'delivered': self.delivered,
            'events': [
                {'date': e.date, 'description': e.description, 'location': e.location, 'status': e.status}
                for e in self.events
            ],
        }


@dataclass
class ShipmentResult:
    tracking_number: Optional[str]
    shipment_id: Optional[str]
    raw: dict = field(default_factory=dict)


@dataclass
class RateQuote:
    carrier: str
    service: str
    name: str
    price: float
    delivered_type: Optional[str] = None
    delivery_days_min: Optional[int] = None
    delivery_days_max: Optional[int] = None

    def to_dict(self):
        return {
            'carrier': self.carrier,
            'service': self.service,
            'name': self.name,
            'price': self.price,
            'deliveredType': self.delivered_type,
            'deliveryDaysMin': self.delivery_days_min,
            'deliveryDaysMax': self.delivery_days_max,
        }


def get_carrier_client(carrier: str):
    """Configured client for a carrier id, or None (not configured / pickup)."""
    from constants import CARRIER_CORREO_ARGENTINO, CARRIER_OCA

    if carrier == CARRIER_CORREO_ARGENTINO:
        from services.correo_argentino_client import get_correo_argentino_client
        return get_correo_argentino_client()
    if carrier == CARRIER_OCA:
        from services.oca_client import get_oca_client
        return get_oca_client()
    return None
