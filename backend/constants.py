"""
Centralized Constants - SINGLE SOURCE OF TRUTH

Order lifecycle, payment methods, shipping options and Argentine
province codes. Import from here; do not duplicate these tables.
"""

import re

# =============================================================================
# ORDER LIFECYCLE
# =============================================================================


class OrderStatus:
    PENDING = 'PENDING'         # created, waiting for payment confirmation
    PAID = 'PAID'               # payment confirmed, waiting for dispatch
    PROCESSED = 'PROCESSED'     # handed to a carrier (or shipped manually)
    DELIVERED = 'DELIVERED'
    CANCELLED = 'CANCELLED'

    ALL = (PENDING, PAID, PROCESSED, DELIVERED, CANCELLED)


# Statuses whose totals count as revenue
REVENUE_STATUSES = (OrderStatus.PAID, OrderStatus.PROCESSED, OrderStatus.DELIVERED)

ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PAID, OrderStatus.CANCELLED},
    OrderStatus.PAID: {OrderStatus.PROCESSED, OrderStatus.CANCELLED},
    OrderStatus.PROCESSED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}


def can_transition(current: str, new: str) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, set())


class ShipmentStatus:
    NOT_REQUIRED = 'not_required'
    PENDING = 'pending'
    CREATED = 'created'
    MANUAL_REQUIRED = 'manual_required'


# =============================================================================
# PAYMENTS
# =============================================================================


class PaymentMethod:
    MERCADOPAGO = 'mercadopago'
    CASH = 'cash'
    TRANSFER = 'transfer'

    ALL = (MERCADOPAGO, CASH, TRANSFER)


# MercadoPago payment.status -> order status.
# rejected/cancelled stay PENDING: the buyer can retry on the same preference.
MP_STATUS_TO_ORDER_STATUS = {
    'approved': OrderStatus.PAID,
    'pending': OrderStatus.PENDING,
    'in_process': OrderStatus.PENDING,
    'authorized': OrderStatus.PENDING,
    'in_mediation': OrderStatus.PENDING,
    'rejected': OrderStatus.PENDING,
    'cancelled': OrderStatus.PENDING,
    'refunded': OrderStatus.CANCELLED,
    'charged_back': OrderStatus.CANCELLED,
}


def map_payment_status(mp_status) -> str:
    """Map a MercadoPago payment status to an order status (unknown -> PENDING)."""
    if not mp_status:
        return OrderStatus.PENDING
    return MP_STATUS_TO_ORDER_STATUS.get(str(mp_status).lower(), OrderStatus.PENDING)


# =============================================================================
# SHIPPING
# =============================================================================

CARRIER_CORREO_ARGENTINO = 'correo-argentino'
CARRIER_OCA = 'oca'
CARRIER_PICKUP = 'pickup'

# Base options (ARS). Zone pricing below overrides standard/express.
SHIPPING_OPTIONS = {
    'pickup': {'id': 'pickup', 'name': 'Retiro en tienda', 'price': 0, 'estimated_days': '0'},
    'standard': {'id': 'standard', 'name': 'Envío estándar', 'price': 1500, 'estimated_days': '3-5'},
    'express': {'id': 'express', 'name': 'Envío express', 'price': 2500, 'estimated_days': '1-2'},
}

# (low, high, standard, express), inclusive ranges on the numeric CP
SHIPPING_ZONES = [
    ('CABA', [(1000, 1499)], 800, 1500),
    ('GBA', [(1500, 1999)], 1200, 2000),
    ('Provincias cercanas', [(2000, 2999), (3000, 3599), (5000, 5999)], 1800, 3000),
]
SHIPPING_ZONE_DEFAULT = ('Resto del país', 2500, 4000)

POSTAL_CODE_PATTERN = re.compile(r'^[A-Z]?\d{4}$')

# Fallback package used when products carry no dimensions
DEFAULT_PACKAGE_DIMENSIONS = {'height': 10, 'width': 20, 'length': 30}
MIN_PACKAGE_WEIGHT_GRAMS = 500
WEIGHT_PER_ITEM_GRAMS = 300


def carrier_for_shipping_method(method_id) -> str:
    """Resolve the carrier that fulfils a checkout shipping method id."""
    if not method_id or method_id == 'pickup':
        return CARRIER_PICKUP
    if method_id.startswith('oca'):
        return CARRIER_OCA
    # standard, express and every ca-* service ship with Correo Argentino
    return CARRIER_CORREO_ARGENTINO


# MiCorreo province letters
PROVINCE_CODES = {
    'A': 'Salta',
    'B': 'Buenos Aires',
    'C': 'Ciudad Autónoma de Buenos Aires',
    'D': 'San Luis',
    'E': 'Entre Ríos',
    'F': 'La Rioja',
    'G': 'Santiago del Estero',
    'H': 'Chaco',
    'J': 'San Juan',
    'K': 'Catamarca',
    'L': 'La Pampa',
    'M': 'Mendoza',
    'N': 'Misiones',
    'P': 'Formosa',
    'Q': 'Neuquén',
    'R': 'Río Negro',
    'S': 'Santa Fe',
    'T': 'Tucumán',
    'U': 'Chubut',
    'V': 'Tierra del Fuego',
    'W': 'Corrientes',
    'X': 'Córdoba',
    'Y': 'Jujuy',
    'Z': 'Santa Cruz',
}

_PROVINCE_ALIASES = {
    'caba': 'C',
    'capital federal': 'C',
    'ciudad de buenos aires': 'C',
    'ciudad autonoma de buenos aires': 'C',
    'provincia de buenos aires': 'B',
    'bs as': 'B',
    'bs. as.': 'B',
}


def _fold(text: str) -> str:
    table = str.maketrans('áéíóúÁÉÍÓÚ', 'aeiouaeiou')
    return text.translate(table).strip().lower()


def province_code_for(name) -> str:
    """Return the MiCorreo province letter for a province name or code, or None."""
    if not name:
        return None
    raw = name.strip()
    if len(raw) == 1 and raw.upper() in PROVINCE_CODES:
        return raw.upper()
    folded = _fold(raw)
    if folded in _PROVINCE_ALIASES:
        return _PROVINCE_ALIASES[folded]
    for code, province in PROVINCE_CODES.items():
        if _fold(province) == folded:
            return code
    return None


# =============================================================================
# CATALOG
# =============================================================================

SORT_OPTIONS = (
    'relevance',
    'price-asc',
    'price-desc',
    'createdAt-desc',
    'rating-desc',
    'name-asc',
    'name-desc',
)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

# =============================================================================
# SUPPORT
# =============================================================================

TICKET_STATUSES = ('open', 'in_progress', 'resolved', 'closed')
TICKET_PRIORITIES = ('low', 'normal', 'high')

# =============================================================================
# BACK-OFFICE
# =============================================================================

# 'viewer' accounts can log in but every /api/admin endpoint answers 403
USER_ROLES = ('admin', 'viewer')
MIN_PASSWORD_LENGTH = 8
PASSWORD_RESET_TTL_MINUTES = 60
