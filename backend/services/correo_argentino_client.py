"""
Correo Argentino MiCorreo API Client - rates, branches, shipment import, tracking

API: MiCorreo REST v1 (credentials issued to the merchant account)

Authentication:
- POST /token with HTTP Basic (username, password)
- Returns {"token": "...", "expires": "YYYY-MM-DD HH:mm:ss"} (Argentina time)
- Data endpoints take `Authorization: Bearer <token>`

Endpoints:
- POST /users/validate            -> {customerId}
- POST /rates                     -> {rates: [...]}
- GET  /agencies?customerId=&provinceCode=
- POST /shipping/import           -> {createdAt, trackingNumber?, ...}
- GET  /shipping/tracking?shippingId=

Usage:
    from services.correo_argentino_client import get_correo_argentino_client

    client = get_correo_argentino_client()
    rates = client.get_rates("1611", "5000", {"weight": 1200, "height": 10, "width": 20, "length": 30})
"""

import copy
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import requests
from dateutil import parser as date_parser
from flask import current_app

from constants import CARRIER_CORREO_ARGENTINO
from services.carriers import (
    CarrierAuthError,
    CarrierRequestError,
    CarrierValidationError,
    RateQuote,
    ShipmentResult,
    TrackingEvent,
    TrackingInfo,
)
from services.http_retry import request_with_retry, safe_json

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================

CA_PRODUCTION_URL = "https://api.correoargentino.com.ar/micorreo/v1"
CA_TEST_URL = "https://apitest.correoargentino.com.ar/micorreo/v1"

# Token expiry timestamps are local Argentine time
ARGENTINA_TZ = timezone(timedelta(hours=-3))
DEFAULT_TOKEN_TTL_HOURS = 12
TOKEN_REFRESH_MARGIN = timedelta(minutes=1)

DELIVERY_TYPE_HOME = "D"
DELIVERY_TYPE_BRANCH = "S"
DEFAULT_PRODUCT_TYPE = "CP"

_DELIVERED_MARKERS = ("ENTREGAD", "DELIVERED")

_REQUIRED_ADDRESS_FIELDS = ("streetName", "streetNumber", "city", "provinceCode", "postalCode")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CAToken:
    """Cached MiCorreo bearer token."""
    value: str
    expires_at: datetime

    def is_expired(self) -> bool:
        return _utcnow() >= self.expires_at - TOKEN_REFRESH_MARGIN


def parse_token_expiry(raw: Optional[str]) -> datetime:
    """'2025-01-30 18:22:10' (Argentina time) -> aware datetime; 12h from now when unparseable."""
    if raw:
        try:
            parsed = date_parser.parse(raw)
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=ARGENTINA_TZ)
            return parsed
        except (ValueError, OverflowError):
            logger.warning(f"Unparseable MiCorreo token expiry {raw!r}; assuming {DEFAULT_TOKEN_TTL_HOURS}h")
    return _utcnow() + timedelta(hours=DEFAULT_TOKEN_TTL_HOURS)


def _truncate(value, length=3):
    if value is None:
        return None
    text = str(value).strip()
    return text[:length] if text else None


def clean_import_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate and normalize a /shipping/import body.

    - Home delivery (D) needs a complete destination address
    - Branch delivery (S) needs an agency code
    - floor/apartment are limited to 3 characters by the API
    - weight and dimensions must be integers (grams / cm)

    Raises:
        CarrierValidationError: MISSING_ADDRESS / MISSING_AGENCY
    """
    cleaned = copy.deepcopy(payload)
    cleaned.pop("originAgency", None)
    sender = cleaned.get("sender") or {}
    sender.pop("originAgency", None)

    shipping = cleaned.get("shipping") or {}
    delivery_type = shipping.get("deliveryType", DELIVERY_TYPE_HOME)

    if delivery_type == DELIVERY_TYPE_HOME:
        address = shipping.get("address") or {}
        missing = [f for f in _REQUIRED_ADDRESS_FIELDS if not address.get(f)]
        if missing:
            raise CarrierValidationError(
                f"Home delivery requires a full address (missing: {', '.join(missing)})",
                code="MISSING_ADDRESS",
                carrier=CARRIER_CORREO_ARGENTINO,
            )
    elif delivery_type == DELIVERY_TYPE_BRANCH:
        if not shipping.get("agency"):
            raise CarrierValidationError(
                "Branch delivery requires an agency code",
                code="MISSING_AGENCY",
                carrier=CARRIER_CORREO_ARGENTINO,
            )
        # Branch deliveries must not carry a home address
        shipping.pop("address", None)

    for address in (shipping.get("address"), sender.get("originAddress")):
        if address:
            address["floor"] = _truncate(address.get("floor"))
            address["apartment"] = _truncate(address.get("apartment"))

    for key in ("weight", "height", "length", "width"):
        if shipping.get(key) is not None:
            shipping[key] = int(round(float(shipping[key])))

    return cleaned


def _is_delivered(*labels) -> bool:
    for label in labels:
        if label and any(marker in str(label).upper() for marker in _DELIVERED_MARKERS):
            return True
    return False


class CorreoArgentinoClient:
    """
    MiCorreo REST client.

    Features:
    - Token caching until the server-provided expiry
    - Transparent re-authentication on a 401
    - Retry with exponential backoff on network errors and 5xx
    """

    def __init__(
        self,
        username: str,
        password: str,
        customer_id: Optional[str] = None,
        production: bool = False,
    ):
        if not username or not password:
            raise CarrierAuthError(
                "CORREO_ARGENTINO_USERNAME / CORREO_ARGENTINO_PASSWORD not configured",
                carrier=CARRIER_CORREO_ARGENTINO,
            )
        self.username = username
        self.password = password
        self.customer_id = customer_id
        self.base_url = CA_PRODUCTION_URL if production else CA_TEST_URL
        self._token: Optional[CAToken] = None
        self._session = requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})

    # =========================================================================
    # Token Management
    # =========================================================================

    def authenticate(self) -> str:
        """
        Obtain a fresh bearer token.

        Raises:
            CarrierAuthError: credentials rejected or no token in response
        """
        response = request_with_retry(
            self._session,
            "POST",
            f"{self.base_url}/token",
            error_cls=CarrierAuthError,
            service="MiCorreo",
            auth=(self.username, self.password),
        )
        data = safe_json(response) or {}
        if response.status_code != 200 or not data.get("token"):
            raise CarrierAuthError(
                f"MiCorreo authentication failed (HTTP {response.status_code})",
                status_code=response.status_code,
                carrier=CARRIER_CORREO_ARGENTINO,
            )
        self._token = CAToken(value=data["token"], expires_at=parse_token_expiry(data.get("expires")))
        logger.info(f"MiCorreo token obtained, expires {self._token.expires_at.isoformat()}")
        return self._token.value

    def _get_token(self) -> str:
        if self._token is None or self._token.is_expired():
            return self.authenticate()
        return self._token.value

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        for attempt in range(2):
            headers = {"Authorization": f"Bearer {self._get_token()}"}
            response = request_with_retry(
                self._session,
                method,
                f"{self.base_url}{path}",
                error_cls=CarrierRequestError,
                service="MiCorreo",
                headers=headers,
                **kwargs,
            )
            if response.status_code == 401 and attempt == 0:
                logger.info("MiCorreo token rejected; re-authenticating")
                self._token = None
                continue
            return response
        return response

    def _json_or_raise(self, response: requests.Response, code: str, action: str):
        data = safe_json(response)
        if isinstance(data, str):
            # /shipping/import has been seen returning a JSON document as a string
            try:
                data = json.loads(data)
            except ValueError:
                pass
        if response.status_code not in (200, 201):
            message = data.get("message") if isinstance(data, dict) else None
            raise CarrierRequestError(
                f"MiCorreo {action} failed: {message or 'HTTP %s' % response.status_code}",
                code=code,
                status_code=response.status_code,
                carrier=CARRIER_CORREO_ARGENTINO,
            )
        return data

    # =========================================================================
    # Account
    # =========================================================================

    def validate_user(self, email: str, password: str) -> Optional[str]:
        """Resolve the customerId of an existing MiCorreo account."""
        response = self._request("POST", "/users/validate", json={"email": email, "password": password})
        data = self._json_or_raise(response, "VALIDATION_ERROR", "user validation")
        return (data or {}).get("customerId")

    # =========================================================================
    # Quotes and branches
    # =========================================================================

    def get_rates(
        self,
        postal_code_origin: str,
        postal_code_destination: str,
        dimensions: Dict[str, Any],
        delivered_type: Optional[str] = None,
    ) -> List[RateQuote]:
        """Shipping rates for a package (weight in grams, dimensions in cm)."""
        body = {
            "customerId": self.customer_id,
            "postalCodeOrigin": postal_code_origin,
            "postalCodeDestination": postal_code_destination,
            "dimensions": {k: int(round(float(v))) for k, v in dimensions.items()},
        }
        if delivered_type:
            body["deliveredType"] = delivered_type

        response = self._request("POST", "/rates", json=body)
        data = self._json_or_raise(response, "RATES_ERROR", "rates") or {}

        quotes = []
        for rate in data.get("rates", []):
            delivered = rate.get("deliveredType") or ""
            product = rate.get("productType") or DEFAULT_PRODUCT_TYPE
            quotes.append(RateQuote(
                carrier=CARRIER_CORREO_ARGENTINO,
                service=f"ca-{delivered.lower()}-{product.lower()}",
                name=rate.get("productName") or "Correo Argentino",
                price=float(rate.get("price") or 0),
                delivered_type=delivered or None,
                delivery_days_min=_to_int(rate.get("deliveryTimeMin")),
                delivery_days_max=_to_int(rate.get("deliveryTimeMax")),
            ))
        return quotes

    def get_agencies(self, province_code: str, services: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"customerId": self.customer_id, "provinceCode": province_code}
        if services:
            params["services"] = services
        response = self._request("GET", "/agencies", params=params)
        data = self._json_or_raise(response, "AGENCIES_ERROR", "agencies") or []

        agencies = []
        for agency in data:
            address = (agency.get("location") or {}).get("address") or {}
            agencies.append({
                "code": agency.get("code"),
                "name": agency.get("name"),
                "address": " ".join(filter(None, [address.get("streetName"), address.get("streetNumber")])),
                "city": address.get("city") or address.get("locality"),
                "provinceCode": address.get("provinceCode") or province_code,
                "postalCode": address.get("postalCode"),
                "phone": agency.get("phone"),
                "status": agency.get("status"),
            })
        return agencies

    # =========================================================================
    # Shipments
    # =========================================================================

    def import_shipment(self, payload: Dict[str, Any]) -> ShipmentResult:
        """
        Register a shipment in MiCorreo.

        Raises:
            CarrierValidationError: payload incomplete (never sent)
            CarrierRequestError: IMPORT_ERROR from the API
        """
        body = clean_import_payload(payload)
        body.setdefault("customerId", self.customer_id)

        response = self._request("POST", "/shipping/import", json=body)
        data = self._json_or_raise(response, "IMPORT_ERROR", "shipment import") or {}
        if not isinstance(data, dict):
            data = {}

        tracking_number = data.get("trackingNumber")
        shipment_id = data.get("shipmentId") or data.get("id") or body.get("extOrderId")
        logger.info(f"MiCorreo shipment imported ext_order={body.get('extOrderId')} tracking={tracking_number}")
        return ShipmentResult(
            tracking_number=str(tracking_number) if tracking_number else None,
            shipment_id=str(shipment_id) if shipment_id else None,
            raw=data,
        )

    def get_tracking(self, shipping_id: str) -> TrackingInfo:
        """
        Tracking history for a shipment.

        Raises:
            CarrierRequestError: TRACKING_ERROR
        """
        response = self._request("GET", "/shipping/tracking", params={"shippingId": shipping_id})
        data = self._json_or_raise(response, "TRACKING_ERROR", "tracking")

        entry = data[0] if isinstance(data, list) and data else data
        if not isinstance(entry, dict) or entry.get("error") or (entry.get("code") and not entry.get("events")):
            raise CarrierRequestError(
                f"No tracking information for {shipping_id}",
                code="TRACKING_ERROR",
                status_code=response.status_code,
                carrier=CARRIER_CORREO_ARGENTINO,
            )

        events = [
            TrackingEvent(
                date=event.get("date"),
                description=event.get("event") or event.get("status") or "",
                location=event.get("branch"),
                status=event.get("status"),
            )
            for event in entry.get("events") or []
        ]
        # MiCorreo lists the most recent event first
        latest = events[0] if events else None
        return TrackingInfo(
            tracking_number=entry.get("trackingNumber") or shipping_id,
            status=latest.status if latest else None,
            description=latest.description if latest else None,
            last_update=latest.date if latest else None,
            delivered=bool(latest) and _is_delivered(latest.status, latest.description),
            events=events,
        )


def _to_int(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def get_correo_argentino_client() -> Optional[CorreoArgentinoClient]:
    """App-scoped client, or None when MiCorreo credentials are missing."""
    client = current_app.extensions.get("correo_argentino_client")
    if client is not None:
        return client

    config = current_app.config
    if not config.get("CORREO_ARGENTINO_USERNAME") or not config.get("CORREO_ARGENTINO_PASSWORD"):
        logger.warning("Correo Argentino not configured")
        return None

    client = CorreoArgentinoClient(
        config["CORREO_ARGENTINO_USERNAME"],
        config["CORREO_ARGENTINO_PASSWORD"],
        customer_id=config.get("CORREO_ARGENTINO_CUSTOMER_ID"),
        production=config.get("CORREO_ARGENTINO_PRODUCTION", False),
    )
    current_app.extensions["correo_argentino_client"] = client
    return client
