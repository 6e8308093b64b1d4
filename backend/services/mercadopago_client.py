"""
MercadoPago API Client - Checkout Pro preferences and payment lookups

API Documentation: https://www.mercadopago.com.ar/developers/es/reference

Authentication:
- Private access token sent as `Authorization: Bearer <MP_ACCESS_TOKEN>`

Endpoints:
- Preferences: POST /checkout/preferences
- Payments:    GET  /v1/payments/{id}

Webhooks:
- Notifications carry only the payment id; state is always re-read with
  get_payment(). The `x-signature` header (ts=...,v1=...) is an HMAC-SHA256
  of `id:<data.id>;request-id:<x-request-id>;ts:<ts>;` keyed with the
  webhook secret.

Usage:
    from services.mercadopago_client import get_mercadopago_client

    client = get_mercadopago_client()
    payment = client.get_payment("123456789")
    if payment.status == "approved":
        ...
"""

import hashlib
import hmac
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import requests
from flask import current_app

from services.http_retry import request_with_retry, safe_json

logger = logging.getLogger(__name__)

MP_API_BASE_URL = "https://api.mercadopago.com"
PREFERENCE_EXPIRATION_MINUTES = 30
CURRENCY_ID = "ARS"


class PaymentGatewayError(Exception):
    """Base exception for MercadoPago errors."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class PaymentNotFound(PaymentGatewayError):
    """Payment id unknown to the gateway."""


@dataclass
class MPPayment:
    """The subset of a MercadoPago payment used for reconciliation."""
    id: str
    status: Optional[str]
    status_detail: Optional[str] = None
    external_reference: Optional[str] = None
    preference_id: Optional[str] = None
    transaction_amount: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    payer: Dict[str, Any] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "MPPayment":
        return cls(
            id=str(data.get("id")),
            status=data.get("status"),
            status_detail=data.get("status_detail"),
            external_reference=data.get("external_reference") or None,
            preference_id=data.get("preference_id") or (data.get("order") or {}).get("id") or None,
            transaction_amount=data.get("transaction_amount"),
            metadata=data.get("metadata") or {},
            payer=data.get("payer") or {},
            raw=data,
        )


@dataclass
class MPPreference:
    id: str
    init_point: Optional[str]
    sandbox_init_point: Optional[str] = None


def _is_public_url(url: Optional[str]) -> bool:
    if not url:
        return False
    host = urlparse(url).hostname or ""
    return host not in ("localhost", "127.0.0.1", "0.0.0.0") and not host.endswith(".local")


def parse_signature_header(header: Optional[str]) -> Dict[str, str]:
    """`ts=1704908010,v1=618c85...` -> {'ts': '1704908010', 'v1': '618c85...'}"""
    parts = {}
    for chunk in (header or "").split(","):
        key, sep, value = chunk.strip().partition("=")
        if sep:
            parts[key.strip()] = value.strip()
    return parts


def verify_webhook_signature(secret, x_signature, x_request_id, data_id) -> bool:
    """
    Validate the `x-signature` header of a webhook delivery.

    Without a configured secret every delivery is accepted (local
    development); state is still fetched from the API.
    """
    if not secret:
        logger.warning("MP_WEBHOOK_SECRET not set; skipping webhook signature check")
        return True

    parts = parse_signature_header(x_signature)
    ts, received = parts.get("ts"), parts.get("v1")
    if not ts or not received:
        return False

    manifest = f"id:{data_id};request-id:{x_request_id or ''};ts:{ts};"
    expected = hmac.new(
        secret.encode("utf-8"),
        manifest.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return hmac.compare_digest(expected, received)


class MercadoPagoClient:
    """
    Thin MercadoPago REST client.

    Features:
    - Retry with exponential backoff on network errors, 429 and 5xx
    - Idempotency keys on preference creation
    - Webhook signature verification
    """

    def __init__(
        self,
        access_token: str,
        webhook_secret: Optional[str] = None,
        base_url: str = MP_API_BASE_URL,
    ):
        if not access_token:
            raise PaymentGatewayError("MP_ACCESS_TOKEN is not configured")

        self.base_url = base_url.rstrip("/")
        self.webhook_secret = webhook_secret
        self._session = requests.Session()
        self._session.headers.update({
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        })

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        return request_with_retry(
            self._session,
            method,
            f"{self.base_url}{path}",
            error_cls=PaymentGatewayError,
            service="MercadoPago",
            **kwargs,
        )

    # =========================================================================
    # Payments
    # =========================================================================

    def get_payment(self, payment_id) -> MPPayment:
        """
        Fetch the current state of a payment.

        Raises:
            PaymentNotFound: unknown payment id
            PaymentGatewayError: any other failure
        """
        response = self._request("GET", f"/v1/payments/{payment_id}")
        if response.status_code == 404:
            raise PaymentNotFound(f"Payment {payment_id} not found", status_code=404)
        if response.status_code != 200:
            raise PaymentGatewayError(
                f"Unexpected MercadoPago response {response.status_code} for payment {payment_id}",
                status_code=response.status_code,
            )
        data = safe_json(response)
        if not isinstance(data, dict):
            raise PaymentGatewayError(f"Invalid payment payload for {payment_id}")
        return MPPayment.from_api(data)

    def list_payment_methods(self) -> List[Dict[str, Any]]:
        """Active payment methods of the seller account (GET /v1/payment_methods)."""
        response = self._request("GET", "/v1/payment_methods")
        if response.status_code != 200:
            raise PaymentGatewayError(
                f"Unexpected MercadoPago response {response.status_code} listing payment methods",
                status_code=response.status_code,
            )
        data = safe_json(response)
        if not isinstance(data, list):
            raise PaymentGatewayError("Invalid payment methods payload")
        return [method for method in data if method.get("status", "active") == "active"]

    # =========================================================================
    # Preferences
    # =========================================================================

    def create_preference(
        self,
        items: List[Dict[str, Any]],
        payer: Dict[str, Any],
        external_reference: str,
        metadata: Dict[str, Any],
        back_url_base: str,
        notification_url: Optional[str] = None,
        statement_descriptor: Optional[str] = None,
        max_installments: int = 12,
        expires_in_minutes: int = PREFERENCE_EXPIRATION_MINUTES,
    ) -> MPPreference:
        """
        Create a Checkout Pro preference.

        `notification_url` is only sent when it is publicly reachable; the
        gateway rejects localhost URLs.
        """
        now = datetime.now(timezone.utc)
        body = {
            "items": items,
            "payer": payer,
            "external_reference": external_reference,
            "metadata": metadata,
            "back_urls": {
                "success": f"{back_url_base}/checkout/success",
                "failure": f"{back_url_base}/checkout/failure",
                "pending": f"{back_url_base}/checkout/pending",
            },
            "payment_methods": {"installments": max_installments},
            "expires": True,
            "expiration_date_from": now.isoformat(timespec="milliseconds"),
            "expiration_date_to": (now + timedelta(minutes=expires_in_minutes)).isoformat(timespec="milliseconds"),
        }
        if _is_public_url(back_url_base):
            body["auto_return"] = "approved"
        if statement_descriptor:
            body["statement_descriptor"] = statement_descriptor
        if _is_public_url(notification_url):
            body["notification_url"] = notification_url

        response = self._request(
            "POST",
            "/checkout/preferences",
            json=body,
            headers={"X-Idempotency-Key": f"pref-{external_reference}-{uuid.uuid4().hex[:8]}"},
        )
        data = safe_json(response) or {}
        if response.status_code not in (200, 201) or not data.get("id"):
            message = data.get("message") or f"HTTP {response.status_code}"
            raise PaymentGatewayError(f"Preference creation failed: {message}", status_code=response.status_code)

        logger.info(f"MercadoPago preference {data['id']} created for {external_reference}")
        return MPPreference(
            id=data["id"],
            init_point=data.get("init_point"),
            sandbox_init_point=data.get("sandbox_init_point"),
        )

    # =========================================================================
    # Webhooks
    # =========================================================================

    def verify_webhook_signature(self, x_signature, x_request_id, data_id) -> bool:
        return verify_webhook_signature(self.webhook_secret, x_signature, x_request_id, data_id)


def get_mercadopago_client() -> Optional[MercadoPagoClient]:
    """App-scoped client, or None when MP_ACCESS_TOKEN is not configured."""
    client = current_app.extensions.get("mercadopago_client")
    if client is not None:
        return client

    token = current_app.config.get("MP_ACCESS_TOKEN")
    if not token:
        logger.warning("MercadoPago not configured (MP_ACCESS_TOKEN missing)")
        return None

    client = MercadoPagoClient(token, webhook_secret=current_app.config.get("MP_WEBHOOK_SECRET"))
    current_app.extensions["mercadopago_client"] = client
    return client
