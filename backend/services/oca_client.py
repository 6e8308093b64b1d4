"""
OCA ePak Web Service Client - quotes, branches, pickup orders, tracking

OCA exposes ASP.NET .asmx endpoints that answer with DataSet XML.

Endpoints (under /ePak_tracking/Oep_TrackEPak.asmx, or the _TEST path):
- Tarifar_Envio_Corporativo             GET   quote
- GetCentrosImposicionConServiciosByCP  GET   branches serving a postal code
- IngresoORMultiplesRetiros             POST  create pickup order + shipments
- GetEnvioEstadoActual                  GET   current status of a shipment
- AnularOrdenGenerada                   GET   cancel a pickup order
And under /oep_tracking/Oep_Track.asmx:
- Tracking_Pieza                        GET   full tracking history

Responses are parsed with BeautifulSoup ('html.parser' lowercases tag
names, so lookups below use lowercase).

Usage:
    from services.oca_client import get_oca_client

    client = get_oca_client()
    quote = client.quote(weight_kg=1.2, volume_m3=0.006,
                         postal_code_origin="1611", postal_code_destination="5000")
"""

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional

import requests
from bs4 import BeautifulSoup
from flask import current_app

from constants import CARRIER_OCA
from services.carriers import (
    CarrierAuthError,
    CarrierRequestError,
    RateQuote,
    ShipmentResult,
    TrackingEvent,
    TrackingInfo,
)
from services.http_retry import request_with_retry

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================

OCA_BASE_URL = "http://webservice.oca.com.ar"
EPAK_PATH = "/ePak_tracking/Oep_TrackEPak.asmx"
EPAK_TEST_PATH = "/ePak_Tracking_TEST/Oep_TrackEPak.asmx"
TRACKING_PATH = "/oep_tracking/Oep_Track.asmx"

OPERATIVAS = {
    "PUERTA_A_PUERTA": "64665",
    "PUERTA_A_SUCURSAL": "62342",
    "SUCURSAL_A_PUERTA": "94584",
    "SUCURSAL_A_SUCURSAL": "78254",
}

CANCEL_SUCCESS_CODE = "100"
_DELIVERED_MARKER = "ENTREGAD"


# =============================================================================
# Helpers
# =============================================================================

def total_volume(packages: List[Dict[str, Any]]) -> float:
    """Cubic metres for packages given in cm: alto * ancho * largo / 1e6 * cantidad."""
    return round(sum(
        float(p["alto"]) * float(p["ancho"]) * float(p["largo"]) / 1_000_000 * int(p.get("cantidad", 1))
        for p in packages
    ), 6)


def total_weight(packages: List[Dict[str, Any]]) -> float:
    """Kilograms: peso * cantidad."""
    return round(sum(float(p["peso"]) * int(p.get("cantidad", 1)) for p in packages), 3)


def is_valid_postal_code(postal_code) -> bool:
    """OCA only accepts the 4-digit numeric CP (1000-9999)."""
    try:
        value = int(str(postal_code).strip())
    except (TypeError, ValueError):
        return False
    return 1000 <= value <= 9999


def format_oca_date(value: date) -> str:
    """AAAAMMDD"""
    return value.strftime("%Y%m%d")


def recommended_operativa(origin_is_door: bool, destination_is_door: bool) -> str:
    if origin_is_door:
        return OPERATIVAS["PUERTA_A_PUERTA"] if destination_is_door else OPERATIVAS["PUERTA_A_SUCURSAL"]
    return OPERATIVAS["SUCURSAL_A_PUERTA"] if destination_is_door else OPERATIVAS["SUCURSAL_A_SUCURSAL"]


def _text(node, name) -> Optional[str]:
    found = node.find(name.lower()) if node is not None else None
    if found is None:
        return None
    value = found.get_text(strip=True)
    return value or None


def _to_float(value) -> Optional[float]:
    try:
        return float(str(value).replace(",", "."))
    except (TypeError, ValueError):
        return None


def _to_int(value) -> Optional[int]:
    try:
        return int(float(str(value).replace(",", ".")))
    except (TypeError, ValueError):
        return None


@dataclass
class OCAShipmentRequest:
    """One shipment inside an IngresoORMultiplesRetiros pickup order."""
    remito: str
    recipient_first_name: str
    recipient_last_name: str
    street: str
    number: str
    city: str
    province: str
    postal_code: str
    packages: List[Dict[str, Any]]
    floor: str = ""
    apartment: str = ""
    phone: str = ""
    email: str = ""
    branch_id: str = "0"
    notes: str = ""


def build_pickup_order_xml(
    account_number: str,
    origin: Dict[str, str],
    shipments: List[OCAShipmentRequest],
    operativa: str,
    pickup_date: date,
) -> str:
    """
    ROWS document for IngresoORMultiplesRetiros.

    ElementTree escapes every attribute value, so customer-entered text
    cannot break the document.
    """
    rows = ET.Element("ROWS")
    ET.SubElement(rows, "cabecera", ver="2.0", nrocuenta=str(account_number))
    origenes = ET.SubElement(rows, "origenes")
    origen = ET.SubElement(origenes, "origen", {
        "calle": origin.get("street", ""),
        "nro": origin.get("number", ""),
        "piso": origin.get("floor", ""),
        "depto": origin.get("apartment", ""),
        "cp": origin.get("postal_code", ""),
        "localidad": origin.get("city", ""),
        "provincia": origin.get("province", ""),
        "contacto": origin.get("contact", ""),
        "email": origin.get("email", ""),
        "solicitante": origin.get("contact", ""),
        "observaciones": "",
        "centrocosto": "0",
        "idfranjahoraria": "1",
        "idcentroimposicionorigen": origin.get("branch_id", "0"),
        "fecha": format_oca_date(pickup_date),
    })
    envios = ET.SubElement(origen, "envios")
    for shipment in shipments:
        envio = ET.SubElement(envios, "envio", idoperativa=str(operativa), nroremito=shipment.remito)
        ET.SubElement(envio, "destinatario", {
            "apellido": shipment.recipient_last_name,
            "nombre": shipment.recipient_first_name,
            "calle": shipment.street,
            "nro": shipment.number,
            "piso": shipment.floor,
            "depto": shipment.apartment,
            "localidad": shipment.city,
            "provincia": shipment.province,
            "cp": shipment.postal_code,
            "telefono": shipment.phone,
            "email": shipment.email,
            "idci": shipment.branch_id,
            "celular": shipment.phone,
            "observaciones": shipment.notes,
        })
        paquetes = ET.SubElement(envio, "paquetes")
        for package in shipment.packages:
            ET.SubElement(paquetes, "paquete", {
                "alto": str(package["alto"]),
                "ancho": str(package["ancho"]),
                "largo": str(package["largo"]),
                "peso": str(package["peso"]),
                "valor": str(package.get("valor", 0)),
                "cant": str(package.get("cantidad", 1)),
            })

    body = ET.tostring(rows, encoding="unicode")
    return '<?xml version="1.0" encoding="iso-8859-1" standalone="yes"?>' + body


class OCAClient:
    """
    OCA ePak client.

    Features:
    - Retry with exponential backoff on network errors and 5xx
    - DataSet XML parsing with explicit errors (no placeholder values)
    """

    def __init__(
        self,
        user: str,
        password: str,
        account_number: Optional[str] = None,
        cuit: Optional[str] = None,
        production: bool = False,
        default_operativa: Optional[str] = None,
        base_url: str = OCA_BASE_URL,
    ):
        if not user or not password:
            raise CarrierAuthError("OCA_USER / OCA_PASSWORD not configured", carrier=CARRIER_OCA)
        self.user = user
        self.password = password
        self.account_number = account_number
        self.cuit = cuit
        self.default_operativa = default_operativa or OPERATIVAS["PUERTA_A_PUERTA"]
        self.epak_url = base_url + (EPAK_PATH if production else EPAK_TEST_PATH)
        self.tracking_url = base_url + TRACKING_PATH
        self._session = requests.Session()

    # =========================================================================
    # Transport
    # =========================================================================

    def _call(self, url: str, method_name: str, http_method: str = "GET", **kwargs) -> BeautifulSoup:
        response = request_with_retry(
            self._session,
            http_method,
            f"{url}/{method_name}",
            error_cls=CarrierRequestError,
            service="OCA",
            **kwargs,
        )
        if response.status_code != 200:
            raise CarrierRequestError(
                f"OCA {method_name} failed with HTTP {response.status_code}",
                status_code=response.status_code,
                carrier=CARRIER_OCA,
            )

        soup = BeautifulSoup(response.text, "html.parser")
        error = soup.find("error") or soup.find("errores")
        if error is not None:
            message = _text(error, "descripcion") or error.get_text(" ", strip=True) or "unknown error"
            raise CarrierRequestError(f"OCA {method_name} error: {message}", carrier=CARRIER_OCA)
        return soup

    @staticmethod
    def _tables(soup: BeautifulSoup):
        return soup.find_all("table")

    # =========================================================================
    # Quotes and branches
    # =========================================================================

    def quote(
        self,
        weight_kg: float,
        volume_m3: float,
        postal_code_origin: str,
        postal_code_destination: str,
        packages: int = 1,
        declared_value: float = 0,
        operativa: Optional[str] = None,
    ) -> RateQuote:
        if not is_valid_postal_code(postal_code_origin) or not is_valid_postal_code(postal_code_destination):
            raise CarrierRequestError("OCA requires 4-digit postal codes (1000-9999)", code="INVALID_POSTAL_CODE",
                                      carrier=CARRIER_OCA)

        operativa = operativa or self.default_operativa
        soup = self._call(self.epak_url, "Tarifar_Envio_Corporativo", params={
            "PesoTotal": weight_kg,
            "VolumenTotal": volume_m3,
            "CodigoPostalOrigen": postal_code_origin,
            "CodigoPostalDestino": postal_code_destination,
            "CantidadPaquetes": packages,
            "ValorDeclarado": declared_value,
            "Cuit": self.cuit,
            "Operativa": operativa,
        })
        tables = self._tables(soup)
        total = _to_float(_text(tables[0], "total")) if tables else None
        if total is None:
            raise CarrierRequestError("OCA returned no rate for this route", code="RATES_ERROR", carrier=CARRIER_OCA)

        days = _to_int(_text(tables[0], "plazoentrega"))
        return RateQuote(
            carrier=CARRIER_OCA,
            service=f"oca-{operativa}",
            name="OCA ePak",
            price=total,
            delivered_type="S" if operativa in (OPERATIVAS["PUERTA_A_SUCURSAL"], OPERATIVAS["SUCURSAL_A_SUCURSAL"]) else "D",
            delivery_days_min=days,
            delivery_days_max=days,
        )

    def get_branches(self, postal_code: str) -> List[Dict[str, Any]]:
        soup = self._call(self.epak_url, "GetCentrosImposicionConServiciosByCP", params={"CodigoPostal": postal_code})
        branches = []
        for table in self._tables(soup):
            branch_id = _text(table, "idcentroimposicion")
            if not branch_id:
                continue
            branches.append({
                "code": branch_id,
                "name": _text(table, "sucursal"),
                "address": " ".join(filter(None, [_text(table, "calle"), _text(table, "numero")])),
                "city": _text(table, "localidad"),
                "province": _text(table, "provincia"),
                "postalCode": _text(table, "codigopostal"),
                "phone": _text(table, "telefono"),
            })
        return branches

    # =========================================================================
    # Shipments
    # =========================================================================

    def create_shipment(
        self,
        origin: Dict[str, str],
        shipment: OCAShipmentRequest,
        operativa: Optional[str] = None,
        pickup_date: Optional[date] = None,
        confirm: bool = True,
    ) -> ShipmentResult:
        """
        Create a pickup order with a single shipment.

        Returns the pickup order number as shipment_id and the OCA
        shipment number as tracking_number.
        """
        if not self.account_number:
            raise CarrierRequestError("OCA_ACCOUNT_NUMBER not configured", carrier=CARRIER_OCA)

        xml_data = build_pickup_order_xml(
            self.account_number,
            origin,
            [shipment],
            operativa or self.default_operativa,
            pickup_date or date.today(),
        )
        soup = self._call(self.epak_url, "IngresoORMultiplesRetiros", http_method="POST", data={
            "usr": self.user,
            "psw": self.password,
            "XML_Datos": xml_data,
            "ConfirmarRetiro": "true" if confirm else "false",
            "ArchivoCliente": "",
            "ArchivoProceso": "",
        })

        detail = soup.find("detalleingresos")
        order_number = _text(detail, "ordenretiro")
        tracking_number = _text(detail, "numeroenvio")
        if not order_number and not tracking_number:
            raise CarrierRequestError("OCA did not return a pickup order", code="IMPORT_ERROR", carrier=CARRIER_OCA)

        logger.info(f"OCA pickup order {order_number} created (shipment {tracking_number})")
        return ShipmentResult(
            tracking_number=tracking_number,
            shipment_id=order_number,
            raw={"codigoOperacion": _text(soup.find("resumen"), "codigooperacion")},
        )

    def cancel(self, order_id: str) -> bool:
        soup = self._call(self.epak_url, "AnularOrdenGenerada", params={
            "usr": self.user,
            "psw": self.password,
            "IdOrdenRetiro": order_id,
        })
        tables = self._tables(soup)
        result = _text(tables[0], "idresult") if tables else None
        if result != CANCEL_SUCCESS_CODE:
            message = _text(tables[0], "mensaje") if tables else None
            raise CarrierRequestError(f"OCA could not cancel order {order_id}: {message or result}",
                                      carrier=CARRIER_OCA)
        return True

    # =========================================================================
    # Tracking
    # =========================================================================

    def get_current_status(self, tracking_number: str) -> TrackingInfo:
        soup = self._call(self.epak_url, "GetEnvioEstadoActual", params={
            "numeroEnvio": tracking_number,
            "ordenRetiro": "",
        })
        tables = self._tables(soup)
        if not tables:
            raise CarrierRequestError(f"No status for {tracking_number}", code="TRACKING_ERROR", carrier=CARRIER_OCA)

        table = tables[0]
        status = _text(table, "estado")
        return TrackingInfo(
            tracking_number=_text(table, "numeroenvio") or tracking_number,
            status=status,
            description=status,
            last_update=_text(table, "fecha"),
            delivered=bool(status) and _DELIVERED_MARKER in status.upper(),
            events=[TrackingEvent(date=_text(table, "fecha"), description=status or "",
                                  location=_text(table, "sucursal"), status=status)],
        )

    def get_tracking(self, tracking_number: str) -> TrackingInfo:
        soup = self._call(self.tracking_url, "Tracking_Pieza", params={
            "Pieza": tracking_number,
            "NroDocumentoCliente": "",
            "CUIT": self.cuit or "",
        })
        events = []
        for table in self._tables(soup):
            # OCA spells this element "Desdcripcion_Estado"
            description = _text(table, "desdcripcion_estado") or _text(table, "descripcion_estado")
            if not description:
                continue
            events.append(TrackingEvent(
                date=_text(table, "fecha"),
                description=description,
                location=_text(table, "suc"),
                status=description,
            ))
        if not events:
            raise CarrierRequestError(f"No tracking for {tracking_number}", code="TRACKING_ERROR", carrier=CARRIER_OCA)

        # Tracking_Pieza lists events oldest first
        latest = events[-1]
        return TrackingInfo(
            tracking_number=tracking_number,
            status=latest.status,
            description=latest.description,
            last_update=latest.date,
            delivered=_DELIVERED_MARKER in latest.description.upper(),
            events=list(reversed(events)),
        )

    def validate_tracking(self, tracking_number: str) -> Optional[TrackingInfo]:
        """Current status first, full history as a fallback; None when OCA knows neither."""
        for lookup in (self.get_current_status, self.get_tracking):
            try:
                return lookup(tracking_number)
            except CarrierRequestError as e:
                logger.info(f"OCA {lookup.__name__} found nothing for {tracking_number}: {e}")
        return None


def get_oca_client() -> Optional[OCAClient]:
    """App-scoped client, or None when OCA credentials are missing."""
    client = current_app.extensions.get("oca_client")
    if client is not None:
        return client

    config = current_app.config
    if not config.get("OCA_USER") or not config.get("OCA_PASSWORD"):
        logger.warning("OCA not configured")
        return None

    client = OCAClient(
        config["OCA_USER"],
        config["OCA_PASSWORD"],
        account_number=config.get("OCA_ACCOUNT_NUMBER"),
        cuit=config.get("OCA_CUIT"),
        production=config.get("OCA_PRODUCTION", False),
        default_operativa=config.get("OCA_OPERATIVA"),
    )
    current_app.extensions["oca_client"] = client
    return client
