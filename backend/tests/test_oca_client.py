"""
Tests for services/oca_client.py

OCA answers with DataSet XML; responses below are trimmed real shapes.
"""

import xml.etree.ElementTree as ET
from datetime import date
from unittest.mock import Mock, patch

import pytest

from services.carriers import CarrierAuthError, CarrierRequestError
from services.oca_client import (
    OPERATIVAS,
    OCAClient,
    OCAShipmentRequest,
    build_pickup_order_xml,
    format_oca_date,
    is_valid_postal_code,
    recommended_operativa,
    total_volume,
    total_weight,
)


# =============================================================================
# Fixtures
# =============================================================================

def _response(text, status_code=200):
    response = Mock()
    response.status_code = status_code
    response.text = text
    return response


@pytest.fixture
def client():
    return OCAClient("user", "pass", account_number="111757/001", cuit="30-12345678-9")


@pytest.fixture
def shipment():
    return OCAShipmentRequest(
        remito="ord_1",
        recipient_first_name="Ana",
        recipient_last_name="O'Neil & Cía",
        street="Belgrano",
        number="55",
        city="Mendoza",
        province="M",
        postal_code="5500",
        packages=[{"alto": 10, "ancho": 20, "largo": 30, "peso": 0.8, "valor": 3000.0, "cantidad": 1}],
    )


QUOTE_XML = """<?xml version="1.0" encoding="utf-8"?>
<DataSet xmlns="#Oca">
  <diffgr:diffgram>
    <NewDataSet>
      <Table>
        <Tarifador>15</Tarifador>
        <Precio>1200,50</Precio>
        <Total>1452.61</Total>
        <PlazoEntrega>3</PlazoEntrega>
      </Table>
    </NewDataSet>
  </diffgr:diffgram>
</DataSet>"""

SHIPMENT_XML = """<?xml version="1.0" encoding="utf-8"?>
<DataSet>
  <Resumen><CodigoOperacion>88123</CodigoOperacion><CantidadRegistros>1</CantidadRegistros></Resumen>
  <DetalleIngresos>
    <OrdenRetiro>OR-5501</OrdenRetiro>
    <NumeroEnvio>3867500000000012345</NumeroEnvio>
    <Remito>ord_1</Remito>
  </DetalleIngresos>
</DataSet>"""

TRACKING_XML = """<?xml version="1.0" encoding="utf-8"?>
<DataSet>
  <NewDataSet>
    <Table><Desdcripcion_Estado>En proceso de retiro</Desdcripcion_Estado><SUC>Don Torcuato</SUC><fecha>2025-02-01</fecha></Table>
    <Table><Desdcripcion_Estado>Entregado</Desdcripcion_Estado><SUC>Mendoza</SUC><fecha>2025-02-04</fecha></Table>
  </NewDataSet>
</DataSet>"""

ERROR_XML = """<?xml version="1.0" encoding="utf-8"?>
<DataSet><Errores><Error><Descripcion>Cuenta inexistente</Descripcion></Error></Errores></DataSet>"""


# =============================================================================
# Helpers
# =============================================================================

class TestHelpers:

    def test_volume_and_weight(self):
        packages = [{"alto": 10, "ancho": 20, "largo": 30, "peso": 0.8, "cantidad": 2}]
        assert total_volume(packages) == 0.012
        assert total_weight(packages) == 1.6

    def test_postal_code(self):
        assert is_valid_postal_code("1611")
        assert is_valid_postal_code(5500)
        assert not is_valid_postal_code("999")
        assert not is_valid_postal_code("C1425")

    def test_date_format(self):
        assert format_oca_date(date(2025, 2, 3)) == "20250203"

    def test_recommended_operativa(self):
        assert recommended_operativa(True, True) == OPERATIVAS["PUERTA_A_PUERTA"]
        assert recommended_operativa(True, False) == OPERATIVAS["PUERTA_A_SUCURSAL"]
        assert recommended_operativa(False, True) == OPERATIVAS["SUCURSAL_A_PUERTA"]
        assert recommended_operativa(False, False) == OPERATIVAS["SUCURSAL_A_SUCURSAL"]


class TestPickupOrderXml:

    def test_escapes_customer_text(self, shipment):
        xml = build_pickup_order_xml("111757/001", {"street": "Av. Tienda", "postal_code": "1611"},
                                     [shipment], OPERATIVAS["PUERTA_A_PUERTA"], date(2025, 2, 3))
        assert xml.startswith('<?xml version="1.0" encoding="iso-8859-1"')
        root = ET.fromstring(xml.split("?>", 1)[1])

        assert root.find("cabecera").get("nrocuenta") == "111757/001"
        origen = root.find("origenes/origen")
        assert origen.get("fecha") == "20250203"
        envio = origen.find("envios/envio")
        assert envio.get("nroremito") == "ord_1"
        assert envio.find("destinatario").get("apellido") == "O'Neil & Cía"
        assert envio.find("paquetes/paquete").get("peso") == "0.8"


# =============================================================================
# Client
# =============================================================================

class TestClient:

    def test_requires_credentials(self):
        with pytest.raises(CarrierAuthError):
            OCAClient("", "pass")

    def test_quote(self, client):
        with patch.object(client._session, "request", return_value=_response(QUOTE_XML)) as request:
            quote = client.quote(0.8, 0.006, "1611", "5500", declared_value=3000)

        assert quote.price == 1452.61
        assert quote.delivery_days_min == 3
        assert quote.delivered_type == "D"
        assert quote.service == f"oca-{OPERATIVAS['PUERTA_A_PUERTA']}"
        params = request.call_args.kwargs["params"]
        assert params["Cuit"] == "30-12345678-9"
        assert params["CodigoPostalDestino"] == "5500"

    def test_quote_rejects_bad_postal_code(self, client):
        with pytest.raises(CarrierRequestError) as exc:
            client.quote(1, 0.01, "1611", "C1425")
        assert exc.value.code == "INVALID_POSTAL_CODE"

    def test_quote_without_rate(self, client):
        empty = "<DataSet><NewDataSet></NewDataSet></DataSet>"
        with patch.object(client._session, "request", return_value=_response(empty)):
            with pytest.raises(CarrierRequestError) as exc:
                client.quote(1, 0.01, "1611", "5500")
        assert exc.value.code == "RATES_ERROR"

    def test_error_document(self, client):
        with patch.object(client._session, "request", return_value=_response(ERROR_XML)):
            with pytest.raises(CarrierRequestError) as exc:
                client.get_branches("1611")
        assert "Cuenta inexistente" in str(exc.value)

    def test_create_shipment(self, client, shipment):
        origin = {"street": "Av. Tienda", "number": "100", "postal_code": "1611"}
        with patch.object(client._session, "request", return_value=_response(SHIPMENT_XML)) as request:
            result = client.create_shipment(origin, shipment, pickup_date=date(2025, 2, 3))

        assert result.shipment_id == "OR-5501"
        assert result.tracking_number == "3867500000000012345"
        assert result.raw == {"codigoOperacion": "88123"}
        method = request.call_args[0][0]
        data = request.call_args.kwargs["data"]
        assert method == "POST"
        assert data["ConfirmarRetiro"] == "true"
        assert "nroremito=\"ord_1\"" in data["XML_Datos"]

    def test_create_shipment_requires_account(self, shipment):
        client = OCAClient("user", "pass")
        with pytest.raises(CarrierRequestError):
            client.create_shipment({}, shipment)

    def test_tracking_history(self, client):
        with patch.object(client._session, "request", return_value=_response(TRACKING_XML)):
            info = client.get_tracking("3867500000000012345")

        assert info.delivered is True
        assert info.description == "Entregado"
        assert info.events[0].location == "Mendoza"
        assert len(info.events) == 2

    def test_validate_tracking_falls_back(self, client):
        empty = "<DataSet></DataSet>"
        responses = [_response(empty), _response(TRACKING_XML)]
        with patch.object(client._session, "request", side_effect=responses):
            info = client.validate_tracking("3867500000000012345")
        assert info is not None
        assert info.delivered is True

    def test_validate_tracking_unknown(self, client):
        empty = "<DataSet></DataSet>"
        with patch.object(client._session, "request", side_effect=[_response(empty), _response(empty)]):
            assert client.validate_tracking("nope") is None

    def test_http_error(self, client):
        with patch.object(client._session, "request", return_value=_response("", status_code=400)):
            with pytest.raises(CarrierRequestError) as exc:
                client.get_branches("1611")
        assert exc.value.status_code == 400
