"""
Tests for services/correo_argentino_client.py

Covers token handling, payload cleaning and response normalization with
the HTTP session mocked.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

import pytest

from services.carriers import CarrierAuthError, CarrierRequestError, CarrierValidationError
from services.correo_argentino_client import (
    ARGENTINA_TZ,
    CA_TEST_URL,
    CorreoArgentinoClient,
    clean_import_payload,
    parse_token_expiry,
)


# =============================================================================
# Fixtures
# =============================================================================

def _response(status_code=200, data=None):
    response = Mock()
    response.status_code = status_code
    response.content = b"{}" if data is not None else b""
    response.json.return_value = data
    return response


def _token_response():
    return _response(200, {"token": "tok-1", "expires": "2099-01-30 18:22:10"})


@pytest.fixture
def client():
    return CorreoArgentinoClient("user", "pass", customer_id="0001")


def _home_payload(**shipping):
    base = {
        "deliveryType": "D",
        "weight": 812.4,
        "height": 10,
        "length": 30,
        "width": 20,
        "address": {
            "streetName": "Av. Siempreviva",
            "streetNumber": "742",
            "floor": "PB-A",
            "apartment": None,
            "city": "Don Torcuato",
            "provinceCode": "B",
            "postalCode": "1611",
        },
    }
    base.update(shipping)
    return {"extOrderId": "ord_1", "sender": {"originAgency": "X"}, "shipping": base}


# =============================================================================
# Helpers
# =============================================================================

class TestParseTokenExpiry:

    def test_naive_time_is_argentina(self):
        expiry = parse_token_expiry("2025-01-30 18:22:10")
        assert expiry.tzinfo == ARGENTINA_TZ
        assert expiry.hour == 18

    def test_unparseable_defaults_to_twelve_hours(self):
        expiry = parse_token_expiry("not a date")
        remaining = expiry - datetime.now(timezone.utc)
        assert timedelta(hours=11) < remaining <= timedelta(hours=12)


class TestCleanImportPayload:

    def test_home_delivery_normalized(self):
        cleaned = clean_import_payload(_home_payload())
        shipping = cleaned["shipping"]
        assert shipping["weight"] == 812
        assert shipping["address"]["floor"] == "PB-"
        assert "originAgency" not in cleaned["sender"]

    def test_does_not_mutate_input(self):
        payload = _home_payload()
        clean_import_payload(payload)
        assert payload["shipping"]["weight"] == 812.4

    def test_home_delivery_requires_address(self):
        payload = _home_payload()
        payload["shipping"]["address"]["city"] = ""
        with pytest.raises(CarrierValidationError) as exc:
            clean_import_payload(payload)
        assert exc.value.code == "MISSING_ADDRESS"

    def test_branch_delivery_requires_agency(self):
        with pytest.raises(CarrierValidationError) as exc:
            clean_import_payload(_home_payload(deliveryType="S", agency=None))
        assert exc.value.code == "MISSING_AGENCY"

    def test_branch_delivery_drops_address(self):
        cleaned = clean_import_payload(_home_payload(deliveryType="S", agency="B0001"))
        assert "address" not in cleaned["shipping"]


# =============================================================================
# Client
# =============================================================================

class TestClient:

    def test_requires_credentials(self):
        with pytest.raises(CarrierAuthError):
            CorreoArgentinoClient("", "")

    def test_token_reused(self, client):
        responses = [_token_response(), _response(200, {"rates": []}), _response(200, {"rates": []})]
        with patch.object(client._session, "request", side_effect=responses) as request:
            client.get_rates("1611", "5000", {"weight": 500, "height": 10, "width": 20, "length": 30})
            client.get_rates("1611", "5000", {"weight": 500, "height": 10, "width": 20, "length": 30})

        assert request.call_count == 3
        assert request.call_args_list[0][0] == ("POST", f"{CA_TEST_URL}/token")
        assert request.call_args_list[2].kwargs["headers"]["Authorization"] == "Bearer tok-1"

    def test_reauthenticates_on_401(self, client):
        responses = [
            _token_response(),
            _response(401, {"message": "expired"}),
            _token_response(),
            _response(200, {"rates": []}),
        ]
        with patch.object(client._session, "request", side_effect=responses) as request:
            assert client.get_rates("1611", "5000", {"weight": 500}) == []
        assert request.call_count == 4

    def test_auth_failure(self, client):
        with patch.object(client._session, "request", return_value=_response(401, {"message": "bad"})):
            with pytest.raises(CarrierAuthError):
                client.authenticate()

    def test_rates_parsed(self, client):
        rates = {"rates": [{
            "deliveredType": "D",
            "productType": "CP",
            "productName": "Correo Argentino Clasico",
            "price": "2350.5",
            "deliveryTimeMin": "2",
            "deliveryTimeMax": "5",
        }]}
        with patch.object(client._session, "request", side_effect=[_token_response(), _response(200, rates)]):
            quotes = client.get_rates("1611", "5000", {"weight": 812.4}, delivered_type="D")

        assert len(quotes) == 1
        quote = quotes[0]
        assert quote.service == "ca-d-cp"
        assert quote.price == 2350.5
        assert quote.delivery_days_min == 2
        assert quote.delivery_days_max == 5

    def test_import_shipment(self, client):
        with patch.object(client._session, "request",
                          side_effect=[_token_response(), _response(200, {"trackingNumber": "CA999AR"})]) as request:
            result = client.import_shipment(_home_payload())

        assert result.tracking_number == "CA999AR"
        assert result.shipment_id == "ord_1"
        body = request.call_args_list[1].kwargs["json"]
        assert body["customerId"] == "0001"

    def test_import_error(self, client):
        with patch.object(client._session, "request",
                          side_effect=[_token_response(), _response(400, {"message": "invalid province"})]):
            with pytest.raises(CarrierRequestError) as exc:
                client.import_shipment(_home_payload())
        assert exc.value.code == "IMPORT_ERROR"
        assert "invalid province" in str(exc.value)

    def test_tracking_latest_event_first(self, client):
        data = [{
            "trackingNumber": "CA999AR",
            "events": [
                {"date": "2025-02-03 10:00", "event": "ENTREGADO", "branch": "Rosario", "status": "ENTREGADO"},
                {"date": "2025-02-01 09:00", "event": "EN CAMINO", "branch": "CTP", "status": "EN TRANSITO"},
            ],
        }]
        with patch.object(client._session, "request", side_effect=[_token_response(), _response(200, data)]):
            info = client.get_tracking("CA999AR")

        assert info.delivered is True
        assert info.last_update == "2025-02-03 10:00"
        assert len(info.events) == 2

    def test_tracking_error_entry(self, client):
        data = [{"error": "not found"}]
        with patch.object(client._session, "request", side_effect=[_token_response(), _response(200, data)]):
            with pytest.raises(CarrierRequestError) as exc:
                client.get_tracking("nope")
        assert exc.value.code == "TRACKING_ERROR"
