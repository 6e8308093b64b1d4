"""
Tests for the contact form and the support back office.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest

from models.database import db
from models.support_ticket import SupportTicket


def _ticket_body(**overrides):
    body = {
        "name": "Ana Pérez",
        "email": "Ana@Example.com",
        "subject": "Cambio de talle",
        "message": "Quiero cambiar la remera por un talle M.",
    }
    body.update(overrides)
    return body


@pytest.fixture
def ticket(client):
    response = client.post("/api/support/tickets", json=_ticket_body())
    return db.session.get(SupportTicket, response.get_json()["ticketId"])


class TestCreateTicket:

    def test_created(self, client):
        response = client.post("/api/support/tickets", json=_ticket_body(priority="high"))

        assert response.status_code == 201
        ticket = db.session.get(SupportTicket, response.get_json()["ticketId"])
        assert ticket.email == "ana@example.com"
        assert ticket.status == "open"
        assert ticket.priority == "high"
        assert [m.author for m in ticket.messages] == ["customer"]

    def test_links_known_order(self, client, make_order):
        order = make_order()
        response = client.post("/api/support/tickets", json=_ticket_body(orderId=order.id))
        ticket = db.session.get(SupportTicket, response.get_json()["ticketId"])
        assert ticket.order_id == order.id

    def test_unknown_order_is_kept_in_message(self, client):
        response = client.post("/api/support/tickets", json=_ticket_body(orderId="ord_nope"))

        ticket = db.session.get(SupportTicket, response.get_json()["ticketId"])
        assert ticket.order_id is None
        assert ticket.message.startswith("[Pedido ord_nope]")

    def test_invalid_email(self, client):
        response = client.post("/api/support/tickets", json=_ticket_body(email="not-an-email"))
        assert response.status_code == 400

    def test_short_message(self, client):
        response = client.post("/api/support/tickets", json=_ticket_body(message="hola"))
        assert response.status_code == 400


class TestAdminSupport:

    def test_requires_admin(self, client):
        assert client.get("/api/admin/support/tickets").status_code == 401

    def test_list_and_search(self, client, admin_headers, ticket):
        client.post("/api/support/tickets", json=_ticket_body(name="Leo", email="leo@example.com",
                                                              subject="Factura A"))

        listing = client.get("/api/admin/support/tickets", headers=admin_headers).get_json()
        found = client.get("/api/admin/support/tickets?search=factura", headers=admin_headers).get_json()

        assert listing["total"] == 2
        assert found["total"] == 1
        assert found["data"][0]["subject"] == "Factura A"

    def test_unknown_status_filter(self, client, admin_headers):
        response = client.get("/api/admin/support/tickets?status=lost", headers=admin_headers)
        assert response.status_code == 400

    def test_detail_includes_messages(self, client, admin_headers, ticket):
        data = client.get(f"/api/admin/support/tickets/{ticket.id}", headers=admin_headers).get_json()["data"]
        assert data["messages"][0]["author"] == "customer"

    def test_missing_ticket(self, client, admin_headers):
        assert client.get("/api/admin/support/tickets/999", headers=admin_headers).status_code == 404

    def test_reply_starts_ticket_and_emails(self, client, admin_headers, ticket):
        with patch("services.support_service.email_service") as emails:
            response = client.post(f"/api/admin/support/tickets/{ticket.id}/reply", headers=admin_headers,
                                   json={"message": "Hola Ana, te enviamos el cambio."})

        assert response.status_code == 201
        body = response.get_json()
        assert body["reply"]["author"] == "staff"
        assert body["data"]["status"] == "in_progress"
        assert body["data"]["firstResponseAt"] is not None
        emails.send_ticket_reply.assert_called_once()

    def test_second_reply_keeps_first_response_time(self, client, admin_headers, ticket):
        url = f"/api/admin/support/tickets/{ticket.id}/reply"
        with patch("services.support_service.email_service"):
            first = client.post(url, headers=admin_headers, json={"message": "Primera"}).get_json()
            second = client.post(url, headers=admin_headers, json={"message": "Segunda"}).get_json()

        assert second["data"]["firstResponseAt"] == first["data"]["firstResponseAt"]
        assert len(second["data"]["messages"]) == 3

    def test_resolve_and_reopen(self, client, admin_headers, ticket):
        url = f"/api/admin/support/tickets/{ticket.id}"

        resolved = client.patch(url, headers=admin_headers, json={"status": "resolved"}).get_json()["data"]
        reopened = client.patch(url, headers=admin_headers, json={"status": "open"}).get_json()["data"]

        assert resolved["resolvedAt"] is not None
        assert reopened["resolvedAt"] is None

    def test_invalid_status_update(self, client, admin_headers, ticket):
        response = client.patch(f"/api/admin/support/tickets/{ticket.id}", headers=admin_headers,
                                json={"status": "archived"})
        assert response.status_code == 400

    def test_stats(self, client, admin_headers, ticket):
        ticket.first_response_at = ticket.created_at + timedelta(hours=3)
        ticket.status = "in_progress"
        db.session.commit()
        client.post("/api/support/tickets", json=_ticket_body())

        stats = client.get("/api/admin/support/stats", headers=admin_headers).get_json()

        assert stats == {
            "totalTickets": 2,
            "openTickets": 1,
            "inProgressTickets": 1,
            "resolvedTickets": 0,
            "avgResponseHours": 3.0,
        }
