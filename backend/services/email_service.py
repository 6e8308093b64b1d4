"""
Transactional email via Resend.

Every sender returns True/False and never raises: an email failure must
not roll back an order, a payment reconciliation or a ticket reply.
Without RESEND_API_KEY (local dev, tests) messages are skipped and logged.
"""

import logging

import resend
from flask import current_app, render_template

from constants import CARRIER_CORREO_ARGENTINO, CARRIER_OCA, PASSWORD_RESET_TTL_MINUTES
from services import settings_service

logger = logging.getLogger(__name__)

CARRIER_NAMES = {
    CARRIER_CORREO_ARGENTINO: "Correo Argentino",
    CARRIER_OCA: "OCA",
}


class EmailError(Exception):
    """Resend rejected a message."""


def _send(to, subject, template, **context) -> bool:
    config = current_app.config
    api_key = config.get("RESEND_API_KEY")
    if not to:
        logger.info(f"Email '{subject}' skipped: no recipient")
        return False
    if not api_key:
        logger.info(f"Email '{subject}' to {to} skipped: RESEND_API_KEY not configured")
        return False

    html = render_template(
        f"email/{template}",
        subject=subject,
        store_name=settings_service.store_name(),
        app_url=config.get("PUBLIC_APP_URL"),
        **context,
    )
    payload = {
        "from": config.get("EMAIL_FROM"),
        "to": [to] if isinstance(to, str) else list(to),
        "subject": subject,
        "html": html,
    }

    resend.api_key = api_key
    try:
        response = resend.Emails.send(payload)
        if not isinstance(response, dict) or not response.get("id"):
            raise EmailError(f"Unexpected Resend response: {response!r}")
    except Exception as e:
        logger.error(f"Email '{subject}' to {to} failed: {e}")
        return False

    logger.info(f"Email '{subject}' sent to {to} (id={response['id']})")
    return True


def send_order_confirmation(order) -> bool:
    store = settings_service.store_name()
    return _send(order.customer_email, f"{store} - Pedido {order.id} recibido", "order_confirmation.html", order=order)


def send_order_shipped(order) -> bool:
    store = settings_service.store_name()
    return _send(
        order.customer_email,
        f"{store} - Tu pedido {order.id} está en camino",
        "order_shipped.html",
        order=order,
        carrier_name=CARRIER_NAMES.get(order.carrier),
    )


def send_order_delivered(order) -> bool:
    store = settings_service.store_name()
    return _send(order.customer_email, f"{store} - Pedido {order.id} entregado", "order_delivered.html", order=order)


def send_new_order_admin_notification(order) -> bool:
    return _send(
        settings_service.admin_email(),
        f"Nuevo pedido {order.id} ({order.payment_method})",
        "admin_new_order.html",
        order=order,
    )


def send_payment_reminder(order) -> bool:
    store = settings_service.store_name()
    return _send(
        order.customer_email,
        f"{store} - Tu pedido {order.id} espera el pago",
        "payment_reminder.html",
        order=order,
        payment_url=order.payment_url,
    )


def send_ticket_reply(ticket, reply) -> bool:
    store = settings_service.store_name()
    return _send(
        ticket.email,
        f"{store} - Respuesta a tu consulta #{ticket.id}",
        "ticket_reply.html",
        ticket=ticket,
        reply=reply,
    )


def send_test_email(to) -> bool:
    store = settings_service.store_name()
    return _send(to, f"{store} - Email de prueba", "test.html")


def send_password_reset(user, token) -> bool:
    store = settings_service.store_name()
    reset_url = f"{current_app.config.get('PUBLIC_APP_URL')}/admin/auth/reset-password?token={token}"
    return _send(
        user.email,
        f"{store} - Recuperar contraseña",
        "password_reset.html",
        user=user,
        reset_url=reset_url,
        ttl_minutes=PASSWORD_RESET_TTL_MINUTES,
    )
