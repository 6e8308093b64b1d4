"""
Support Service - contact form tickets and staff replies
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy import func, or_

from models.database import db, utcnow
from models.order import Order
from models.support_ticket import SupportTicket, TicketMessage
from schemas.support import TicketCreate, TicketUpdate
from services import email_service

logger = logging.getLogger(__name__)

CLOSED_STATUSES = ('resolved', 'closed')


class TicketNotFound(Exception):
    pass


def create_ticket(payload: TicketCreate) -> SupportTicket:
    order_id = payload.order_id
    message = payload.message
    if order_id and db.session.get(Order, order_id) is None:
        # Unknown references are kept in the message, not linked
        logger.info(f"Ticket references unknown order {order_id}")
        message = f"[Pedido {order_id}] {message}"
        order_id = None

    ticket = SupportTicket(
        name=payload.name,
        email=payload.email.lower(),
        subject=payload.subject,
        message=message,
        order_id=order_id,
        priority=payload.priority,
        status='open',
    )
    ticket.messages.append(TicketMessage(author='customer', body=payload.message))
    db.session.add(ticket)
    db.session.commit()
    logger.info(f"Support ticket {ticket.id} created ({ticket.priority})")
    return ticket


def get_ticket(ticket_id: int) -> SupportTicket:
    ticket = db.session.get(SupportTicket, ticket_id)
    if ticket is None:
        raise TicketNotFound(f"Ticket {ticket_id} not found")
    return ticket


def list_tickets(status: Optional[str] = None, search: Optional[str] = None, page: int = 1, limit: int = 20):
    query = SupportTicket.query
    if status:
        query = query.filter(SupportTicket.status == status)
    if search:
        pattern = f"%{search.lower()}%"
        query = query.filter(or_(
            func.lower(SupportTicket.name).like(pattern),
            func.lower(SupportTicket.email).like(pattern),
            func.lower(SupportTicket.subject).like(pattern),
            func.lower(SupportTicket.order_id).like(pattern),
        ))
    total = query.count()
    tickets = (
        query.order_by(SupportTicket.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return tickets, total


def reply_to_ticket(ticket: SupportTicket, body: str) -> TicketMessage:
    """Add a staff reply; the first one stamps first_response_at and starts the ticket."""
    reply = TicketMessage(author='staff', body=body)
    ticket.messages.append(reply)
    now = utcnow()
    if ticket.first_response_at is None:
        ticket.first_response_at = now
    if ticket.status == 'open':
        ticket.status = 'in_progress'
    ticket.updated_at = now
    db.session.commit()

    email_service.send_ticket_reply(ticket, reply)
    return reply


def update_ticket(ticket: SupportTicket, payload: TicketUpdate) -> SupportTicket:
    if payload.priority:
        ticket.priority = payload.priority
    if payload.status and payload.status != ticket.status:
        ticket.status = payload.status
        if payload.status in CLOSED_STATUSES:
            ticket.resolved_at = ticket.resolved_at or utcnow()
        else:
            ticket.resolved_at = None
    db.session.commit()
    return ticket


def get_stats() -> Dict[str, Any]:
    rows = dict(
        db.session.query(SupportTicket.status, func.count(SupportTicket.id))
        .group_by(SupportTicket.status)
        .all()
    )

    responded = (
        SupportTicket.query
        .filter(SupportTicket.first_response_at.isnot(None))
        .with_entities(SupportTicket.created_at, SupportTicket.first_response_at)
        .all()
    )
    hours = [
        (first - created).total_seconds() / 3600
        for created, first in responded
        if created is not None
    ]

    return {
        'totalTickets': sum(rows.values()),
        'openTickets': rows.get('open', 0),
        'inProgressTickets': rows.get('in_progress', 0),
        'resolvedTickets': rows.get('resolved', 0) + rows.get('closed', 0),
        'avgResponseHours': round(sum(hours) / len(hours), 2) if hours else 0,
    }
