"""
Support Ticket Models - contact form tickets and their message thread
"""
from models.database import db, utcnow, iso


class SupportTicket(db.Model):
    __tablename__ = 'support_tickets'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(255), nullable=False, index=True)
    subject = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    order_id = db.Column(db.String(64), db.ForeignKey('orders.id'), nullable=True)
    status = db.Column(db.String(20), default='open', nullable=False, index=True)  # open, in_progress, resolved, closed
    priority = db.Column(db.String(10), default='normal', nullable=False)  # low, normal, high
    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
    first_response_at = db.Column(db.DateTime)
    resolved_at = db.Column(db.DateTime)

    messages = db.relationship(
        'TicketMessage', back_populates='ticket',
        cascade='all, delete-orphan', order_by='TicketMessage.created_at'
    )

    def to_dict(self, include_messages=False):
        result = {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'subject': self.subject,
            'message': self.message,
            'orderId': self.order_id,
            'status': self.status,
            'priority': self.priority,
            'createdAt': iso(self.created_at),
            'updatedAt': iso(self.updated_at),
            'firstResponseAt': iso(self.first_response_at),
            'resolvedAt': iso(self.resolved_at),
        }
        if include_messages:
            result['messages'] = [m.to_dict() for m in self.messages]
        return result


class TicketMessage(db.Model):
    __tablename__ = 'ticket_messages'

    id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey('support_tickets.id', ondelete='CASCADE'), nullable=False, index=True)
    author = db.Column(db.String(20), nullable=False)  # customer or staff
    body = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    ticket = db.relationship('SupportTicket', back_populates='messages')

    def to_dict(self):
        return {
            'id': self.id,
            'author': self.author,
            'body': self.body,
            'createdAt': iso(self.created_at),
        }
