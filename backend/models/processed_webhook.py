"""
Processed Webhook Model - payment notification idempotency

MercadoPago delivers notifications at least once and re-sends them on
every status change. Each handled notification is stored under a key
(`payment:<id>:<status>` unless the gateway provided an event id) so a
redelivery is acknowledged without running reconciliation again.
"""
from datetime import timedelta

from sqlalchemy.exc import IntegrityError

from models.database import db, utcnow


class ProcessedWebhook(db.Model):
    __tablename__ = 'processed_webhooks'

    event_id = db.Column(db.String(255), primary_key=True)
    event_type = db.Column(db.String(100))
    processed_at = db.Column(db.DateTime, default=utcnow, index=True)

    @classmethod
    def is_processed(cls, event_id):
        """Check if event has already been processed."""
        return db.session.query(cls).filter_by(event_id=event_id).first() is not None

    @classmethod
    def mark_processed(cls, event_id, event_type=None):
        """Mark event as processed. A concurrent duplicate insert is a no-op."""
        if cls.is_processed(event_id):
            return
        db.session.add(cls(event_id=event_id, event_type=event_type))
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()

    @classmethod
    def cleanup_old_events(cls, days=30):
        """
        Remove events older than specified days.

        Run from the daily maintenance job to prevent table bloat.
        """
        cutoff = utcnow() - timedelta(days=days)
        deleted = db.session.query(cls).filter(cls.processed_at < cutoff).delete()
        db.session.commit()
        return deleted
