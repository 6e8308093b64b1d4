"""
Shared SQLAlchemy handle.

All models import `db` from here; the app factory binds it with db.init_app().
"""
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def utcnow():
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def iso(value):
    return value.isoformat() if value else None


def money(value):
    return float(value) if value is not None else None
