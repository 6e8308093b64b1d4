"""
Store settings - admin-editable values kept as JSON documents by key

Keys:
- store             name, admin email, shipping and payment preferences
- shipping_options  the checkout shipping methods (id, name, price, ...)

Missing keys fall back to the environment config (services.settings_service).
"""
from models.database import db, utcnow


class StoreSetting(db.Model):
    __tablename__ = 'store_settings'

    key = db.Column(db.String(64), primary_key=True)
    value = db.Column(db.JSON, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    @classmethod
    def get_value(cls, key, default=None):
        row = db.session.get(cls, key)
        return row.value if row is not None else default

    @classmethod
    def set_value(cls, key, value):
        """Upsert a setting. Caller commits."""
        row = db.session.get(cls, key)
        if row is None:
            row = cls(key=key, value=value)
            db.session.add(row)
        else:
            row.value = value
            row.updated_at = utcnow()
        return row
