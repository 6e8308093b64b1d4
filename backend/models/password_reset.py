"""
Password reset tokens for back-office accounts.

Only the SHA-256 of the token is stored; the raw value travels in the
reset link and is never persisted.
"""
import hashlib

from models.database import db, utcnow


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


class PasswordResetToken(db.Model):
    __tablename__ = 'password_reset_tokens'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    token_hash = db.Column(db.String(64), unique=True, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    used_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=utcnow)

    user = db.relationship('User', backref=db.backref('reset_tokens', cascade='all, delete-orphan'))

    @property
    def is_usable(self):
        return self.used_at is None and self.expires_at > utcnow()

    @classmethod
    def find_by_token(cls, token):
        if not token:
            return None
        return cls.query.filter_by(token_hash=hash_reset_token(token)).first()
